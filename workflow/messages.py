from __future__ import annotations

from typing import Any, Dict, List

from langchain_core.messages import BaseMessage, HumanMessage


def _openai_role_from_type(msg_type: str | None) -> str:
    if msg_type == "human":
        return "user"
    if msg_type == "ai":
        return "assistant"
    if msg_type == "system":
        return "system"
    return "assistant"


def openai_from_lc_message(message: Any) -> Dict[str, str]:
    role = _openai_role_from_type(getattr(message, "type", None))
    return {"role": role, "content": str(getattr(message, "content", ""))}


def is_openai_message(obj: Any) -> bool:
    return isinstance(obj, dict) and "role" in obj and "content" in obj


def serialize_messages_openai(messages: Any) -> List[Dict[str, str]]:
    if not isinstance(messages, list):
        return []
    out: List[Dict[str, str]] = []
    for msg in messages:
        if isinstance(msg, BaseMessage):
            out.append(openai_from_lc_message(msg))
        elif is_openai_message(msg):
            out.append({"role": str(msg["role"]), "content": str(msg["content"] or "")})
    return out


def last_user_text(messages: Any) -> str:
    for msg in reversed(serialize_messages_openai(messages)):
        if msg.get("role", "").lower() == "user":
            return msg.get("content", "").strip()
    return ""


def user_messages_as_lc(messages: Any) -> List[BaseMessage]:
    """Only the user's own turns are forwarded to the model."""
    return [
        HumanMessage(content=msg["content"])
        for msg in serialize_messages_openai(messages)
        if msg.get("role", "").lower() == "user" and msg.get("content")
    ]
