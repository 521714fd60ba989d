from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

from langchain_core.messages import SystemMessage

from langsmith_integration import get_chat_model
from rag_agent import RagAgent, RetrievalResult
from settings import settings

from .messages import user_messages_as_lc
from .rendering import Reply, render_links_list, render_reply_html

LOGGER = logging.getLogger("golf.answer")

REFUSAL = "I don't have that in the site content."
LINKS_INTRO = "Here are relevant pages on our site:"
SEARCH_UNAVAILABLE = (
    'I can help you with golf courses! The search system is temporarily unavailable, '
    'but you can type "start" to begin the quiz.'
)
MAX_REPLY_CHARS = 2000
NAME_HINTS = 5
LINKIFY_TOP = 2

CITATION_RE = re.compile(r"\[(\d+)\]")


def build_system_prompt(context: str, course_names: List[str]) -> str:
    names_block = ""
    if course_names:
        listed = "\n".join(f"- {name}" for name in course_names)
        names_block = f"\n# Available Course Names (use ONLY 1-2 of these exact names in your response):\n{listed}"
    return (
        "You are a friendly golf buddy who knows course details from the site context.\n"
        "- Base everything ONLY on the Site Context. No guessing.\n"
        "- Keep answers short (2–4 sentences).\n"
        "- Use citations like [n] for facts.\n"
        f'- If nothing relevant is in context, say: "{REFUSAL}".\n'
        '- IMPORTANT: Use the exact course names from the "Available Course Names" list below in your response.\n'
        f"# Site Context\n{context}{names_block}"
    )


def collapse_duplicate_names(reply: str, links: List[Dict[str, str]]) -> str:
    """Undo model stutters like "Wayland Country ClubCountry Club"."""
    out = reply
    for link in links:
        name = str(link.get("name") or "")
        if not name:
            continue
        escaped = re.escape(name)
        for suffix in (escaped, "Country Club", "Golf Club", "Golf Course"):
            out = re.sub(rf"\b{escaped}{suffix}\b", lambda _m: name, out, flags=re.IGNORECASE)
    return out


def truncate_reply(reply: str, limit: int = MAX_REPLY_CHARS) -> str:
    if len(reply) > limit:
        return reply[:limit] + "..."
    return reply


def cited_indices(reply: str, available: int) -> List[int]:
    found: List[int] = []
    for match in CITATION_RE.finditer(reply or ""):
        number = int(match.group(1))
        if 1 <= number <= available and number not in found:
            found.append(number)
    return found


class AnswerSynthesizer:
    """Evidence-bound answer over retrieved site passages."""

    def __init__(self, rag_agent: RagAgent | None = None, llm: Any = None) -> None:
        self.rag_agent = rag_agent or RagAgent()
        self._llm = llm

    @property
    def llm(self) -> Any:
        if self._llm is None:
            self._llm = get_chat_model(temperature=settings.answer_temperature, max_tokens=settings.answer_max_tokens)
        return self._llm

    def _invoke(self, system_prompt: str, messages: List[Dict[str, str]]) -> str:
        llm = self.llm
        if llm is None:
            return ""
        try:
            response = llm.invoke([SystemMessage(content=system_prompt), *user_messages_as_lc(messages)])
        except Exception as exc:
            LOGGER.warning("[answer] llm call failed: %s", exc)
            return ""
        return str(getattr(response, "content", "") or "").strip()

    def answer(self, query: str, messages: List[Dict[str, str]]) -> Reply:
        try:
            retrieval = self.rag_agent.retrieve(query)
        except Exception as exc:
            LOGGER.warning("[answer] retrieval failed: %s", exc)
            return Reply.text(SEARCH_UNAVAILABLE)
        return self.compose(retrieval, messages)

    def compose(self, retrieval: RetrievalResult, messages: List[Dict[str, str]]) -> Reply:
        if retrieval.empty:
            return Reply.text(REFUSAL)

        links = retrieval.links
        top_links = links[:NAME_HINTS]
        system_prompt = build_system_prompt(retrieval.context, [link["name"] for link in top_links if link.get("name")])
        reply = self._invoke(system_prompt, messages)

        if reply and reply != REFUSAL:
            reply = truncate_reply(collapse_duplicate_names(reply, links))
            hints = [link for link in top_links[:LINKIFY_TOP] if len(link.get("name", "")) > 5]
            return Reply(
                blocks=[render_reply_html(reply, hints)],
                links=links,
                citations=cited_indices(reply, len(retrieval.passages)),
            )

        if not links:
            return Reply.text(REFUSAL)
        return Reply(blocks=[LINKS_INTRO, render_links_list(links)], links=links)
