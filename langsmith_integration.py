from __future__ import annotations

import logging
import os
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from langchain_openai import ChatOpenAI, OpenAIEmbeddings
from langsmith import Client

from settings import settings

LOGGER = logging.getLogger("golf.llm")


def configure_langsmith(project: str | None = None) -> dict[str, Any]:
    api_key = os.getenv("LANGSMITH_API_KEY")
    project_name = project or os.getenv("LANGSMITH_PROJECT") or "golf-chatbot"

    status: dict[str, Any] = {
        "has_api_key": bool(api_key),
        "project": project_name,
        "tracing_enabled": False,
    }

    if not api_key:
        return status

    if not os.getenv("LANGSMITH_TRACING"):
        os.environ["LANGSMITH_TRACING"] = "true"

    os.environ["LANGSMITH_PROJECT"] = project_name
    status["tracing_enabled"] = os.getenv("LANGSMITH_TRACING", "").lower() == "true"
    return status


def get_chat_model(temperature: float | None = None, max_tokens: int | None = None) -> ChatOpenAI | None:
    if not settings.openai_api_key:
        LOGGER.warning("[llm] OPENAI_API_KEY not set; LLM calls disabled")
        return None

    kwargs: dict[str, Any] = {
        "model": settings.chat_model,
        "temperature": settings.answer_temperature if temperature is None else temperature,
        "api_key": settings.openai_api_key,
        "timeout": settings.http_timeout_seconds,
        "max_retries": 0,
    }
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    if settings.openai_base_url:
        kwargs["base_url"] = settings.openai_base_url

    chat = ChatOpenAI(**kwargs)
    LOGGER.info("[llm] chat model ready: model=%s temperature=%s", kwargs["model"], kwargs["temperature"])
    return chat


def get_embeddings() -> OpenAIEmbeddings | None:
    if not settings.openai_api_key:
        LOGGER.warning("[llm] OPENAI_API_KEY not set; embeddings disabled")
        return None

    kwargs: dict[str, Any] = {
        "model": settings.embedding_model,
        "api_key": settings.openai_api_key,
        "max_retries": 0,
    }
    if settings.openai_base_url:
        kwargs["base_url"] = settings.openai_base_url
    return OpenAIEmbeddings(**kwargs)


class LangSmithLogger:
    """Records one LangSmith run per chat turn, or logs events when tracing is off.

    Node events are collected while a run is open and sent with the final
    ``update_run`` in ``end_run``. The open run lives in a context variable so
    concurrent turns do not share events.
    """

    def __init__(self, api_key: str | None = None, project: str | None = None, client: Any = None):
        self.api_key = api_key or os.getenv("LANGSMITH_API_KEY")
        self.project = project or os.getenv("LANGSMITH_PROJECT") or "golf-chatbot"
        self.enabled = bool(self.api_key or client)
        self.client: Client | None = client
        self._run: ContextVar[dict | None] = ContextVar(f"langsmith_run_{id(self)}", default=None)

        if self.enabled and self.client is None:
            try:
                self.client = Client(api_key=self.api_key)
            except Exception as exc:
                LOGGER.warning("[langsmith] client init failed: %s", exc)
                self.enabled = False

    
    def run_id(self) -> str | None:
        run = self._run.get()
        return run["id"] if run else None

    
    def events(self) -> list[dict]:
        run = self._run.get()
        return list(run["events"]) if run else []

    def start_run(self, name: str, inputs: dict | None = None) -> str:
        run_id = str(uuid.uuid4())
        self._run.set({"id": run_id, "events": []})
        if self.enabled and self.client is not None:
            try:
                self.client.create_run(
                    id=run_id,
                    name=name,
                    project_name=self.project,
                    inputs=inputs or {},
                    run_type="chain",
                    start_time=datetime.now(timezone.utc),
                )
            except Exception as exc:
                LOGGER.warning("[langsmith] start_run failed: %s", exc)
                self.enabled = False

        LOGGER.debug("[langsmith] run_started: %s name=%s", run_id, name)
        return run_id

    def log_event(self, body: str, metadata: dict | None = None) -> None:
        metadata = metadata or {}
        run = self._run.get()
        if run is not None:
            run["events"].append({"name": body, "time": time.time(), "metadata": metadata})
        if not self.enabled:
            LOGGER.debug("[langsmith-log] %s | %s", body, metadata)

    def end_run(self, status: str = "completed", outputs: dict | None = None) -> None:
        run = self._run.get()
        if run is None:
            return
        self._run.set(None)
        if self.enabled and self.client is not None:
            try:
                self.client.update_run(
                    run["id"],
                    outputs=outputs or {},
                    end_time=datetime.now(timezone.utc),
                    error=None if status == "completed" else status,
                    extra={"events": run["events"]},
                )
            except Exception as exc:
                LOGGER.warning("[langsmith] end_run failed: %s", exc)
                self.enabled = False

        LOGGER.debug("[langsmith] run_ended: %s status=%s events=%d", run["id"], status, len(run["events"]))

def get_default_logger() -> LangSmithLogger:
    return LangSmithLogger()
