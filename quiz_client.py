from __future__ import annotations

import logging
import re
from typing import Any, Dict, Tuple
from urllib.parse import quote

import requests

from errors import ErrorKind, UpstreamError
from quiz_engine import QuizEngine
from settings import Settings, settings

LOGGER = logging.getLogger("golf.quiz.remote")

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


class UpstreamTimeout(UpstreamError):
    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorKind.UPSTREAM_UNAVAILABLE)


def proxy_json(method: str, url: str, body: Dict[str, Any] | None = None, timeout_ms: int | None = None) -> Tuple[int, Any]:
    """Single attempt JSON call; a body that is not JSON comes back as ``{"raw": text}``."""
    timeout = (timeout_ms or settings.quiz_timeout_ms) / 1000.0
    try:
        response = requests.request(
            method,
            url,
            json=(body or {}) if method.upper() == "POST" else None,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            allow_redirects=True,
        )
    except requests.Timeout as exc:
        raise UpstreamTimeout(str(exc)) from exc

    text = response.text
    try:
        data = response.json() if text else {}
    except ValueError:
        data = {"raw": text}
    return response.status_code, data


def _snake_keys(value: Dict[str, Any]) -> Dict[str, Any]:
    return {_CAMEL_RE.sub("_", key).lower(): item for key, item in value.items()}


class RemoteQuizClient:
    """Same surface as QuizEngine, served by the hosted quiz API."""

    def __init__(self, base_url: str | None = None, timeout_ms: int | None = None) -> None:
        self.base_url = (base_url or settings.quiz_base_url).rstrip("/")
        self.timeout_ms = timeout_ms or settings.quiz_timeout_ms

    def _call(self, method: str, path: str, body: Dict[str, Any] | None = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            status, data = proxy_json(method, url, body, timeout_ms=self.timeout_ms)
        except requests.RequestException as exc:
            raise UpstreamError(f"{method} {path} failed: {exc}") from exc
        if status >= 400:
            raise UpstreamError(f"{method} {path} returned HTTP {status}")
        if not isinstance(data, dict) or "raw" in data:
            raise UpstreamError(f"{method} {path} returned a non-JSON body", ErrorKind.MALFORMED_RESPONSE)
        out = _snake_keys(data)
        if isinstance(out.get("question"), dict):
            out["question"] = _snake_keys(out["question"])
        return out

    def start_session(
        self,
        session_id: str,
        skip_location: bool = False,
        location: Dict[str, Any] | None = None,
        availability: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        body = {"sessionId": session_id, "skipLocation": skip_location, "location": location, "availability": availability}
        return self._call("POST", "/api/chatbot-start", body)

    def get_question(self, question_id: str) -> Dict[str, Any]:
        return self._call("GET", f"/api/chatbot-question?questionId={quote(question_id)}")

    def submit_answer(
        self,
        session_id: str,
        question_id: str,
        option_index: int | None = None,
        current_answers: Dict[str, Any] | None = None,
        current_scores: Dict[str, Any] | None = None,
        location: Dict[str, Any] | None = None,
        capture: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "sessionId": session_id,
            "questionId": question_id,
            "optionIndex": option_index,
            "currentAnswers": current_answers or {},
            "currentScores": current_scores or {},
            "location": location,
        }
        if capture is not None:
            body["capture"] = capture
        return self._call("POST", "/api/chatbot-answer", body)

    def finish_session(
        self,
        session_id: str,
        current_answers: Dict[str, Any] | None = None,
        current_scores: Dict[str, Any] | None = None,
        location: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        body = {
            "sessionId": session_id,
            "currentAnswers": current_answers or {},
            "currentScores": current_scores or {},
            "location": location,
            "finish": True,
        }
        return self._call("POST", "/api/chatbot-answer", body)


def build_quiz_adapter(config: Settings | None = None):
    config = config or settings
    if config.quiz_backend == "remote":
        LOGGER.info("[quiz] using remote quiz at %s", config.quiz_base_url)
        return RemoteQuizClient(config.quiz_base_url, config.quiz_timeout_ms)

    return QuizEngine(bank_path=config.question_bank_path or None)
