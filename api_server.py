from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any
from urllib.parse import quote

import requests
from fastapi import APIRouter, Body, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from quiz_client import UpstreamTimeout, proxy_json
from settings import settings
from weather_agent import build_sidecar_html
from workflow.graph_chat import build_chat_graph, build_default_services, run_turn
from workflow.intents import intent_name

LOGGER = logging.getLogger("golf.api")

SESSION_COOKIE = "sid"
INTERNAL_ERROR = "Internal server error"

settings.validate()

app = FastAPI(title="golf-chatbot API", version="1.0.0")

allowed_origins = [origin.strip() for origin in settings.frontend_origin.split(",") if origin.strip()]
if not allowed_origins:
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=allowed_origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

services = build_default_services()
chat_graph = build_chat_graph(services).compile()


class ChatMessage(BaseModel):
    role: str = "user"
    content: str = ""


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)


class SidecarRequest(BaseModel):
    query: str = ""
    q: str = ""


def _ensure_session(request: Request, response: Response) -> str:
    sid = request.cookies.get(SESSION_COOKIE)
    if sid:
        return sid
    sid = uuid.uuid4().hex
    response.set_cookie(
        SESSION_COOKIE,
        sid,
        httponly=True,
        path="/",
        samesite="lax",
        secure=settings.cookie_secure,
    )
    return sid


def _log_turn(sid: str, intent: str, started: float) -> None:
    LOGGER.info(
        json.dumps(
            {
                "event": "chat_turn",
                "intent": intent,
                "duration_ms": int((time.perf_counter() - started) * 1000),
                "session": sid[:8],
            }
        )
    )


@app.exception_handler(Exception)
def unhandled_error(_request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("[api] unhandled error: %s", exc)
    return JSONResponse(status_code=500, content={"error": INTERNAL_ERROR})


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/ping")
def ping() -> dict[str, bool]:
    return {"ok": True}


@app.post("/api/chat")
@app.post("/chat")
def chat(payload: ChatRequest, request: Request, response: Response) -> dict[str, Any]:
    sid = _ensure_session(request, response)
    started = time.perf_counter()
    messages = [message.model_dump() for message in payload.messages]

    result = run_turn(chat_graph, sid, messages)
    reply = result["reply"]
    _log_turn(sid, intent_name(result["intent"]), started)
    return reply.to_payload()


@app.get("/api/sidecar")
@app.get("/sidecar")
def sidecar(q: str = "") -> dict[str, str]:
    return {"html": build_sidecar_html(q)}


@app.post("/api/sidecar")
@app.post("/sidecar")
def sidecar_post(payload: SidecarRequest) -> dict[str, str]:
    return {"html": build_sidecar_html(payload.query or payload.q)}


@app.post("/api/reset")
def reset_sessions() -> dict[str, str]:
    services.sessions.clear_all()
    return {"status": "ok"}


quiz_proxy = APIRouter(prefix="/api/chatbot")


def _proxy(method: str, path: str, body: dict[str, Any] | None, timeout_message: str) -> JSONResponse:
    url = f"{settings.quiz_base_url}{path}"
    try:
        status, data = proxy_json(method, url, body)
    except UpstreamTimeout:
        LOGGER.warning("[quiz-proxy] %s %s: %s", method, path, timeout_message)
        return JSONResponse(status_code=504, content={"error": timeout_message})
    except requests.RequestException as exc:
        LOGGER.warning("[quiz-proxy] %s %s failed: %s", method, path, exc)
        return JSONResponse(status_code=504, content={"error": str(exc)})
    return JSONResponse(status_code=status, content=data)


@quiz_proxy.get("/health")
def quiz_proxy_health() -> dict[str, Any]:
    return {"ok": True, "base": settings.quiz_base_url, "timeout_ms": settings.quiz_timeout_ms}


@quiz_proxy.post("/start")
def quiz_proxy_start(body: dict[str, Any] | None = Body(default=None)) -> JSONResponse:
    return _proxy("POST", "/api/chatbot-start", body, "Upstream quiz start timed out")


@quiz_proxy.post("/answer")
def quiz_proxy_answer(body: dict[str, Any] | None = Body(default=None)) -> JSONResponse:
    return _proxy("POST", "/api/chatbot-answer", body, "Upstream quiz answer timed out")


@quiz_proxy.get("/question/{question_id}")
def quiz_proxy_question(question_id: str) -> JSONResponse:
    return _proxy("GET", f"/api/chatbot-question?questionId={quote(question_id)}", None, "Upstream question fetch timed out")


app.include_router(quiz_proxy)
