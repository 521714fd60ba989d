"""Environment driven configuration for the golf chatbot service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

ENV_FILE = Path(__file__).with_name(".env")


class ConfigError(RuntimeError):
    """Raised at start-up when required configuration is missing."""


def _env_str(name: str, default: str = "") -> str:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip()


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Settings:
    """Derive service configuration from the environment."""

    openai_api_key: str = field(default_factory=lambda: _env_str("OPENAI_API_KEY"))
    openai_base_url: str = field(default_factory=lambda: _env_str("OPENAI_BASE_URL"))
    chat_model: str = field(default_factory=lambda: _env_str("OPENAI_MODEL", "gpt-4o-mini"))
    embedding_model: str = field(default_factory=lambda: _env_str("EMBEDDING_MODEL", "text-embedding-3-small"))
    answer_temperature: float = field(default_factory=lambda: _env_float("ANSWER_TEMPERATURE", 0.3))
    answer_max_tokens: int = field(default_factory=lambda: _env_int("ANSWER_MAX_TOKENS", 450))

    session_backend: str = field(default_factory=lambda: _env_str("SESSION_BACKEND", "memory").lower())
    session_db_path: str = field(default_factory=lambda: _env_str("SESSION_DB_PATH", "data/sessions.db"))

    vector_backend: str = field(default_factory=lambda: _env_str("VECTOR_BACKEND", "qdrant").lower())
    qdrant_url: str = field(default_factory=lambda: _env_str("QDRANT_URL"))
    qdrant_api_key: str = field(default_factory=lambda: _env_str("QDRANT_API_KEY"))
    site_collection: str = field(default_factory=lambda: _env_str("QDRANT_COLLECTION", "site_docs"))
    site_vector_name: str = field(default_factory=lambda: _env_str("SITE_VECTOR_NAME"))
    chroma_dir: str = field(default_factory=lambda: _env_str("CHROMA_DIR", "data/site_chroma"))
    site_search_url: str = field(default_factory=lambda: _env_str("SITE_SEARCH_URL"))
    course_collection: str = field(default_factory=lambda: _env_str("COURSE_COLLECTION", "courses"))
    course_qdrant_url: str = field(default_factory=lambda: _env_str("COURSE_QDRANT_URL"))
    course_state_key: str = field(default_factory=lambda: _env_str("COURSE_STATE_KEY", "payload.state"))

    rerank_backend: str = field(default_factory=lambda: _env_str("RERANK_BACKEND", "voyage").lower())
    voyage_api_key: str = field(default_factory=lambda: _env_str("VOYAGE_API_KEY"))
    voyage_rerank_model: str = field(default_factory=lambda: _env_str("VOYAGE_RERANK_MODEL", "rerank-2-lite"))
    cross_encoder_model: str = field(
        default_factory=lambda: _env_str("CROSS_ENCODER_MODEL", "cross-encoder/ms-marco-MiniLM-L-6-v2")
    )

    retrieval_top_k: int = field(default_factory=lambda: _env_int("RETRIEVAL_TOP_K", 120))
    rerank_top_n: int = field(default_factory=lambda: _env_int("RERANK_TOP_N", 40))
    context_max_chars: int = field(default_factory=lambda: _env_int("CONTEXT_MAX_CHARS", 12000))
    passage_max_chars: int = field(default_factory=lambda: _env_int("PASSAGE_MAX_CHARS", 1400))

    quiz_backend: str = field(default_factory=lambda: _env_str("QUIZ_BACKEND", "local").lower())
    quiz_base_url: str = field(
        default_factory=lambda: _env_str("QUIZ_BASE_URL", "https://golf-profiler-ml.vercel.app").rstrip("/")
    )
    quiz_timeout_ms: int = field(default_factory=lambda: _env_int("QUIZ_TIMEOUT_MS", 12000))
    question_bank_path: str = field(default_factory=lambda: _env_str("QUESTION_BANK_PATH"))
    conversational_questions: bool = field(default_factory=lambda: _env_bool("CONVERSATIONAL_QUESTIONS", True))

    course_search_url: str = field(
        default_factory=lambda: _env_str("QDRANT_SEARCH_URL", "https://golf-profiler-ml.vercel.app/api/qdrant-search")
    )
    course_match_limit: int = field(default_factory=lambda: _env_int("COURSE_MATCH_LIMIT", 8))

    geocoder_url: str = field(
        default_factory=lambda: _env_str("GEOCODER_URL", "https://nominatim.openstreetmap.org/search")
    )
    zip_lookup_url: str = field(default_factory=lambda: _env_str("ZIP_LOOKUP_URL", "https://api.zippopotam.us/us"))
    weather_url: str = field(default_factory=lambda: _env_str("WEATHER_URL", "https://api.open-meteo.com/v1/forecast"))
    user_agent: str = field(default_factory=lambda: _env_str("HTTP_USER_AGENT", "GolfCourseBot/1.0"))
    http_timeout_seconds: float = field(default_factory=lambda: _env_float("HTTP_TIMEOUT_SECONDS", 12.0))

    frontend_origin: str = field(default_factory=lambda: _env_str("FRONTEND_ORIGIN", "*"))
    cookie_secure: bool = field(default_factory=lambda: _env_bool("COOKIE_SECURE", False))
    debug_rag: bool = field(default_factory=lambda: _env_bool("DEBUG_RAG", False))

    def missing_required(self) -> List[str]:
        missing: List[str] = []
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if self.vector_backend == "qdrant" and not self.qdrant_url:
            missing.append("QDRANT_URL")
        if self.quiz_backend == "remote" and not self.quiz_base_url:
            missing.append("QUIZ_BASE_URL")
        return missing

    def validate(self) -> None:
        missing = self.missing_required()
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
        if self.session_backend not in {"memory", "sqlite"}:
            raise ConfigError(f"Unknown SESSION_BACKEND: {self.session_backend}")
        if self.vector_backend not in {"qdrant", "chroma"}:
            raise ConfigError(f"Unknown VECTOR_BACKEND: {self.vector_backend}")
        if self.rerank_backend not in {"voyage", "cross_encoder", "none"}:
            raise ConfigError(f"Unknown RERANK_BACKEND: {self.rerank_backend}")
        if self.quiz_backend not in {"local", "remote"}:
            raise ConfigError(f"Unknown QUIZ_BACKEND: {self.quiz_backend}")


def load_env_file(path: str | Path = ENV_FILE) -> bool:
    """Load KEY=VALUE pairs from a .env file; variables already set win."""
    env_path = Path(path)
    if not env_path.exists():
        return False

    load_dotenv(env_path, override=False)

    for raw in env_path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key.lower().startswith("$env:"):
            key = key[5:]
        if key and value and key not in os.environ:
            os.environ[key] = value
    return True


# Settings() reads os.environ, so .env is loaded before the singleton is built.
load_env_file()
settings = Settings()


__all__ = ["ConfigError", "ENV_FILE", "Settings", "load_env_file", "settings"]
