from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    NO_RESULT = "no_result"
    MALFORMED_RESPONSE = "malformed_response"


class UpstreamError(RuntimeError):
    """An external collaborator failed or answered with something unusable."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UPSTREAM_UNAVAILABLE) -> None:
        super().__init__(message)
        self.kind = kind


class QuizError(RuntimeError):
    """The quiz engine rejected a request (unknown question, bad option)."""


@dataclass
class CallResult(Generic[T]):
    """Outcome of one external call: a value, or the kind of failure."""

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    def value_or(self, default: T) -> T:
        if self.error is not None or self.value is None:
            return default
        return self.value

    @classmethod
    def success(cls, value: T) -> "CallResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str = "") -> "CallResult[T]":
        return cls(error=kind, detail=detail)
