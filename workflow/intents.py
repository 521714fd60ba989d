"""Turn classification: the latest user utterance plus session state -> one tagged intent."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

from .extractor import detect_location_update
from .state import ChatState, quiz_active

START_RE = re.compile(r"^\s*(start|start quiz)\s*$", re.IGNORECASE)
CANCEL_RE = re.compile(r"^\s*(cancel|stop|exit|end)\s*(quiz)?\s*$", re.IGNORECASE)
LOCATION_SENTINEL_RE = re.compile(r"^\s*LOCATION:([^:]*):?([^:]*)\s*$", re.IGNORECASE)
WHEN_SENTINEL_RE = re.compile(r"^\s*WHEN:([^:]*):?([^:]*):?([^:]*)\s*$", re.IGNORECASE)
PICK_RE = re.compile(r"^(?:pick|answer|option)?\s*(\d+)\s*$", re.IGNORECASE)

DEFAULT_QUIZ_RADIUS = 25


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class Cancel:
    pass


@dataclass(frozen=True)
class Pick:
    index: int


@dataclass(frozen=True)
class LocationCapture:
    zip_code: str
    radius: int = DEFAULT_QUIZ_RADIUS


@dataclass(frozen=True)
class DateCapture:
    start: str
    end: str = ""
    bucket: str = "any"


@dataclass(frozen=True)
class RadiusUpdate:
    miles: int


@dataclass(frozen=True)
class LocationUpdate:
    place: str


@dataclass(frozen=True)
class StateClarification:
    text: str


@dataclass(frozen=True)
class QuizFreeText:
    text: str


@dataclass(frozen=True)
class ContentQuery:
    text: str


@dataclass(frozen=True)
class Unrecognized:
    text: str = ""


Intent = Union[
    Start,
    Cancel,
    Pick,
    LocationCapture,
    DateCapture,
    RadiusUpdate,
    LocationUpdate,
    StateClarification,
    QuizFreeText,
    ContentQuery,
    Unrecognized,
]


def detect_start(text: str) -> bool:
    return bool(START_RE.match(text or ""))


def detect_cancel(text: str) -> bool:
    return bool(CANCEL_RE.match(text or ""))


def detect_location_sentinel(text: str) -> Optional[LocationCapture]:
    match = LOCATION_SENTINEL_RE.match(text or "")
    if not match:
        return None
    radius_raw = match.group(2).strip()
    radius = int(radius_raw) if radius_raw.isdigit() and int(radius_raw) > 0 else DEFAULT_QUIZ_RADIUS
    return LocationCapture(zip_code=match.group(1).strip(), radius=radius)


def detect_when_sentinel(text: str) -> Optional[DateCapture]:
    match = WHEN_SENTINEL_RE.match(text or "")
    if not match:
        return None
    return DateCapture(
        start=match.group(1).strip(),
        end=match.group(2).strip(),
        bucket=match.group(3).strip() or "any",
    )


def detect_pick(text: str) -> Optional[Pick]:
    match = PICK_RE.match((text or "").strip())
    if not match:
        return None
    return Pick(index=int(match.group(1)))


def classify(text: str, state: ChatState) -> Intent:
    """Apply the detectors in priority order; the first match wins."""
    raw = (text or "").strip()
    if not raw:
        return Unrecognized(raw)

    if detect_start(raw):
        return Start()
    if detect_cancel(raw):
        return Cancel()

    update = detect_location_update(raw)
    if update and update["type"] == "radius":
        return RadiusUpdate(miles=int(update["value"]))
    if update and update["type"] == "location":
        return LocationUpdate(place=str(update["value"]))

    location = state.get("location") or {}
    if location.get("needs_state_clarification"):
        return StateClarification(raw)

    if state.get("needs_location"):
        capture = detect_location_sentinel(raw)
        if capture:
            return capture
    if state.get("needs_when"):
        when = detect_when_sentinel(raw)
        if when:
            return when

    if quiz_active(state):
        pick = detect_pick(raw)
        if pick:
            return pick
        return QuizFreeText(raw)

    if state.get("mode") != "quiz":
        return ContentQuery(raw)
    return Unrecognized(raw)


def intent_name(intent: Intent) -> str:
    return type(intent).__name__
