from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

_TIME_WORDS = r"this|next|weekend|today|tomorrow|morning|afternoon|evening"
_PLACE = r"([A-Za-z][A-Za-z\s-]*?)"
_PLACE_END = rf"(?:\s+(?:{_TIME_WORDS})|[.,!?]|$)"

LOCATION_PATTERNS = [
    re.compile(rf"\b(?:in|near|around|close to|at)\s+{_PLACE}{_PLACE_END}", re.IGNORECASE),
    re.compile(rf"\bcourses?\s+(?:in|near|around|at)\s+{_PLACE}{_PLACE_END}", re.IGNORECASE),
    re.compile(rf"\bplay\s+(?:at|in|near|around)\s+{_PLACE}{_PLACE_END}", re.IGNORECASE),
]
TRAILING_TIME_RE = re.compile(rf"\s+(?:{_TIME_WORDS})$", re.IGNORECASE)

RADIUS_UPDATE_RE = re.compile(r"(?:change|set|update)\s+radius\s+to\s+(\d+)(?:\s+miles?)?", re.IGNORECASE)
LOCATION_UPDATE_RE = re.compile(r"(?:change|set|update)\s+location\s+to\s+([a-zA-Z\s,-]+)", re.IGNORECASE)

LIST_INTENT_RE = re.compile(
    r"(best|top|list|recommend|recommendation|near|close to|within|under\s*\$?\d+|courses?\s+(in|near|around)|bucket\s*list)",
    re.IGNORECASE,
)

LEADING_EMOJI_RE = re.compile(
    "^[\U0001F000-\U0001FAFF\u2600-\u27BF\u2B00-\u2BFF\uFE0F\u200D]+"
)


def normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def strip_punctuation(text: str) -> str:
    return re.sub(r"[^\w\s]", " ", text or "")


def is_list_intent(text: str) -> bool:
    if not text:
        return False
    return bool(LIST_INTENT_RE.search(text))


def extract_location(text: str) -> str:
    """Pull a place name out of phrases like "courses near Wayland this weekend"."""
    raw = (text or "").strip()
    for pattern in LOCATION_PATTERNS:
        match = pattern.search(raw)
        if not match:
            continue
        place = TRAILING_TIME_RE.sub("", match.group(1).strip()).strip()
        if place:
            return place
    return ""


def extract_date_info(text: str, today: date | None = None) -> Optional[Dict[str, Any]]:
    lowered = (text or "").lower()
    today = today or date.today()

    if re.search(r"\b(?:today|this morning|this afternoon|this evening)\b", lowered):
        return {"type": "today", "date": today.isoformat()}
    if re.search(r"\b(?:tomorrow|next day)\b", lowered):
        return {"type": "tomorrow", "date": (today + timedelta(days=1)).isoformat()}
    if re.search(r"\b(?:this weekend|weekend|saturday|sunday)\b", lowered):
        return {"type": "weekend", "date": next_saturday(today).isoformat()}
    if re.search(r"\b(?:next week|this week)\b", lowered):
        return {"type": "next_week", "date": None}
    return None


def next_saturday(today: date) -> date:
    # date.weekday(): Monday=0 .. Saturday=5
    days = (5 - today.weekday()) % 7
    return today + timedelta(days=days or 7)


def detect_location_update(text: str) -> Optional[Dict[str, Any]]:
    raw = text or ""
    radius = RADIUS_UPDATE_RE.search(raw)
    if radius:
        return {"type": "radius", "value": int(radius.group(1))}
    location = LOCATION_UPDATE_RE.search(raw)
    if location:
        value = location.group(1).strip()
        if value:
            return {"type": "location", "value": value}
    return None


def strip_leading_emoji(text: str) -> str:
    return LEADING_EMOJI_RE.sub("", text or "")


def match_option_index(user_text: str, options: List[Dict[str, Any]]) -> int:
    """Map a free-text answer onto a quiz option: index, exact text, partial text, else 0."""
    normalized: List[Dict[str, Any]] = []
    for position, option in enumerate(options or []):
        index = option.get("index", option.get("option_index", position))
        text = str(option.get("text", option.get("option_text", "")) or "")
        normalized.append({"index": int(index), "text": strip_leading_emoji(text).lower().strip()})

    answer = strip_leading_emoji(user_text).lower().strip()
    if not answer:
        return 0

    if answer.isdigit() and any(item["index"] == int(answer) for item in normalized):
        return int(answer)
    for item in normalized:
        if item["text"] == answer:
            return item["index"]
    for item in normalized:
        if item["text"] and answer in item["text"]:
            return item["index"]
    return 0
