from __future__ import annotations

from typing import Any, Dict, List, Optional, TypedDict


DIMS10 = [
    "overall_difficulty",
    "strategic_variety",
    "penal_vs_playable",
    "physical_demands",
    "weather_adaptability",
    "conditions_quality",
    "facilities_amenities",
    "service_operations",
    "value_proposition",
    "aesthetic_appeal",
]

MAX_LAST_LINKS = 10


class Coords(TypedDict):
    lat: float
    lon: float


class Location(TypedDict, total=False):
    city: Optional[str]
    state: Optional[str]
    zip_code: Optional[str]
    coords: Optional[Coords]
    radius: Optional[int]
    display_name: Optional[str]
    needs_clarification: bool
    needs_state_clarification: bool
    available_states: List[str]


class Availability(TypedDict, total=False):
    type: str
    date: Optional[str]
    original: Optional[str]
    start: str
    end: str
    bucket: str


class QuizOption(TypedDict, total=False):
    index: int
    text: str
    emoji: str


class QuizQuestion(TypedDict, total=False):
    id: str
    text: str
    conversational_text: str
    options: List[QuizOption]


class ChatState(TypedDict, total=False):
    session_id: Optional[str]
    quiz_session_id: Optional[str]
    mode: Optional[str]
    question: Optional[QuizQuestion]
    question_number: Optional[int]
    answers: Dict[str, Dict[str, Any]]
    scores: Dict[str, float]
    location: Optional[Location]
    availability: Optional[Availability]
    needs_location: bool
    needs_when: bool
    last_links: List[Dict[str, str]]


class TurnState(TypedDict, total=False):
    """State threaded through the chat graph for a single turn."""

    session_id: str
    messages: List[Dict[str, str]]
    user_text: str
    chat: ChatState
    intent: Any
    reply: Any


def new_chat_state() -> ChatState:
    return {
        "session_id": None,
        "quiz_session_id": None,
        "mode": None,
        "question": None,
        "question_number": None,
        "answers": {},
        "scores": {},
        "location": None,
        "availability": None,
        "needs_location": False,
        "needs_when": False,
        "last_links": [],
    }


def reset_quiz_fields(state: ChatState) -> ChatState:
    state["mode"] = None
    state["quiz_session_id"] = None
    state["question"] = None
    state["question_number"] = None
    state["answers"] = {}
    state["scores"] = {}
    state["needs_location"] = False
    state["needs_when"] = False
    return state


def has_location(state: ChatState) -> bool:
    location = state.get("location") or {}
    return bool(location.get("coords") or location.get("city"))


def quiz_active(state: ChatState) -> bool:
    question = state.get("question") or {}
    return state.get("mode") == "quiz" and bool(state.get("quiz_session_id")) and bool(question.get("id"))


def quiz_progress_label(state: ChatState) -> str:
    if state.get("mode") != "quiz":
        return "Not started"
    if state.get("needs_location"):
        return "Quiz started - needs location"
    if state.get("needs_when"):
        return "Quiz started - needs date"
    return f"Quiz in progress - Question {state.get('question_number') or 1}"


def profile_snapshot(state: ChatState, progress: str | None = None) -> Dict[str, Any]:
    return {
        "location": state.get("location"),
        "availability": state.get("availability"),
        "quiz_progress": progress or quiz_progress_label(state),
        "scores": state.get("scores") or {},
    }
