from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from course_agent import CourseAgent
from errors import QuizError
from langsmith_integration import get_chat_model
from question_bank import is_capture_question, load_question_bank, multiple_choice_bank
from settings import settings
from workflow.state import DIMS10

LOGGER = logging.getLogger("golf.quiz")

REPHRASE_PROMPT = "Rephrase this quiz question to ONE casual conversational line. No numbers or options."


def coverage_bucket(value: float) -> int:
    if value >= 7:
        return 3
    if value >= 5:
        return 2
    if value > 0:
        return 1
    return 0


def _touched_dims(question: Dict[str, Any]) -> List[str]:
    dims: List[str] = []
    for option in question.get("options") or []:
        for dim in (option.get("scores") or {}).keys():
            if dim in DIMS10 and dim not in dims:
                dims.append(dim)
    return dims


def select_next_question(
    answers: Dict[str, Any] | None,
    scores: Dict[str, Any] | None,
    bank: List[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """Highest priority unanswered question, boosted for each dimension it would help cover."""
    answered = set((answers or {}).keys())
    candidates = [q for q in bank or [] if q.get("id") not in answered and q.get("options")]
    if not candidates:
        return None

    coverage = {dim: coverage_bucket(float((scores or {}).get(dim) or 0)) for dim in DIMS10}

    def weight(question: Dict[str, Any]) -> float:
        total = float(question.get("priority") or 0)
        for dim in _touched_dims(question):
            if coverage[dim] == 0:
                total += 10
            elif coverage[dim] == 1:
                total += 5
        return total

    return sorted(candidates, key=weight, reverse=True)[0]


def calculate_scores(answers: Dict[str, Any] | None) -> Dict[str, float]:
    sums: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    for answer in (answers or {}).values():
        for dim, raw in ((answer or {}).get("raw_scores") or {}).items():
            try:
                value = float(raw)
            except (TypeError, ValueError):
                continue
            sums[dim] = sums.get(dim, 0.0) + value
            counts[dim] = counts.get(dim, 0) + 1
    return {dim: (sums[dim] / counts[dim]) * 10 if counts.get(dim) else 0.0 for dim in DIMS10}


def should_finish(scores: Dict[str, Any] | None, count: int) -> bool:
    if count >= 10:
        return True
    covered = any(float((scores or {}).get(dim) or 0) > 0 for dim in DIMS10)
    return count >= 5 and covered


def _clamp10(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return min(10.0, max(0.0, number))


def basic_profile_from_10d(scores: Dict[str, Any] | None) -> Dict[str, Any]:
    s = {dim: _clamp10((scores or {}).get(dim, 0)) for dim in DIMS10}

    prefs: List[str] = []
    if s["strategic_variety"] >= 7:
        prefs.append("Enjoys strategic/varied layouts")
    if s["penal_vs_playable"] <= 3:
        prefs.append("Prefers forgiving over penal setups")
    if s["physical_demands"] >= 7:
        prefs.append("Comfortable with higher physical demands")
    if s["conditions_quality"] >= 7:
        prefs.append("Values top turf conditions")
    if s["facilities_amenities"] >= 7:
        prefs.append("Cares about facilities & amenities")
    if s["service_operations"] >= 7:
        prefs.append("Appreciates strong operations/service")
    if s["value_proposition"] >= 7:
        prefs.append("Value-conscious")
    if s["aesthetic_appeal"] >= 7:
        prefs.append("Loves scenic courses")

    difficulty = s["overall_difficulty"]
    skill_avg = (difficulty + s["physical_demands"]) / 2
    if skill_avg <= 2:
        skill = "New to Golf"
    elif skill_avg <= 4:
        skill = "Recreational Player"
    elif skill_avg <= 6:
        skill = "Regular Golfer"
    elif skill_avg <= 8:
        skill = "Serious Player"
    else:
        skill = "Advanced Golfer"

    course_style = "balanced parkland"
    if difficulty >= 7 and s["strategic_variety"] >= 6:
        course_style = "championship"
    elif s["aesthetic_appeal"] >= 7 and s["strategic_variety"] >= 5:
        course_style = "resort/parkland"
    elif s["strategic_variety"] >= 7:
        course_style = "strategic/links-inspired"
    elif difficulty <= 4:
        course_style = "playable/forgiving"

    if s["conditions_quality"] >= 8:
        budget = "Premium ($100+)"
    elif s["value_proposition"] >= 7:
        budget = "Value ($25–50)"
    else:
        budget = "Mid-range ($50–100)"

    amenities = (
        ["Driving range", "Short-game area", "Practice greens"]
        if s["facilities_amenities"] >= 6
        else ["Basic facilities"]
    )

    return {
        "skill_level": {"label": skill},
        "preferences": {"core": prefs},
        "recommendations": {"course_style": course_style, "budget_level": budget, "amenities": amenities},
        "scores10d": s,
    }


class QuizEngine:
    """In-process quiz over a JSON question bank."""

    def __init__(
        self,
        bank: List[Dict[str, Any]] | None = None,
        bank_path: str | None = None,
        course_agent: CourseAgent | None = None,
        llm: Any = None,
        conversational: bool | None = None,
    ) -> None:
        self._bank = bank
        self._bank_path = bank_path or settings.question_bank_path or None
        self.course_agent = course_agent or CourseAgent()
        self.conversational = settings.conversational_questions if conversational is None else conversational
        self._llm = llm

    @property
    def bank(self) -> List[Dict[str, Any]]:
        if self._bank is None:
            self._bank = load_question_bank(self._bank_path)
        return self._bank

    def _find(self, question_id: str) -> Optional[Dict[str, Any]]:
        for question in self.bank:
            if question["id"] == question_id:
                return question
        return None

    def _conversationalize(self, question: Dict[str, Any]) -> str:
        text = question.get("question") or ""
        if not self.conversational:
            return text
        llm = self._llm or get_chat_model(temperature=0.5, max_tokens=60)
        if llm is None:
            return text
        self._llm = llm
        options = " | ".join(option.get("text", "") for option in question.get("options") or [])
        try:
            response = llm.invoke(
                [
                    SystemMessage(content=REPHRASE_PROMPT),
                    HumanMessage(content=f'Question: "{text}"\nOptions (do not show): {options}'),
                ]
            )
        except Exception as exc:
            LOGGER.warning("[quiz] rephrase failed for %s: %s", question.get("id"), exc)
            return text
        return str(getattr(response, "content", "") or "").strip() or text

    def format_for_chat(self, question: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": question["id"],
            "text": question.get("question", ""),
            "conversational_text": self._conversationalize(question),
            "options": [
                {"index": option["index"], "text": option["text"], "emoji": option.get("emoji", "")}
                for option in question.get("options") or []
            ],
        }

    def start_session(
        self,
        session_id: str,
        skip_location: bool = False,
        location: Dict[str, Any] | None = None,
        availability: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        if not skip_location:
            return {"session_id": session_id, "question_number": 0, "total_questions": "5–10", "needs_location": True}

        mc_bank = multiple_choice_bank(self.bank)
        first = select_next_question({}, {}, mc_bank) or (mc_bank[0] if mc_bank else None)
        if first is None:
            raise QuizError("question bank has no multiple choice questions")
        return {
            "session_id": session_id,
            "question_number": 1,
            "question": self.format_for_chat(first),
            "location": location,
            "availability": availability,
        }

    def get_question(self, question_id: str) -> Dict[str, Any]:
        question = self._find(question_id)
        if question is None:
            raise QuizError(f"Question not found: {question_id}")
        return self.format_for_chat(question)

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
        question = self._find(question_id)
        if question is None:
            raise QuizError(f"Invalid question id: {question_id}")

        answers = dict(current_answers or {})
        if capture is not None or is_capture_question(question):
            answers[question_id] = {
                "question_text": question.get("question") or question_id,
                "answer": "[captured]",
                "option_index": None,
                "capture": capture or {},
            }
        else:
            if option_index is None:
                raise QuizError("Missing option index for multiple choice question")
            option = next((o for o in question["options"] if o["index"] == int(option_index)), None)
            if option is None:
                raise QuizError(f"Invalid option index {option_index} for {question_id}")
            answers[question_id] = {
                "question_text": question.get("question") or question_id,
                "answer": option["text"],
                "option_index": int(option_index),
                "raw_scores": dict(option.get("scores") or {}),
            }

        scores = calculate_scores(answers)
        count = len(answers)
        LOGGER.debug("[quiz] session=%s answered=%s count=%d", session_id, question_id, count)

        next_question = None
        if not should_finish(scores, count):
            next_question = select_next_question(answers, scores, multiple_choice_bank(self.bank))
        if next_question is None:
            return self._complete(answers, scores, location)

        return {
            "complete": False,
            "question_number": count + 1,
            "question": self.format_for_chat(next_question),
            "current_answers": answers,
            "current_scores": scores,
            "location": location,
        }

    def finish_session(
        self,
        session_id: str,
        current_answers: Dict[str, Any] | None = None,
        current_scores: Dict[str, Any] | None = None,
        location: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        answers = dict(current_answers or {})
        scores = dict(current_scores or {}) or calculate_scores(answers)
        LOGGER.info("[quiz] session=%s finished early after %d answers", session_id, len(answers))
        return self._complete(answers, scores, location)

    def _complete(
        self,
        answers: Dict[str, Any],
        scores: Dict[str, float],
        location: Dict[str, Any] | None,
    ) -> Dict[str, Any]:
        profile = basic_profile_from_10d(scores)
        matches = self.course_agent.get_courses(scores, limit=settings.course_match_limit, location=location)
        if matches:
            profile["matched_courses"] = [
                {"name": m["name"], "url": m["url"], "score": m["score"], "distance": m.get("distance")}
                for m in matches
            ]
        return {
            "complete": True,
            "profile": profile,
            "scores": scores,
            "total_questions": len(answers),
            "current_answers": answers,
            "current_scores": scores,
        }
