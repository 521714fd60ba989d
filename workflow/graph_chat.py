from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List

from langgraph.graph import END, StateGraph

import geocoding
from errors import CallResult, QuizError, UpstreamError
from langsmith_integration import configure_langsmith, get_default_logger
from quiz_client import build_quiz_adapter
from session_store import SessionStore, build_session_store
from settings import settings

from .extractor import extract_date_info, extract_location, match_option_index
from .intents import classify, intent_name
from .messages import last_user_text
from .rag import AnswerSynthesizer
from .rendering import Reply, date_form_html, location_form_html, render_final_profile_html, render_question_html
from .state import (
    MAX_LAST_LINKS,
    ChatState,
    Location,
    TurnState,
    has_location,
    new_chat_state,
    profile_snapshot,
    reset_quiz_fields,
)

LOGGER = logging.getLogger("golf.chat")
logger = get_default_logger()

FREE_TEXT_RADIUS = 10

DEFAULT_HELP = 'Tell me what you\'re looking for – try "courses in Wayland" or type "start" to begin the quiz.'
QUIZ_EXITED = "Got it – I've exited the quiz. Ask anything or type 'start' to begin again."
START_FAILED = "Sorry, I couldn't start the quiz right now."
FIRST_QUESTION_FAILED = "Sorry, I couldn't start the quiz. Try again."
CONTINUE_FAILED = "Sorry, I couldn't continue the quiz. Try again."
ANSWER_FAILED = "Sorry, there was an error processing your answer. Try again."
NEXT_QUESTION_FAILED = "Thanks! I couldn't fetch the next question; try 'start' again."
NO_LOCATION_YET = "❌ No location set yet. Please set a location first."

INTENT_NODES: Dict[str, str] = {
    "Start": "start",
    "Cancel": "cancel",
    "Pick": "pick",
    "QuizFreeText": "quiz_free_text",
    "LocationCapture": "location_capture",
    "DateCapture": "date_capture",
    "RadiusUpdate": "radius_update",
    "LocationUpdate": "location_update",
    "StateClarification": "state_clarification",
    "ContentQuery": "content_query",
    "Unrecognized": "unrecognized",
}


@dataclass
class ChatServices:
    """Collaborators one chat turn may call."""

    sessions: SessionStore
    quiz: Any
    answers: AnswerSynthesizer
    geocode_city: Callable[[str], CallResult[Dict[str, Any]]] = geocoding.geocode_city
    geocode_zip: Callable[[str], CallResult[Dict[str, Any]]] = geocoding.geocode_zip
    today: Callable[[], date] = date.today


def build_default_services() -> ChatServices:
    return ChatServices(
        sessions=build_session_store(settings.session_backend, settings.session_db_path),
        quiz=build_quiz_adapter(),
        answers=AnswerSynthesizer(),
    )


def location_from_place(place: Dict[str, Any], radius: int) -> Location:
    if place.get("ambiguous"):
        return {
            "city": place.get("city"),
            "coords": None,
            "zip_code": None,
            "radius": radius,
            "needs_state_clarification": True,
            "available_states": list(place.get("states") or []),
        }
    return {
        "city": place.get("city"),
        "state": place.get("state"),
        "coords": {"lat": float(place["lat"]), "lon": float(place["lon"])},
        "zip_code": None,
        "radius": radius,
        "display_name": place.get("display_name"),
    }


def clarification_prompt(location: Location) -> str:
    states = ", ".join(location.get("available_states") or [])
    return f'I found multiple cities named "{location.get("city")}" in different states: {states}. Which state did you mean?'


def _progress(chat: ChatState, outside_quiz: str) -> str | None:
    return None if chat.get("mode") == "quiz" else outside_quiz


def build_chat_graph(services: ChatServices | None = None):
    """One chat turn: load session -> classify -> intent handler -> persist."""
    services = services or build_default_services()
    langsmith_status = configure_langsmith()

    def load_session_node(state: TurnState) -> TurnState:
        session_id = state["session_id"]
        chat = services.sessions.get_or_create(session_id)
        chat["session_id"] = session_id
        return {"chat": chat, "user_text": last_user_text(state.get("messages", []))}

    def classify_node(state: TurnState) -> TurnState:
        return {"intent": classify(state.get("user_text", ""), state["chat"])}

    def decide_node(state: TurnState) -> str:
        return INTENT_NODES.get(intent_name(state["intent"]), "unrecognized")

    def start_node(state: TurnState) -> TurnState:
        chat = reset_quiz_fields(state["chat"])
        quiz_session_id = uuid.uuid4().hex
        located = has_location(chat)
        availability = chat.get("availability") or {}

        if located and not availability.get("date"):
            chat.update(mode="quiz", quiz_session_id=quiz_session_id, needs_when=True)
            return {
                "chat": chat,
                "reply": Reply.markup(date_form_html(), suppress_sidecar=True, profile=profile_snapshot(chat)),
            }

        try:
            started = services.quiz.start_session(
                quiz_session_id,
                skip_location=located,
                location=chat.get("location"),
                availability=chat.get("availability"),
            )
        except (QuizError, UpstreamError) as exc:
            LOGGER.warning("[chat] quiz start failed: %s", exc)
            return {"chat": chat, "reply": Reply.text(START_FAILED)}

        chat["quiz_session_id"] = str(started.get("session_id") or quiz_session_id)
        if started.get("needs_location"):
            chat.update(mode="quiz", needs_location=True)
            return {
                "chat": chat,
                "reply": Reply.markup(location_form_html(), suppress_sidecar=True, profile=profile_snapshot(chat)),
            }

        question = started.get("question")
        if not question:
            return {"chat": reset_quiz_fields(chat), "reply": Reply.text(START_FAILED)}
        chat.update(mode="quiz", question=question, question_number=started.get("question_number") or 1)
        return {
            "chat": chat,
            "reply": Reply.markup(render_question_html(question), suppress_sidecar=True, profile=profile_snapshot(chat)),
        }

    def cancel_node(state: TurnState) -> TurnState:
        chat = new_chat_state()
        chat["session_id"] = state["session_id"]
        return {"chat": chat, "reply": Reply.text(QUIZ_EXITED)}

    def location_capture_node(state: TurnState) -> TurnState:
        chat = state["chat"]
        capture = state["intent"]
        location: Location = {
            "zip_code": capture.zip_code,
            "radius": capture.radius,
            "coords": None,
            "city": None,
            "state": None,
        }
        if capture.zip_code:
            found = services.geocode_zip(capture.zip_code)
            if found.ok:
                location.update(found.value_or({}))
        chat["location"] = location
        chat.update(needs_location=False, needs_when=True)
        return {
            "chat": chat,
            "reply": Reply.markup(date_form_html(), suppress_sidecar=True, profile=profile_snapshot(chat)),
        }

    def date_capture_node(state: TurnState) -> TurnState:
        chat = state["chat"]
        when = state["intent"]
        availability: Dict[str, Any] = {"type": "date", "date": when.start, "original": when.start, "bucket": when.bucket}
        if when.start:
            availability["start"] = when.start
        if when.end:
            availability["end"] = when.end
        chat["availability"] = availability

        try:
            started = services.quiz.start_session(
                chat.get("quiz_session_id") or uuid.uuid4().hex,
                skip_location=True,
                location=chat.get("location"),
                availability=availability,
            )
        except (QuizError, UpstreamError) as exc:
            LOGGER.warning("[chat] first question failed: %s", exc)
            return {"chat": chat, "reply": Reply.text(CONTINUE_FAILED)}

        question = started.get("question")
        if not question:
            return {"chat": chat, "reply": Reply.text(FIRST_QUESTION_FAILED)}

        chat.update(needs_when=False, question=question, question_number=started.get("question_number") or 1)
        return {
            "chat": chat,
            "reply": Reply.markup(render_question_html(question), suppress_sidecar=True, profile=profile_snapshot(chat)),
        }

    def _submit(chat: ChatState, option_index: int) -> Reply:
        question = chat.get("question") or {}
        answered = dict(chat.get("answers") or {})
        try:
            result = services.quiz.submit_answer(
                chat["quiz_session_id"],
                question["id"],
                option_index,
                current_answers=answered,
                current_scores=chat.get("scores") or {},
                location=chat.get("location"),
            )
            next_question = result.get("question") or {}
            seen = result.get("current_answers") or answered
            if not result.get("complete") and next_question.get("id") in seen:
                LOGGER.info("[chat] quiz repeated %s; finishing", next_question.get("id"))
                result = services.quiz.finish_session(
                    chat["quiz_session_id"],
                    current_answers=seen,
                    current_scores=result.get("current_scores") or chat.get("scores") or {},
                    location=chat.get("location"),
                )
        except (QuizError, UpstreamError) as exc:
            LOGGER.warning("[chat] answer failed for %s: %s", question.get("id"), exc)
            return Reply.text(ANSWER_FAILED)

        chat["answers"] = result.get("current_answers") or chat.get("answers") or {}
        chat["scores"] = result.get("current_scores") or chat.get("scores") or {}

        if result.get("complete"):
            scores = result.get("scores") or chat["scores"]
            chat["scores"] = scores
            chat.update(mode=None, question=None, question_number=None, quiz_session_id=None)
            body = render_final_profile_html(result.get("profile") or {}, scores, int(result.get("total_questions") or 0))
            return Reply.markup(body, profile=profile_snapshot(chat, "Quiz complete"))

        next_question = result.get("question")
        if not next_question:
            chat["question"] = None
            return Reply.text(NEXT_QUESTION_FAILED)

        chat["question"] = next_question
        chat["question_number"] = result.get("question_number") or (chat.get("question_number") or 1) + 1
        return Reply.markup(
            render_question_html(next_question),
            suppress_sidecar=True,
            profile=profile_snapshot(chat),
        )

    def pick_node(state: TurnState) -> TurnState:
        chat = state["chat"]
        reply = _submit(chat, state["intent"].index)
        return {"chat": chat, "reply": reply}

    def quiz_free_text_node(state: TurnState) -> TurnState:
        chat = state["chat"]
        question = chat.get("question") or {}
        options = question.get("options") or []
        if not options:
            try:
                options = services.quiz.get_question(question["id"]).get("options") or []
            except (QuizError, UpstreamError) as exc:
                LOGGER.warning("[chat] could not load options for %s: %s", question.get("id"), exc)
                options = []
            question["options"] = options
        reply = _submit(chat, match_option_index(state["intent"].text, options))
        return {"chat": chat, "reply": reply}

    def radius_update_node(state: TurnState) -> TurnState:
        chat = state["chat"]
        miles = state["intent"].miles
        if not chat.get("location"):
            return {"chat": chat, "reply": Reply.text(NO_LOCATION_YET)}
        chat["location"]["radius"] = miles
        return {
            "chat": chat,
            "reply": Reply.text(f"✅ Updated search radius to {miles} miles.", profile=profile_snapshot(chat)),
        }

    def location_update_node(state: TurnState) -> TurnState:
        chat = state["chat"]
        place = state["intent"].place
        radius = (chat.get("location") or {}).get("radius") or FREE_TEXT_RADIUS
        found = services.geocode_city(place)
        if not found.ok:
            return {
                "chat": chat,
                "reply": Reply.text(f'❌ Could not find location "{place}". Please try a different city name.'),
            }

        chat["location"] = location_from_place(found.value_or({}), radius)
        location = chat["location"]
        if location.get("needs_state_clarification"):
            progress = _progress(chat, "Location needs state clarification")
            return {
                "chat": chat,
                "reply": Reply.text(clarification_prompt(location), profile=profile_snapshot(chat, progress)),
            }
        message = f"✅ Updated location to {location.get('city')}, {location.get('state')} ({radius} mile radius)."
        return {"chat": chat, "reply": Reply.text(message, profile=profile_snapshot(chat))}

    def state_clarification_node(state: TurnState) -> TurnState:
        chat = state["chat"]
        pending = chat.get("location") or {}
        requested = state["intent"].text.strip()
        if not requested:
            return {
                "chat": chat,
                "reply": Reply.text(
                    clarification_prompt(pending),
                    profile=profile_snapshot(chat, "Location needs state clarification"),
                ),
            }

        city = pending.get("city")
        found = services.geocode_city(f"{city}, {requested}")
        place = found.value_or({})
        if not place or place.get("ambiguous"):
            return {
                "chat": chat,
                "reply": Reply.text(
                    f"❌ I couldn't find {city} in {requested}. Please try a different state or be more specific.",
                    profile=profile_snapshot(chat, "Location needs clarification"),
                ),
            }

        chat["location"] = location_from_place(place, pending.get("radius") or FREE_TEXT_RADIUS)
        resolved = chat["location"]
        return {
            "chat": chat,
            "reply": Reply.text(
                f"✅ Got it! {resolved.get('city')}, {resolved.get('state')}. Now, when would you like to play?",
                profile=profile_snapshot(chat, "Location confirmed - needs date"),
            ),
        }

    def _cache_mentions(chat: ChatState, text: str) -> bool:
        changed = False
        if not chat.get("location"):
            place = extract_location(text)
            if place:
                found = services.geocode_city(place)
                if found.ok:
                    chat["location"] = location_from_place(found.value_or({}), FREE_TEXT_RADIUS)
                else:
                    chat["location"] = {
                        "city": place,
                        "coords": None,
                        "zip_code": None,
                        "radius": FREE_TEXT_RADIUS,
                        "needs_clarification": True,
                    }
                changed = True
        if not chat.get("availability"):
            info = extract_date_info(text, services.today())
            if info:
                chat["availability"] = {"type": info["type"], "date": info["date"], "original": info["type"]}
                changed = True
        return changed

    def content_query_node(state: TurnState) -> TurnState:
        chat = state["chat"]
        text = state["intent"].text
        cached = _cache_mentions(chat, text)

        location = chat.get("location") or {}
        if cached and location.get("needs_state_clarification"):
            return {
                "chat": chat,
                "reply": Reply.text(
                    clarification_prompt(location),
                    profile=profile_snapshot(chat, "Location needs state clarification"),
                ),
            }

        reply = services.answers.answer(text, state.get("messages", []))
        if reply.links:
            chat["last_links"] = list(reply.links[:MAX_LAST_LINKS])
        if cached:
            reply.profile = profile_snapshot(chat)
        return {"chat": chat, "reply": reply}

    def unrecognized_node(state: TurnState) -> TurnState:
        return {"chat": state["chat"], "reply": Reply.text(DEFAULT_HELP)}

    def persist_node(state: TurnState) -> TurnState:
        services.sessions.set(state["session_id"], state["chat"])
        return {}

    def wrap_node(name: str, fn):
        def _wrapped(state: TurnState):
            try:
                logger.log_event(f"node_started:{name}", {"state_keys": list(state.keys())})
            except Exception:
                pass
            try:
                res = fn(state)
                try:
                    logger.log_event(f"node_finished:{name}", {"result_keys": list(res.keys()) if isinstance(res, dict) else None})
                except Exception:
                    pass
                return res
            except Exception as exc:
                try:
                    logger.log_event(f"node_error:{name}", {"error": str(exc)})
                except Exception:
                    pass
                raise

        return _wrapped

    handlers: Dict[str, Callable[[TurnState], TurnState]] = {
        "start": start_node,
        "cancel": cancel_node,
        "pick": pick_node,
        "quiz_free_text": quiz_free_text_node,
        "location_capture": location_capture_node,
        "date_capture": date_capture_node,
        "radius_update": radius_update_node,
        "location_update": location_update_node,
        "state_clarification": state_clarification_node,
        "content_query": content_query_node,
        "unrecognized": unrecognized_node,
    }

    graph = StateGraph(TurnState)
    graph.add_node("load_session", wrap_node("load_session", load_session_node))
    graph.add_node("classify", wrap_node("classify", classify_node))
    for name, fn in handlers.items():
        graph.add_node(name, wrap_node(name, fn))
    graph.add_node("persist", wrap_node("persist", persist_node))

    graph.set_entry_point("load_session")
    graph.add_edge("load_session", "classify")
    graph.add_conditional_edges("classify", decide_node, {name: name for name in handlers})
    for name in handlers:
        graph.add_edge(name, "persist")
    graph.add_edge("persist", END)

    LOGGER.info("[chat] langsmith config: %s", langsmith_status)

    return graph


def run_turn(compiled: Any, session_id: str, messages: List[Dict[str, str]]) -> TurnState:
    """Invoke the graph for one turn inside its own trace run."""
    logger.start_run("chat_turn", {"session_id": session_id, "message": last_user_text(messages)})
    try:
        result = compiled.invoke({"session_id": session_id, "messages": messages})
    except Exception as exc:
        logger.end_run(status=f"error: {exc}")
        raise
    reply = result.get("reply")
    logger.end_run(outputs={"intent": intent_name(result.get("intent")), "blocks": len(getattr(reply, "blocks", []))})
    return result
