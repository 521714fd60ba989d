from datetime import date

import pytest

from errors import CallResult, ErrorKind, UpstreamError
from langsmith_integration import LangSmithLogger
from session_store import InMemorySessionStore
from workflow import graph_chat
from workflow.graph_chat import (
    ANSWER_FAILED,
    DEFAULT_HELP,
    NO_LOCATION_YET,
    QUIZ_EXITED,
    START_FAILED,
    ChatServices,
    build_chat_graph,
    run_turn,
)
from workflow.rendering import Reply
from workflow.state import new_chat_state

OPTIONS = [{"index": 0, "text": "🏌️ Beginner"}, {"index": 1, "text": "Advanced"}]


def _question(question_id, options=True):
    return {
        "id": question_id,
        "text": f"Question {question_id}?",
        "conversational_text": f"Question {question_id}?",
        "options": list(OPTIONS) if options else [],
    }


class FakeQuiz:
    def __init__(self, sequence=("Q1", "Q2", "Q3"), finish_after=2, with_options=True, fail_start=False):
        self.sequence = list(sequence)
        self.finish_after = finish_after
        self.with_options = with_options
        self.fail_start = fail_start
        self.starts = []
        self.submits = []
        self.finished = []

    def _complete(self, answers):
        return {
            "complete": True,
            "current_answers": answers,
            "current_scores": {"overall_difficulty": 6.0},
            "scores": {"overall_difficulty": 6.0},
            "profile": {"matched_courses": [{"name": "Sandy Burr Country Club", "score": 0.91, "url": "https://site/sb"}]},
            "total_questions": len(answers),
        }

    def start_session(self, session_id, skip_location=False, location=None, availability=None):
        self.starts.append({"session_id": session_id, "skip_location": skip_location, "availability": availability})
        if self.fail_start:
            raise UpstreamError("quiz down")
        if not skip_location:
            return {"session_id": session_id, "question_number": 0, "needs_location": True}
        return {"session_id": session_id, "question_number": 1, "question": _question(self.sequence[0], self.with_options)}

    def get_question(self, question_id):
        return {"id": question_id, "options": list(OPTIONS)}

    def submit_answer(self, session_id, question_id, option_index, current_answers=None, current_scores=None, location=None):
        self.submits.append((question_id, option_index))
        answers = dict(current_answers or {})
        answers[question_id] = {"option_index": option_index}
        if len(answers) >= self.finish_after:
            return self._complete(answers)
        next_id = self.sequence[min(len(answers), len(self.sequence) - 1)]
        return {
            "complete": False,
            "question": _question(next_id),
            "question_number": len(answers) + 1,
            "current_answers": answers,
            "current_scores": {"overall_difficulty": 5.0},
        }

    def finish_session(self, session_id, current_answers=None, current_scores=None, location=None):
        self.finished.append(session_id)
        return self._complete(dict(current_answers or {}))


class FakeAnswers:
    def __init__(self):
        self.queries = []

    def answer(self, query, messages):
        self.queries.append(query)
        links = [{"url": f"https://site/courses/c{i}", "name": f"Course Number {i}"} for i in range(12)]
        return Reply(blocks=["<p>Here you go.</p>"], links=links)


def fake_geocode_city(name):
    if name == "Atlantis":
        return CallResult.failure(ErrorKind.NO_RESULT, "nothing")
    if name == "Springfield":
        return CallResult.success({"ambiguous": True, "city": "Springfield", "states": ["MA", "IL"]})
    city, _, state = name.partition(",")
    return CallResult.success({"lat": 42.1, "lon": -71.5, "city": city.strip(), "state": state.strip() or "MA"})


def fake_geocode_zip(code):
    return CallResult.success({"coords": {"lat": 42.36, "lon": -71.36}, "city": "Wayland", "state": "MA"})


class Harness:
    def __init__(self, quiz=None):
        self.sessions = InMemorySessionStore()
        self.quiz = quiz or FakeQuiz()
        self.answers = FakeAnswers()
        services = ChatServices(
            sessions=self.sessions,
            quiz=self.quiz,
            answers=self.answers,
            geocode_city=fake_geocode_city,
            geocode_zip=fake_geocode_zip,
            today=lambda: date(2026, 10, 14),
        )
        self.graph = build_chat_graph(services).compile()
        self.session_id = "sess-1"
        self.messages = []

    def seed(self, **fields):
        state = new_chat_state()
        state.update(fields)
        self.sessions.set(self.session_id, state)

    def say(self, text):
        self.messages.append({"role": "user", "content": text})
        result = run_turn(self.graph, self.session_id, list(self.messages))
        payload = result["reply"].to_payload()
        self.messages.append({"role": "assistant", "content": payload["html"]})
        return payload

    @property
    def chat(self):
        return self.sessions.get(self.session_id)


WAYLAND = {"city": "Wayland", "state": "MA", "coords": {"lat": 42.36, "lon": -71.36}, "radius": 25}


def test_full_quiz_flow_from_scratch():
    bot = Harness()

    payload = bot.say("start")
    assert "Where are you looking for golf courses?" in payload["html"]
    assert payload["suppress_sidecar"] is True
    assert bot.chat["needs_location"] is True
    assert bot.quiz.starts[0]["skip_location"] is False

    payload = bot.say("LOCATION:01778:25")
    assert "When would you like to play?" in payload["html"]
    assert bot.chat["location"]["city"] == "Wayland"
    assert bot.chat["location"]["radius"] == 25
    assert payload["profile"]["quiz_progress"] == "Quiz started - needs date"

    payload = bot.say("WHEN:2026-10-17::any")
    assert "Question Q1?" in payload["html"]
    assert bot.chat["availability"]["date"] == "2026-10-17"
    assert bot.chat["availability"]["bucket"] == "any"
    assert bot.chat["needs_when"] is False

    payload = bot.say("1")
    assert "Question Q2?" in payload["html"]
    assert bot.chat["question_number"] == 2

    payload = bot.say("0")
    assert "You've completed the quiz!" in payload["html"]
    assert "Sandy Burr Country Club" in payload["html"]
    assert payload["profile"]["quiz_progress"] == "Quiz complete"
    assert bot.quiz.submits == [("Q1", 1), ("Q2", 0)]

    chat = bot.chat
    assert chat["mode"] is None
    assert chat["question"] is None
    assert chat["scores"] == {"overall_difficulty": 6.0}
    assert chat["location"]["city"] == "Wayland"


def test_cancel_resets_everything():
    bot = Harness()
    bot.say("start")
    payload = bot.say("exit")
    assert payload["html"] == QUIZ_EXITED
    chat = bot.chat
    assert chat["mode"] is None
    assert chat["needs_location"] is False
    assert chat["session_id"] == bot.session_id


def test_start_with_cached_location_and_date_goes_straight_to_question():
    bot = Harness()
    bot.seed(location=dict(WAYLAND), availability={"type": "weekend", "date": "2026-10-17", "original": "weekend"})
    payload = bot.say("start quiz")
    assert "Question Q1?" in payload["html"]
    assert bot.quiz.starts[0]["skip_location"] is True
    assert bot.chat["mode"] == "quiz"


def test_start_with_cached_location_asks_for_date():
    bot = Harness()
    bot.seed(location=dict(WAYLAND))
    payload = bot.say("start")
    assert "When would you like to play?" in payload["html"]
    assert bot.quiz.starts == []
    assert bot.chat["needs_when"] is True


def test_start_failure_message():
    bot = Harness(quiz=FakeQuiz(fail_start=True))
    bot.seed(location=dict(WAYLAND), availability={"type": "date", "date": "2026-10-17"})
    assert bot.say("start")["html"] == START_FAILED


def test_repeated_question_finishes_quiz():
    bot = Harness(quiz=FakeQuiz(sequence=("Q1",), finish_after=99))
    bot.seed(location=dict(WAYLAND), availability={"type": "date", "date": "2026-10-17"})
    bot.say("start")
    payload = bot.say("0")
    assert "You've completed the quiz!" in payload["html"]
    assert len(bot.quiz.finished) == 1


def test_free_text_answer_fetches_missing_options():
    bot = Harness(quiz=FakeQuiz(with_options=False))
    bot.seed(location=dict(WAYLAND), availability={"type": "date", "date": "2026-10-17"})
    bot.say("start")
    bot.say("advanced")
    assert bot.quiz.submits == [("Q1", 1)]


def test_answer_error_is_reported():
    class BrokenSubmit(FakeQuiz):
        def submit_answer(self, *args, **kwargs):
            raise UpstreamError("timeout")

    bot = Harness(quiz=BrokenSubmit())
    bot.seed(location=dict(WAYLAND), availability={"type": "date", "date": "2026-10-17"})
    bot.say("start")
    assert bot.say("1")["html"] == ANSWER_FAILED


def test_content_query_caches_location_and_date():
    bot = Harness()
    payload = bot.say("golf courses near Wayland this weekend")
    assert payload["html"] == "<p>Here you go.</p>"
    assert payload["profile"]["location"]["city"] == "Wayland"
    assert payload["profile"]["quiz_progress"] == "Not started"
    chat = bot.chat
    assert chat["location"]["radius"] == 10
    assert chat["availability"] == {"type": "weekend", "date": "2026-10-17", "original": "weekend"}
    assert len(chat["last_links"]) == 10
    assert bot.answers.queries == ["golf courses near Wayland this weekend"]


def test_content_query_without_new_mentions_has_no_profile():
    bot = Harness()
    payload = bot.say("what is a links course")
    assert "profile" not in payload


def test_ambiguous_city_asks_for_state_then_resolves():
    bot = Harness()
    payload = bot.say("courses in Springfield")
    assert payload["html"] == (
        'I found multiple cities named "Springfield" in different states: MA, IL. Which state did you mean?'
    )
    assert bot.answers.queries == []

    payload = bot.say("MA")
    assert payload["html"] == "✅ Got it! Springfield, MA. Now, when would you like to play?"
    assert payload["profile"]["quiz_progress"] == "Location confirmed - needs date"
    assert bot.chat["location"]["coords"] == {"lat": 42.1, "lon": -71.5}


def test_radius_update_needs_location():
    bot = Harness()
    assert bot.say("change radius to 50")["html"] == NO_LOCATION_YET
    bot.seed(location=dict(WAYLAND))
    assert bot.say("change radius to 50")["html"] == "✅ Updated search radius to 50 miles."
    assert bot.chat["location"]["radius"] == 50


@pytest.mark.parametrize(
    "text,expected",
    [
        ("set location to Boston", "✅ Updated location to Boston, MA (10 mile radius)."),
        ("set location to Atlantis", '❌ Could not find location "Atlantis". Please try a different city name.'),
    ],
)
def test_location_update(text, expected):
    assert Harness().say(text)["html"] == expected


def test_unrecognized_mid_quiz_setup():
    bot = Harness()
    bot.say("start")
    assert bot.say("hello there")["html"] == DEFAULT_HELP


class RecordingClient:
    def __init__(self):
        self.created = []
        self.updated = []

    def create_run(self, **kwargs):
        self.created.append(kwargs)

    def update_run(self, run_id, **kwargs):
        self.updated.append((run_id, kwargs))


def test_each_turn_is_its_own_trace_run(monkeypatch):
    client = RecordingClient()
    monkeypatch.setattr(graph_chat, "logger", LangSmithLogger(client=client))
    bot = Harness()
    bot.say("hello there")
    bot.say("start")

    assert len(client.created) == 2
    assert client.created[0]["inputs"] == {"session_id": "sess-1", "message": "hello there"}
    assert [run_id for run_id, _ in client.updated] == [run["id"] for run in client.created]
    events = [event["name"] for event in client.updated[0][1]["extra"]["events"]]
    assert events[0] == "node_started:load_session"
    assert "node_finished:persist" in events
    assert client.updated[0][1]["error"] is None


def test_failed_turn_closes_its_run_with_error(monkeypatch):
    client = RecordingClient()
    monkeypatch.setattr(graph_chat, "logger", LangSmithLogger(client=client))

    class Exploding:
        def invoke(self, _state):
            raise RuntimeError("graph exploded")

    with pytest.raises(RuntimeError):
        run_turn(Exploding(), "sess-9", [{"role": "user", "content": "hi"}])
    assert len(client.updated) == 1
    assert client.updated[0][1]["error"] == "error: graph exploded"
