import pytest
import requests

import course_agent
from course_agent import CourseAgent, norm10, scores_to_vector
from workflow.state import DIMS10


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self._payload


def test_vector_defaults_to_neutral_and_clamps():
    assert scores_to_vector({}) == [0.5] * 10
    vector = scores_to_vector({"overall_difficulty": 12, "aesthetic_appeal": -3, "value_proposition": "7"})
    assert vector[0] == 1.0
    assert vector[DIMS10.index("aesthetic_appeal")] == 0.0
    assert vector[DIMS10.index("value_proposition")] == pytest.approx(0.7)
    assert all(0.0 <= value <= 1.0 for value in vector)


def test_norm10_rejects_non_numbers():
    assert norm10(None) is None
    assert norm10("abc") is None
    assert norm10(float("nan")) is None


def test_request_body_clamps_limit_and_converts_radius():
    agent = CourseAgent(endpoint="https://search.example/api")
    body = agent.build_request_body({}, limit=500, location={"coords": {"lat": 42.3, "lon": -71.3}, "radius": 10})
    assert body["limit"] == 100
    assert body["lat"] == 42.3 and body["lon"] == -71.3
    assert body["radius"] == pytest.approx(16093.4)

    bare = agent.build_request_body({}, limit=0, location={"city": "Wayland"})
    assert bare["limit"] == 8
    assert "lat" not in bare and "radius" not in bare


def test_normalize_results_fallbacks():
    matches = CourseAgent.normalize_results(
        {
            "result": [
                {"score": 0.9, "payload": {"course_id": "c1", "name": "Pine Hills", "website": "https://pine.example"}},
                {"score": 0.8, "payload": {}},
                "junk",
            ]
        }
    )
    assert matches[0]["name"] == "Pine Hills"
    assert matches[0]["url"] == "https://pine.example"
    assert matches[1]["name"] == "Course"
    assert matches[1]["url"] is None
    assert len(matches) == 2


def test_get_courses_success(monkeypatch):
    captured = {}

    def fake_post(url, json=None, timeout=None):
        captured["url"] = url
        captured["body"] = json
        return FakeResponse({"result": [{"score": 0.7, "distance": 900, "payload": {"course_name": "Sandy Burr"}}]})

    monkeypatch.setattr(course_agent.requests, "post", fake_post, raising=True)
    matches = CourseAgent(endpoint="https://search.example/api").get_courses({"overall_difficulty": 6}, limit=3)
    assert captured["url"] == "https://search.example/api"
    assert captured["body"]["limit"] == 3
    assert matches[0]["name"] == "Sandy Burr"
    assert matches[0]["distance"] == 900


def test_get_courses_is_fail_soft(monkeypatch):
    def boom(*_args, **_kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(course_agent.requests, "post", boom, raising=True)
    agent = CourseAgent(endpoint="https://search.example/api")
    assert agent.get_courses({}) == []
    assert agent.search({}).error is not None


def test_get_courses_http_error_is_empty(monkeypatch):
    monkeypatch.setattr(course_agent.requests, "post", lambda *a, **k: FakeResponse({}, 500), raising=True)
    assert CourseAgent(endpoint="https://search.example/api").get_courses({}) == []


@pytest.mark.parametrize("payload", [["not", "a", "dict"], {"result": "oops"}, {"result": None}])
def test_get_courses_malformed_body_is_empty(monkeypatch, payload):
    monkeypatch.setattr(course_agent.requests, "post", lambda *a, **k: FakeResponse(payload), raising=True)
    agent = CourseAgent(endpoint="https://search.example/api")
    assert agent.get_courses({}) == []
    assert agent.search({}).error == course_agent.ErrorKind.MALFORMED_RESPONSE


def test_non_dict_payload_is_tolerated():
    matches = CourseAgent.normalize_results({"result": [{"score": 0.5, "payload": ["junk"]}]})
    assert matches[0]["name"] == "Course"
    assert matches[0]["payload"] == {}
