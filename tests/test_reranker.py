import requests

import reranker
from settings import settings


def _hits():
    return [
        {"id": "a", "score": 0.9, "payload": {"title": "A", "text": "alpha"}},
        {"id": "b", "score": 0.8, "payload": {"title": "B", "text": "bravo"}},
        {"id": "c", "score": 0.7, "payload": {"title": "C", "text": "charlie"}},
    ]


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload


def test_none_backend_keeps_order():
    hits = _hits()
    assert reranker.rerank("q", hits, backend="none") is hits


def test_voyage_without_key_fails_open(monkeypatch):
    monkeypatch.setattr(settings, "voyage_api_key", "", raising=True)
    hits = _hits()
    assert reranker.rerank("q", hits, backend="voyage") == hits
    assert not reranker.voyage_rerank("q", hits).ok


def test_voyage_reorders_by_relevance(monkeypatch):
    monkeypatch.setattr(settings, "voyage_api_key", "vk-test", raising=True)
    captured = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        captured["json"] = json
        captured["headers"] = headers
        return FakeResponse(
            {"data": [{"index": 1, "relevance_score": 0.95}, {"index": 0, "relevance_score": 0.5}]}
        )

    monkeypatch.setattr(reranker.requests, "post", fake_post, raising=True)
    ordered = reranker.rerank("q", _hits(), top_n=2, backend="voyage")
    assert [hit["id"] for hit in ordered] == ["b", "a", "c"]
    assert captured["json"]["top_n"] == 2
    assert captured["json"]["documents"][0] == "A\n\nalpha"
    assert captured["headers"]["Authorization"] == "Bearer vk-test"


def test_voyage_connection_error_keeps_order(monkeypatch):
    monkeypatch.setattr(settings, "voyage_api_key", "vk-test", raising=True)

    def boom(*_args, **_kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(reranker.requests, "post", boom, raising=True)
    assert [hit["id"] for hit in reranker.rerank("q", _hits(), backend="voyage")] == ["a", "b", "c"]


def test_voyage_malformed_body_keeps_order(monkeypatch):
    monkeypatch.setattr(settings, "voyage_api_key", "vk-test", raising=True)
    monkeypatch.setattr(reranker.requests, "post", lambda *a, **k: FakeResponse({"oops": True}), raising=True)
    result = reranker.voyage_rerank("q", _hits())
    assert result.error is not None
    assert [hit["id"] for hit in reranker.rerank("q", _hits(), backend="voyage")] == ["a", "b", "c"]


def test_voyage_rows_of_wrong_type_keep_order(monkeypatch):
    monkeypatch.setattr(settings, "voyage_api_key", "vk-test", raising=True)
    body = {"data": ["junk", {"index": 2, "relevance_score": "high"}]}
    monkeypatch.setattr(reranker.requests, "post", lambda *a, **k: FakeResponse(body), raising=True)
    assert reranker.voyage_rerank("q", _hits()).error is not None
    assert [hit["id"] for hit in reranker.rerank("q", _hits(), backend="voyage")] == ["a", "b", "c"]


def test_voyage_skips_non_dict_rows(monkeypatch):
    monkeypatch.setattr(settings, "voyage_api_key", "vk-test", raising=True)
    body = {"data": ["junk", {"index": 2, "relevance_score": 0.9}]}
    monkeypatch.setattr(reranker.requests, "post", lambda *a, **k: FakeResponse(body), raising=True)
    assert [hit["id"] for hit in reranker.rerank("q", _hits(), backend="voyage")] == ["c", "a", "b"]
