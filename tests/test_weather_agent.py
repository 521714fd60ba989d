import pytest
import requests

import weather_agent
from errors import CallResult, ErrorKind


class FakeResponse:
    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload


def _wayland(_place):
    return CallResult.success({"lat": 42.36, "lon": -71.36, "city": "Wayland", "state": "MA"})


def _rows():
    return [
        {"date": "2026-10-17", "high": 61.4, "low": 44.0, "rain": 10, "code": 0},
        {"date": "2026-10-18", "high": 58.0, "low": 40.2, "rain": 70, "code": 63},
    ]


def test_sidecar_renders_card(monkeypatch):
    monkeypatch.setattr(weather_agent, "geocode_city", _wayland, raising=True)
    monkeypatch.setattr(weather_agent, "fetch_forecast", lambda lat, lon: CallResult.success(_rows()), raising=True)
    card = weather_agent.build_sidecar_html("golf courses near Wayland this weekend")
    assert "Golf weather for Wayland, MA" in card
    assert "Sat Oct 17" in card
    assert "61°F / 44°F" in card
    assert "70% rain" in card
    assert "Rain" in card


def test_sidecar_needs_place_and_intent(monkeypatch):
    monkeypatch.setattr(weather_agent, "geocode_city", _wayland, raising=True)
    monkeypatch.setattr(weather_agent, "fetch_forecast", lambda lat, lon: CallResult.success(_rows()), raising=True)
    assert weather_agent.build_sidecar_html("what is a handicap") == ""
    assert weather_agent.build_sidecar_html("dinner near Wayland") == ""


def test_sidecar_ambiguous_or_failed_lookups_are_empty(monkeypatch):
    monkeypatch.setattr(
        weather_agent,
        "geocode_city",
        lambda place: CallResult.success({"ambiguous": True, "city": place, "states": ["MA", "NY"]}),
        raising=True,
    )
    assert weather_agent.build_sidecar_html("golf in Springfield") == ""

    monkeypatch.setattr(weather_agent, "geocode_city", _wayland, raising=True)
    monkeypatch.setattr(
        weather_agent,
        "fetch_forecast",
        lambda lat, lon: CallResult.failure(ErrorKind.UPSTREAM_UNAVAILABLE, "down"),
        raising=True,
    )
    assert weather_agent.build_sidecar_html("golf in Wayland") == ""


def test_fetch_forecast_parses_daily_block(monkeypatch):
    captured = {}

    def fake_get(url, params=None, timeout=None):
        captured["params"] = params
        return FakeResponse(
            {
                "daily": {
                    "time": ["2026-10-17", "2026-10-18"],
                    "temperature_2m_max": [61.4, 58.0],
                    "temperature_2m_min": [44.0],
                    "precipitation_probability_max": [10, 70],
                    "weathercode": [0, 63],
                }
            }
        )

    monkeypatch.setattr(weather_agent.requests, "get", fake_get, raising=True)
    result = weather_agent.fetch_forecast(42.36, -71.36)
    assert result.ok
    rows = result.value_or([])
    assert rows[1]["low"] is None
    assert rows[0]["code"] == 0
    assert captured["params"]["temperature_unit"] == "fahrenheit"


def test_fetch_forecast_network_error(monkeypatch):
    def boom(*_args, **_kwargs):
        raise requests.Timeout("slow")

    monkeypatch.setattr(weather_agent.requests, "get", boom, raising=True)
    assert weather_agent.fetch_forecast(0, 0).error == ErrorKind.UPSTREAM_UNAVAILABLE


@pytest.mark.parametrize("payload", [{"daily": ["unexpected"]}, ["not", "a", "dict"], {"daily": {"time": "2026-10-17"}}])
def test_fetch_forecast_malformed_shapes(monkeypatch, payload):
    monkeypatch.setattr(weather_agent.requests, "get", lambda *a, **k: FakeResponse(payload), raising=True)
    result = weather_agent.fetch_forecast(42.36, -71.36)
    assert not result.ok
    assert result.error in (ErrorKind.MALFORMED_RESPONSE, ErrorKind.NO_RESULT)


def test_sidecar_is_empty_on_malformed_forecast(monkeypatch):
    monkeypatch.setattr(weather_agent, "geocode_city", _wayland, raising=True)
    monkeypatch.setattr(weather_agent.requests, "get", lambda *a, **k: FakeResponse({"daily": ["unexpected"]}), raising=True)
    assert weather_agent.build_sidecar_html("golf weather in Wayland") == ""
