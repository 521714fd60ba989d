from __future__ import annotations

import html
import logging
import re
from datetime import date
from typing import Any, Dict, List

import requests

from errors import CallResult, ErrorKind
from geocoding import geocode_city
from settings import settings
from workflow.extractor import extract_location

LOGGER = logging.getLogger("golf.sidecar")

INTENT_RE = re.compile(r"\b(weather|forecast|rain|wind|temperature|golf|course|courses|tee|play|round)\b", re.IGNORECASE)
FORECAST_DAYS = 3

WEATHER_CODES = {
    0: "☀️ Clear",
    1: "🌤️ Mainly clear",
    2: "⛅ Partly cloudy",
    3: "☁️ Overcast",
    45: "🌫️ Fog",
    48: "🌫️ Fog",
    51: "🌦️ Light drizzle",
    53: "🌦️ Drizzle",
    55: "🌦️ Heavy drizzle",
    61: "🌦️ Slight rain",
    63: "🌧️ Rain",
    65: "🌧️ Heavy rain",
    71: "🌨️ Slight snow",
    73: "🌨️ Snow",
    75: "🌨️ Heavy snow",
    80: "🌧️ Slight rain showers",
    81: "🌧️ Rain showers",
    82: "🌧️ Violent rain showers",
    95: "⛈️ Thunderstorm",
    96: "⛈️ Thunderstorm with hail",
    99: "⛈️ Thunderstorm with hail",
}


def has_sidecar_intent(text: str) -> bool:
    return bool(INTENT_RE.search(text or ""))


def _series(daily: Dict[str, Any], key: str) -> List[Any]:
    value = daily.get(key)
    return value if isinstance(value, list) else []


def fetch_forecast(lat: float, lon: float, days: int = FORECAST_DAYS) -> CallResult[List[Dict[str, Any]]]:
    try:
        response = requests.get(
            settings.weather_url,
            params={
                "latitude": lat,
                "longitude": lon,
                "daily": "temperature_2m_max,temperature_2m_min,precipitation_probability_max,weathercode",
                "temperature_unit": "fahrenheit",
                "timezone": "auto",
                "forecast_days": days,
            },
            timeout=settings.http_timeout_seconds,
        )
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as exc:
        LOGGER.warning("[sidecar] forecast failed: %s", exc)
        return CallResult.failure(ErrorKind.UPSTREAM_UNAVAILABLE, str(exc))
    except ValueError as exc:
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, str(exc))

    daily = payload.get("daily") if isinstance(payload, dict) else None
    if not isinstance(daily, dict):
        LOGGER.warning("[sidecar] forecast without a daily block")
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, "missing daily block")

    dates = _series(daily, "time")
    highs = _series(daily, "temperature_2m_max")
    lows = _series(daily, "temperature_2m_min")
    rain = _series(daily, "precipitation_probability_max")
    codes = _series(daily, "weathercode")

    rows: List[Dict[str, Any]] = []
    for idx, day in enumerate(dates[:days]):
        rows.append(
            {
                "date": day,
                "high": highs[idx] if idx < len(highs) else None,
                "low": lows[idx] if idx < len(lows) else None,
                "rain": rain[idx] if idx < len(rain) else None,
                "code": codes[idx] if idx < len(codes) else None,
            }
        )
    if not rows:
        return CallResult.failure(ErrorKind.NO_RESULT, "empty forecast")
    return CallResult.success(rows)


def _day_label(value: str) -> str:
    try:
        return date.fromisoformat(value).strftime("%a %b %d")
    except ValueError:
        return value


def _degrees(value: Any) -> str:
    return f"{round(float(value))}°F" if isinstance(value, (int, float)) else "–"


def render_weather_card(place: str, rows: List[Dict[str, Any]]) -> str:
    lines = []
    for row in rows:
        code = row.get("code")
        summary = WEATHER_CODES.get(code, "Mixed conditions") if isinstance(code, int) else "Mixed conditions"
        rain = f" · {row['rain']}% rain" if isinstance(row.get("rain"), (int, float)) else ""
        lines.append(
            f"<li><strong>{_day_label(str(row.get('date')))}</strong>: {summary}, "
            f"{_degrees(row.get('high'))} / {_degrees(row.get('low'))}{rain}</li>"
        )
    return (
        '<div class="sidecar-weather" style="border:1px solid #ddd;border-radius:8px;padding:10px 12px">'
        f'<div style="font-weight:600;margin-bottom:6px">Golf weather for {html.escape(place)}</div>'
        f'<ul style="margin:0;padding-left:18px">{"".join(lines)}</ul>'
        "</div>"
    )


def build_sidecar_html(query: str) -> str:
    """Weather card for a place mentioned in the query, or "" when any step falls through."""
    place = extract_location(query)
    if not place or not has_sidecar_intent(query):
        return ""

    located = geocode_city(place)
    spot = located.value_or({})
    if not spot or spot.get("ambiguous"):
        return ""

    forecast = fetch_forecast(spot["lat"], spot["lon"])
    if not forecast.ok:
        return ""

    label = spot.get("city") or place
    if spot.get("state"):
        label = f"{label}, {spot['state']}"
    return render_weather_card(str(label), forecast.value_or([]))
