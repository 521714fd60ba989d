from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import requests

from errors import CallResult, ErrorKind
from settings import settings

LOGGER = logging.getLogger("golf.geocoding")

US_STATE_NAMES = {
    "Alabama", "Alaska", "Arizona", "Arkansas", "California", "Colorado", "Connecticut", "Delaware",
    "Florida", "Georgia", "Hawaii", "Idaho", "Illinois", "Indiana", "Iowa", "Kansas", "Kentucky",
    "Louisiana", "Maine", "Maryland", "Massachusetts", "Michigan", "Minnesota", "Mississippi",
    "Missouri", "Montana", "Nebraska", "Nevada", "New Hampshire", "New Jersey", "New Mexico",
    "New York", "North Carolina", "North Dakota", "Ohio", "Oklahoma", "Oregon", "Pennsylvania",
    "Rhode Island", "South Carolina", "South Dakota", "Tennessee", "Texas", "Utah", "Vermont",
    "Virginia", "Washington", "West Virginia", "Wisconsin", "Wyoming",
}
_STATE_CODE_RE = re.compile(r"^[A-Z]{2}$")


def _headers() -> Dict[str, str]:
    return {"User-Agent": settings.user_agent, "Accept": "application/json"}


def state_from_display_name(display_name: str) -> Optional[str]:
    """Walk the comma parts right-to-left, skipping country and postcode, until one looks like a US state."""
    parts = [part.strip() for part in str(display_name or "").split(", ")]
    if len(parts) < 3:
        return None
    for part in reversed(parts[: len(parts) - 2]):
        if _STATE_CODE_RE.match(part):
            return part
        if "State" in part or "Commonwealth" in part:
            return part
        if part in US_STATE_NAMES:
            return part
    return None


def _nominatim(query: str) -> List[Dict[str, Any]]:
    response = requests.get(
        settings.geocoder_url,
        params={"format": "json", "q": query, "limit": 5, "countrycodes": "us"},
        headers=_headers(),
        timeout=settings.http_timeout_seconds,
    )
    response.raise_for_status()
    data = response.json()
    if not isinstance(data, list):
        raise ValueError("geocoder returned a non-list body")
    return [item for item in data if isinstance(item, dict)]


def geocode_city(city_name: str) -> CallResult[Dict[str, Any]]:
    """Resolve a US place name.

    The value is either a resolved place ``{lat, lon, display_name, city, state}``
    or, when hits span several states, ``{ambiguous: True, city, states}``.
    """
    query = (city_name or "").strip()
    if not query:
        return CallResult.failure(ErrorKind.NO_RESULT, "empty place name")
    try:
        data = _nominatim(query)
    except requests.RequestException as exc:
        LOGGER.warning("[geocode] nominatim failed for %r: %s", query, exc)
        return CallResult.failure(ErrorKind.UPSTREAM_UNAVAILABLE, str(exc))
    except ValueError as exc:
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, str(exc))

    if not data:
        return CallResult.failure(ErrorKind.NO_RESULT, f"no match for {query}")

    states: List[str] = []
    for item in data:
        found = state_from_display_name(str(item.get("display_name", "")))
        if found and found not in states:
            states.append(found)
    if len(states) > 1:
        return CallResult.success({"ambiguous": True, "city": query, "states": states})

    first = data[0]
    try:
        lat = float(first["lat"])
        lon = float(first["lon"])
    except (KeyError, TypeError, ValueError) as exc:
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, str(exc))

    display_name = str(first.get("display_name", ""))
    return CallResult.success(
        {
            "lat": lat,
            "lon": lon,
            "display_name": display_name,
            "city": first.get("name") or query,
            "state": state_from_display_name(display_name),
        }
    )


def geocode_zip(zip_code: str) -> CallResult[Dict[str, Any]]:
    code = (zip_code or "").strip()
    if not code:
        return CallResult.failure(ErrorKind.NO_RESULT, "empty zip")
    try:
        response = requests.get(
            f"{settings.zip_lookup_url.rstrip('/')}/{code}",
            headers=_headers(),
            timeout=settings.http_timeout_seconds,
        )
        if response.status_code == 404:
            return CallResult.failure(ErrorKind.NO_RESULT, f"unknown zip {code}")
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as exc:
        LOGGER.warning("[geocode] zip lookup failed for %s: %s", code, exc)
        return CallResult.failure(ErrorKind.UPSTREAM_UNAVAILABLE, str(exc))
    except ValueError as exc:
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, str(exc))

    places = payload.get("places") if isinstance(payload, dict) else None
    if not places:
        return CallResult.failure(ErrorKind.NO_RESULT, f"no places for {code}")
    place = places[0] if isinstance(places, list) else None
    if not isinstance(place, dict):
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, f"unexpected places shape for {code}")
    try:
        coords = {"lat": float(place["latitude"]), "lon": float(place["longitude"])}
    except (KeyError, TypeError, ValueError) as exc:
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, str(exc))
    return CallResult.success(
        {"coords": coords, "city": place.get("place name"), "state": place.get("state abbreviation")}
    )
