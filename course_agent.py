from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional

import requests

from errors import CallResult, ErrorKind
from settings import settings
from workflow.state import DIMS10

LOGGER = logging.getLogger("golf.courses")

MILES_TO_METERS = 1609.34
NEUTRAL_SCORE = 5.0


def norm10(value: Any) -> Optional[float]:
    """0..10 score to 0..1, clamped; None when the value is missing or not a number."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return min(1.0, max(0.0, number / 10.0))


def scores_to_vector(scores: Dict[str, Any] | None) -> List[float]:
    vector: List[float] = []
    for dim in DIMS10:
        value = norm10((scores or {}).get(dim))
        vector.append(NEUTRAL_SCORE / 10.0 if value is None else value)
    return vector


class CourseAgent:
    """
    CourseAgent:
    - Turns a 10-dimension preference profile into a nearest-neighbour course query.
    - Optionally geo-filters around the player's coordinates.
    """

    def __init__(self, endpoint: str | None = None, timeout: float | None = None) -> None:
        self.endpoint = (endpoint or settings.course_search_url).strip()
        self.timeout = timeout or settings.http_timeout_seconds

    def build_request_body(
        self,
        scores: Dict[str, Any] | None,
        limit: int = 8,
        location: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "vector": scores_to_vector(scores),
            "limit": max(1, min(100, int(limit or 8))),
        }
        coords = (location or {}).get("coords")
        if coords:
            body["lat"] = float(coords["lat"])
            body["lon"] = float(coords["lon"])
            radius = (location or {}).get("radius")
            if radius is not None:
                body["radius"] = float(radius) * MILES_TO_METERS
        return body

    @staticmethod
    def normalize_results(data: Any) -> List[Dict[str, Any]]:
        rows = data.get("result") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            return []
        matches: List[Dict[str, Any]] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            payload = row.get("payload")
            if not isinstance(payload, dict):
                payload = {}
            matches.append(
                {
                    "course_id": payload.get("course_id"),
                    "name": payload.get("course_name") or payload.get("name") or "Course",
                    "url": payload.get("course_url") or payload.get("website") or None,
                    "score": row.get("score"),
                    "distance": row.get("distance"),
                    "payload": payload,
                }
            )
        return matches

    def search(
        self,
        scores: Dict[str, Any] | None,
        limit: int = 8,
        location: Dict[str, Any] | None = None,
    ) -> CallResult[List[Dict[str, Any]]]:
        body = self.build_request_body(scores, limit=limit, location=location)
        try:
            response = requests.post(self.endpoint, json=body, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as exc:
            LOGGER.warning("[courses] search failed: %s", exc)
            return CallResult.failure(ErrorKind.UPSTREAM_UNAVAILABLE, str(exc))
        except ValueError as exc:
            LOGGER.warning("[courses] unreadable search response: %s", exc)
            return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, str(exc))

        if not isinstance(data, dict) or not isinstance(data.get("result"), list):
            LOGGER.warning("[courses] search response without a result list")
            return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, "missing result list")

        matches = self.normalize_results(data)
        if not matches:
            return CallResult.failure(ErrorKind.NO_RESULT, "no courses matched")
        return CallResult.success(matches)

    def get_courses(
        self,
        scores: Dict[str, Any] | None,
        limit: int = 8,
        location: Dict[str, Any] | None = None,
    ) -> List[Dict[str, Any]]:
        """Fail-soft wrapper: any failure yields an empty list."""
        return self.search(scores, limit=limit, location=location).value_or([])
