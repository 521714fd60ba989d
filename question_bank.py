from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List

LOGGER = logging.getLogger("golf.questions")

CAMEL_TO_DIM = {
    "overallDifficulty": "overall_difficulty",
    "strategicVariety": "strategic_variety",
    "penalVsPlayable": "penal_vs_playable",
    "physicalDemands": "physical_demands",
    "weatherAdaptability": "weather_adaptability",
    "conditionsQuality": "conditions_quality",
    "facilitiesAmenities": "facilities_amenities",
    "serviceOperations": "service_operations",
    "valueProposition": "value_proposition",
    "aestheticAppeal": "aesthetic_appeal",
}

CAPTURE_ID_RE = re.compile(r"^Q0_", re.IGNORECASE)


def default_bank_path() -> Path:
    return Path(__file__).resolve().parent / "data" / "questions.json"


def normalize_option_scores(raw: Any) -> Dict[str, float]:
    """Option weights (0..1) keyed by snake_case dimension; non-numeric weights are dropped."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {}
    if not isinstance(raw, dict):
        return {}
    out: Dict[str, float] = {}
    for key, value in raw.items():
        try:
            out[CAMEL_TO_DIM.get(key, key)] = float(value)
        except (TypeError, ValueError):
            continue
    return out


def _normalize_question(item: Dict[str, Any]) -> Dict[str, Any]:
    raw_options = item.get("options") or item.get("question_options") or []
    options = []
    for position, opt in enumerate(raw_options):
        if not isinstance(opt, dict):
            continue
        options.append(
            {
                "index": int(opt.get("option_index", opt.get("index", position))),
                "text": str(opt.get("option_text", opt.get("text", ""))),
                "emoji": str(opt.get("option_emoji", opt.get("emoji", "")) or ""),
                "scores": normalize_option_scores(opt.get("scores")),
            }
        )
    options.sort(key=lambda opt: opt["index"])
    return {
        "id": str(item.get("question_id", item.get("id", ""))),
        "type": str(item.get("type", "")),
        "priority": float(item.get("priority") or 0),
        "question": str(item.get("question_text", item.get("question", ""))),
        "options": options,
    }


def load_question_bank(path: Path | str | None = None) -> List[Dict[str, Any]]:
    bank_path = Path(path) if path else default_bank_path()
    data = json.loads(bank_path.read_text(encoding="utf-8"))
    items = data.get("questions", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        raise ValueError(f"question bank at {bank_path} must be a list of questions")

    bank = [_normalize_question(item) for item in items if isinstance(item, dict)]
    bank = [question for question in bank if question["id"]]
    bank.sort(key=lambda question: question["priority"], reverse=True)
    LOGGER.info("[questions] loaded %d questions from %s", len(bank), bank_path)
    return bank


def is_capture_question(question: Dict[str, Any]) -> bool:
    return (
        not question.get("options")
        or bool(CAPTURE_ID_RE.match(str(question.get("id", ""))))
        or str(question.get("type", "")).lower().startswith("capture")
    )


def multiple_choice_bank(bank: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [question for question in bank if question.get("options") and not CAPTURE_ID_RE.match(question["id"])]
