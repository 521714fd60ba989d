from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, List

import requests
from sentence_transformers import CrossEncoder

from errors import CallResult, ErrorKind
from settings import settings

LOGGER = logging.getLogger("golf.rag.rerank")

VOYAGE_RERANK_URL = "https://api.voyageai.com/v1/rerank"
UNRANKED_SCORE = -1e9


def hit_document(hit: Dict[str, Any]) -> str:
    payload = hit.get("payload") or {}
    title = payload.get("title") or payload.get("h1") or ""
    return f"{title}\n\n{payload.get('text') or ''}"


def _apply_order(hits: List[Dict[str, Any]], scores_by_index: Dict[int, float]) -> List[Dict[str, Any]]:
    """Reorder by rerank score; hits the reranker did not return sort last, keeping their order."""
    ranked = sorted(
        enumerate(hits),
        key=lambda pair: scores_by_index.get(pair[0], UNRANKED_SCORE),
        reverse=True,
    )
    return [hit for _, hit in ranked]


def voyage_rerank(query: str, hits: List[Dict[str, Any]], top_n: int = 40) -> CallResult[List[Dict[str, Any]]]:
    if not settings.voyage_api_key:
        return CallResult.failure(ErrorKind.UPSTREAM_UNAVAILABLE, "VOYAGE_API_KEY not set")
    documents = [hit_document(hit) for hit in hits]
    try:
        response = requests.post(
            VOYAGE_RERANK_URL,
            json={
                "model": settings.voyage_rerank_model,
                "query": query,
                "documents": documents,
                "top_n": min(top_n, len(documents)),
            },
            headers={"Authorization": f"Bearer {settings.voyage_api_key}"},
            timeout=settings.http_timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as exc:
        LOGGER.warning("[rerank] voyage failed: %s", exc)
        return CallResult.failure(ErrorKind.UPSTREAM_UNAVAILABLE, str(exc))
    except ValueError as exc:
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, str(exc))

    rows = data.get("data") if isinstance(data, dict) else None
    if not isinstance(rows, list):
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, "missing data array")
    try:
        scores = {
            int(row["index"]): float(row["relevance_score"])
            for row in rows
            if isinstance(row, dict) and "index" in row
        }
    except (KeyError, TypeError, ValueError) as exc:
        return CallResult.failure(ErrorKind.MALFORMED_RESPONSE, str(exc))
    return CallResult.success(_apply_order(hits, scores))


@lru_cache(maxsize=1)
def _cross_encoder(model_name: str) -> CrossEncoder:
    return CrossEncoder(model_name)


def cross_encoder_rerank(query: str, hits: List[Dict[str, Any]], top_n: int = 40) -> CallResult[List[Dict[str, Any]]]:
    try:
        model = _cross_encoder(settings.cross_encoder_model)
        predictions = model.predict([(query, hit_document(hit)) for hit in hits])
    except Exception as exc:
        LOGGER.warning("[rerank] cross-encoder failed: %s", exc)
        return CallResult.failure(ErrorKind.UPSTREAM_UNAVAILABLE, str(exc))

    ordered = sorted(range(len(hits)), key=lambda idx: float(predictions[idx]), reverse=True)[:top_n]
    scores = {idx: float(predictions[idx]) for idx in ordered}
    return CallResult.success(_apply_order(hits, scores))


def rerank(query: str, hits: List[Dict[str, Any]], top_n: int = 40, backend: str | None = None) -> List[Dict[str, Any]]:
    """Fail-open: on any failure the input order is returned unchanged."""
    backend = (backend or settings.rerank_backend).lower()
    if not hits or backend == "none":
        return hits
    if backend == "cross_encoder":
        result = cross_encoder_rerank(query, hits, top_n)
    else:
        result = voyage_rerank(query, hits, top_n)
    if not result.ok:
        LOGGER.debug("[rerank] keeping retrieval order (%s): %s", result.error, result.detail)
    return result.value_or(hits)
