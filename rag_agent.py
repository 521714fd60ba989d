from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

import reranker
from errors import CallResult, ErrorKind
from langsmith_integration import get_embeddings
from rag_store import SiteIndex, build_course_index, build_site_index
from settings import settings
from workflow.extractor import extract_location, is_list_intent, normalize_text, strip_punctuation

LOGGER = logging.getLogger("golf.rag")

BASE_THRESHOLD = 0.06
MAX_THRESHOLD_BOOST = 0.12
LEXICAL_WEIGHT = 0.03
CANDIDATE_POOL = 20
LIST_PASSAGES = 8
DEFAULT_PASSAGES = 6
COURSE_HITS = 20
COURSE_LINKS = 5

COURSE_SLUG_RE = re.compile(r"/courses/([^/?#]+)")
ARTICLE_SLUG_RE = re.compile(r"/articles/([^/?#]+)")
CLUB_NAME_RE = re.compile(r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+(?:Country Club|Golf Club|Golf Course))")
STATE_HINT_RE = re.compile(r",\s*([A-Za-z]{2,})\b")


@dataclass
class RetrievalResult:
    passages: List[Dict[str, Any]] = field(default_factory=list)
    context: str = ""
    links: List[Dict[str, str]] = field(default_factory=list)
    threshold: float = BASE_THRESHOLD

    @property
    def empty(self) -> bool:
        return not self.passages and not self.links


def query_variants(text: str) -> List[str]:
    raw = (text or "").strip()
    variants = [raw, raw.lower(), strip_punctuation(raw)]
    place = extract_location(raw)
    if place:
        variants += [f"golf courses in {place}", f"{place} golf courses", f"courses near {place}"]
        if "," in place:
            city = place.split(",")[0].strip()
            variants += [f"golf courses in {city}", f"{city} golf courses", f"courses near {city}"]

    out: List[str] = []
    seen = set()
    for variant in variants:
        cleaned = re.sub(r"\s+", " ", variant).strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            out.append(cleaned)
    return out


def course_state_variants(text: str) -> List[str]:
    """State spellings to try against the course collection's state field."""
    raw = (text or "").strip()
    place = extract_location(raw)
    state = ""
    if "," in place:
        state = place.split(",", 1)[1].strip()
    else:
        match = STATE_HINT_RE.search(raw)
        if match:
            state = match.group(1)
        elif "massachusetts" in place.lower():
            state = "massachusetts"
    if not state:
        return []

    variants = [state, state.upper(), state.lower()]
    if state.upper() == "MA":
        variants += ["Massachusetts", "MASSACHUSETTS", "massachusetts"]
    elif state.lower() == "massachusetts":
        variants += ["MA", "ma"]
    return list(dict.fromkeys(variants))


def course_links(hits: List[Dict[str, Any]], known: set) -> List[Dict[str, str]]:
    links: List[Dict[str, str]] = []
    for hit in hits[:COURSE_LINKS]:
        payload = hit.get("payload") or {}
        url = str(payload.get("url") or payload.get("course_url") or "")
        name = str(payload.get("course_name") or payload.get("name") or "")
        if url and len(name) > 5 and url not in known:
            known.add(url)
            links.append({"url": url, "name": name})
    return links


def query_tokens(text: str) -> List[str]:
    return [token for token in normalize_text(text).split(" ") if len(token) > 2]


def score_threshold(tokens: List[str]) -> float:
    return BASE_THRESHOLD + min(MAX_THRESHOLD_BOOST, 0.01 * len(tokens))


def dedup_key(hit: Dict[str, Any]) -> str:
    payload = hit.get("payload") or {}
    chunk = payload.get("chunk_index")
    return f"{payload.get('url')}#{'html' if chunk is None else chunk}"


def dedup_hits(hits: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    out: List[Dict[str, Any]] = []
    for hit in hits:
        key = dedup_key(hit)
        if key in seen:
            continue
        seen.add(key)
        out.append(hit)
    return out


def lexical_overlap(hit: Dict[str, Any], tokens: List[str]) -> int:
    payload = hit.get("payload") or {}
    haystack = normalize_text(f"{payload.get('title') or ''} {payload.get('text') or ''}")
    return sum(1 for token in tokens if token in haystack)


def select_passages(hits: List[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    """Threshold, lexical boost, per-URL cap, then cut to the list or answer size."""
    tokens = query_tokens(query)
    threshold = score_threshold(tokens)
    good = []
    for hit in hits:
        score = float(hit.get("score") or 0.0)
        if score < threshold:
            continue
        good.append({**hit, "adjusted_score": score + LEXICAL_WEIGHT * lexical_overlap(hit, tokens)})
    good.sort(key=lambda item: item["adjusted_score"], reverse=True)

    by_url: Dict[str, Dict[str, Any]] = {}
    for hit in good[:CANDIDATE_POOL]:
        url = str((hit.get("payload") or {}).get("url") or "")
        by_url.setdefault(url, hit)
    limit = LIST_PASSAGES if is_list_intent(query) else DEFAULT_PASSAGES
    return list(by_url.values())[:limit]


def _title_case_slug(slug: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), slug.replace("-", " "))


def derive_link_name(payload: Dict[str, Any], text: str) -> str:
    url = str(payload.get("url") or "")
    name = payload.get("title") or payload.get("h1") or payload.get("course_name") or ""
    if name and name != url:
        return str(name)

    match = COURSE_SLUG_RE.search(url) or ARTICLE_SLUG_RE.search(url)
    if match:
        return _title_case_slug(match.group(1))

    first_line = (text or "").split("\n")[0].strip()
    if 10 < len(first_line) < 150:
        return first_line

    club = CLUB_NAME_RE.search(text or "")
    if club:
        return club.group(1)
    return url


def build_context(
    passages: List[Dict[str, Any]],
    max_chars: int | None = None,
    passage_chars: int | None = None,
) -> tuple[str, List[Dict[str, str]]]:
    max_chars = max_chars or settings.context_max_chars
    passage_chars = passage_chars or settings.passage_max_chars

    context = ""
    links: List[Dict[str, str]] = []
    for idx, hit in enumerate(passages, start=1):
        payload = hit.get("payload") or {}
        url = str(payload.get("url") or "")
        title = str(payload.get("title") or payload.get("h1") or "")
        text = str(payload.get("text") or "")[:passage_chars]
        block = f"[{idx}] {url}\n{title + chr(10) if title else ''}{text}\n---\n"
        if len(context) + len(block) > max_chars:
            break
        context += block

        name = derive_link_name(payload, text)
        if url and name and len(name) > 5 and name != url and "|" not in name:
            links.append({"url": url, "name": name})
    return context, links


def scrape_site_search(query: str, search_url: str | None = None) -> CallResult[List[Dict[str, str]]]:
    """Result links from the site's server-rendered search page."""
    base = (search_url or settings.site_search_url or "").strip()
    if not base:
        return CallResult.failure(ErrorKind.NO_RESULT, "SITE_SEARCH_URL not set")
    try:
        response = requests.get(
            base,
            params={"q": query},
            headers={"User-Agent": settings.user_agent},
            timeout=settings.http_timeout_seconds,
        )
        response.raise_for_status()
    except requests.RequestException as exc:
        LOGGER.warning("[rag] site search scrape failed: %s", exc)
        return CallResult.failure(ErrorKind.UPSTREAM_UNAVAILABLE, str(exc))

    soup = BeautifulSoup(response.text, "html.parser")
    links: List[Dict[str, str]] = []
    seen = set()
    for anchor in soup.select("a[href]"):
        href = urljoin(base, anchor["href"])
        if not (COURSE_SLUG_RE.search(href) or ARTICLE_SLUG_RE.search(href)):
            continue
        if href in seen:
            continue
        seen.add(href)
        name = anchor.get_text(" ", strip=True)
        links.append({"url": href, "name": name or href})
    if not links:
        return CallResult.failure(ErrorKind.NO_RESULT, "no result links on page")
    return CallResult.success(links)


class RagAgent:
    """Site content retrieval: variants -> vector search -> rerank -> dedup -> select -> context."""

    def __init__(
        self,
        index: Optional[SiteIndex] = None,
        embed: Optional[Callable[[str], List[float]]] = None,
        rerank: Optional[Callable[[str, List[Dict[str, Any]], int], List[Dict[str, Any]]]] = None,
        scrape: Optional[Callable[[str], CallResult[List[Dict[str, str]]]]] = None,
        course_index: Optional[SiteIndex] = None,
        top_k: int | None = None,
        rerank_top_n: int | None = None,
    ) -> None:
        self._index = index
        self._embed = embed
        self._rerank = rerank or reranker.rerank
        self._scrape = scrape or scrape_site_search
        self._course_index = course_index
        self._course_index_ready = course_index is not None
        self.top_k = top_k or settings.retrieval_top_k
        self.rerank_top_n = rerank_top_n or settings.rerank_top_n

    @property
    def index(self) -> Optional[SiteIndex]:
        if self._index is None:
            self._index = build_site_index()
        return self._index

    @property
    def course_index(self) -> Optional[SiteIndex]:
        if not self._course_index_ready:
            self._course_index = build_course_index()
            self._course_index_ready = True
        return self._course_index

    def embed(self, text: str) -> List[float]:
        if self._embed is None:
            embeddings = get_embeddings()
            if embeddings is None:
                raise RuntimeError("embeddings are not configured")
            self._embed = embeddings.embed_query
        return self._embed(text)

    def search(self, query: str) -> List[Dict[str, Any]]:
        index = self.index
        if index is None:
            return []
        hits: List[Dict[str, Any]] = []
        for variant in query_variants(query):
            hits.extend(index.search(self.embed(variant), self.top_k))
            if len(hits) >= self.top_k:
                break
        return hits

    def search_courses(self, query: str) -> List[Dict[str, Any]]:
        """Course records whose state field matches a spelling of the state in the query."""
        hits: List[Dict[str, Any]] = []
        try:
            index = self.course_index
            if index is None:
                return []
            for state in course_state_variants(query):
                hits.extend(index.scroll(settings.course_state_key, state, COURSE_HITS))
                if len(hits) >= COURSE_HITS:
                    break
        except Exception as exc:
            LOGGER.warning("[rag] course lookup failed: %s", exc)
            return []
        return hits[:COURSE_HITS]

    def retrieve(self, query: str) -> RetrievalResult:
        hits = self.search(query)
        hits = self._rerank(query, hits, self.rerank_top_n)
        hits = dedup_hits(hits)
        passages = select_passages(hits, query)
        context, links = build_context(passages)
        known = {link["url"] for link in links}
        links.extend(course_links(self.search_courses(query), known))

        scraped = self._scrape(query)
        if scraped.ok:
            for link in scraped.value_or([]):
                if link["url"] not in known and len(link.get("name", "")) > 5:
                    known.add(link["url"])
                    links.append({"url": link["url"], "name": link["name"]})

        if settings.debug_rag:
            LOGGER.info(
                "[rag] query=%r hits=%d passages=%d links=%d context_chars=%d",
                query, len(hits), len(passages), len(links), len(context),
            )
        return RetrievalResult(
            passages=passages,
            context=context,
            links=links,
            threshold=score_threshold(query_tokens(query)),
        )
