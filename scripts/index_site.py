from __future__ import annotations

import argparse
import os
import re
import sys
from collections import deque
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple
from urllib.parse import urldefrag, urljoin

import requests
from bs4 import BeautifulSoup

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from langsmith_integration import get_embeddings
from rag_store import SITE_VECTOR_SIZE, build_site_index, point_id_for
from settings import settings

USER_AGENT = "site-indexer/2.0"
CHUNK_WORDS = 450
CHUNK_OVERLAP = 80
MIN_CHUNK_CHARS = 180
UPSERT_BATCH = 150
MAX_KEYWORDS = 50

SKIP_HREF_RE = re.compile(r"^(mailto:|tel:|javascript:)", re.IGNORECASE)
COURSE_SLUG_RE = re.compile(r"/courses/([^/?#]+)", re.IGNORECASE)
KEYWORD_RE = re.compile(r"[a-z]{3,}")
WS_RE = re.compile(r"\s+")


def normalize_url(url: str) -> str:
    return urldefrag(url.strip())[0]


def _clean(text: str) -> str:
    return WS_RE.sub(" ", text or "").strip()


def parse_page(html: str) -> Tuple[BeautifulSoup, str, str]:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "svg", "noscript", "iframe", "template"]):
        tag.decompose()
    title = _clean(soup.title.get_text()) if soup.title else ""
    h1_tag = soup.find("h1")
    h1 = _clean(h1_tag.get_text()) if h1_tag else ""
    return soup, title, h1


def section_chunks(
    soup: BeautifulSoup,
    title: str,
    h1: str,
    chunk_words: int = CHUNK_WORDS,
    overlap: int = CHUNK_OVERLAP,
    min_chars: int = MIN_CHUNK_CHARS,
) -> List[Dict[str, str]]:
    """Split on h2/h3 headings, then window each section by words with overlap."""
    sections: List[Dict[str, str]] = []
    current = {"heading": "", "text": ""}
    for node in soup.find_all(["h2", "h3", "p", "li"]):
        text = _clean(node.get_text(" "))
        if not text:
            continue
        if node.name in ("h2", "h3"):
            if current["text"]:
                sections.append(current)
            current = {"heading": text, "text": ""}
        else:
            current["text"] = f"{current['text']} {text}".strip()
    if current["text"]:
        sections.append(current)

    step = max(1, chunk_words - overlap)
    chunks: List[Dict[str, str]] = []
    for section in sections:
        words = section["text"].split(" ")
        for start in range(0, len(words), step):
            piece = " ".join(words[start : start + chunk_words])
            if len(piece) > min_chars:
                prefix = " > ".join(part for part in (title, h1, section["heading"]) if part)
                chunks.append({"prefix": prefix, "text": piece})

    if chunks:
        return chunks
    main = soup.find("main")
    fallback = _clean(main.get_text(" ")) if main else ""
    return [{"prefix": " > ".join(part for part in (title, h1) if part), "text": fallback}] if fallback else []


def course_meta(url: str) -> Dict[str, str]:
    match = COURSE_SLUG_RE.search(url)
    if not match:
        return {"course_name": "", "town": "", "state": ""}
    name = re.sub(r"\b\w", lambda m: m.group(0).upper(), match.group(1).replace("-", " "))
    return {"course_name": name, "town": "", "state": ""}


def keywords_from(prefix: str, text: str) -> List[str]:
    seen: List[str] = []
    for token in KEYWORD_RE.findall(f"{prefix} {text}".lower()):
        if token not in seen:
            seen.append(token)
        if len(seen) >= MAX_KEYWORDS:
            break
    return seen


def internal_links(soup: BeautifulSoup, page_url: str, site_base: str) -> Iterable[str]:
    for anchor in soup.select("a[href]"):
        href = str(anchor.get("href") or "").strip()
        if not href or href.startswith("#") or SKIP_HREF_RE.match(href):
            continue
        absolute = normalize_url(urljoin(page_url, href))
        if absolute.startswith(site_base):
            yield absolute


def build_points(url: str, title: str, h1: str, chunks: List[Dict[str, str]], vectors: List[List[float]]) -> List[Dict[str, Any]]:
    meta = course_meta(url)
    points: List[Dict[str, Any]] = []
    for idx, (chunk, vector) in enumerate(zip(chunks, vectors)):
        prefix = chunk["prefix"] or title or h1
        points.append(
            {
                "id": point_id_for(url, idx),
                "vector": vector,
                "payload": {
                    "url": url,
                    "title": title,
                    "h1": h1,
                    "prefix": prefix,
                    "text": chunk["text"],
                    "chunk_index": idx,
                    **meta,
                    "keywords": keywords_from(prefix, chunk["text"]),
                },
            }
        )
    return points


def crawl(seeds: List[str], site_base: str, max_pages: int, recreate: bool) -> int:
    embeddings = get_embeddings()
    if embeddings is None:
        raise SystemExit("OPENAI_API_KEY is required to embed pages.")
    index = build_site_index()
    if index is None:
        raise SystemExit("No site index configured (set QDRANT_URL or VECTOR_BACKEND=chroma).")
    index.ensure_collection(size=SITE_VECTOR_SIZE, recreate=recreate)

    queue = deque(dict.fromkeys(normalize_url(seed) for seed in seeds))
    visited: set[str] = set()
    pending: List[Dict[str, Any]] = []

    while queue and len(visited) < max_pages:
        url = queue.popleft()
        if not url.startswith(site_base) or url in visited:
            continue
        visited.add(url)

        try:
            response = requests.get(url, headers={"User-Agent": USER_AGENT}, timeout=settings.http_timeout_seconds)
        except requests.RequestException as exc:
            print(f"error indexing {url}: {exc}")
            continue
        if not response.ok:
            print(f"skip {response.status_code} {url}")
            continue

        soup, title, h1 = parse_page(response.text)
        queue.extend(link for link in internal_links(soup, url, site_base) if link not in visited)

        chunks = section_chunks(soup, title, h1)
        if not chunks:
            continue
        texts = [f"{chunk['prefix']}\n\n{chunk['text']}" if chunk["prefix"] else chunk["text"] for chunk in chunks]
        vectors = embeddings.embed_documents(texts)
        pending.extend(build_points(url, title, h1, chunks, vectors))

        if len(pending) >= UPSERT_BATCH:
            index.upsert(pending)
            print(f"Upserted {len(pending)} points; continuing...")
            pending = []

    if pending:
        index.upsert(pending)
        print(f"Upserted remaining {len(pending)} points")
    print(f"Index complete. Pages visited: {len(visited)}")
    return len(visited)


def main() -> None:
    parser = argparse.ArgumentParser(description="Crawl the site and index its content into the site collection.")
    parser.add_argument("seeds", nargs="+", help="Seed URLs to start crawling from.")
    parser.add_argument("--site-base", default=os.getenv("SITE_BASE", ""), help="Only URLs under this prefix are crawled.")
    parser.add_argument("--max-pages", type=int, default=500, help="Stop after this many pages.")
    parser.add_argument("--recreate", action="store_true", help="Drop and recreate the collection first.")
    args = parser.parse_args()

    site_base = args.site_base.rstrip("/")
    if not site_base:
        raise SystemExit("Missing SITE_BASE (env or --site-base).")
    crawl(args.seeds, site_base, args.max_pages, args.recreate)


if __name__ == "__main__":
    main()
