from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rag_agent import RagAgent

DEFAULT_QUERIES = [
    "golf courses in Wayland",
    "best public courses near Boston",
    "which courses have a driving range",
]


def _load_queries(path: Path | None) -> List[str]:
    if path is None or not path.exists():
        return list(DEFAULT_QUERIES)
    return [line.strip() for line in path.read_text(encoding="utf-8-sig").splitlines() if line.strip()]


def _summarize(query: str, agent: RagAgent) -> Dict[str, Any]:
    result = agent.retrieve(query)
    return {
        "query": query,
        "threshold": round(result.threshold, 3),
        "passages": [
            {
                "url": (hit.get("payload") or {}).get("url"),
                "chunk_index": (hit.get("payload") or {}).get("chunk_index"),
                "score": round(float(hit.get("score") or 0.0), 4),
                "adjusted_score": round(float(hit.get("adjusted_score") or 0.0), 4),
            }
            for hit in result.passages
        ],
        "links": result.links,
        "context_chars": len(result.context),
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Print the passages and links retrieval selects for sample queries.")
    parser.add_argument("queries", nargs="*", help="Queries to check; defaults to a small built-in set.")
    parser.add_argument("--queries-file", default="", help="Optional file with one query per line.")
    parser.add_argument("--json", action="store_true", help="Print full JSON per query.")
    args = parser.parse_args()

    queries = args.queries or _load_queries(Path(args.queries_file) if args.queries_file else None)
    agent = RagAgent()

    empty = 0
    for query in queries:
        summary = _summarize(query, agent)
        if args.json:
            print(json.dumps(summary, ensure_ascii=False, indent=2))
            continue
        passages = summary["passages"]
        if not passages and not summary["links"]:
            empty += 1
        print(f"- {query!r}: threshold={summary['threshold']} passages={len(passages)} links={len(summary['links'])}")
        for passage in passages[:3]:
            print(f"  * {passage['adjusted_score']} {passage['url']}#{passage['chunk_index']}")

    print(f"\n[SUMMARY] queries={len(queries)} empty={empty}")


if __name__ == "__main__":
    main()
