from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import chromadb
from qdrant_client import QdrantClient, models

from settings import Settings, settings

LOGGER = logging.getLogger("golf.rag.store")

SITE_VECTOR_SIZE = 1536

# Chroma metadata values must be scalars.
_SCALAR_TYPES = (str, int, float, bool)


def point_id_for(url: str, chunk_index: int) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{url}#{chunk_index}"))


class SiteIndex:
    """Vector collection of site content chunks.

    ``search`` returns ``[{"id", "score", "payload"}]`` best first; ``upsert``
    takes points shaped ``{"id", "vector", "payload"}``.
    """

    def search(self, vector: List[float], limit: int) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def ensure_collection(self, size: int = SITE_VECTOR_SIZE, recreate: bool = False) -> None:
        raise NotImplementedError

    def upsert(self, points: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError

    def scroll(self, key: str, value: Any, limit: int) -> List[Dict[str, Any]]:
        """Points whose payload field ``key`` equals ``value``, unranked."""
        raise NotImplementedError


class QdrantSiteIndex(SiteIndex):
    def __init__(
        self,
        url: str,
        collection: str = "site_docs",
        api_key: str | None = None,
        vector_name: str | None = None,
        timeout: float = 12.0,
    ) -> None:
        self.collection = collection
        self.vector_name = vector_name or None
        self._client = QdrantClient(url=url, api_key=api_key or None, timeout=int(timeout))

    def search(self, vector: List[float], limit: int) -> List[Dict[str, Any]]:
        response = self._client.query_points(
            collection_name=self.collection,
            query=vector,
            using=self.vector_name,
            limit=limit,
            with_payload=True,
            with_vectors=False,
        )
        return [
            {"id": str(point.id), "score": float(point.score or 0.0), "payload": dict(point.payload or {})}
            for point in response.points
        ]

    def ensure_collection(self, size: int = SITE_VECTOR_SIZE, recreate: bool = False) -> None:
        params = models.VectorParams(size=size, distance=models.Distance.COSINE)
        vectors_config: Any = {self.vector_name: params} if self.vector_name else params
        exists = self._client.collection_exists(self.collection)
        if exists and recreate:
            self._client.delete_collection(self.collection)
            exists = False
        if not exists:
            self._client.create_collection(collection_name=self.collection, vectors_config=vectors_config)
            LOGGER.info("[store] created qdrant collection %s (size=%d, cosine)", self.collection, size)

    def upsert(self, points: List[Dict[str, Any]]) -> None:
        structs = [
            models.PointStruct(
                id=point["id"],
                vector={self.vector_name: point["vector"]} if self.vector_name else point["vector"],
                payload=point.get("payload") or {},
            )
            for point in points
        ]
        self._client.upsert(collection_name=self.collection, points=structs, wait=True)

    def count(self) -> int:
        return int(self._client.count(collection_name=self.collection, exact=True).count)

    def scroll(self, key: str, value: Any, limit: int) -> List[Dict[str, Any]]:
        points, _next = self._client.scroll(
            collection_name=self.collection,
            scroll_filter=models.Filter(must=[models.FieldCondition(key=key, match=models.MatchValue(value=value))]),
            limit=limit,
            with_payload=True,
            with_vectors=False,
        )
        return [{"id": str(point.id), "score": 0.0, "payload": dict(point.payload or {})} for point in points]


class ChromaSiteIndex(SiteIndex):
    def __init__(self, db_dir: str | Path, collection: str = "site_docs") -> None:
        self._db_dir = Path(db_dir)
        self._db_dir.mkdir(parents=True, exist_ok=True)
        self.collection_name = collection
        self._client = chromadb.PersistentClient(path=str(self._db_dir))
        self._collection = self._client.get_or_create_collection(name=collection, metadata={"hnsw:space": "cosine"})

    def search(self, vector: List[float], limit: int) -> List[Dict[str, Any]]:
        available = self._collection.count()
        if not available:
            return []
        payload = self._collection.query(
            query_embeddings=[vector],
            n_results=min(limit, available),
            include=["metadatas", "distances"],
        )
        ids = (payload.get("ids") or [[]])[0]
        metadatas = (payload.get("metadatas") or [[]])[0]
        distances = (payload.get("distances") or [[]])[0]

        hits: List[Dict[str, Any]] = []
        for idx, doc_id in enumerate(ids):
            metadata = dict(metadatas[idx] or {}) if idx < len(metadatas) else {}
            distance = float(distances[idx]) if idx < len(distances) else 1.0
            keywords = metadata.get("keywords")
            if isinstance(keywords, str):
                metadata["keywords"] = [word for word in keywords.split(",") if word]
            hits.append({"id": str(doc_id), "score": max(0.0, 1.0 - distance), "payload": metadata})
        return hits

    def ensure_collection(self, size: int = SITE_VECTOR_SIZE, recreate: bool = False) -> None:
        if recreate:
            try:
                self._client.delete_collection(self.collection_name)
            except Exception:
                pass
        self._collection = self._client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    def upsert(self, points: List[Dict[str, Any]]) -> None:
        if not points:
            return
        metadatas: List[Dict[str, Any]] = []
        for point in points:
            metadata: Dict[str, Any] = {}
            for key, value in (point.get("payload") or {}).items():
                if isinstance(value, list):
                    metadata[key] = ",".join(str(item) for item in value)
                elif isinstance(value, _SCALAR_TYPES):
                    metadata[key] = value
            metadatas.append(metadata)
        self._collection.upsert(
            ids=[str(point["id"]) for point in points],
            embeddings=[point["vector"] for point in points],
            metadatas=metadatas,
            documents=[str((point.get("payload") or {}).get("text", "")) for point in points],
        )

    def count(self) -> int:
        return int(self._collection.count())

    def scroll(self, key: str, value: Any, limit: int) -> List[Dict[str, Any]]:
        # Chroma metadata is flat; "payload.state" is stored as "state".
        payload = self._collection.get(where={key.split(".")[-1]: value}, limit=limit, include=["metadatas"])
        ids = payload.get("ids") or []
        metadatas = payload.get("metadatas") or []
        return [
            {"id": str(doc_id), "score": 0.0, "payload": dict(metadatas[idx] or {}) if idx < len(metadatas) else {}}
            for idx, doc_id in enumerate(ids)
        ]


def build_site_index(config: Settings | None = None) -> Optional[SiteIndex]:
    config = config or settings
    if config.vector_backend == "chroma":
        return ChromaSiteIndex(config.chroma_dir, config.site_collection)
    if not config.qdrant_url:
        LOGGER.warning("[store] QDRANT_URL not set; site retrieval disabled")
        return None
    return QdrantSiteIndex(
        config.qdrant_url,
        collection=config.site_collection,
        api_key=config.qdrant_api_key,
        vector_name=config.site_vector_name,
        timeout=config.http_timeout_seconds,
    )


def build_course_index(config: Settings | None = None) -> Optional[SiteIndex]:
    config = config or settings
    if config.vector_backend == "chroma":
        return ChromaSiteIndex(config.chroma_dir, config.course_collection)
    url = config.course_qdrant_url or config.qdrant_url
    if not url:
        LOGGER.warning("[store] no qdrant url for courses; course lookup disabled")
        return None
    return QdrantSiteIndex(
        url,
        collection=config.course_collection,
        api_key=config.qdrant_api_key,
        timeout=config.http_timeout_seconds,
    )
