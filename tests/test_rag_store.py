from rag_store import ChromaSiteIndex, build_course_index, point_id_for
from settings import Settings


def test_chroma_index_search(tmp_path):
    index = ChromaSiteIndex(tmp_path / "chroma", collection="test_docs")
    assert index.search([1.0, 0.0, 0.0], 5) == []

    url = "https://site/courses/sandy-burr"
    index.upsert(
        [
            {
                "id": point_id_for(url, 0),
                "vector": [1.0, 0.0, 0.0],
                "payload": {"url": url, "chunk_index": 0, "text": "Nine holes", "keywords": ["nine", "holes"]},
            },
            {
                "id": point_id_for(url, 1),
                "vector": [0.0, 1.0, 0.0],
                "payload": {"url": url, "chunk_index": 1, "text": "Pro shop"},
            },
        ]
    )
    assert index.count() == 2
    hits = index.search([1.0, 0.0, 0.0], 5)
    assert hits[0]["payload"]["chunk_index"] == 0
    assert hits[0]["payload"]["keywords"] == ["nine", "holes"]
    assert hits[0]["score"] > hits[1]["score"]


def test_point_ids_are_stable():
    assert point_id_for("https://a", 1) == point_id_for("https://a", 1)
    assert point_id_for("https://a", 1) != point_id_for("https://a", 2)


def test_chroma_scroll_filters_on_state(tmp_path):
    index = ChromaSiteIndex(tmp_path / "chroma", collection="courses")
    index.upsert(
        [
            {
                "id": point_id_for("https://site/courses/sandy-burr", 0),
                "vector": [1.0, 0.0],
                "payload": {"course_name": "Sandy Burr Country Club", "url": "https://site/courses/sandy-burr", "state": "MA"},
            },
            {
                "id": point_id_for("https://site/courses/cog-hill", 0),
                "vector": [0.0, 1.0],
                "payload": {"course_name": "Cog Hill Golf Club", "url": "https://site/courses/cog-hill", "state": "IL"},
            },
        ]
    )
    rows = index.scroll("payload.state", "MA", 20)
    assert [row["payload"]["course_name"] for row in rows] == ["Sandy Burr Country Club"]
    assert rows[0]["score"] == 0.0
    assert index.scroll("payload.state", "ma", 20) == []


def test_build_course_index_uses_course_collection(tmp_path):
    config = Settings()
    config.vector_backend = "chroma"
    config.chroma_dir = str(tmp_path / "chroma")
    config.course_collection = "courses_test"
    index = build_course_index(config)
    assert isinstance(index, ChromaSiteIndex)
    assert index.collection_name == "courses_test"


def test_build_course_index_without_qdrant_url_is_disabled():
    config = Settings()
    config.vector_backend = "qdrant"
    config.qdrant_url = ""
    config.course_qdrant_url = ""
    assert build_course_index(config) is None
