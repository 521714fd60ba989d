import os
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Module-level singletons read the environment at import time.
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("VECTOR_BACKEND", "chroma")
os.environ.setdefault("QUIZ_BACKEND", "local")
os.environ.setdefault("SESSION_BACKEND", "memory")
os.environ.setdefault("RERANK_BACKEND", "none")
os.environ.setdefault("CONVERSATIONAL_QUESTIONS", "false")
os.environ.pop("LANGSMITH_API_KEY", None)


class StubCourseAgent:
    def __init__(self, matches=None):
        self.matches = matches or []
        self.calls = []

    def get_courses(self, scores, limit=8, location=None):
        self.calls.append({"scores": scores, "limit": limit, "location": location})
        return list(self.matches)


@pytest.fixture
def stub_course_agent():
    return StubCourseAgent(
        [{"name": "Sandy Burr Country Club", "url": "https://example.com/courses/sandy-burr", "score": 0.91, "distance": 1200.0}]
    )


@pytest.fixture
def quiz_engine(stub_course_agent):
    from quiz_engine import QuizEngine

    return QuizEngine(course_agent=stub_course_agent, conversational=False)
