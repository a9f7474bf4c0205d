from __future__ import annotations

import copy
import json
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from careercoach.config import Settings
from careercoach.db import Database
from careercoach.errors import GenerationError
from careercoach.identity import create_identity_token
from careercoach.main import create_app
from careercoach.store import upsert_user_identity

TEST_SECRET = "test-secret"


def make_insight_payload(**overrides: Any) -> dict[str, Any]:
    roles = ["Software Engineer", "Data Engineer", "DevOps Engineer", "Product Manager", "QA Engineer"]
    payload = {
        "salaryRanges": [
            {"role": role, "min": 60000 + i * 5000, "max": 140000 + i * 5000, "median": 100000 + i * 5000, "location": "US"}
            for i, role in enumerate(roles)
        ],
        "growthRate": 12.5,
        "demandLevel": "High",
        "topSkills": ["Python", "Cloud", "SQL", "Kubernetes", "System Design"],
        "marketOutlook": "Positive",
        "keyTrends": ["AI tooling", "Platform teams", "Remote work", "Security", "Observability"],
        "recommendedSkills": ["Python", "Go", "Terraform", "Rust", "Machine Learning", "React"],
        "learningResources": [
            {"name": f"Resource {i}", "type": kind, "url": f"https://example.com/{i}", "description": "Useful."}
            for i, kind in enumerate(["Course", "Certification", "Book", "Platform", "Course"])
        ],
        "topCompanies": [
            {"name": f"Company {i}", "industry": "Software", "description": "Notable."} for i in range(5)
        ],
        "jobMarket": {
            "openPositions": "50,000-100,000",
            "remotePercentage": 35,
            "topLocations": ["Seattle", "Austin", "New York", "San Francisco", "Boston"],
            "averageExperience": "3-5 years",
        },
    }
    payload.update(overrides)
    return payload


def make_quiz_payload(count: int = 10) -> dict[str, Any]:
    return {
        "questions": [
            {
                "question": f"Question {i}?",
                "options": [f"Q{i} option A", f"Q{i} option B", f"Q{i} option C", f"Q{i} option D"],
                "correctAnswer": f"Q{i} option A",
                "hint": "Think about the fundamentals.",
                "explanation": f"Option A is right for question {i}.",
            }
            for i in range(count)
        ]
    }


def fenced(payload: Any) -> str:
    return "```json\n" + json.dumps(payload) + "\n```"


class FakeGenerator:
    """Scripted stand-in for TextGenerator.

    Each queued response is either text, an exception instance to raise, or
    a callable taking the prompt. When the queue is empty ``default`` is used.
    """

    def __init__(self, *responses: Any, default: Any = None):
        self.responses = list(responses)
        self.default = default
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def complete(self, prompt: str, system_prompt: str = "") -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0) if self.responses else self.default
        if response is None:
            raise GenerationError("no scripted response")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def insight_payload() -> dict[str, Any]:
    return make_insight_payload()


@pytest.fixture
def quiz_payload() -> dict[str, Any]:
    return make_quiz_payload()


@pytest.fixture
def quiz_questions(quiz_payload: dict[str, Any]) -> list[dict[str, Any]]:
    return copy.deepcopy(quiz_payload["questions"])


@pytest.fixture
def db(tmp_path) -> Database:
    database = Database(sqlite_path=str(tmp_path / "careercoach-test.db"))
    database.init_schema()
    return database


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user(db: Database) -> dict[str, Any]:
    return upsert_user_identity(db, "user_alice", "alice@example.com", "Alice")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(auth_token_secret=TEST_SECRET, db_path=str(tmp_path / "careercoach-test.db"), quiz_question_seconds=60)


@pytest.fixture
def client(settings: Settings, db: Database, generator: FakeGenerator, clock: FakeClock) -> TestClient:
    app = create_app(settings=settings, db=db, generator=generator, clock=clock)
    return TestClient(app)


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    def build(subject: str = "user_alice", email: str = "alice@example.com", name: str = "Alice") -> dict[str, str]:
        token = create_identity_token(TEST_SECRET, subject, email=email, name=name)
        return {"Authorization": f"Bearer {token}"}

    return build
