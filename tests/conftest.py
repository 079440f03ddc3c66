"""
Shared pytest fixtures.

Uses a SQLite file database so no Postgres is required for tests. Every test
works under its own user id, so rows left by other tests never leak into
per-user queries.
"""
import json
import uuid
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.db.base import Base, get_db
from app.main import app
from app.models import Activity, Arc, ChapterTemplate, Goal
from app.routers.deps import get_generation_client
from app.services.generation_client import GenerationClient

SQLITE_URL = "sqlite:///./test_chapters.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

STORY_BODY = (
    'The numbers\n\nThree activities crossed the line, led by "Ship the onboarding flow". '
    "Completed count landed at 3 while one item carried in from the prior week. "
) * 8


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def user_id():
    return f"user-{uuid.uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

class Seeder:
    """Writes domain rows for one user."""

    def __init__(self, db, user_id: str):
        self.db = db
        self.user_id = user_id

    def _id(self, local_id: str) -> str:
        return f"{self.user_id}-{local_id}"

    def arc(self, local_id: str, title: str, narrative: str = None) -> Arc:
        row = Arc(id=self._id(local_id), user_id=self.user_id, title=title, narrative=narrative)
        self.db.add(row)
        self.db.commit()
        return row

    def goal(self, local_id: str, title: str, arc_id: str = None, description: str = None) -> Goal:
        row = Goal(
            id=self._id(local_id), user_id=self.user_id, title=title,
            arc_id=arc_id, description=description,
        )
        self.db.add(row)
        self.db.commit()
        return row

    def activity(self, local_id: str, title: str = None, tags=None, **fields) -> Activity:
        row = Activity(
            id=self._id(local_id),
            user_id=self.user_id,
            title=title or local_id,
            tags=json.dumps(tags) if tags is not None else None,
            **fields,
        )
        self.db.add(row)
        self.db.commit()
        return row

    def template(self, **fields) -> ChapterTemplate:
        fields.setdefault("name", "Weekly reflection")
        fields.setdefault("cadence", "weekly")
        fields.setdefault("kind", "reflection")
        fields.setdefault("timezone", "UTC")
        row = ChapterTemplate(user_id=self.user_id, **fields)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row


@pytest.fixture()
def seed(db, user_id):
    return Seeder(db, user_id)


# ---------------------------------------------------------------------------
# Generation service double
# ---------------------------------------------------------------------------

def chapter_output(period: dict, example_ids: list[str], **overrides) -> dict:
    """A chapter that passes validation for `period` citing `example_ids`."""
    output = {
        "title": "Three finishes and a long-runner crossed the line",
        "dek": "Completed count reached 3, including one item carried in from the prior week.",
        "period": {"start": period["start"], "end": period["end"], "label": period["label"]},
        "sections": [
            {"key": "story", "title": "The Story", "body": STORY_BODY},
            {"key": "where_time_went", "title": "Where the Work Landed", "bullets": ["Onboarding"]},
            {"key": "forces", "title": "Your Forces", "items": [{"force": "Follow-through", "body": "3 done"}]},
            {"key": "highlights", "title": "Highlights", "bullets": ["Shipped"]},
            {"key": "patterns", "title": "Patterns", "bullets": ["Midweek finishes"]},
            {"key": "next_experiments", "title": "Next Experiments", "bullets": ["Start earlier"]},
        ],
        "noteworthy_mentions": [
            {"activity_id": example_ids[0], "title": "x", "reason": "first"},
        ] if example_ids else [],
        "citations": {"metrics_used": True, "examples_used": list(example_ids)},
    }
    output.update(overrides)
    return output


class FakeGeneration:
    """
    Answers /chat/completions through httpx.MockTransport.

    By default echoes the request's period and cites up to four ids from its
    evidence. `respond` can be replaced to return any (status, body) pair.
    """

    def __init__(self):
        self.calls: list[dict] = []
        self.respond = self.valid_response

    @staticmethod
    def user_payload(request_body: dict) -> dict:
        return json.loads(request_body["messages"][1]["content"])

    def valid_response(self, request_body: dict):
        payload = self.user_payload(request_body)
        evidence = payload["evidence"]
        ids = sorted({a["activity_id"] for a in evidence["activities_full"]})[:4]
        content = chapter_output(payload["period"], ids)
        return 200, {"choices": [{"message": {"role": "assistant", "content": json.dumps(content)}}]}

    def _handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.calls.append(body)
        status_code, payload = self.respond(body)
        return httpx.Response(status_code, json=payload)

    def client(self, api_key: str = "test-key") -> GenerationClient:
        return GenerationClient(
            api_key=api_key,
            base_url="https://generation.test/v1",
            timeout=5.0,
            max_concurrency=2,
            transport=httpx.MockTransport(self._handler),
        )


@pytest.fixture()
def fake_generation():
    return FakeGeneration()


@pytest.fixture()
def client(db, fake_generation):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_generation_client] = lambda: fake_generation.client()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
