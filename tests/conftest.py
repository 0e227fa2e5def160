import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.db.db import get_session
from app.main import app
from app.routers.matches import get_oracle
from app.utils.auth_helper import get_acting_user

from app.models.item import Item
from app.models.match import Match  # noqa: F401
from app.models.notification import Notification  # noqa: F401
from app.models.user import User
from app.utils.similarity_oracle import OracleVerdict


class FakeOracle:
    """
    Answers by candidate title. A value can be an int confidence, None (no
    opinion), an exception instance to raise, or "sleep" to hang.
    """

    def __init__(self, answers: dict, default=None):
        self.answers = answers
        self.default = default
        self.calls: list[tuple[str, str]] = []

    async def judge(self, item: Item, candidate: Item) -> Optional[OracleVerdict]:
        self.calls.append((item.title, candidate.title))
        answer = self.answers.get(candidate.title, self.default)

        if answer == "sleep":
            await asyncio.sleep(10)
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            return None

        return OracleVerdict(confidence=answer, reasoning=f"looks like {candidate.title}")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def make_user(session):
    def _make(public_id: str, name: str = "Student") -> User:
        user = User(public_id=public_id, name=name, email=f"{public_id}@campus.edu")
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_item(session):
    created = {"n": 0}

    def _make(user: User, type: str, title: str, category: str = "Phone", status: str = "open", **fields) -> Item:
        # strictly increasing created_at keeps store order deterministic
        created["n"] += 1
        item = Item(
            user_id=user.id,
            type=type,
            category=category,
            title=title,
            description=fields.pop("description", f"{title} description"),
            location=fields.pop("location", "Main library"),
            date=fields.pop("date", datetime(2025, 3, 14, tzinfo=timezone.utc)),
            image=fields.pop("image", f"item-images/{title}.webp"),
            status=status,
            created_at=datetime(2025, 3, 14, tzinfo=timezone.utc) + timedelta(minutes=created["n"]),
            **fields,
        )
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    return _make


@pytest.fixture
def fake_oracle():
    return FakeOracle


@pytest.fixture
def api_oracle(fake_oracle):
    return fake_oracle({}, default=85)


@pytest.fixture
def client(engine, api_oracle):
    def _session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_oracle] = lambda: api_oracle

    # no context manager, so the lifespan does not touch the real database
    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def act_as(client):
    """Make requests on behalf of a user, loaded in the request's own session."""

    def _act_as(user: User):
        user_id = user.id

        def _acting(session: Session = Depends(get_session)):
            return session.get(User, user_id)

        app.dependency_overrides[get_acting_user] = _acting

    return _act_as
