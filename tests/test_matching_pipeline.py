import asyncio
import logging
import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from app.models.item import Item
from app.models.match import Match
from app.models.notification import Notification
from app.utils import match_persister
from app.utils.match_errors import ItemNotFoundError
from app.utils.match_evaluator import MatchCandidate
from app.utils.matching import run_matching, trigger_matching
from app.utils.notifier import notify_match_owners


def _all(session, model):
    return session.exec(select(model)).all()


def test_end_to_end_phone_match(make_user, make_item, session, fake_oracle) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    a = make_item(alice, "lost", "Black iPhone")
    b = make_item(bob, "found", "iPhone found at library")

    summary = asyncio.run(run_matching(session, a.id, "lost", fake_oracle({"iPhone found at library": 85})))

    assert summary.message == "found 1 potential matches"
    assert [(m.lost_id, m.found_id, m.confidence) for m in summary.matches] == [(a.id, b.id, 85)]

    matches = _all(session, Match)
    assert len(matches) == 1
    assert (matches[0].lost_item_id, matches[0].found_item_id) == (a.id, b.id)
    assert matches[0].confidence == 85
    assert matches[0].status == "pending"

    assert session.get(Item, a.id).status == "matched"
    assert session.get(Item, b.id).status == "matched"

    notifications = _all(session, Notification)
    assert sorted(n.user_id for n in notifications) == sorted([alice.id, bob.id])
    for notification in notifications:
        assert notification.title == "Potential Match Found!"
        assert "85" in notification.message
        assert notification.is_read is False
        assert notification.match_id == matches[0].id


def test_triggered_from_found_side_keeps_lost_found_columns(make_user, make_item, session, fake_oracle) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    lost = make_item(alice, "lost", "Black iPhone")
    found = make_item(bob, "found", "iPhone found at library")

    asyncio.run(run_matching(session, found.id, "found", fake_oracle({}, default=92)))

    match = _all(session, Match)[0]
    assert session.get(Item, match.lost_item_id).type == "lost"
    assert session.get(Item, match.found_item_id).type == "found"
    assert (match.lost_item_id, match.found_item_id) == (lost.id, found.id)


def test_threshold_boundaries(make_user, make_item, session, fake_oracle) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    new_item = make_item(alice, "lost", "Black iPhone")
    c70 = make_item(bob, "found", "c70")
    c69 = make_item(bob, "found", "c69")
    c59 = make_item(bob, "found", "c59")

    summary = asyncio.run(run_matching(session, new_item.id, "lost", fake_oracle({"c70": 70, "c69": 69, "c59": 59})))

    assert [m.found_id for m in summary.matches] == [c70.id, c69.id]

    assert [m.found_item_id for m in _all(session, Match)] == [c70.id]
    assert session.get(Item, c69.id).status == "open"
    assert session.get(Item, c59.id).status == "open"
    assert len(_all(session, Notification)) == 2


def test_no_strong_matches_message(make_user, make_item, session, fake_oracle) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    new_item = make_item(alice, "lost", "Black iPhone")
    make_item(bob, "found", "Red phone")

    summary = asyncio.run(run_matching(session, new_item.id, "lost", fake_oracle({}, default=30)))

    assert summary.matches == []
    assert summary.message == "no strong matches found"
    assert _all(session, Match) == []


def test_retrigger_is_idempotent(make_user, make_item, session, fake_oracle) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    a = make_item(alice, "lost", "Black iPhone")
    b = make_item(bob, "found", "iPhone found at library")
    oracle = fake_oracle({}, default=85)

    asyncio.run(run_matching(session, a.id, "lost", oracle))
    asyncio.run(run_matching(session, a.id, "lost", oracle))
    asyncio.run(run_matching(session, b.id, "found", oracle))

    assert len(_all(session, Match)) == 1
    assert len(_all(session, Notification)) == 2


def test_existing_pair_is_skipped_by_constraint(make_user, make_item, session) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    a = make_item(alice, "lost", "Black iPhone")
    b = make_item(bob, "found", "iPhone found at library")

    # a racing run already recorded the pair but has not flipped statuses yet
    session.add(Match(lost_item_id=a.id, found_item_id=b.id, confidence=80))
    session.commit()

    candidate = MatchCandidate(lost_id=a.id, found_id=b.id, confidence=85, reasoning="same")
    created = match_persister.persist_matches(session, [candidate])

    assert created == []
    assert len(_all(session, Match)) == 1
    assert _all(session, Notification) == []
    assert session.get(Item, a.id).status == "open"


def test_persistence_failure_is_isolated(make_user, make_item, session, monkeypatch) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    a = make_item(alice, "lost", "Black iPhone")
    b1 = make_item(bob, "found", "phone one")
    b2 = make_item(bob, "found", "phone two")

    real_persist_one = match_persister._persist_one

    def flaky(session, candidate):
        if candidate.found_id == b1.id:
            raise SQLAlchemyError("disk full")
        return real_persist_one(session, candidate)

    monkeypatch.setattr(match_persister, "_persist_one", flaky)

    created = match_persister.persist_matches(session, [
        MatchCandidate(lost_id=a.id, found_id=b1.id, confidence=95, reasoning="x"),
        MatchCandidate(lost_id=a.id, found_id=b2.id, confidence=90, reasoning="y"),
    ])

    assert [m.found_item_id for m in created] == [b2.id]


def test_no_candidates_writes_nothing(make_user, make_item, session, fake_oracle) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    keys = make_item(alice, "found", "Keyring", category="Keys")
    make_item(bob, "lost", "Black iPhone")
    oracle = fake_oracle({}, default=99)

    summary = asyncio.run(run_matching(session, keys.id, "found", oracle))

    assert summary.matches == []
    assert summary.message == "no items to compare"
    assert oracle.calls == []
    assert _all(session, Match) == []
    assert _all(session, Notification) == []
    assert session.get(Item, keys.id).status == "open"


def test_unknown_item_raises_before_writes(session, fake_oracle) -> None:
    with pytest.raises(ItemNotFoundError):
        asyncio.run(run_matching(session, uuid.uuid4(), "lost", fake_oracle({})))


def test_notifications_one_per_item_for_shared_owner(make_user, make_item, session) -> None:
    alice = make_user("alice")

    lost = make_item(alice, "lost", "Umbrella")
    found = make_item(alice, "found", "Blue umbrella")
    match = Match(lost_item_id=lost.id, found_item_id=found.id, confidence=77)
    session.add(match)
    session.commit()

    notifications = notify_match_owners(session, match, [lost, found])

    assert [n.user_id for n in notifications] == [alice.id, alice.id]
    assert notifications[0].message == 'Your item "Umbrella" has a potential match with 77% confidence.'
    assert notifications[1].item_id == found.id


def test_notification_failure_is_logged_not_raised(caplog) -> None:
    session = MagicMock()
    session.commit.side_effect = SQLAlchemyError("down")
    match = Match(lost_item_id=uuid.uuid4(), found_item_id=uuid.uuid4(), confidence=80)
    item = Item(user_id=1, type="lost", category="Bag", title="Tote", description="d", location="l", date=None, image="k")

    with caplog.at_level(logging.ERROR):
        assert notify_match_owners(session, match, [item]) == []

    session.rollback.assert_called_once()
    assert "Could not create notifications" in caplog.text


def test_trigger_matching_never_raises(engine, fake_oracle, caplog) -> None:
    with caplog.at_level(logging.ERROR):
        asyncio.run(trigger_matching(uuid.uuid4(), "lost", oracle=fake_oracle({}), bind=engine))

    assert "Background matching failed" in caplog.text


def test_trigger_matching_runs_pipeline(make_user, make_item, engine, session, fake_oracle) -> None:
    alice = make_user("alice")
    bob = make_user("bob")

    a = make_item(alice, "lost", "Black iPhone")
    make_item(bob, "found", "iPhone found at library")

    asyncio.run(trigger_matching(a.id, "lost", oracle=fake_oracle({}, default=85), bind=engine))

    session.expire_all()
    assert len(_all(session, Match)) == 1
    assert session.get(Item, a.id).status == "matched"


def test_other_integrity_errors_are_not_reported_as_duplicates(caplog) -> None:
    strict = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)

    @event.listens_for(strict, "connect")
    def _foreign_keys(dbapi_connection, connection_record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    SQLModel.metadata.create_all(strict)

    # neither item exists, so the insert trips the foreign keys, not the pair constraint
    candidate = MatchCandidate(lost_id=uuid.uuid4(), found_id=uuid.uuid4(), confidence=90, reasoning="gone")

    with Session(strict) as session, caplog.at_level(logging.INFO):
        assert match_persister.persist_matches(session, [candidate]) == []

    assert "Could not record match" in caplog.text
    assert "FOREIGN KEY constraint failed" in caplog.text
    assert "already recorded" not in caplog.text
    strict.dispose()


def test_duplicate_pair_is_reported_as_already_recorded(make_user, make_item, session, caplog) -> None:
    a = make_item(make_user("alice"), "lost", "Black iPhone")
    b = make_item(make_user("bob"), "found", "iPhone found at library")
    session.add(Match(lost_item_id=a.id, found_item_id=b.id, confidence=80))
    session.commit()

    candidate = MatchCandidate(lost_id=a.id, found_id=b.id, confidence=85, reasoning="same")

    with caplog.at_level(logging.INFO):
        match_persister.persist_matches(session, [candidate])

    assert "already recorded" in caplog.text
    assert "Could not record match" not in caplog.text
