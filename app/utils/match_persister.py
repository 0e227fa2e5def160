import logging
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.models.item import Item
from app.models.match import Match
from app.utils.match_evaluator import MatchCandidate
from app.utils.notifier import notify_match_owners
from app.utils.settings import PERSIST_THRESHOLD

logger = logging.getLogger(__name__)


def _persist_one(session: Session, candidate: MatchCandidate):
    match = Match(
        lost_item_id=candidate.lost_id,
        found_item_id=candidate.found_id,
        confidence=candidate.confidence,
        status="pending",
    )

    # The unique constraint on (lost_item_id, found_item_id) is the
    # idempotency guard; a violation means another run already got here.
    try:
        session.add(match)
        session.commit()
    except IntegrityError as e:
        session.rollback()

        existing = session.exec(
            select(Match)
            .where(Match.lost_item_id == candidate.lost_id)
            .where(Match.found_item_id == candidate.found_id)
        ).first()

        if existing:
            logger.info("Match %s/%s already recorded, skipping", candidate.lost_id, candidate.found_id)
        else:
            # some other constraint, e.g. an item deleted mid-run
            logger.warning("Could not record match %s/%s: %s", candidate.lost_id, candidate.found_id, e.orig)
        return None

    session.refresh(match)

    items = [
        session.get(Item, candidate.lost_id),
        session.get(Item, candidate.found_id),
    ]
    items = [item for item in items if item is not None]

    for item in items:
        item.status = "matched"
        session.add(item)
    session.commit()

    notify_match_owners(session, match, items)

    return match


def persist_matches(
    session: Session,
    candidates: List[MatchCandidate],
    persist_threshold: int = PERSIST_THRESHOLD,
) -> List[Match]:
    """Record every candidate at or above the persist threshold. Each is its own unit of work."""
    created = []

    for candidate in candidates:
        if candidate.confidence < persist_threshold:
            continue

        try:
            match = _persist_one(session, candidate)
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to persist match %s/%s", candidate.lost_id, candidate.found_id)
            continue

        if match:
            logger.info("Match %s saved (%s/%s, %d%%)", match.id, match.lost_item_id, match.found_item_id, match.confidence)
            created.append(match)

    return created
