import logging
from typing import Iterable, List

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from app.models.item import Item
from app.models.match import Match
from app.models.notification import Notification

logger = logging.getLogger(__name__)

MATCH_TITLE = "Potential Match Found!"


def match_message(item: Item, confidence: int) -> str:
    return f'Your item "{item.title}" has a potential match with {confidence}% confidence.'


def notify_match_owners(session: Session, match: Match, items: Iterable[Item]) -> List[Notification]:
    """
    One notification per item in the match, even when both items share an
    owner. Best effort: a failure here leaves the match in place.
    """
    notifications = [
        Notification(
            user_id=item.user_id,
            type="match_found",
            title=MATCH_TITLE,
            message=match_message(item, match.confidence),
            item_id=item.id,
            match_id=match.id,
        )
        for item in items
    ]

    try:
        session.add_all(notifications)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Could not create notifications for match %s", match.id)
        return []

    return notifications
