import logging
import uuid
from sqlmodel import Session, select

from app.models.item import Item
from app.utils.match_errors import ItemNotFoundError
from app.utils.settings import MAX_CANDIDATES

logger = logging.getLogger(__name__)


def opposite_type(item_type: str) -> str:
    return "found" if item_type == "lost" else "lost"


def select_candidates(session: Session, item_id, item_type: str, limit: int = MAX_CANDIDATES):
    """
    Load the new item and the open items of the opposite type in the same
    category. Returns (item, candidates); candidates keep store order.
    """
    try:
        item_uuid = item_id if isinstance(item_id, uuid.UUID) else uuid.UUID(str(item_id))
    except ValueError:
        raise ItemNotFoundError(item_id)

    item = session.get(Item, item_uuid)
    if not item:
        raise ItemNotFoundError(item_id)

    if item.type != item_type:
        logger.warning("Trigger type %s disagrees with item %s type %s, using stored type", item_type, item.id, item.type)

    candidates = session.exec(
        select(Item)
        .where(Item.type == opposite_type(item.type))
        .where(Item.category == item.category)
        .where(Item.status == "open")
        .order_by(Item.created_at)
        .limit(limit)
    ).all()

    logger.info("Item %s (%s/%s): %d candidates", item.id, item.type, item.category, len(candidates))

    return item, list(candidates)
