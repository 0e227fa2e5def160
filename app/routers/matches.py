import logging
import uuid
from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import aliased
from sqlmodel import Session, or_, select

from app.db.db import get_session
from app.models.item import Item
from app.models.match import Match
from app.models.user import User
from app.utils.auth_helper import get_acting_user
from app.utils.form_validator import validate_match_trigger
from app.utils.match_errors import ItemNotFoundError
from app.utils.matching import MatchSummary, run_matching
from app.utils.s3_service import with_image_url
from app.utils.similarity_oracle import ChatCompletionsOracle, SimilarityOracle


router = APIRouter()
logger = logging.getLogger(__name__)


def get_oracle() -> SimilarityOracle:
    return ChatCompletionsOracle()


@router.post("/run", response_model=MatchSummary)
async def run_match(
    body=Body(None),
    session: Session = Depends(get_session),
    oracle: SimilarityOracle = Depends(get_oracle),
):
    trigger = validate_match_trigger(body)

    try:
        return await run_matching(session, trigger.item_id, trigger.item_type, oracle)
    except ItemNotFoundError:
        raise HTTPException(status_code=404, detail="Item not found")
    except Exception as e:
        logger.exception("Matching run failed for %s", trigger.item_id)
        raise HTTPException(status_code=500, detail=str(e) or "Unknown error")


@router.get("/")
async def get_my_matches(
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    LostItem = aliased(Item)
    FoundItem = aliased(Item)

    rows = session.exec(
        select(Match, LostItem, FoundItem)
        .join(LostItem, Match.lost_item_id == LostItem.id)
        .join(FoundItem, Match.found_item_id == FoundItem.id)
        .where(or_(LostItem.user_id == user.id, FoundItem.user_id == user.id))
        .order_by(Match.created_at.desc())
    ).all()

    return {
        "matches": [
            {
                **match.model_dump(),
                "lost_item": with_image_url(lost_item),
                "found_item": with_image_url(found_item),
            }
            for match, lost_item, found_item in rows
        ]
    }


def decide_match(session: Session, match_id: uuid.UUID, user: User, status: str):
    match = session.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")

    lost_item = session.get(Item, match.lost_item_id)
    found_item = session.get(Item, match.found_item_id)

    owners = {item.user_id for item in (lost_item, found_item) if item}
    if user.id not in owners:
        raise HTTPException(status_code=403, detail="Not authorized to decide this match")

    if match.status != "pending":
        raise HTTPException(status_code=400, detail=f"Match already {match.status}")

    match.status = status
    session.add(match)
    session.commit()

    return {"ok": True}


@router.post("/{match_id}/confirm")
async def confirm_match(
    match_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    return decide_match(session, match_id, user, "confirmed")


@router.post("/{match_id}/reject")
async def reject_match(
    match_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_acting_user),
):
    return decide_match(session, match_id, user, "rejected")
