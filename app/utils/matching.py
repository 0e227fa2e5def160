"""
Matching pipeline for a newly created item.

select candidates -> ask the oracle about each (concurrently) -> keep the
accepted ones -> persist the strong ones, flip statuses, notify owners.
"""
import asyncio
import logging
from typing import List, Optional

from pydantic import BaseModel
from sqlmodel import Session

from app.db.db import engine
from app.utils.candidates import select_candidates
from app.utils.match_evaluator import MatchCandidate, evaluate_candidates
from app.utils.match_persister import persist_matches
from app.utils.similarity_oracle import ChatCompletionsOracle, SimilarityOracle

logger = logging.getLogger(__name__)

NO_CANDIDATES_MESSAGE = "no items to compare"
NO_MATCHES_MESSAGE = "no strong matches found"


class MatchSummary(BaseModel):
    matches: List[MatchCandidate]
    message: str


async def run_matching(session: Session, item_id, item_type: str, oracle: SimilarityOracle) -> MatchSummary:
    # raises ItemNotFoundError before anything is written
    item, candidates = await asyncio.to_thread(select_candidates, session, item_id, item_type)

    if not candidates:
        return MatchSummary(matches=[], message=NO_CANDIDATES_MESSAGE)

    matches = await evaluate_candidates(item, candidates, oracle)

    # the session is only ever used by one thread at a time
    created = await asyncio.to_thread(persist_matches, session, matches)
    logger.info(
        "Item %s: %d candidates, %d accepted, %d recorded",
        item_id, len(candidates), len(matches), len(created),
    )

    if not matches:
        return MatchSummary(matches=[], message=NO_MATCHES_MESSAGE)

    return MatchSummary(matches=matches, message=f"found {len(matches)} potential matches")


async def trigger_matching(item_id, item_type: str, oracle: Optional[SimilarityOracle] = None, bind=None):
    """
    Fire-and-forget entry point used after an item is created. Never raises;
    a failed run must not look like a failed item creation.
    """
    oracle = oracle or ChatCompletionsOracle()

    try:
        with Session(bind or engine) as session:
            summary = await run_matching(session, item_id, item_type, oracle)
        logger.info("Background matching for %s: %s", item_id, summary.message)
    except Exception:
        logger.exception("Background matching failed for item %s", item_id)
