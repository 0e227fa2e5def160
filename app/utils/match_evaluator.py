import asyncio
import logging
import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.item import Item
from app.utils.settings import ACCEPT_THRESHOLD, MAX_CANDIDATES, ORACLE_TIMEOUT_SECONDS
from app.utils.similarity_oracle import OracleVerdict, SimilarityOracle

logger = logging.getLogger(__name__)


class MatchCandidate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lost_id: uuid.UUID = Field(alias="lostId")
    found_id: uuid.UUID = Field(alias="foundId")
    confidence: int
    reasoning: str


async def _judge_one(
    oracle: SimilarityOracle,
    item: Item,
    candidate: Item,
    limiter: asyncio.Semaphore,
    timeout: float,
) -> Optional[OracleVerdict]:
    async with limiter:
        try:
            return await asyncio.wait_for(oracle.judge(item, candidate), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Oracle timed out after %ss for %s vs %s", timeout, item.id, candidate.id)
        except Exception:
            # one candidate must not sink the batch
            logger.exception("Oracle failed for %s vs %s", item.id, candidate.id)

    return None


async def evaluate_candidates(
    item: Item,
    candidates: List[Item],
    oracle: SimilarityOracle,
    accept_threshold: int = ACCEPT_THRESHOLD,
    timeout: float = ORACLE_TIMEOUT_SECONDS,
) -> List[MatchCandidate]:
    """
    Ask the oracle about every candidate concurrently and return the accepted
    ones, highest confidence first. Equal confidences keep candidate order;
    there is no other tie-break.
    """
    if not candidates:
        return []

    limiter = asyncio.Semaphore(MAX_CANDIDATES)

    verdicts = await asyncio.gather(
        *(_judge_one(oracle, item, candidate, limiter, timeout) for candidate in candidates)
    )

    accepted = []
    for candidate, verdict in zip(candidates, verdicts):
        if verdict is None:
            continue

        lost, found = (item, candidate) if item.type == "lost" else (candidate, item)

        if verdict.confidence < accept_threshold:
            logger.debug("Below accept threshold: %s vs %s (%d)", lost.id, found.id, verdict.confidence)
            continue

        accepted.append(MatchCandidate(
            lost_id=lost.id,
            found_id=found.id,
            confidence=verdict.confidence,
            reasoning=verdict.reasoning,
        ))

    # sorted() is stable
    return sorted(accepted, key=lambda m: m.confidence, reverse=True)
