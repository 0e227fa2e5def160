import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import requests

from app.models.item import Item
from app.utils.s3_service import generate_signed_url
from app.utils.settings import (
    ORACLE_API_KEY,
    ORACLE_API_URL,
    ORACLE_MODEL,
    ORACLE_TEMPERATURE,
    ORACLE_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class OracleVerdict:
    confidence: int  # 0-100
    reasoning: str


class SimilarityOracle(Protocol):
    """Judges whether two reports describe the same physical object."""

    async def judge(self, item: Item, candidate: Item) -> Optional[OracleVerdict]:
        """Return a verdict, or None when the oracle has no opinion."""
        ...


def _describe(item: Item, image_ref: Callable[[Item], Optional[str]]) -> str:
    when = item.date.date().isoformat() if item.date else "unknown"
    if item.time:
        when = f"{when} {item.time}"

    return "\n".join([
        f"**{item.type.upper()} ITEM:**",
        f"- Title: {item.title}",
        f"- Category: {item.category}",
        f"- Description: {item.description}",
        f"- Location: {item.location}",
        f"- Date: {when}",
        f"- Image URL: {image_ref(item) or 'none'}",
    ])


def build_prompt(item: Item, candidate: Item, image_ref: Callable[[Item], Optional[str]] = lambda i: i.image) -> str:
    return f"""You are an AI assistant helping to match lost and found items.

Analyze these two items and determine if they might be the same item:

{_describe(item, image_ref)}

{_describe(candidate, image_ref)}

Based on the descriptions, locations, dates, and any visual similarities you can infer, estimate the probability (0-100) that these are the same item.

Respond in JSON format only:
{{
  "confidence": <number between 0-100>,
  "reasoning": "<brief explanation of your assessment>"
}}"""


def parse_verdict(content: str) -> Optional[OracleVerdict]:
    """
    Pull the JSON object out of a model reply. Anything that does not carry a
    numeric confidence in 0-100 and a reasoning string is treated as no opinion.
    """
    match = JSON_BLOCK.search(content or "")
    if not match:
        return None

    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None

    if not isinstance(parsed, dict):
        return None

    confidence = parsed.get("confidence")
    reasoning = parsed.get("reasoning")

    # bool is an int subclass, reject it explicitly
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return None
    if not 0 <= confidence <= 100:
        return None
    if not isinstance(reasoning, str):
        return None

    # floor so a fractional score never climbs over a threshold
    return OracleVerdict(confidence=math.floor(confidence), reasoning=reasoning)


def _signed_image_url(item: Item) -> Optional[str]:
    if not item.image:
        return None
    return generate_signed_url(item.image)


class ChatCompletionsOracle:
    """Oracle backed by an OpenAI-compatible chat completions endpoint."""

    def __init__(
        self,
        api_url: str = ORACLE_API_URL,
        api_key: Optional[str] = ORACLE_API_KEY,
        model: str = ORACLE_MODEL,
        temperature: float = ORACLE_TEMPERATURE,
        timeout: float = ORACLE_TIMEOUT_SECONDS,
        image_ref: Callable[[Item], Optional[str]] = _signed_image_url,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self.image_ref = image_ref

    def _complete(self, prompt: str) -> Optional[str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            response = requests.post(
                self.api_url,
                headers=headers,
                json={
                    "model": self.model,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": self.temperature,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("Oracle request failed: %s", e)
            return None

        if not response.ok:
            logger.warning("Oracle API error %s: %s", response.status_code, response.text[:200])
            return None

        try:
            body = response.json()
            return body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning("Oracle response malformed: %s", e)
            return None

    async def judge(self, item: Item, candidate: Item) -> Optional[OracleVerdict]:
        prompt = build_prompt(item, candidate, self.image_ref)

        # requests is blocking, keep it off the event loop
        content = await asyncio.to_thread(self._complete, prompt)
        if content is None:
            return None

        verdict = parse_verdict(content)
        if verdict is None:
            logger.warning("Oracle reply for %s/%s not parseable", item.id, candidate.id)

        return verdict
