import re
from datetime import datetime
from typing import Annotated, Literal, Optional
from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.utils.settings import ITEM_CATEGORIES

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


Title = Annotated[str, Field(min_length=3, max_length=60)]
Description = Annotated[str, Field(min_length=10, max_length=500)]
Location = Annotated[str, Field(min_length=3, max_length=80)]

EDITABLE_FIELDS = {"title", "description", "location", "category", "date", "time"}


class ItemRules(BaseModel):
    @field_validator("category", check_fields=False)
    @classmethod
    def known_category(cls, value: str) -> str:
        if value not in ITEM_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(ITEM_CATEGORIES)}")
        return value

    @field_validator("time", check_fields=False)
    @classmethod
    def hh_mm(cls, value: Optional[str]) -> Optional[str]:
        if value and not TIME_PATTERN.match(value):
            raise ValueError("time must be HH:MM")
        return value or None


class ValidatedCreateItem(ItemRules):
    item_type: Literal["lost", "found"]
    title: Title
    description: Description
    category: str
    date: datetime
    time: Optional[str] = None
    location: Location


class ValidatedUpdateItem(ItemRules):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    # unset fields stay untouched, an explicit null only clears the time
    title: Title = None
    description: Description = None
    location: Location = None
    category: str = None
    date: datetime = None
    time: Optional[str] = None


class MatchTrigger(BaseModel):
    item_id: str = Field(alias="itemId", min_length=1)
    item_type: Literal["lost", "found"] = Field(alias="itemType")


def parse_date(date: str) -> datetime:
    try:
        return datetime.fromisoformat(date.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        raise HTTPException(status_code=400, detail="Date not parseable")


def validate_create_item_form(
    item_type: str,
    title: str,
    description: str,
    category: str,
    date: str,
    location: str,
    time: Optional[str] = None,
) -> ValidatedCreateItem:
    parsed_date = parse_date(date)

    try:
        return ValidatedCreateItem(
            item_type=item_type,
            title=title.strip(),
            description=description.strip(),
            category=category,
            date=parsed_date,
            time=time.strip() if time else None,
            location=location.strip(),
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )


def validate_match_trigger(body) -> MatchTrigger:
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Missing itemId or itemType")

    try:
        return MatchTrigger(**body)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Missing itemId or itemType")


def validate_item_updates(updates: dict) -> dict:
    for field in updates:
        # type is fixed at creation, status moves through the match flow
        if field not in EDITABLE_FIELDS:
            raise HTTPException(status_code=400, detail=f"Field '{field}' cannot be updated")

    try:
        validated = ValidatedUpdateItem(**updates)
    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )

    return validated.model_dump(exclude_unset=True)
