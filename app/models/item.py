from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone


class Item(SQLModel, table=True):
    __tablename__ = "items"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)

    # Reporter info
    user_id: int = Field(foreign_key="users.id", index=True)

    # Item fields
    type: str = Field(index=True)  # "lost" or "found", fixed at creation
    category: str = Field(index=True)
    title: str
    description: str
    location: str
    date: datetime
    time: Optional[str] = Field(default=None)  # "HH:MM", optional
    image: str  # storage key of the photo

    status: str = Field(default="open", index=True)  # "open", "matched", "resolved"
