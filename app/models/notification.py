from typing import Optional
import uuid
from sqlmodel import Field, SQLModel
from datetime import datetime, timezone

class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Recipient
    user_id: int = Field(foreign_key="users.id", index=True)

    type: str = Field(default="match_found", index=True)

    title: str
    message: str

    # The recipient's own item and the match that produced the alert
    item_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="items.id",
        index=True,
        ondelete="CASCADE",
    )
    match_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="matches.id",
        ondelete="CASCADE",
    )

    is_read: bool = Field(default=False)
