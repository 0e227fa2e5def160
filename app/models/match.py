import uuid
from sqlmodel import Field, SQLModel, UniqueConstraint
from datetime import datetime, timezone


class Match(SQLModel, table=True):
    __tablename__ = "matches"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Linked items
    lost_item_id: uuid.UUID = Field(foreign_key="items.id", index=True, ondelete="CASCADE")
    found_item_id: uuid.UUID = Field(foreign_key="items.id", index=True, ondelete="CASCADE")

    confidence: int  # 0-100
    status: str = Field(default="pending", index=True)  # "pending", "confirmed", "rejected"

    __table_args__ = (
        # One match per (lost, found) pair, re-triggering the pipeline
        # on either side hits this constraint instead of inserting twice
        UniqueConstraint(
            "lost_item_id",
            "found_item_id",
            name="uq_lost_found_match"
        ),
    )
