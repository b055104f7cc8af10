from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ElectionStatus(str, Enum):
    """
    Lifecycle owned by the administrative layer. The voting core only reads it.
    """

    DRAFT = "draft"
    OPEN = "open"
    CLOSED = "closed"


class Election(SQLModel, table=True):
    __tablename__ = "elections"

    id: Optional[int] = Field(default=None, primary_key=True)

    title: str = Field(max_length=200)
    description: Optional[str] = Field(default=None)

    start_date: Optional[datetime] = Field(default=None)
    end_date: Optional[datetime] = Field(default=None)

    status: ElectionStatus = Field(default=ElectionStatus.DRAFT, index=True)
    allow_abstain: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)

    def is_open(self) -> bool:
        return self.status == ElectionStatus.OPEN
