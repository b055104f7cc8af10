from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    # Keep timestamps UTC-naive for consistent storage/ordering in SQLite.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Voter(SQLModel, table=True):
    """
    A student on the voter roll.

    Notes:
    - student_number is the identifier voters type in. It is indexed but NOT unique:
      imports occasionally produce duplicates and lookups must still succeed.
    - grade_level is the eligibility class used to filter class-restricted positions.
    - Rows are written by the administrative import only; the voting flow never mutates them.
    """

    __tablename__ = "voters"

    id: Optional[int] = Field(default=None, primary_key=True)

    student_number: str = Field(index=True, max_length=50)
    full_name: str = Field(max_length=200)
    grade_level: int = Field(default=0, index=True)
    section: Optional[str] = Field(default=None, max_length=100)

    created_at: datetime = Field(default_factory=utcnow)
