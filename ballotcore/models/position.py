from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


class Position(SQLModel, table=True):
    """
    An office on the ballot.

    Notes:
    - max_votes is how many candidates a voter may select for this position (>= 1).
    - restricted_class limits the position to voters whose next grade equals it.
      When unset, a name like "Grade 11 Representative" carries the same rule
      (see services/ballot.py).
    """

    __tablename__ = "positions"

    id: Optional[int] = Field(default=None, primary_key=True)

    name: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)

    display_order: int = Field(default=0, index=True)
    max_votes: int = Field(default=1, ge=1)

    is_active: bool = Field(default=True, index=True)

    restricted_class: Optional[int] = Field(default=None)
