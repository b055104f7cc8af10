from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


class Partylist(SQLModel, table=True):
    """
    Candidate affiliation. Only name and color reach the ballot.
    """

    __tablename__ = "partylists"

    id: Optional[int] = Field(default=None, primary_key=True)

    name: str = Field(max_length=100)
    acronym: Optional[str] = Field(default=None, max_length=20)
    color: str = Field(default="#3B82F6", max_length=7)

    is_active: bool = Field(default=True, index=True)
