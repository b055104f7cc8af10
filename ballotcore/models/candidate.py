from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


class Candidate(SQLModel, table=True):
    """
    A student standing for a position.

    voter_id links to the voter roll for the display name; display_name is the
    fallback for candidates imported without a roll entry.
    """

    __tablename__ = "candidates"

    id: Optional[int] = Field(default=None, primary_key=True)

    position_id: int = Field(foreign_key="positions.id", index=True)
    partylist_id: Optional[int] = Field(default=None, foreign_key="partylists.id", index=True)
    voter_id: Optional[int] = Field(default=None, foreign_key="voters.id", index=True)

    display_name: Optional[str] = Field(default=None, max_length=200)

    platform: Optional[str] = Field(default=None, max_length=2000)
    vision: Optional[str] = Field(default=None, max_length=2000)
    mission: Optional[str] = Field(default=None, max_length=2000)
    photo_url: Optional[str] = Field(default=None, max_length=500)

    is_active: bool = Field(default=True, index=True)
