from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BallotReceipt(SQLModel, table=True):
    """
    One row per committed ballot.

    The (election_id, voter_id) unique constraint is the storage-level guard that
    a voter's vote set is written at most once; it is inserted in the same unit of
    work as the Vote rows.
    """

    __tablename__ = "ballot_receipts"

    __table_args__ = (
        UniqueConstraint("election_id", "voter_id", name="uq_ballot_receipts_election_voter"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    election_id: int = Field(foreign_key="elections.id", index=True)
    voter_id: int = Field(foreign_key="voters.id", index=True)
    session_id: int = Field(foreign_key="voting_sessions.id", index=True)

    vote_count: int = Field(default=0)
    committed_at: datetime = Field(default_factory=utcnow, index=True)


class Vote(SQLModel, table=True):
    __tablename__ = "votes"

    __table_args__ = (
        # A candidate can appear once per voter per election.
        UniqueConstraint("election_id", "voter_id", "candidate_id", name="uq_votes_election_voter_candidate"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    election_id: int = Field(foreign_key="elections.id", index=True)
    voter_id: int = Field(foreign_key="voters.id", index=True)
    candidate_id: int = Field(foreign_key="candidates.id", index=True)
    position_id: int = Field(foreign_key="positions.id", index=True)

    voted_at: datetime = Field(default_factory=utcnow)
