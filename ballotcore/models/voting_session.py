from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VotingSession(SQLModel, table=True):
    """
    Single-use voting credential for one (election, voter).

    Notes:
    - Only a SHA-256 hash of the token is stored; the raw token is returned once at issue time.
    - One row per (election, voter). Re-verification replaces the incomplete row;
      a completed row is terminal and blocks any further issue.
    - completed=True always comes with token_hash=None.
    """

    __tablename__ = "voting_sessions"

    __table_args__ = (
        UniqueConstraint("election_id", "voter_id", name="uq_voting_sessions_election_voter"),
        # Never hand a replaced session's id to a new row.
        {"sqlite_autoincrement": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    election_id: int = Field(foreign_key="elections.id", index=True)
    voter_id: int = Field(foreign_key="voters.id", index=True)

    token_hash: Optional[str] = Field(default=None, index=True, max_length=64)
    completed: bool = Field(default=False, index=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    completed_at: Optional[datetime] = Field(default=None)

    def expires_at(self, ttl_minutes: int) -> Optional[datetime]:
        if ttl_minutes <= 0:
            return None
        return self.created_at + timedelta(minutes=ttl_minutes)

    def is_expired(self, ttl_minutes: int, now: Optional[datetime] = None) -> bool:
        exp = self.expires_at(ttl_minutes)
        if exp is None:
            return False
        return (now or utcnow()) > exp
