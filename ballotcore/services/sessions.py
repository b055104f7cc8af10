from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Type

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..config import settings
from ..errors import (
    AlreadyVoted,
    ElectionNotOpen,
    InvalidSession,
    NotFound,
    SessionExpired,
    StorageFailure,
    VotingError,
)
from ..models.election import Election
from ..models.voter import Voter
from ..models.voting_session import VotingSession, utcnow

logger = logging.getLogger(__name__)

# Unique-constraint collisions with a concurrent issue for the same voter are retried.
ISSUE_ATTEMPTS = 3


@dataclass(frozen=True)
class VoterSummary:
    id: int
    full_name: str
    grade_level: int


@dataclass(frozen=True)
class ElectionSummary:
    id: int
    title: str


@dataclass(frozen=True)
class IssuedSession:
    """
    Returned once per verification. token is the only copy of the raw secret.
    """
    session_id: int
    token: str
    expires_at: Optional[datetime]
    voter: VoterSummary
    election: ElectionSummary


# -------------------------
# Token helpers
# -------------------------

def new_token() -> str:
    # 32 random bytes -> 256 bits of entropy, URL-safe
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def resolve_ttl(ttl_minutes: Optional[int]) -> int:
    return settings.session_ttl_minutes if ttl_minutes is None else int(ttl_minutes)


def expiry_cutoff(ttl_minutes: Optional[int] = None, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Sessions created before the cutoff are expired. None when expiry is disabled.
    """
    ttl = resolve_ttl(ttl_minutes)
    if ttl <= 0:
        return None
    return (now or utcnow()) - timedelta(minutes=ttl)


def get_session_row(db: Session, election_id: int, voter_id: int) -> Optional[VotingSession]:
    return db.exec(
        select(VotingSession).where(
            VotingSession.election_id == election_id,
            VotingSession.voter_id == voter_id,
        )
    ).first()


def _has_completed_session(db: Session, election_id: int, voter_id: int) -> bool:
    # Column query: keeps the row out of the identity map ahead of the bulk delete.
    completed = db.exec(
        select(VotingSession.completed).where(
            VotingSession.election_id == election_id,
            VotingSession.voter_id == voter_id,
        )
    ).first()
    return bool(completed)


# -------------------------
# Operations
# -------------------------

def issue_session(
    db: Session,
    election_id: int,
    voter_id: int,
    *,
    ttl_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> IssuedSession:
    """
    Issue (or rotate) the voting credential for (election, voter).

    Rules:
    - Election must be open.
    - A completed session is terminal: AlreadyVoted, nothing is written.
    - Any incomplete session is deleted and replaced in the same transaction, so the
      previous token stops working the moment the new one exists.
    """
    election = db.get(Election, election_id)
    if election is None or not election.is_open():
        raise ElectionNotOpen()

    voter = db.get(Voter, voter_id)
    if voter is None:
        raise NotFound()

    ttl = resolve_ttl(ttl_minutes)
    voter_summary = VoterSummary(id=int(voter.id), full_name=voter.full_name, grade_level=int(voter.grade_level or 0))
    election_summary = ElectionSummary(id=int(election.id), title=election.title)

    for attempt in range(1, ISSUE_ATTEMPTS + 1):
        if _has_completed_session(db, election_id, voter_id):
            logger.info("issue refused: already voted election=%s voter=%s", election_id, voter_id)
            raise AlreadyVoted()

        token = new_token()
        row = VotingSession(
            election_id=election_id,
            voter_id=voter_id,
            token_hash=hash_token(token),
            completed=False,
            created_at=now or utcnow(),
        )

        try:
            db.exec(
                delete(VotingSession)
                .where(
                    VotingSession.election_id == election_id,
                    VotingSession.voter_id == voter_id,
                    VotingSession.completed == False,  # noqa: E712
                )
                .execution_options(synchronize_session=False)
            )
            db.add(row)
            db.flush()
            # Read back before commit: a concurrent verify may rotate this row away
            # the moment it is committed.
            session_id = int(row.id)
            expires_at = row.expires_at(ttl)
            db.commit()
        except IntegrityError:
            # A concurrent issue or commit for the same voter got there first.
            db.rollback()
            logger.warning(
                "issue collided (attempt %s/%s) election=%s voter=%s",
                attempt,
                ISSUE_ATTEMPTS,
                election_id,
                voter_id,
            )
            continue
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("issue failed election=%s voter=%s", election_id, voter_id)
            raise StorageFailure() from exc

        logger.info("session issued id=%s election=%s voter=%s", session_id, election_id, voter_id)

        return IssuedSession(
            session_id=session_id,
            token=token,
            expires_at=expires_at,
            voter=voter_summary,
            election=election_summary,
        )

    if _has_completed_session(db, election_id, voter_id):
        raise AlreadyVoted()
    raise StorageFailure()


def validate_session(
    db: Session,
    election_id: int,
    voter_id: int,
    token: str,
    *,
    ttl_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
    on_completed: Type[VotingError] = InvalidSession,
) -> VotingSession:
    """
    Return the live session for (election, voter) if token matches.

    - No row, or token mismatch: InvalidSession
    - Completed row: on_completed (InvalidSession for reads, AlreadyVoted for commits)
    - Token matches but the session is older than the TTL: SessionExpired

    This is a read. The commit protocol repeats the same conditions inside its
    conditional update, so a passing check here never authorizes a write alone.
    """
    row = get_session_row(db, election_id, voter_id)
    if row is None:
        raise InvalidSession()

    if row.completed:
        raise on_completed()

    if not row.token_hash or not token or not hmac.compare_digest(row.token_hash, hash_token(token)):
        raise InvalidSession()

    if row.is_expired(resolve_ttl(ttl_minutes), now=now):
        raise SessionExpired()

    return row
