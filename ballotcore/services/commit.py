from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import exists, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..errors import (
    AlreadyVoted,
    DuplicateCandidateInPosition,
    ElectionNotOpen,
    InvalidCandidateSelection,
    InvalidSession,
    PositionVoteLimitExceeded,
    StorageFailure,
    VotingError,
)
from ..models.candidate import Candidate
from ..models.election import Election, ElectionStatus
from ..models.position import Position
from ..models.vote import BallotReceipt, Vote
from ..models.voter import Voter
from ..models.voting_session import VotingSession, utcnow
from ..validation import SubmitRequest, validate_payload
from .ballot import is_position_eligible
from .sessions import expiry_cutoff, hash_token, resolve_ttl, validate_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitReceipt:
    receipt_id: int
    election_id: int
    voter_id: int
    votes_recorded: int
    committed_at: datetime


def _require_open_election(db: Session, election_id: int) -> Election:
    election = db.get(Election, election_id)
    if election is None or not election.is_open():
        raise ElectionNotOpen()
    return election


def _check_selections(db: Session, request: SubmitRequest, voter: Voter) -> Dict[int, Position]:
    """
    Every selection must name an active candidate on an active position that is on
    this voter's ballot, and the submitted position must be the candidate's real one.
    """
    candidate_ids = {v.candidate_id for v in request.votes}
    candidates = {
        int(c.id): c
        for c in db.exec(
            select(Candidate).where(
                Candidate.id.in_(candidate_ids),
                Candidate.is_active == True,  # noqa: E712
            )
        ).all()
    }

    position_ids = {int(c.position_id) for c in candidates.values()}
    positions: Dict[int, Position] = {}
    if position_ids:
        positions = {
            int(p.id): p
            for p in db.exec(
                select(Position).where(
                    Position.id.in_(position_ids),
                    Position.is_active == True,  # noqa: E712
                )
            ).all()
        }

    grade = int(voter.grade_level or 0)
    for sel in request.votes:
        candidate = candidates.get(sel.candidate_id)
        if candidate is None or int(candidate.position_id) != sel.position_id:
            raise InvalidCandidateSelection()

        position = positions.get(sel.position_id)
        if position is None or not is_position_eligible(position, grade):
            raise InvalidCandidateSelection()

    return positions


def _check_position_limits(request: SubmitRequest, positions: Dict[int, Position]) -> None:
    groups: Dict[int, List[int]] = {}
    for sel in request.votes:
        groups.setdefault(sel.position_id, []).append(sel.candidate_id)

    for position_id, candidate_ids in groups.items():
        position = positions[position_id]
        max_votes = int(position.max_votes or 1)
        if len(candidate_ids) > max_votes:
            raise PositionVoteLimitExceeded(
                f"You can select at most {max_votes} candidate(s) for {position.name}."
            )
        if len(set(candidate_ids)) != len(candidate_ids):
            raise DuplicateCandidateInPosition()


def _lost_transition(
    db: Session,
    request: SubmitRequest,
    ttl_minutes: int,
    now: Optional[datetime],
) -> VotingError:
    """
    The conditional update matched nothing. Work out why from fresh state.
    """
    election = db.get(Election, request.election_id, populate_existing=True)
    if election is None or not election.is_open():
        return ElectionNotOpen()
    try:
        validate_session(
            db,
            request.election_id,
            request.voter_id,
            request.session_token,
            ttl_minutes=ttl_minutes,
            now=now,
            on_completed=AlreadyVoted,
        )
    except VotingError as exc:
        return exc
    return InvalidSession()


def commit_ballot(
    db: Session,
    request: Union[SubmitRequest, Dict[str, Any]],
    *,
    ttl_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CommitReceipt:
    """
    Validate a ballot and record it exactly once.

    Checks (no writes until all pass):
      1. payload shape
      2. election open
      3. candidates valid for this voter
      4. per-position limit, then no duplicates
      5. session live

    Write (one transaction):
      a. UPDATE the session to completed WHERE it is still incomplete, the token
         matches, it has not expired and the election is still open
      b. only if exactly one row changed: insert the receipt and the votes
      c. zero rows changed: rollback and report why (AlreadyVoted, InvalidSession, ...)
      d. any failure after (a): rollback, which also undoes (a)

    The receipt's (election_id, voter_id) unique constraint backs up (a): a second
    vote set for the same voter cannot be stored even if two transitions raced.
    """
    if not isinstance(request, SubmitRequest):
        request = validate_payload(SubmitRequest, request)

    ttl = resolve_ttl(ttl_minutes)

    _require_open_election(db, request.election_id)

    voter = db.get(Voter, request.voter_id)
    if voter is None:
        raise InvalidSession()

    positions = _check_selections(db, request, voter)
    _check_position_limits(request, positions)

    session_row = validate_session(
        db,
        request.election_id,
        request.voter_id,
        request.session_token,
        ttl_minutes=ttl,
        now=now,
        on_completed=AlreadyVoted,
    )
    session_id = int(session_row.id)
    committed_at = now or utcnow()

    stmt = update(VotingSession).where(
        VotingSession.id == session_id,
        VotingSession.election_id == request.election_id,
        VotingSession.voter_id == request.voter_id,
        VotingSession.completed == False,  # noqa: E712
        VotingSession.token_hash == hash_token(request.session_token),
        exists().where(
            Election.id == request.election_id,
            Election.status == ElectionStatus.OPEN,
        ),
    )
    cutoff = expiry_cutoff(ttl, now)
    if cutoff is not None:
        stmt = stmt.where(VotingSession.created_at >= cutoff)
    stmt = stmt.values(completed=True, token_hash=None, completed_at=committed_at).execution_options(
        synchronize_session=False
    )

    receipt_id: Optional[int] = None
    try:
        changed = db.exec(stmt).rowcount
        if changed != 1:
            db.rollback()
        else:
            receipt = BallotReceipt(
                election_id=request.election_id,
                voter_id=request.voter_id,
                session_id=session_id,
                vote_count=len(request.votes),
                committed_at=committed_at,
            )
            db.add(receipt)
            db.add_all(
                Vote(
                    election_id=request.election_id,
                    voter_id=request.voter_id,
                    candidate_id=sel.candidate_id,
                    position_id=sel.position_id,
                    voted_at=committed_at,
                )
                for sel in request.votes
            )
            db.flush()
            receipt_id = int(receipt.id)
            db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(
            "commit hit a uniqueness guard election=%s voter=%s",
            request.election_id,
            request.voter_id,
        )
        raise AlreadyVoted() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("commit failed election=%s voter=%s", request.election_id, request.voter_id)
        raise StorageFailure() from exc

    if receipt_id is None:
        err = _lost_transition(db, request, ttl, now)
        logger.info(
            "commit refused (%s) election=%s voter=%s",
            err.code,
            request.election_id,
            request.voter_id,
        )
        raise err

    logger.info(
        "ballot committed receipt=%s election=%s voter=%s votes=%s",
        receipt_id,
        request.election_id,
        request.voter_id,
        len(request.votes),
    )

    return CommitReceipt(
        receipt_id=receipt_id,
        election_id=request.election_id,
        voter_id=request.voter_id,
        votes_recorded=len(request.votes),
        committed_at=committed_at,
    )
