from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlmodel import Session

from ..database import get_db
from ..services.ballot import assemble_ballot
from ..services.commit import commit_ballot
from ..services.directory import find_active_election, find_voter
from ..services.sessions import issue_session, validate_session
from ..validation import BallotQuery, SubmitRequest, VerifyRequest, validate_payload
from .limits import rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voting", tags=["voting"])


# -------------------------
# Response schemas
# -------------------------

class VoterOut(BaseModel):
    id: int
    full_name: str
    grade_level: int


class ElectionOut(BaseModel):
    id: int
    title: str


class VerifyResponse(BaseModel):
    voter: VoterOut
    election: ElectionOut
    session_token: str
    expires_at: Optional[str] = None


class PartylistOut(BaseModel):
    name: str
    color: str


class CandidateOut(BaseModel):
    id: int
    name: str
    platform: Optional[str] = None
    vision: Optional[str] = None
    mission: Optional[str] = None
    photo_url: Optional[str] = None
    partylist: Optional[PartylistOut] = None


class PositionOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    max_votes: int
    candidates: List[CandidateOut]


class BallotResponse(BaseModel):
    election_id: int
    eligibility_class: int
    allow_abstain: bool
    positions: List[PositionOut]


class SubmitResponse(BaseModel):
    success: bool
    message: str
    receipt_id: int
    votes_recorded: int


# -------------------------
# Routes
# -------------------------

@router.post(
    "/verify",
    response_model=VerifyResponse,
    dependencies=[Depends(rate_limit("verify", strict=True))],
)
def verify(payload: VerifyRequest, db: Session = Depends(get_db)) -> VerifyResponse:
    """
    Exchange a student number for a single-use voting token.

    Calling again before submitting rotates the token; the previous one stops working.
    """
    voter = find_voter(db, payload.identifier)
    election = find_active_election(db)
    issued = issue_session(db, int(election.id), int(voter.id))

    return VerifyResponse(
        voter=VoterOut(**asdict(issued.voter)),
        election=ElectionOut(**asdict(issued.election)),
        session_token=issued.token,
        expires_at=issued.expires_at.isoformat() if issued.expires_at else None,
    )


@router.get(
    "/ballot",
    response_model=BallotResponse,
    dependencies=[Depends(rate_limit("ballot"))],
)
def get_ballot(request: Request, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Positions and candidates this voter may vote on. Repeatable until submission.

    Query: election_id, voter_id, session_token
    """
    query = validate_payload(BallotQuery, dict(request.query_params))
    session = validate_session(db, query.election_id, query.voter_id, query.session_token)
    ballot = assemble_ballot(db, session)

    out = asdict(ballot)
    out.pop("voter_id", None)
    return out


@router.post(
    "/submit",
    response_model=SubmitResponse,
    dependencies=[Depends(rate_limit("submit", strict=True))],
)
def submit(payload: SubmitRequest, db: Session = Depends(get_db)) -> SubmitResponse:
    receipt = commit_ballot(db, payload)
    return SubmitResponse(
        success=True,
        message="Your vote has been recorded successfully",
        receipt_id=receipt.receipt_id,
        votes_recorded=receipt.votes_recorded,
    )
