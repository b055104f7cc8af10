from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlmodel import Session, select

from ..config import settings
from ..errors import ElectionNotOpen, NotFound
from ..models.candidate import Candidate
from ..models.election import Election
from ..models.partylist import Partylist
from ..models.position import Position
from ..models.voter import Voter
from ..models.voting_session import VotingSession

# "Grade 11 Representative", "grade 8 class representative", ...
_GRADE_NUMBER = re.compile(r"grade\s+(\d+)", re.IGNORECASE)

UNKNOWN_CANDIDATE = "Unknown Candidate"


@dataclass(frozen=True)
class PartylistView:
    name: str
    color: str


@dataclass(frozen=True)
class CandidateView:
    id: int
    name: str
    platform: Optional[str] = None
    vision: Optional[str] = None
    mission: Optional[str] = None
    photo_url: Optional[str] = None
    partylist: Optional[PartylistView] = None


@dataclass(frozen=True)
class PositionView:
    id: int
    name: str
    description: Optional[str]
    max_votes: int
    candidates: List[CandidateView] = field(default_factory=list)


@dataclass(frozen=True)
class Ballot:
    election_id: int
    voter_id: int
    eligibility_class: int
    allow_abstain: bool
    positions: List[PositionView] = field(default_factory=list)


# -------------------------
# Eligibility
# -------------------------

def position_class_restriction(position: Position) -> Optional[int]:
    """
    Grade a position is restricted to, or None when every voter may see it.

    An explicit restricted_class wins; otherwise a "Grade N ... Representative"
    name restricts the position to grade N.
    """
    if position.restricted_class is not None:
        return int(position.restricted_class)

    name = (position.name or "").lower()
    if "grade" not in name or "representative" not in name:
        return None

    m = _GRADE_NUMBER.search(name)
    if not m:
        return None
    return int(m.group(1))


def is_position_eligible(position: Position, eligibility_class: int, max_class: Optional[int] = None) -> bool:
    """
    Class representatives are chosen by the class moving up into that grade:
    a grade 10 voter elects the grade 11 representative.
    """
    restricted = position_class_restriction(position)
    if restricted is None:
        return True

    max_class = settings.max_eligibility_class if max_class is None else max_class
    next_class = int(eligibility_class) + 1
    return restricted == next_class and next_class <= max_class


def eligible_positions(db: Session, eligibility_class: int) -> List[Position]:
    positions = db.exec(
        select(Position)
        .where(Position.is_active == True)  # noqa: E712
        .order_by(Position.display_order, Position.id)
    ).all()
    return [p for p in positions if is_position_eligible(p, eligibility_class)]


# -------------------------
# Assembly
# -------------------------

def _candidate_name(candidate: Candidate, voters: Dict[int, Voter]) -> str:
    if candidate.voter_id is not None and candidate.voter_id in voters:
        name = (voters[candidate.voter_id].full_name or "").strip()
        if name:
            return name
    return (candidate.display_name or "").strip() or UNKNOWN_CANDIDATE


def _load_by_id(db: Session, model, ids, *criteria) -> Dict[int, object]:
    ids = {i for i in ids if i is not None}
    if not ids:
        return {}
    rows = db.exec(select(model).where(model.id.in_(ids), *criteria)).all()
    return {int(r.id): r for r in rows}


def assemble_ballot(db: Session, session: VotingSession) -> Ballot:
    """
    Build the ordered ballot for a validated, incomplete session.

    Read-only: calling it again for the same session yields the same ballot.
    """
    election = db.get(Election, session.election_id)
    if election is None or not election.is_open():
        raise ElectionNotOpen()

    voter = db.get(Voter, session.voter_id)
    if voter is None:
        raise NotFound()

    eligibility_class = int(voter.grade_level or 0)
    positions = eligible_positions(db, eligibility_class)
    position_ids = [int(p.id) for p in positions]

    candidates: List[Candidate] = []
    if position_ids:
        candidates = list(
            db.exec(
                select(Candidate)
                .where(
                    Candidate.position_id.in_(position_ids),
                    Candidate.is_active == True,  # noqa: E712
                )
                .order_by(Candidate.id)
            ).all()
        )

    people = _load_by_id(db, Voter, [c.voter_id for c in candidates])
    # A deactivated partylist leaves its candidates on the ballot unaffiliated.
    parties = _load_by_id(
        db,
        Partylist,
        [c.partylist_id for c in candidates],
        Partylist.is_active == True,  # noqa: E712
    )

    by_position: Dict[int, List[CandidateView]] = {pid: [] for pid in position_ids}
    for c in candidates:
        party = parties.get(c.partylist_id) if c.partylist_id is not None else None
        by_position[int(c.position_id)].append(
            CandidateView(
                id=int(c.id),
                name=_candidate_name(c, people),
                platform=c.platform,
                vision=c.vision,
                mission=c.mission,
                photo_url=c.photo_url,
                partylist=PartylistView(name=party.name, color=party.color) if party else None,
            )
        )

    return Ballot(
        election_id=int(election.id),
        voter_id=int(voter.id),
        eligibility_class=eligibility_class,
        allow_abstain=bool(election.allow_abstain),
        positions=[
            PositionView(
                id=int(p.id),
                name=p.name,
                description=p.description,
                max_votes=int(p.max_votes or 1),
                candidates=by_position[int(p.id)],
            )
            for p in positions
        ],
    )
