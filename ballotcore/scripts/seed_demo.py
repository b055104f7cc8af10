from __future__ import annotations

from typing import Dict, List, Optional

from sqlmodel import Session, select

from ballotcore.database import init_db, session_scope
from ballotcore.models.candidate import Candidate
from ballotcore.models.election import Election, ElectionStatus
from ballotcore.models.partylist import Partylist
from ballotcore.models.position import Position
from ballotcore.models.voter import Voter

DEMO_ELECTION_TITLE = "Student Council Election (demo)"

DEMO_PARTYLISTS: List[Dict[str, str]] = [
    {"name": "Unity Party", "acronym": "UP", "color": "#2563EB"},
    {"name": "Progress Alliance", "acronym": "PA", "color": "#DC2626"},
]

# (name, display_order, max_votes)
DEMO_POSITIONS: List[tuple] = [
    ("President", 1, 1),
    ("Vice President", 2, 1),
    ("Senator", 3, 3),
    ("Grade 8 Representative", 10, 1),
    ("Grade 9 Representative", 11, 1),
    ("Grade 10 Representative", 12, 1),
    ("Grade 11 Representative", 13, 1),
    ("Grade 12 Representative", 14, 1),
]

# (student_number, full_name, grade_level)
DEMO_VOTERS: List[tuple] = [
    ("2024-0001", "Alex Santos", 7),
    ("2024-0002", "Bea Reyes", 8),
    ("2024-0003", "Carlo Cruz", 9),
    ("2024-0004", "Dana Lim", 10),
    ("2024-0005", "Eli Tan", 11),
    ("2024-0006", "Faye Garcia", 12),
]


def _get_or_create_election(session: Session) -> Election:
    existing: Optional[Election] = session.exec(
        select(Election).where(Election.title == DEMO_ELECTION_TITLE)
    ).first()
    if existing:
        return existing

    election = Election(title=DEMO_ELECTION_TITLE, status=ElectionStatus.OPEN, allow_abstain=True)
    session.add(election)
    session.flush()
    return election


def _upsert_partylists(session: Session) -> List[Partylist]:
    out = []
    for row in DEMO_PARTYLISTS:
        p = session.exec(select(Partylist).where(Partylist.name == row["name"])).first()
        if not p:
            p = Partylist(**row)
            session.add(p)
        out.append(p)
    session.flush()
    return out


def _upsert_voters(session: Session) -> List[Voter]:
    out = []
    for number, name, grade in DEMO_VOTERS:
        v = session.exec(select(Voter).where(Voter.student_number == number)).first()
        if not v:
            v = Voter(student_number=number, full_name=name, grade_level=grade)
            session.add(v)
        out.append(v)
    session.flush()
    return out


def _upsert_positions(session: Session, parties: List[Partylist], voters: List[Voter]) -> int:
    """
    One position per DEMO_POSITIONS row, each with one candidate per partylist.
    Candidates borrow names from the demo roll; existing positions are left alone.
    """
    created = 0
    for idx, (name, order, max_votes) in enumerate(DEMO_POSITIONS):
        pos = session.exec(select(Position).where(Position.name == name)).first()
        if pos:
            continue

        pos = Position(name=name, display_order=order, max_votes=max_votes, is_active=True)
        session.add(pos)
        session.flush()

        for j, party in enumerate(parties):
            person = voters[(idx + j) % len(voters)]
            session.add(
                Candidate(
                    position_id=pos.id,
                    partylist_id=party.id,
                    voter_id=person.id,
                    platform=f"{party.acronym} platform for {name}",
                    is_active=True,
                )
            )
        created += 1
    return created


def main() -> None:
    # Ensure tables exist (local dev)
    init_db()

    with session_scope() as session:
        election = _get_or_create_election(session)
        parties = _upsert_partylists(session)
        voters = _upsert_voters(session)
        created = _upsert_positions(session, parties, voters)
        election_id = election.id

    print(f"Demo election id={election_id}; positions created: {created}; voters: {len(DEMO_VOTERS)}")


if __name__ == "__main__":
    main()
