import os

# Must be set before ballotcore.config is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SESSION_TTL_MINUTES", "30")

from dataclasses import dataclass
from pathlib import Path

import pytest
from sqlmodel import Session

from ballotcore.database import get_engine, init_db
from ballotcore.models.candidate import Candidate
from ballotcore.models.election import Election, ElectionStatus
from ballotcore.models.partylist import Partylist
from ballotcore.models.position import Position
from ballotcore.models.voter import Voter
from ballotcore.services.rate_limiter import limiter


@dataclass
class World:
    """
    Ids of a small seeded election.

    Ballot for a grade 10 voter: president, senator, grade11_rep.
    """
    election: int
    voter: int  # grade 10, student number S-100
    voter_g9: int  # grade 9, student number S-090
    voter_g12: int  # grade 12, student number S-120
    president: int  # max 1
    senator: int  # max 2
    grade11_rep: int
    grade9_rep: int
    retired: int  # inactive position
    pres_a: int
    pres_b: int
    pres_inactive: int
    sen_c: int
    sen_d: int
    sen_e: int
    rep11_f: int
    rep9_g: int
    retired_h: int


@pytest.fixture
def engine(tmp_path: Path):
    eng = get_engine(f"sqlite:///{tmp_path / 'ballot.sqlite'}")
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(autouse=True)
def _fresh_limiter():
    limiter.reset()
    yield
    limiter.reset()


def _add(session: Session, obj):
    session.add(obj)
    session.flush()
    return int(obj.id)


@pytest.fixture
def world(engine) -> World:
    with Session(engine) as s:
        election = _add(s, Election(title="Student Council 2026", status=ElectionStatus.OPEN))

        voter = _add(s, Voter(student_number="S-100", full_name="Dana Lim", grade_level=10))
        voter_g9 = _add(s, Voter(student_number="S-090", full_name="Carlo Cruz", grade_level=9))
        voter_g12 = _add(s, Voter(student_number="S-120", full_name="Faye Garcia", grade_level=12))
        runner = _add(s, Voter(student_number="S-111", full_name="Eli Tan", grade_level=11))

        party = _add(s, Partylist(name="Unity Party", acronym="UP", color="#2563EB"))

        president = _add(s, Position(name="President", display_order=1, max_votes=1))
        senator = _add(s, Position(name="Senator", display_order=2, max_votes=2))
        grade11_rep = _add(s, Position(name="Grade 11 Representative", display_order=3, max_votes=1))
        grade9_rep = _add(s, Position(name="Grade 9 Representative", display_order=4, max_votes=1))
        retired = _add(s, Position(name="Auditor", display_order=5, max_votes=1, is_active=False))

        pres_a = _add(s, Candidate(position_id=president, voter_id=runner, partylist_id=party, platform="More clubs"))
        pres_b = _add(s, Candidate(position_id=president, display_name="Bea Reyes"))
        pres_inactive = _add(s, Candidate(position_id=president, display_name="Withdrawn", is_active=False))
        sen_c = _add(s, Candidate(position_id=senator, display_name="Cee"))
        sen_d = _add(s, Candidate(position_id=senator, display_name="Dee"))
        sen_e = _add(s, Candidate(position_id=senator, display_name="Eee"))
        rep11_f = _add(s, Candidate(position_id=grade11_rep, display_name="Eff"))
        rep9_g = _add(s, Candidate(position_id=grade9_rep, display_name="Gee"))
        retired_h = _add(s, Candidate(position_id=retired, display_name="Aitch"))

        s.commit()

    return World(
        election=election,
        voter=voter,
        voter_g9=voter_g9,
        voter_g12=voter_g12,
        president=president,
        senator=senator,
        grade11_rep=grade11_rep,
        grade9_rep=grade9_rep,
        retired=retired,
        pres_a=pres_a,
        pres_b=pres_b,
        pres_inactive=pres_inactive,
        sen_c=sen_c,
        sen_d=sen_d,
        sen_e=sen_e,
        rep11_f=rep11_f,
        rep9_g=rep9_g,
        retired_h=retired_h,
    )


@pytest.fixture
def set_election_status(engine):
    """
    Flip an election's status from a separate session, the way an admin would.
    """

    def _set(election_id: int, status: ElectionStatus) -> None:
        with Session(engine) as s:
            election = s.get(Election, election_id)
            election.status = status
            s.add(election)
            s.commit()

    return _set
