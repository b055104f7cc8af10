from datetime import timedelta

import pytest
from sqlalchemy import event
from sqlmodel import Session, select

from ballotcore.errors import AlreadyVoted, ElectionNotOpen, InvalidSession, NotFound, SessionExpired
from ballotcore.models.election import ElectionStatus
from ballotcore.models.voting_session import VotingSession, utcnow
from ballotcore.services.commit import commit_ballot
from ballotcore.services.sessions import get_session_row, hash_token, issue_session, validate_session


def _submit(world, token):
    return {
        "election_id": world.election,
        "voter_id": world.voter,
        "session_token": token,
        "votes": [{"candidate_id": world.pres_a, "position_id": world.president}],
    }


def test_issue_returns_raw_token_and_stores_only_hash(db, world):
    issued = issue_session(db, world.election, world.voter)

    assert len(issued.token) >= 43
    assert issued.voter.id == world.voter
    assert issued.voter.grade_level == 10
    assert issued.election.id == world.election
    assert issued.expires_at is not None

    row = get_session_row(db, world.election, world.voter)
    assert row.token_hash == hash_token(issued.token)
    assert row.token_hash != issued.token
    assert row.completed is False


def test_issued_token_validates(db, world):
    issued = issue_session(db, world.election, world.voter)
    row = validate_session(db, world.election, world.voter, issued.token)
    assert row.id == issued.session_id


def test_reissue_replaces_previous_token(db, world):
    first = issue_session(db, world.election, world.voter)
    second = issue_session(db, world.election, world.voter)

    assert first.token != second.token
    assert first.session_id != second.session_id
    assert len(db.exec(select(VotingSession)).all()) == 1

    with pytest.raises(InvalidSession):
        validate_session(db, world.election, world.voter, first.token)
    assert validate_session(db, world.election, world.voter, second.token).id == second.session_id


def test_wrong_token_is_invalid(db, world):
    issue_session(db, world.election, world.voter)
    with pytest.raises(InvalidSession):
        validate_session(db, world.election, world.voter, "x" * 43)


def test_token_is_bound_to_its_voter(db, world):
    issued = issue_session(db, world.election, world.voter)
    issue_session(db, world.election, world.voter_g9)
    with pytest.raises(InvalidSession):
        validate_session(db, world.election, world.voter_g9, issued.token)


def test_no_session_is_invalid(db, world):
    with pytest.raises(InvalidSession):
        validate_session(db, world.election, world.voter, "x" * 43)


def test_session_expires_after_ttl(db, world):
    issued = issue_session(db, world.election, world.voter, ttl_minutes=30)
    later = utcnow() + timedelta(minutes=31)

    with pytest.raises(SessionExpired):
        validate_session(db, world.election, world.voter, issued.token, ttl_minutes=30, now=later)


def test_zero_ttl_never_expires(db, world):
    issued = issue_session(db, world.election, world.voter, ttl_minutes=0)
    assert issued.expires_at is None

    much_later = utcnow() + timedelta(days=30)
    validate_session(db, world.election, world.voter, issued.token, ttl_minutes=0, now=much_later)


def test_expired_session_can_be_reissued(db, world):
    stale = issue_session(db, world.election, world.voter, now=utcnow() - timedelta(hours=2))
    with pytest.raises(SessionExpired):
        validate_session(db, world.election, world.voter, stale.token)

    fresh = issue_session(db, world.election, world.voter)
    validate_session(db, world.election, world.voter, fresh.token)


def test_issue_after_vote_is_refused(db, world):
    issued = issue_session(db, world.election, world.voter)
    commit_ballot(db, _submit(world, issued.token))

    with pytest.raises(AlreadyVoted):
        issue_session(db, world.election, world.voter)

    row = get_session_row(db, world.election, world.voter)
    assert row.completed is True
    assert row.token_hash is None


def test_completed_session_reads_as_invalid(db, world):
    issued = issue_session(db, world.election, world.voter)
    commit_ballot(db, _submit(world, issued.token))

    with pytest.raises(InvalidSession):
        validate_session(db, world.election, world.voter, issued.token)
    with pytest.raises(AlreadyVoted):
        validate_session(db, world.election, world.voter, issued.token, on_completed=AlreadyVoted)


def test_issue_requires_open_election(db, world, set_election_status):
    set_election_status(world.election, ElectionStatus.DRAFT)
    with pytest.raises(ElectionNotOpen):
        issue_session(db, world.election, world.voter)


def test_issue_unknown_voter(db, world):
    with pytest.raises(NotFound):
        issue_session(db, world.election, 9999)


def test_issue_survives_rotation_right_after_commit(engine, db, world):
    rotated = []

    def rotate_from_another_worker(session):
        if rotated:
            return
        with Session(engine) as other:
            rotated.append(issue_session(other, world.election, world.voter))

    event.listen(db, "after_commit", rotate_from_another_worker)
    try:
        issued = issue_session(db, world.election, world.voter)
    finally:
        event.remove(db, "after_commit", rotate_from_another_worker)

    (newer,) = rotated
    assert issued.session_id != newer.session_id
    with pytest.raises(InvalidSession):
        validate_session(db, world.election, world.voter, issued.token)
    assert validate_session(db, world.election, world.voter, newer.token).id == newer.session_id
