from __future__ import annotations

import logging

from sqlmodel import Session, select

from ..errors import ElectionNotOpen, NotFound
from ..models.election import Election, ElectionStatus
from ..models.voter import Voter

logger = logging.getLogger(__name__)


def normalize_identifier(raw: str) -> str:
    return (raw or "").strip()


def find_voter(db: Session, identifier: str) -> Voter:
    """
    Resolve a presented student number to a voter.

    Duplicate student numbers are a data-quality issue for the admin tooling;
    here the lowest id wins so the result is deterministic.
    """
    ident = normalize_identifier(identifier)
    if not ident:
        raise NotFound()

    voter = db.exec(
        select(Voter).where(Voter.student_number == ident).order_by(Voter.id).limit(1)
    ).first()
    if voter is None:
        logger.info("directory lookup miss")
        raise NotFound()
    return voter


def find_active_election(db: Session) -> Election:
    """
    The election verification issues sessions for: newest open one.
    """
    election = db.exec(
        select(Election)
        .where(Election.status == ElectionStatus.OPEN)
        .order_by(Election.created_at.desc(), Election.id.desc())
        .limit(1)
    ).first()
    if election is None:
        raise ElectionNotOpen("No active election at the moment.")
    return election
