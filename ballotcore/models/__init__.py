# ballotcore/models/__init__.py
# Central import surface for SQLModel table registration.
# Keeping these imports ensures init_db() sees all models and creates tables.

from .voter import Voter
from .election import Election, ElectionStatus

# Ballot structure (managed by the admin layer, read by the voting core)
from .partylist import Partylist
from .position import Position
from .candidate import Candidate

# Voting flow
from .voting_session import VotingSession
from .vote import BallotReceipt, Vote

__all__ = [
    "Voter",
    "Election",
    "ElectionStatus",
    "Partylist",
    "Position",
    "Candidate",
    "VotingSession",
    "BallotReceipt",
    "Vote",
]
