from __future__ import annotations

from typing import Any, Dict, List, Optional


class VotingError(Exception):
    """
    Base for every caller-visible failure of the voting core.

    code is API-stable and safe to display; message is the user-facing text.
    Diagnostic detail belongs in the log, never in the message.
    """

    code = "voting_error"
    status_code = 400
    message = "Request could not be processed."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_payload(self) -> Dict[str, Any]:
        return {"code": self.code, "detail": self.message}


class ValidationError(VotingError):
    code = "validation_error"
    status_code = 400
    message = "Invalid request."

    def __init__(self, fields: List[Dict[str, str]], message: Optional[str] = None) -> None:
        self.fields = list(fields)
        if message is None:
            message = ", ".join(f"{f['field']}: {f['message']}" for f in self.fields) or self.message
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["fields"] = self.fields
        return payload


class RateLimited(VotingError):
    code = "rate_limited"
    status_code = 429
    message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.retry_after = max(1, int(retry_after))

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["retry_after"] = self.retry_after
        return payload


class NotFound(VotingError):
    code = "not_found"
    status_code = 404
    message = "Voter not found."


class InvalidSession(VotingError):
    code = "invalid_session"
    status_code = 401
    message = "Session not found. Please verify again to vote."


class SessionExpired(VotingError):
    code = "session_expired"
    status_code = 401
    message = "Session expired. Please verify again to vote."


class ElectionNotOpen(VotingError):
    code = "election_not_open"
    status_code = 403
    message = "Election is not currently open."


class AlreadyVoted(VotingError):
    code = "already_voted"
    status_code = 403
    message = "You have already voted in this election."


class InvalidCandidateSelection(VotingError):
    code = "invalid_candidate_selection"
    status_code = 400
    message = "Invalid candidate selection."


class PositionVoteLimitExceeded(VotingError):
    code = "position_vote_limit_exceeded"
    status_code = 400
    message = "Too many candidates selected for a position."


class DuplicateCandidateInPosition(VotingError):
    code = "duplicate_candidate_in_position"
    status_code = 400
    message = "A candidate was selected more than once for the same position."


class StorageFailure(VotingError):
    code = "storage_failure"
    status_code = 500
    message = "Failed to save your request. Please try again."
