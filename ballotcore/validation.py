from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence, Type, TypeVar

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from .config import settings
from .errors import ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

IDENTIFIER_PATTERN = r"^[A-Za-z0-9\-_ .]+$"
TOKEN_PATTERN = r"^[A-Za-z0-9_\-]+$"

# Location prefixes FastAPI adds in front of the field path.
_LOC_PREFIXES = {"body", "query", "path", "header"}


# -------------------------
# Request schemas (one per operation)
# -------------------------

class VerifyRequest(BaseModel):
    """
    POST /voting/verify
    """
    identifier: str = Field(..., min_length=1, max_length=50, pattern=IDENTIFIER_PATTERN)

    @field_validator("identifier", mode="before")
    @classmethod
    def _strip_identifier(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class BallotQuery(BaseModel):
    """
    GET /voting/ballot
    """
    election_id: int = Field(..., ge=1)
    voter_id: int = Field(..., ge=1)
    session_token: str = Field(..., min_length=20, max_length=200, pattern=TOKEN_PATTERN)


class VoteSelection(BaseModel):
    candidate_id: int = Field(..., ge=1)
    position_id: int = Field(..., ge=1)


class SubmitRequest(BaseModel):
    """
    POST /voting/submit

    Abstaining from a position means leaving it out of votes; the ballot as a
    whole must still carry at least one selection.
    """
    election_id: int = Field(..., ge=1)
    voter_id: int = Field(..., ge=1)
    session_token: str = Field(..., min_length=20, max_length=200, pattern=TOKEN_PATTERN)
    votes: List[VoteSelection] = Field(..., min_length=1, max_length=settings.max_ballot_selections)


# -------------------------
# Aggregation
# -------------------------

def _field_name(loc: Sequence[Any]) -> str:
    parts = list(loc)
    if parts and parts[0] in _LOC_PREFIXES:
        parts = parts[1:]
    return ".".join(str(p) for p in parts) or "request"


def field_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Flatten pydantic error dicts into [{"field": "votes.0.candidate_id", "message": "..."}].
    """
    out: List[Dict[str, str]] = []
    for err in errors:
        out.append(
            {
                "field": _field_name(err.get("loc", ())),
                "message": str(err.get("msg", "Invalid value")),
            }
        )
    return out


def validate_payload(model: Type[ModelT], data: Any) -> ModelT:
    """
    Validate an inbound payload against its schema.

    Every violated field is reported in one ValidationError; nothing downstream
    ever sees a partially valid payload.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(field_errors(exc.errors())) from exc
