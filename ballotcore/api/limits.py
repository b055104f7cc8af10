from __future__ import annotations

import logging
from typing import Callable, Dict

from fastapi import Request, Response

from ..config import settings
from ..errors import RateLimited
from ..services.rate_limiter import RateLimitConfig, default_config, limiter, strict_config

logger = logging.getLogger(__name__)

REMAINING_HEADER = "X-RateLimit-Remaining"


def client_identifier(request: Request) -> str:
    """
    First X-Forwarded-For hop when behind a trusted proxy, else the socket peer.
    """
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit(scope: str, *, strict: bool = False) -> Callable[[Request, Response], None]:
    """
    Build a FastAPI dependency that counts the call against `scope:client`.

        @router.post("/verify", dependencies=[Depends(rate_limit("verify", strict=True))])
    """

    def _config() -> RateLimitConfig:
        return strict_config() if strict else default_config()

    def _dependency(request: Request, response: Response) -> None:
        client = client_identifier(request)
        decision = limiter.check(f"{scope}:{client}", _config())
        if not decision.allowed:
            logger.warning("rate limited scope=%s client=%s retry_after=%s", scope, client, decision.retry_after)
            raise RateLimited(decision.retry_after)
        # Error handlers read this back so failed calls report it too.
        request.state.rate_limit_remaining = decision.remaining
        response.headers[REMAINING_HEADER] = str(decision.remaining)

    return _dependency


def remaining_headers(request: Request) -> Dict[str, str]:
    """
    X-RateLimit-Remaining for an error response, when a limit was checked on this request.
    """
    remaining = getattr(request.state, "rate_limit_remaining", None)
    if remaining is None:
        return {}
    return {REMAINING_HEADER: str(remaining)}
