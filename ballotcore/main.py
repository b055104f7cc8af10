from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import init_db
from .errors import RateLimited, StorageFailure, ValidationError, VotingError
from .validation import field_errors

from .api.limits import REMAINING_HEADER, remaining_headers
from .api.voting import router as voting_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ballot Core API",
        version=getattr(settings, "app_version", "1.0.0"),
    )

    # --- CORS ---
    allow_origins = getattr(settings, "cors_allow_origins", ["*"])
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Startup ---
    @app.on_event("startup")
    def _startup() -> None:
        # Creates tables for all registered SQLModel models (idempotent)
        init_db()

    # --- Error envelope: {"code", "detail", ...} for every voting failure ---
    @app.exception_handler(VotingError)
    async def voting_error_handler(request: Request, exc: VotingError) -> JSONResponse:
        headers = remaining_headers(request)
        if isinstance(exc, RateLimited):
            headers["Retry-After"] = str(exc.retry_after)
            headers[REMAINING_HEADER] = "0"
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        err = ValidationError(field_errors(exc.errors()))
        return JSONResponse(status_code=err.status_code, content=err.to_payload(), headers=remaining_headers(request))

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Unhandled storage error on %s %s", request.method, request.url.path, exc_info=exc)
        err = StorageFailure()
        return JSONResponse(status_code=err.status_code, content=err.to_payload(), headers=remaining_headers(request))

    # --- Health / meta ---
    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {"ok": True, "env": getattr(settings, "env", "local")}

    @app.get("/version", tags=["meta"])
    def version() -> Dict[str, Any]:
        return {"version": getattr(settings, "app_version", "1.0.0")}

    # --- API routers ---
    app.include_router(voting_router)

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(level=getattr(logging, str(settings.log_level).upper(), logging.INFO))
    import uvicorn

    # NOTE: init_db is handled by the FastAPI startup hook.
    uvicorn.run(
        "ballotcore.main:app",
        host=getattr(settings, "host", "127.0.0.1"),
        port=int(getattr(settings, "port", 8000)),
        reload=bool(getattr(settings, "reload", False)),
    )
