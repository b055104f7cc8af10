from __future__ import annotations

from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_origins(raw: Any) -> List[str]:
    """
    Normalize CORS allow origins from env.

    Supports:
      - list[str] (already parsed)
      - "*"
      - comma-separated string: "https://a.com, https://b.com"
    """
    if raw is None:
        return ["*"]

    if isinstance(raw, list):
        items = [str(x).strip() for x in raw]
        items = [x for x in items if x]
        return items or ["*"]

    s = str(raw).strip()
    if not s or s == "*":
        return ["*"]

    if "," in s:
        parts = [p.strip() for p in s.split(",")]
        parts = [p for p in parts if p]
        return parts or ["*"]

    return [s]


class Settings(BaseSettings):
    """
    Central settings for the voting core.

    Goals:
    - One resolved DB URL source of truth (DATABASE_URL, else DB_PATH)
    - Session and rate-limit policy tunable per deployment without code changes
    - Permissive for local dev, strict defaults for the voting endpoints
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # App identity
    env: str = Field(default="local", alias="APP_ENV")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server runtime (uvicorn)
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"], alias="CORS_ALLOW_ORIGINS")

    # Preferred: a real SQLAlchemy URL (SQLite locally, Postgres in production)
    database_url: str = Field(default="", alias="DATABASE_URL")
    db_path: str = Field(default="./data/ballotcore.sqlite", alias="DB_PATH")

    # -------------------------
    # Voting policy
    # -------------------------

    # Minutes a verification token stays usable. 0 disables expiry.
    session_ttl_minutes: int = Field(default=30, ge=0, alias="SESSION_TTL_MINUTES")

    # Highest grade a class-restricted position can represent.
    max_eligibility_class: int = Field(default=12, ge=1, alias="MAX_ELIGIBILITY_CLASS")

    # Upper bound on selections in one submitted ballot.
    max_ballot_selections: int = Field(default=50, ge=1, alias="MAX_BALLOT_SELECTIONS")

    # -------------------------
    # Rate limiting (in-process, per client identifier)
    # -------------------------
    rate_limit_window_s: float = Field(default=60.0, gt=0, alias="RATE_LIMIT_WINDOW_S")
    rate_limit_default_max: int = Field(default=60, ge=1, alias="RATE_LIMIT_DEFAULT_MAX")
    rate_limit_strict_max: int = Field(default=10, ge=1, alias="RATE_LIMIT_STRICT_MAX")
    rate_limit_max_entries: int = Field(default=10000, ge=1, alias="RATE_LIMIT_MAX_ENTRIES")
    rate_limit_sweep_interval_s: float = Field(default=60.0, gt=0, alias="RATE_LIMIT_SWEEP_INTERVAL_S")

    # Behind a reverse proxy the first X-Forwarded-For hop is the client.
    trust_forwarded_for: bool = Field(default=True, alias="TRUST_FORWARDED_FOR")

    # -------------------------
    # Validators / normalizers
    # -------------------------

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip().upper()
        return s or "INFO"

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _norm_cors_allow_origins(cls, v: Any) -> list[str]:
        return _split_origins(v)

    @field_validator("host", mode="before")
    @classmethod
    def _norm_host(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "127.0.0.1"

    @field_validator("database_url", mode="before")
    @classmethod
    def _norm_database_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip()

    @field_validator("db_path", mode="before")
    @classmethod
    def _norm_db_path(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "./data/ballotcore.sqlite"

    # -------------------------
    # Derived helpers
    # -------------------------

    @property
    def resolved_database_url(self) -> str:
        """
        Priority:
        1) DATABASE_URL if provided
        2) Build sqlite:/// URL from DB_PATH

        DB_PATH may be a full sqlite URL or a plain file path.
        """
        if self.database_url:
            return self.database_url

        path = (self.db_path or "").strip() or "./data/ballotcore.sqlite"

        if path.startswith("sqlite:"):
            return path

        p = Path(path)

        if not p.is_absolute():
            if str(p).startswith("./"):
                return f"sqlite:///{p.as_posix()}"
            return f"sqlite:///./{p.as_posix()}"

        # Absolute path needs 4 slashes after scheme (sqlite:////abs/path)
        return f"sqlite:////{p.as_posix().lstrip('/')}"


settings = Settings()
