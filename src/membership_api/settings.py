"""Membership API settings (pydantic v2 + pydantic-settings)."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

# ---- Defaults ---------------------------------------------------------------

MODULE_DIR = Path(__file__).resolve().parent


def _detect_project_root() -> Path:
    """Pick the first directory that holds both alembic.ini and migrations/."""

    candidates = [
        MODULE_DIR.parent.parent,  # source layout: <repo>/src/membership_api
        MODULE_DIR,
        Path.cwd(),
    ]
    for candidate in candidates:
        try:
            absolute = candidate.expanduser().resolve()
        except OSError:
            continue
        if (absolute / "alembic.ini").exists() and (absolute / "migrations").exists():
            return absolute
    return MODULE_DIR.parent.parent


DEFAULT_PROJECT_ROOT = _detect_project_root()
DEFAULT_ALEMBIC_INI = DEFAULT_PROJECT_ROOT / "alembic.ini"
DEFAULT_ALEMBIC_MIGRATIONS = DEFAULT_PROJECT_ROOT / "migrations"
DEFAULT_SQLITE_PATH = Path("./data/db/membership.sqlite")
DEFAULT_IDENTITY_HEADER = "X-User-Id"

SQLiteBeginMode = Literal["DEFERRED", "IMMEDIATE", "EXCLUSIVE"]


# ---- Helpers ----------------------------------------------------------------

def _resolve_path(value: Path | str | None, *, default: Path) -> Path:
    """Expand, absolutize, and resolve a configurable path."""

    if value in (None, ""):
        candidate = default
    elif isinstance(value, Path):
        candidate = value
    else:
        candidate = Path(str(value).strip())
    return candidate.expanduser().resolve()


# ---- Settings ---------------------------------------------------------------

class Settings(BaseSettings):
    """FastAPI settings loaded from MEMBERSHIP_* environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MEMBERSHIP_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    # Core
    app_name: str = "Membership API"
    app_version: str = "0.4.0"
    api_docs_enabled: bool = False
    docs_url: str = "/docs"
    redoc_url: str = "/redoc"
    openapi_url: str = "/openapi.json"
    logging_level: str = "INFO"
    debug: bool = False

    # Paths
    alembic_ini_path: Path = Field(default=DEFAULT_ALEMBIC_INI)
    alembic_migrations_dir: Path = Field(default=DEFAULT_ALEMBIC_MIGRATIONS)

    # Database
    database_url: str | None = None
    database_echo: bool = False
    database_pool_size: int = Field(5, ge=1)       # ignored by sqlite
    database_max_overflow: int = Field(10, ge=0)
    database_pool_timeout: int = Field(30, gt=0)
    database_sqlite_journal_mode: str = "WAL"
    database_sqlite_synchronous: str = "NORMAL"
    database_sqlite_busy_timeout_ms: int = Field(30_000, ge=0)
    database_sqlite_begin_mode: SQLiteBeginMode | None = None
    database_auto_migrate: bool = True

    # Identity (issued upstream; this service only reads the trusted header)
    identity_header: str = DEFAULT_IDENTITY_HEADER

    # Sub-roles & auto-grant
    sub_roles_seed_on_startup: bool = True
    auto_grant_enabled: bool = True

    # ---- Validators ----

    @field_validator("logging_level", mode="before")
    @classmethod
    def _v_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v).strip()).upper()
        return s or "INFO"

    @field_validator("database_sqlite_begin_mode", mode="before")
    @classmethod
    def _v_begin_mode(cls, v: Any) -> str | None:
        if v in (None, ""):
            return None
        return str(v).strip().upper()

    @field_validator("database_sqlite_journal_mode", "database_sqlite_synchronous", mode="before")
    @classmethod
    def _v_pragmas(cls, v: Any) -> str:
        return str(v).strip().upper()

    @field_validator("identity_header", mode="before")
    @classmethod
    def _v_identity_header(cls, v: Any) -> str:
        s = str(v or "").strip()
        if not s:
            raise ValueError("MEMBERSHIP_IDENTITY_HEADER must not be blank")
        return s

    # ---- Finalize: resolve paths & normalise the DSN ----

    @model_validator(mode="after")
    def _finalize(self) -> Settings:
        self.alembic_ini_path = _resolve_path(self.alembic_ini_path, default=DEFAULT_ALEMBIC_INI)
        self.alembic_migrations_dir = _resolve_path(
            self.alembic_migrations_dir, default=DEFAULT_ALEMBIC_MIGRATIONS
        )

        if not self.database_url:
            sqlite = _resolve_path(DEFAULT_SQLITE_PATH, default=DEFAULT_SQLITE_PATH)
            self.database_url = f"sqlite:///{sqlite.as_posix()}"

        backend = make_url(self.database_url).get_backend_name()
        if backend not in {"sqlite", "mssql"}:
            raise ValueError("MEMBERSHIP_DATABASE_URL must point at SQLite or SQL Server")
        return self


@lru_cache(maxsize=1)
def _build_settings() -> Settings:
    return Settings()


def get_settings() -> Settings:
    return _build_settings()


def reload_settings() -> Settings:
    _build_settings.cache_clear()
    return _build_settings()


__all__ = [
    "DEFAULT_IDENTITY_HEADER",
    "SQLiteBeginMode",
    "Settings",
    "get_settings",
    "reload_settings",
]
