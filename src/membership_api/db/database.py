"""Database engine + session factory (SQLite + SQL Server).

- One engine per process, created by the application lifespan
- One session per request (FastAPI dependency), commit on success
- SQLite: WAL + busy_timeout + pool_size=1, StaticPool for ``:memory:``
- SQL Server: pooled aioodbc connections with pre-ping and recycle
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from membership_api.settings import Settings, SQLiteBeginMode

__all__ = [
    "Database",
    "DatabaseConfig",
    "build_async_url",
    "build_sync_url",
    "db",
    "get_db_session",
    "is_sqlite_memory",
    "session_scope",
]

_DEFAULT_MSSQL_DRIVER = "ODBC Driver 18 for SQL Server"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """Engine options derived from :class:`Settings`.

    ``url`` may be sync or async; the runtime always converts it:
      sqlite -> sqlite+aiosqlite
      mssql+pyodbc -> mssql+aioodbc
    """

    url: str
    echo: bool = False

    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800  # seconds

    sqlite_journal_mode: str = "WAL"
    sqlite_synchronous: str = "NORMAL"
    sqlite_busy_timeout_ms: int = 30_000
    sqlite_begin_mode: SQLiteBeginMode | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> DatabaseConfig:
        return cls(
            url=str(settings.database_url),
            echo=bool(settings.database_echo),
            pool_size=int(settings.database_pool_size),
            max_overflow=int(settings.database_max_overflow),
            pool_timeout=int(settings.database_pool_timeout),
            sqlite_journal_mode=settings.database_sqlite_journal_mode,
            sqlite_synchronous=settings.database_sqlite_synchronous,
            sqlite_busy_timeout_ms=int(settings.database_sqlite_busy_timeout_ms),
            sqlite_begin_mode=settings.database_sqlite_begin_mode,
        )


# ---- URL helpers ------------------------------------------------------------

def _supported_backend(url: URL) -> str:
    backend = url.get_backend_name()
    if backend not in {"sqlite", "mssql"}:
        raise ValueError("Only SQLite and SQL Server are supported.")
    return backend


def is_sqlite_memory(url: URL) -> bool:
    database = (url.database or "").strip()
    if not database or database == ":memory:":
        return True
    return database.startswith("file:") and (url.query or {}).get("mode") == "memory"


def _ensure_sqlite_parent_dir(url: URL) -> None:
    database = (url.database or "").strip()
    if is_sqlite_memory(url) or database.startswith("file:"):
        return
    path = Path(database)
    if not path.is_absolute():
        path = (Path.cwd() / path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)


def _with_driver(url: URL, *, sqlite_driver: str, mssql_driver: str) -> URL:
    if _supported_backend(url) == "sqlite":
        return url.set(drivername=sqlite_driver)
    query = dict(url.query or {})
    query.setdefault("driver", _DEFAULT_MSSQL_DRIVER)
    return url.set(drivername=mssql_driver, query=query)


def build_sync_url(cfg: DatabaseConfig) -> str:
    """Return the *sync* SQLAlchemy URL string (for Alembic run from the CLI)."""
    url = _with_driver(make_url(cfg.url), sqlite_driver="sqlite", mssql_driver="mssql+pyodbc")
    return url.render_as_string(hide_password=False)


def build_async_url(cfg: DatabaseConfig) -> str:
    """Return the *async* SQLAlchemy URL string (for runtime)."""
    url = _with_driver(
        make_url(cfg.url), sqlite_driver="sqlite+aiosqlite", mssql_driver="mssql+aioodbc"
    )
    return url.render_as_string(hide_password=False)


def _build_engine_kwargs(url: URL, cfg: DatabaseConfig) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"echo": cfg.echo, "pool_pre_ping": True}

    if _supported_backend(url) == "sqlite":
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": cfg.sqlite_busy_timeout_ms / 1000.0,
        }
        if is_sqlite_memory(url):
            kwargs["poolclass"] = StaticPool
        else:
            kwargs.update(pool_size=1, max_overflow=0, pool_timeout=max(1, cfg.pool_timeout))
    else:
        kwargs.update(
            pool_size=cfg.pool_size,
            max_overflow=cfg.max_overflow,
            pool_timeout=cfg.pool_timeout,
            pool_recycle=cfg.pool_recycle,
        )
    return kwargs


def _install_sqlite_pragmas(engine: AsyncEngine, cfg: DatabaseConfig, *, memory: bool) -> None:
    journal_mode = "MEMORY" if memory else cfg.sqlite_journal_mode
    synchronous = cfg.sqlite_synchronous
    busy_ms = int(cfg.sqlite_busy_timeout_ms)
    begin_mode = cfg.sqlite_begin_mode

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_on_connect(dbapi_conn, _record):
        if begin_mode:
            # BEGIN is emitted by the "begin" hook below.
            dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={busy_ms}")
            cursor.execute(f"PRAGMA journal_mode={journal_mode}")
            cursor.execute(f"PRAGMA synchronous={synchronous}")
        finally:
            cursor.close()

    if begin_mode:

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql(f"BEGIN {begin_mode}")


# ---- Database object --------------------------------------------------------

class Database:
    """Holds the process-wide engine + sessionmaker.

    Call ``init(cfg)`` once on startup and ``await dispose()`` on shutdown.
    """

    def __init__(self) -> None:
        self._cfg: DatabaseConfig | None = None
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call db.init(...) at startup.")
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database not initialized. Call db.init(...) at startup.")
        return self._sessionmaker

    @property
    def config(self) -> DatabaseConfig:
        if self._cfg is None:
            raise RuntimeError("Database not initialized.")
        return self._cfg

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    def init(self, cfg: DatabaseConfig) -> None:
        """Create engine + sessionmaker (idempotent for identical config)."""
        if self._cfg == cfg and self._engine is not None:
            return

        self._cfg = cfg
        async_url = build_async_url(cfg)
        url = make_url(async_url)
        backend = _supported_backend(url)
        if backend == "sqlite":
            _ensure_sqlite_parent_dir(url)

        engine = create_async_engine(async_url, **_build_engine_kwargs(url, cfg))
        if backend == "sqlite":
            _install_sqlite_pragmas(engine, cfg, memory=is_sqlite_memory(url))

        self._engine = engine
        self._sessionmaker = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )

    async def dispose(self) -> None:
        """Dispose engine (call on shutdown)."""
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        self._cfg = None


db = Database()


async def close_session(session: AsyncSession) -> None:
    await asyncio.shield(session.close())


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session for background work: commit on success, rollback on error."""
    session = db.sessionmaker()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await close_session(session)


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one AsyncSession per request."""
    session = db.sessionmaker()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await close_session(session)
