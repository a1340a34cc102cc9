"""Persistence layer for glassbox traces."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from ..config import DATABASE_URL_ENVS, GlassboxConfig, database_url_from_env, load_config
from .inmemory import InMemoryTraceRepository
from .models import ExecutionRecord, ExecutionStatus, StepRecord, StepStatus
from .repository import TraceRepository
from .sqlite import SQLiteTraceRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresTraceRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresTraceRepository = None  # type: ignore

logger = logging.getLogger(__name__)

DATABASE_URL_ENV = DATABASE_URL_ENVS[0]
SQLITE_PREFIX = "sqlite://"
POSTGRES_PREFIXES = ("postgres://", "postgresql://")

_repository_instance: TraceRepository | None = None


def redact_url(url: str) -> str:
    """Drop the password from a database URL so it can be logged."""
    parts = urlsplit(url)
    if not parts.password:
        return url
    netloc = f"{parts.username}:***@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))


def _sqlite_path(database_url: str) -> str:
    path = database_url[len(SQLITE_PREFIX):]
    if path == ":memory:":
        return path
    resolved = Path(path).expanduser()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def _build_repository(database_url: Optional[str]) -> TraceRepository:
    if not database_url:
        logger.debug("No trace database configured; traces are kept in memory")
        return InMemoryTraceRepository()

    if database_url.startswith(SQLITE_PREFIX):
        path = _sqlite_path(database_url)
        logger.info(f"Storing traces in SQLite database {path}")
        return SQLiteTraceRepository(path)

    if database_url.startswith(POSTGRES_PREFIXES):
        if PostgresTraceRepository is None:
            raise RuntimeError("Postgres support not available; install asyncpg")
        logger.info(f"Storing traces in Postgres at {redact_url(database_url)}")
        return PostgresTraceRepository(database_url)

    raise ValueError(f"Unsupported database backend: {redact_url(database_url)}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[GlassboxConfig] = None
) -> TraceRepository:
    """Return the trace store for this process.

    ``database_url`` wins over ``GLASSBOX_DATABASE_URL`` / ``DATABASE_URL``,
    which win over ``config.database_url``. Without any of them traces live
    in memory and vanish with the process. A call without arguments reuses
    the store built by the previous call.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    _repository_instance = _build_repository(
        database_url or database_url_from_env() or config.database_url
    )
    return _repository_instance


__all__ = [
    "DATABASE_URL_ENV",
    "ExecutionRecord",
    "ExecutionStatus",
    "StepRecord",
    "StepStatus",
    "TraceRepository",
    "SQLiteTraceRepository",
    "PostgresTraceRepository",
    "InMemoryTraceRepository",
    "get_repository",
    "redact_url",
]
