"""Database and service configuration, and the engine factory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


@dataclass
class DatabaseConfig:
    """Where the catalog and the workspace tables live.

    ``sqlite:///`` URLs are for development and tests; ``postgresql://``
    URLs get one schema per workspace.
    """

    url: str

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Resolve the URL from ``DATABASE_URL``, else from ``SCHEMAFORGE_DB_PATH``.

        Without either, the catalog is a SQLite file at
        ``data/schemaforge.db`` under ``base_path`` (or the working directory).
        """
        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url)
        db_path = os.environ.get("SCHEMAFORGE_DB_PATH")
        if not db_path:
            db_path = (base_path or Path(".")) / "data" / "schemaforge.db"
        return cls(url=f"sqlite:///{db_path}")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def sqlite_path(self) -> Path | None:
        """File behind a SQLite URL; None for in-memory or other databases."""
        if not self.is_sqlite or ":///" not in self.url:
            return None
        path = self.url.split(":///", 1)[1]
        if not path or path == ":memory:":
            return None
        return Path(path)

    @property
    def sqlalchemy_url(self) -> str:
        # psycopg v3 is the installed driver; SQLAlchemy defaults to psycopg2
        if self.url.startswith("postgresql://"):
            return "postgresql+psycopg://" + self.url[len("postgresql://"):]
        return self.url


@dataclass
class ServiceSettings:
    """Tunables of the mutation service."""

    sync_retry_attempts: int = 3
    sync_retry_wait_seconds: float = 0.5
    sync_replay_interval_seconds: float = 30.0
    sync_max_pending: int = 100
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> ServiceSettings:
        return cls(
            sync_retry_attempts=int(os.environ.get("SCHEMAFORGE_SYNC_RETRIES", "3")),
            sync_retry_wait_seconds=float(os.environ.get("SCHEMAFORGE_SYNC_RETRY_WAIT", "0.5")),
            sync_replay_interval_seconds=float(
                os.environ.get("SCHEMAFORGE_SYNC_REPLAY_INTERVAL", "30")
            ),
            sync_max_pending=int(os.environ.get("SCHEMAFORGE_SYNC_MAX_PENDING", "100")),
            log_level=os.environ.get("SCHEMAFORGE_LOG_LEVEL", "INFO").upper(),
        )


def create_engine_for(config: DatabaseConfig) -> Engine:
    """Create an engine for the configured database.

    For SQLite the pysqlite driver's own transaction handling is turned
    off and BEGIN IMMEDIATE is emitted explicitly, so DDL runs inside the
    transaction and rolls back with it like it does on PostgreSQL. The write
    lock is taken up front; writers in other threads wait on the busy
    timeout.
    """
    engine = create_engine(config.sqlalchemy_url)

    if config.is_sqlite:

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine
