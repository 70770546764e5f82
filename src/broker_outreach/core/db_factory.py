"""Database factory - selects backend based on configuration."""

from __future__ import annotations

from broker_outreach.core.config import Settings
from broker_outreach.core.records import RecordStore


def create_database(settings: Settings | None = None) -> RecordStore:
    """Return the appropriate record store backend.

    - use_sqlite=True uses the aiosqlite backend.
    - Otherwise uses the asyncpg PostgreSQL backend (default for production).
    """
    s = settings or Settings()
    if s.use_sqlite:
        from broker_outreach.core.database import Database
        return Database(s)
    else:
        from broker_outreach.core.database_pg import PostgresDatabase
        return PostgresDatabase(s)
