"""Record store - SQLite backend.

Zero-install backend using aiosqlite. Auto-creates schema on connect.
"""

from __future__ import annotations

import asyncio
import enum
import json
import sqlite3
from datetime import datetime
from typing import Any, Iterable

import aiosqlite

from broker_outreach.core.config import Settings
from broker_outreach.core.errors import ConflictError, UpstreamError
from broker_outreach.core.records import JSON_COLUMNS, TABLE_KEYS, RecordStore, _check_identifier


# ---------------------------------------------------------------------------
# SQLite schema (auto-created on first connect)
# ---------------------------------------------------------------------------

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS carrier_profiles (
    user_id             TEXT PRIMARY KEY,
    company_name        TEXT,
    owner_name          TEXT,
    mc_number           TEXT,
    dot_number          TEXT,
    phone               TEXT,
    email               TEXT,
    home_base_city      TEXT,
    home_base_state     TEXT,
    equipment_types     TEXT NOT NULL DEFAULT '[]',
    preferred_lanes     TEXT NOT NULL DEFAULT '[]',
    preferred_states    TEXT NOT NULL DEFAULT '[]',
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS brokers (
    id                  TEXT PRIMARY KEY,
    carrier_id          TEXT NOT NULL,
    company_name        TEXT,
    contact_name        TEXT,
    mc_number           TEXT,
    dot_number          TEXT,
    email               TEXT,
    phone               TEXT,
    website             TEXT,
    address_city        TEXT,
    address_state       TEXT,
    authority_status    TEXT,
    insurance_on_file   INTEGER NOT NULL DEFAULT 0,
    credit_score        REAL,
    days_to_pay         INTEGER,
    payment_method      TEXT,
    response_rate       REAL,
    relationship_score  INTEGER,
    last_contact_date   TEXT,
    first_contact_date  TEXT,
    total_outreach_attempts INTEGER NOT NULL DEFAULT 0,
    total_responses     INTEGER NOT NULL DEFAULT 0,
    total_loads_booked  INTEGER NOT NULL DEFAULT 0,
    total_revenue       REAL NOT NULL DEFAULT 0,
    outreach_status     TEXT NOT NULL DEFAULT 'new',
    preferred_lanes     TEXT NOT NULL DEFAULT '[]',
    notes               TEXT,
    source              TEXT NOT NULL DEFAULT 'manual',
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL,
    UNIQUE (carrier_id, mc_number)
);

CREATE TABLE IF NOT EXISTS broker_leads (
    id                  TEXT PRIMARY KEY,
    mc_number           TEXT UNIQUE,
    dot_number          TEXT,
    legal_name          TEXT,
    dba_name            TEXT,
    company_name        TEXT,
    contact_name        TEXT,
    email               TEXT,
    phone               TEXT,
    address_city        TEXT,
    address_state       TEXT,
    authority_status    TEXT,
    broker_authority    INTEGER NOT NULL DEFAULT 0,
    insurance_on_file   INTEGER NOT NULL DEFAULT 0,
    credit_score        REAL,
    days_to_pay         INTEGER,
    response_rate       REAL,
    last_contact_date   TEXT,
    first_contact_date  TEXT,
    total_outreach_attempts INTEGER NOT NULL DEFAULT 0,
    total_responses     INTEGER NOT NULL DEFAULT 0,
    total_loads_booked  INTEGER NOT NULL DEFAULT 0,
    outreach_status     TEXT,
    preferred_lanes     TEXT NOT NULL DEFAULT '[]',
    created_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS outreach_campaigns (
    id                  TEXT PRIMARY KEY,
    carrier_id          TEXT NOT NULL,
    broker_id           TEXT NOT NULL,
    campaign_type       TEXT NOT NULL DEFAULT 'cold_outreach',
    method              TEXT NOT NULL DEFAULT 'email',
    status              TEXT NOT NULL DEFAULT 'scheduled',
    sequence_step       INTEGER NOT NULL DEFAULT 1,
    parent_campaign_id  TEXT REFERENCES outreach_campaigns(id),
    subject             TEXT,
    body_text           TEXT,
    template_used       TEXT,
    scheduled_at        TEXT,
    sent_at             TEXT,
    replied_at          TEXT,
    broker_response     TEXT,
    response_sentiment  TEXT,
    provider_message_id TEXT,
    error_message       TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS email_templates (
    id                  TEXT PRIMARY KEY,
    carrier_id          TEXT,
    name                TEXT NOT NULL,
    category            TEXT NOT NULL DEFAULT 'follow_up',
    subject_template    TEXT NOT NULL,
    body_template       TEXT NOT NULL,
    sequence_step       INTEGER NOT NULL DEFAULT 1,
    delay_days          INTEGER NOT NULL DEFAULT 0,
    is_default          INTEGER NOT NULL DEFAULT 1,
    created_at          TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_outreach_initial_step
    ON outreach_campaigns(carrier_id, broker_id)
    WHERE sequence_step = 1 AND status <> 'cancelled';

CREATE INDEX IF NOT EXISTS idx_brokers_carrier ON brokers(carrier_id);
CREATE INDEX IF NOT EXISTS idx_brokers_status ON brokers(outreach_status);
CREATE INDEX IF NOT EXISTS idx_brokers_state ON brokers(address_state);
CREATE INDEX IF NOT EXISTS idx_leads_state ON broker_leads(address_state);
CREATE INDEX IF NOT EXISTS idx_campaigns_due ON outreach_campaigns(status, scheduled_at);
CREATE INDEX IF NOT EXISTS idx_campaigns_broker ON outreach_campaigns(carrier_id, broker_id);
CREATE INDEX IF NOT EXISTS idx_templates_category ON email_templates(category, sequence_step);
"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    """Convert sqlite3.Row to a plain dict, decoding JSON list columns."""
    d = {k: row[k] for k in row.keys()}
    for col in JSON_COLUMNS.intersection(d):
        if isinstance(d[col], str):
            d[col] = json.loads(d[col])
    return d


# ---------------------------------------------------------------------------
# Database class
# ---------------------------------------------------------------------------


class Database(RecordStore):
    """Async SQLite connection manager and record store."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self._conn: aiosqlite.Connection | None = None
        # one shared connection: a write and its commit or rollback must not interleave
        self._write_lock = asyncio.Lock()

    def _resolve_path(self) -> str:
        url = self.settings.database_url
        if url.startswith("sqlite:///"):
            return url[len("sqlite:///"):]
        if url.startswith("sqlite://"):
            return url[len("sqlite://"):]
        return url

    async def connect(self) -> None:
        path = self._resolve_path()
        self._conn = await aiosqlite.connect(path)
        self._conn.row_factory = sqlite3.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._init_schema()

    async def _init_schema(self) -> None:
        """Auto-create tables if they don't exist."""
        await self.conn.executescript(SCHEMA_SQL)
        await self.conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    def _placeholder(self, index: int) -> str:
        return "?"

    def _encode(self, value: Any) -> Any:
        if isinstance(value, enum.Enum):
            return value.value
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        return value

    async def _execute(self, sql: str, params: list[Any]) -> aiosqlite.Cursor:
        async with self._write_lock:
            try:
                cursor = await self.conn.execute(sql, params)
                await self.conn.commit()
                return cursor
            except sqlite3.IntegrityError as e:
                await self.conn.rollback()
                raise ConflictError(str(e)) from e
            except sqlite3.Error as e:
                await self.conn.rollback()
                raise UpstreamError(str(e)) from e

    # -----------------------------------------------------------------------
    # Primitives
    # -----------------------------------------------------------------------

    async def query(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        *,
        search: str | None = None,
        search_columns: Iterable[str] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        where, params = self._where(filters, search, search_columns)
        sql = f"SELECT * FROM {self._table(table)}{where}"
        if order_by:
            sql += f" ORDER BY {_check_identifier(order_by)} {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        try:
            cursor = await self.conn.execute(sql, params)
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise UpstreamError(str(e)) from e
        return [_row_to_dict(r) for r in rows]

    async def count(self, table: str, filters: dict[str, Any] | None = None) -> int:
        where, params = self._where(filters)
        try:
            cursor = await self.conn.execute(
                f"SELECT COUNT(*) FROM {self._table(table)}{where}", params
            )
            row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise UpstreamError(str(e)) from e
        return row[0] if row else 0

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        row = self._prepare_insert(self._table(table), record)
        columns = [_check_identifier(c) for c in row]
        await self._execute(
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            [self._encode(v) for v in row.values()],
        )
        result = await self._get(table, row[TABLE_KEYS[table]])
        assert result is not None
        return result

    async def update(self, table: str, key: Any, patch: dict[str, Any]) -> dict[str, Any] | None:
        if patch:
            await self.update_where(table, {TABLE_KEYS[self._table(table)]: key}, patch)
        return await self._get(table, key)

    async def update_where(self, table: str, filters: dict[str, Any], patch: dict[str, Any]) -> int:
        row = self._prepare_patch(self._table(table), patch)
        set_clauses = [f"{_check_identifier(k)} = ?" for k in row]
        values = [self._encode(v) for v in row.values()]
        where, params = self._where(filters, start=len(values) + 1)
        cursor = await self._execute(
            f"UPDATE {table} SET {', '.join(set_clauses)}{where}", values + params
        )
        return cursor.rowcount

    async def increment(
        self, table: str, key: Any, column: str, amount: int = 1, **patch: Any
    ) -> dict[str, Any] | None:
        row = self._prepare_patch(self._table(table), patch)
        col = _check_identifier(column)
        set_clauses = [f"{col} = COALESCE({col}, 0) + ?"]
        set_clauses += [f"{_check_identifier(k)} = ?" for k in row]
        values = [amount] + [self._encode(v) for v in row.values()]
        await self._execute(
            f"UPDATE {table} SET {', '.join(set_clauses)} WHERE {TABLE_KEYS[table]} = ?",
            values + [key],
        )
        return await self._get(table, key)

    async def delete(self, table: str, key: Any) -> int:
        cursor = await self._execute(
            f"DELETE FROM {self._table(table)} WHERE {TABLE_KEYS[table]} = ?", [key]
        )
        return cursor.rowcount
