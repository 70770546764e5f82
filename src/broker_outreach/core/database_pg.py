"""Record store - PostgreSQL backend (asyncpg).

Production backend using an asyncpg connection pool.
"""

from __future__ import annotations

import enum
import json
from typing import Any, Iterable

import asyncpg

from broker_outreach.core.config import Settings
from broker_outreach.core.errors import ConflictError, UpstreamError
from broker_outreach.core.records import TABLE_KEYS, RecordStore, _check_identifier


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
    equipment_types     JSONB NOT NULL DEFAULT '[]',
    preferred_lanes     JSONB NOT NULL DEFAULT '[]',
    preferred_states    JSONB NOT NULL DEFAULT '[]',
    created_at          TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT now()
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
    insurance_on_file   BOOLEAN NOT NULL DEFAULT false,
    credit_score        DOUBLE PRECISION,
    days_to_pay         INTEGER,
    payment_method      TEXT,
    response_rate       DOUBLE PRECISION,
    relationship_score  INTEGER,
    last_contact_date   TIMESTAMPTZ,
    first_contact_date  TIMESTAMPTZ,
    total_outreach_attempts INTEGER NOT NULL DEFAULT 0,
    total_responses     INTEGER NOT NULL DEFAULT 0,
    total_loads_booked  INTEGER NOT NULL DEFAULT 0,
    total_revenue       DOUBLE PRECISION NOT NULL DEFAULT 0,
    outreach_status     TEXT NOT NULL DEFAULT 'new',
    preferred_lanes     JSONB NOT NULL DEFAULT '[]',
    notes               TEXT,
    source              TEXT NOT NULL DEFAULT 'manual',
    created_at          TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT now(),
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
    broker_authority    BOOLEAN NOT NULL DEFAULT false,
    insurance_on_file   BOOLEAN NOT NULL DEFAULT false,
    credit_score        DOUBLE PRECISION,
    days_to_pay         INTEGER,
    response_rate       DOUBLE PRECISION,
    last_contact_date   TIMESTAMPTZ,
    first_contact_date  TIMESTAMPTZ,
    total_outreach_attempts INTEGER NOT NULL DEFAULT 0,
    total_responses     INTEGER NOT NULL DEFAULT 0,
    total_loads_booked  INTEGER NOT NULL DEFAULT 0,
    outreach_status     TEXT,
    preferred_lanes     JSONB NOT NULL DEFAULT '[]',
    created_at          TIMESTAMPTZ NOT NULL DEFAULT now()
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
    scheduled_at        TIMESTAMPTZ,
    sent_at             TIMESTAMPTZ,
    replied_at          TIMESTAMPTZ,
    broker_response     TEXT,
    response_sentiment  TEXT,
    provider_message_id TEXT,
    error_message       TEXT,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at          TIMESTAMPTZ NOT NULL DEFAULT now()
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
    is_default          BOOLEAN NOT NULL DEFAULT true,
    created_at          TIMESTAMPTZ NOT NULL DEFAULT now()
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


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )


class PostgresDatabase(RecordStore):
    """Async PostgreSQL connection manager and record store."""

    like_operator = "ILIKE"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings()
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        self._pool = await asyncpg.create_pool(
            self.settings.database_url, min_size=2, max_size=10,
            init=_init_connection,
        )

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    def _placeholder(self, index: int) -> str:
        return f"${index}"

    def _encode(self, value: Any) -> Any:
        if isinstance(value, enum.Enum):
            return value.value
        return value

    async def _fetch(self, sql: str, params: list[Any]) -> list[asyncpg.Record]:
        try:
            return await self.pool.fetch(sql, *params)
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(str(e)) from e
        except (asyncpg.PostgresError, OSError) as e:
            raise UpstreamError(str(e)) from e

    async def _run(self, sql: str, params: list[Any]) -> int:
        """Execute a write and return the affected row count."""
        try:
            status = await self.pool.execute(sql, *params)
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(str(e)) from e
        except (asyncpg.PostgresError, OSError) as e:
            raise UpstreamError(str(e)) from e
        # e.g. "UPDATE 3"
        return int(status.split()[-1])

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
            direction = "DESC NULLS LAST" if descending else "ASC"
            sql += f" ORDER BY {_check_identifier(order_by)} {direction}"
        if limit is not None:
            sql += f" LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}"
            params.extend([limit, offset])
        rows = await self._fetch(sql, params)
        return [dict(r) for r in rows]

    async def count(self, table: str, filters: dict[str, Any] | None = None) -> int:
        where, params = self._where(filters)
        rows = await self._fetch(f"SELECT COUNT(*) AS n FROM {self._table(table)}{where}", params)
        return rows[0]["n"] if rows else 0

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        row = self._prepare_insert(self._table(table), record)
        columns = [_check_identifier(c) for c in row]
        marks = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        rows = await self._fetch(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({marks}) RETURNING *",
            [self._encode(v) for v in row.values()],
        )
        return dict(rows[0])

    async def update(self, table: str, key: Any, patch: dict[str, Any]) -> dict[str, Any] | None:
        if not patch:
            return await self._get(table, key)
        row = self._prepare_patch(self._table(table), patch)
        set_clauses = [f"{_check_identifier(k)} = ${i}" for i, k in enumerate(row, start=1)]
        values = [self._encode(v) for v in row.values()]
        rows = await self._fetch(
            f"UPDATE {table} SET {', '.join(set_clauses)} "
            f"WHERE {TABLE_KEYS[table]} = ${len(values) + 1} RETURNING *",
            values + [key],
        )
        return dict(rows[0]) if rows else None

    async def update_where(self, table: str, filters: dict[str, Any], patch: dict[str, Any]) -> int:
        row = self._prepare_patch(self._table(table), patch)
        set_clauses = [f"{_check_identifier(k)} = ${i}" for i, k in enumerate(row, start=1)]
        values = [self._encode(v) for v in row.values()]
        where, params = self._where(filters, start=len(values) + 1)
        return await self._run(
            f"UPDATE {table} SET {', '.join(set_clauses)}{where}", values + params
        )

    async def increment(
        self, table: str, key: Any, column: str, amount: int = 1, **patch: Any
    ) -> dict[str, Any] | None:
        row = self._prepare_patch(self._table(table), patch)
        col = _check_identifier(column)
        set_clauses = [f"{col} = COALESCE({col}, 0) + $1"]
        set_clauses += [f"{_check_identifier(k)} = ${i}" for i, k in enumerate(row, start=2)]
        values = [amount] + [self._encode(v) for v in row.values()]
        rows = await self._fetch(
            f"UPDATE {table} SET {', '.join(set_clauses)} "
            f"WHERE {TABLE_KEYS[table]} = ${len(values) + 1} RETURNING *",
            values + [key],
        )
        return dict(rows[0]) if rows else None

    async def delete(self, table: str, key: Any) -> int:
        return await self._run(
            f"DELETE FROM {self._table(table)} WHERE {TABLE_KEYS[table]} = $1", [key]
        )
