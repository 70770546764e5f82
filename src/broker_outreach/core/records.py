"""Record store interface shared by the SQLite and PostgreSQL backends.

Backends implement the generic primitives (query/insert/update/...);
the domain helpers below are written only against those primitives.
"""

from __future__ import annotations

import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable

from broker_outreach.core.models import (
    Broker,
    BrokerLead,
    CampaignStatus,
    CampaignStep,
    CarrierProfile,
    ContactMethod,
    EmailTemplate,
    OutreachStatus,
    TemplateCategory,
)

# Primary key column per table
TABLE_KEYS: dict[str, str] = {
    "carrier_profiles": "user_id",
    "brokers": "id",
    "broker_leads": "id",
    "outreach_campaigns": "id",
    "email_templates": "id",
}

TABLES_WITH_UPDATED_AT = {"carrier_profiles", "brokers", "outreach_campaigns"}

JSON_COLUMNS = {"equipment_types", "preferred_lanes", "preferred_states"}

OPERATORS = {"lte": "<=", "gte": ">=", "lt": "<", "gt": ">", "ne": "<>"}

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid column name: {name!r}")
    return name


class RecordStore(ABC):
    """Async record store: filter/sort/limit queries plus conditional writes."""

    like_operator = "LIKE"

    # -----------------------------------------------------------------------
    # Backend primitives
    # -----------------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    def _placeholder(self, index: int) -> str:
        """Bind parameter marker for the 1-based parameter ``index``."""

    @abstractmethod
    def _encode(self, value: Any) -> Any:
        """Convert a Python value to what the driver expects."""

    @abstractmethod
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
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def count(self, table: str, filters: dict[str, Any] | None = None) -> int: ...

    @abstractmethod
    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a row. Unique-constraint violations raise ConflictError."""

    @abstractmethod
    async def update(self, table: str, key: Any, patch: dict[str, Any]) -> dict[str, Any] | None: ...

    @abstractmethod
    async def update_where(self, table: str, filters: dict[str, Any], patch: dict[str, Any]) -> int:
        """Conditional update. Returns the number of rows changed."""

    @abstractmethod
    async def increment(
        self, table: str, key: Any, column: str, amount: int = 1, **patch: Any
    ) -> dict[str, Any] | None:
        """Atomically add ``amount`` to a counter column, applying ``patch`` too."""

    @abstractmethod
    async def delete(self, table: str, key: Any) -> int: ...

    # -----------------------------------------------------------------------
    # SQL helpers
    # -----------------------------------------------------------------------

    def _table(self, table: str) -> str:
        if table not in TABLE_KEYS:
            raise ValueError(f"Unknown table: {table!r}")
        return table

    def _where(
        self,
        filters: dict[str, Any] | None,
        search: str | None = None,
        search_columns: Iterable[str] = (),
        start: int = 1,
    ) -> tuple[str, list[Any]]:
        """Build a WHERE clause from ``column[__op]`` filters."""
        clauses: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(self._encode(value))
            return self._placeholder(start + len(params) - 1)

        for raw_key, value in (filters or {}).items():
            column, _, op = raw_key.partition("__")
            column = _check_identifier(column)
            if op == "in" or (not op and isinstance(value, (list, tuple, set, frozenset))):
                values = list(value)
                if not values:
                    clauses.append("1 = 0")
                else:
                    clauses.append(f"{column} IN ({', '.join(bind(v) for v in values)})")
            elif value is None and op in ("", "ne"):
                clauses.append(f"{column} IS {'NOT ' if op == 'ne' else ''}NULL")
            elif not op:
                clauses.append(f"{column} = {bind(value)}")
            elif op in OPERATORS:
                clauses.append(f"{column} {OPERATORS[op]} {bind(value)}")
            else:
                raise ValueError(f"Unknown filter operator: {op!r}")

        columns = [_check_identifier(c) for c in search_columns]
        if search and columns:
            pattern = f"%{search}%"
            ors = [f"{c} {self.like_operator} {bind(pattern)}" for c in columns]
            clauses.append(f"({' OR '.join(ors)})")

        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _prepare_insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        row = dict(record)
        key = TABLE_KEYS[table]
        if key == "id" and not row.get("id"):
            row["id"] = uuid.uuid4().hex
        now = _now()
        row.setdefault("created_at", now)
        if table in TABLES_WITH_UPDATED_AT:
            row["updated_at"] = now
        return row

    def _prepare_patch(self, table: str, patch: dict[str, Any]) -> dict[str, Any]:
        row = dict(patch)
        if table in TABLES_WITH_UPDATED_AT:
            row["updated_at"] = _now()
        return row

    # -----------------------------------------------------------------------
    # Carrier profiles
    # -----------------------------------------------------------------------

    async def get_carrier_profile(self, user_id: str) -> CarrierProfile | None:
        rows = await self.query("carrier_profiles", {"user_id": user_id}, limit=1)
        return CarrierProfile(**rows[0]) if rows else None

    async def save_carrier_profile(self, user_id: str, fields: dict[str, Any]) -> CarrierProfile:
        existing = await self.get_carrier_profile(user_id)
        if existing is None:
            row = await self.insert("carrier_profiles", {"user_id": user_id, **fields})
        else:
            row = await self.update("carrier_profiles", user_id, fields)
        return CarrierProfile(**row)

    async def list_carrier_ids(self) -> list[str]:
        rows = await self.query("carrier_profiles", order_by="user_id")
        return [r["user_id"] for r in rows]

    # -----------------------------------------------------------------------
    # Brokers
    # -----------------------------------------------------------------------

    async def get_broker(self, carrier_id: str, broker_id: str) -> Broker | None:
        rows = await self.query(
            "brokers", {"id": broker_id, "carrier_id": carrier_id}, limit=1
        )
        return Broker(**rows[0]) if rows else None

    async def get_broker_by_id(self, broker_id: str) -> Broker | None:
        row = await self._get("brokers", broker_id)
        return Broker(**row) if row else None

    async def list_brokers(
        self,
        carrier_id: str,
        status: OutreachStatus | None = None,
        order_by: str = "created_at",
        descending: bool = True,
        limit: int | None = None,
        exclude_blacklisted: bool = False,
    ) -> list[Broker]:
        filters: dict[str, Any] = {"carrier_id": carrier_id}
        if status is not None:
            filters["outreach_status"] = status
        elif exclude_blacklisted:
            filters["outreach_status__ne"] = OutreachStatus.BLACKLISTED
        rows = await self.query(
            "brokers", filters, order_by=order_by, descending=descending, limit=limit
        )
        return [Broker(**r) for r in rows]

    async def search_brokers(self, carrier_id: str, q: str, limit: int = 20) -> list[Broker]:
        rows = await self.query(
            "brokers",
            {"carrier_id": carrier_id},
            search=q,
            search_columns=("company_name", "mc_number", "contact_name", "email"),
            order_by="relationship_score",
            descending=True,
            limit=limit,
        )
        return [Broker(**r) for r in rows]

    async def create_broker(self, broker: Broker) -> Broker:
        row = await self.insert("brokers", broker.model_dump(exclude_none=True))
        return Broker(**row)

    async def update_broker_fields(self, broker_id: str, **fields: Any) -> Broker | None:
        row = await self.update("brokers", broker_id, fields)
        return Broker(**row) if row else None

    async def record_contact_attempt(self, broker_id: str, when: datetime) -> Broker | None:
        """Bump the attempt counter and last-contact timestamp in one write."""
        row = await self.increment(
            "brokers", broker_id, "total_outreach_attempts", 1, last_contact_date=when
        )
        return Broker(**row) if row else None

    async def find_broker_by_mc(self, carrier_id: str, mc_number: str) -> Broker | None:
        rows = await self.query(
            "brokers", {"carrier_id": carrier_id, "mc_number": mc_number}, limit=1
        )
        return Broker(**rows[0]) if rows else None

    async def count_brokers_in_states(self, carrier_id: str, states: list[str]) -> int:
        return await self.count("brokers", {"carrier_id": carrier_id, "address_state__in": states})

    # -----------------------------------------------------------------------
    # Lead pool
    # -----------------------------------------------------------------------

    async def get_lead(self, lead_id: str) -> BrokerLead | None:
        row = await self._get("broker_leads", lead_id)
        return BrokerLead(**row) if row else None

    async def list_active_leads(self, states: list[str], limit: int) -> list[BrokerLead]:
        rows = await self.query(
            "broker_leads",
            {"address_state__in": states, "authority_status": "ACTIVE", "broker_authority": True},
            order_by="created_at",
            limit=limit,
        )
        return [BrokerLead(**r) for r in rows]

    async def count_active_leads_in_states(self, states: list[str]) -> int:
        return await self.count(
            "broker_leads", {"address_state__in": states, "authority_status": "ACTIVE"}
        )

    async def find_lead_by_mc(self, mc_number: str) -> BrokerLead | None:
        rows = await self.query("broker_leads", {"mc_number": mc_number}, limit=1)
        return BrokerLead(**rows[0]) if rows else None

    async def save_lead(self, lead: BrokerLead) -> BrokerLead:
        """Insert a lead, or refresh the existing row with the same MC number."""
        data = lead.model_dump(exclude_none=True, exclude={"id", "created_at"})
        if lead.mc_number:
            rows = await self.query("broker_leads", {"mc_number": lead.mc_number}, limit=1)
            if rows:
                row = await self.update("broker_leads", rows[0]["id"], data)
                return BrokerLead(**row)
        row = await self.insert("broker_leads", data)
        return BrokerLead(**row)

    async def search_leads(
        self, q: str | None = None, state: str | None = None, limit: int = 50
    ) -> list[BrokerLead]:
        """Active broker-authority leads matching a name/MC search and/or a state."""
        filters: dict[str, Any] = {"authority_status": "ACTIVE", "broker_authority": True}
        if state:
            filters["address_state"] = state.upper()
        rows = await self.query(
            "broker_leads",
            filters,
            search=q,
            search_columns=("legal_name", "dba_name", "mc_number", "address_state"),
            order_by="legal_name",
            limit=limit,
        )
        return [BrokerLead(**r) for r in rows]

    # -----------------------------------------------------------------------
    # Campaign steps
    # -----------------------------------------------------------------------

    async def insert_step(self, step: CampaignStep) -> CampaignStep:
        row = await self.insert("outreach_campaigns", step.model_dump(exclude_none=True))
        return CampaignStep(**row)

    async def get_step(self, step_id: str) -> CampaignStep | None:
        row = await self._get("outreach_campaigns", step_id)
        return CampaignStep(**row) if row else None

    async def get_due_steps(self, now: datetime, limit: int = 100) -> list[CampaignStep]:
        rows = await self.query(
            "outreach_campaigns",
            {"status": CampaignStatus.SCHEDULED, "scheduled_at__lte": now},
            order_by="scheduled_at",
            limit=limit,
        )
        return [CampaignStep(**r) for r in rows]

    async def set_step_status(
        self,
        step_id: str,
        expected: CampaignStatus,
        new_status: CampaignStatus,
        **fields: Any,
    ) -> bool:
        """Move a step to ``new_status`` only if it is still ``expected``.

        Returns False when another writer got there first.
        """
        changed = await self.update_where(
            "outreach_campaigns",
            {"id": step_id, "status": expected},
            {"status": new_status, **fields},
        )
        return changed > 0

    async def cancel_scheduled_steps(self, carrier_id: str, broker_id: str, reason: str) -> int:
        return await self.update_where(
            "outreach_campaigns",
            {"carrier_id": carrier_id, "broker_id": broker_id, "status": CampaignStatus.SCHEDULED},
            {"status": CampaignStatus.CANCELLED, "error_message": reason},
        )

    async def latest_sent_step(self, carrier_id: str, broker_id: str) -> CampaignStep | None:
        rows = await self.query(
            "outreach_campaigns",
            {"carrier_id": carrier_id, "broker_id": broker_id, "status": CampaignStatus.SENT},
            order_by="sent_at",
            descending=True,
            limit=1,
        )
        return CampaignStep(**rows[0]) if rows else None

    async def list_steps(
        self,
        carrier_id: str,
        broker_id: str | None = None,
        method: ContactMethod | None = None,
        limit: int | None = 50,
    ) -> list[CampaignStep]:
        filters: dict[str, Any] = {"carrier_id": carrier_id}
        if broker_id:
            filters["broker_id"] = broker_id
        if method:
            filters["method"] = method
        rows = await self.query(
            "outreach_campaigns", filters, order_by="created_at", descending=True, limit=limit
        )
        return [CampaignStep(**r) for r in rows]

    # -----------------------------------------------------------------------
    # Templates
    # -----------------------------------------------------------------------

    async def get_templates(self, category: TemplateCategory) -> list[EmailTemplate]:
        rows = await self.query(
            "email_templates",
            {"category": category, "is_default": True},
            order_by="sequence_step",
        )
        return [EmailTemplate(**r) for r in rows]

    async def list_templates(self, carrier_id: str) -> list[EmailTemplate]:
        rows = await self.query("email_templates", order_by="sequence_step")
        return [
            EmailTemplate(**r) for r in rows
            if r.get("carrier_id") in (None, carrier_id)
        ]

    async def find_templates_by_name(self, name: str) -> list[EmailTemplate]:
        rows = await self.query("email_templates", {"name": name})
        return [EmailTemplate(**r) for r in rows]

    async def insert_template(self, template: EmailTemplate) -> EmailTemplate:
        row = await self.insert("email_templates", template.model_dump(exclude_none=True))
        return EmailTemplate(**row)

    # -----------------------------------------------------------------------

    async def _get(self, table: str, key: Any) -> dict[str, Any] | None:
        rows = await self.query(table, {TABLE_KEYS[table]: key}, limit=1)
        return rows[0] if rows else None
