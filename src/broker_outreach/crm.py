"""Carrier CRM: broker records, carrier profiles, relationship scores, and the lead pool."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from broker_outreach.core.config import Settings
from broker_outreach.core.errors import ConflictError, NotFoundError, ValidationError
from broker_outreach.core.models import (
    Broker,
    BrokerLead,
    BrokerScoreResult,
    CarrierProfile,
    OutreachStatus,
)
from broker_outreach.core.records import RecordStore
from broker_outreach.providers.fmcsa import FMCSAClient, normalize_mc
from broker_outreach.relationship import calculate_relationship_score, needs_attention
from broker_outreach.state_machine import can_transition, validate_transition

logger = logging.getLogger(__name__)

# Derived or ownership fields callers may not write directly
PROTECTED_FIELDS = frozenset({
    "id", "carrier_id", "created_at", "updated_at", "relationship_score", "response_rate",
})

BROKER_FIELDS = frozenset(Broker.model_fields) - PROTECTED_FIELDS

PROFILE_FIELDS = frozenset(CarrierProfile.model_fields) - {"user_id", "created_at", "updated_at"}

# sort key -> (column, descending)
BROKER_SORTS: dict[str, tuple[str, bool]] = {
    "score": ("relationship_score", True),
    "recent": ("last_contact_date", True),
    "revenue": ("total_revenue", True),
    "created": ("created_at", True),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _pick(data: dict[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k in allowed}


# ---------------------------------------------------------------------------
# Brokers
# ---------------------------------------------------------------------------


class BrokerCRM:
    """A carrier's private broker records."""

    def __init__(self, db: RecordStore, settings: Settings | None = None):
        self.db = db
        self.settings = settings or Settings()

    async def list_brokers(
        self,
        carrier_id: str,
        status: OutreachStatus | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> list[Broker]:
        column, descending = BROKER_SORTS.get(sort or "created", BROKER_SORTS["created"])
        return await self.db.list_brokers(
            carrier_id, status=status, order_by=column, descending=descending, limit=limit
        )

    async def get(self, carrier_id: str, broker_id: str) -> Broker:
        broker = await self.db.get_broker(carrier_id, broker_id)
        if broker is None:
            raise NotFoundError("Broker not found")
        return broker

    async def search(self, carrier_id: str, q: str) -> list[Broker]:
        if not q or not q.strip():
            raise ValidationError("q (search query) required")
        return await self.db.search_brokers(carrier_id, q.strip())

    async def create(self, carrier_id: str, data: dict[str, Any]) -> Broker:
        fields = _pick(data, BROKER_FIELDS)
        if not fields.get("company_name"):
            raise ValidationError("company_name required")
        fields.setdefault("authority_status", "unknown")
        broker = Broker(carrier_id=carrier_id, **fields)
        try:
            created = await self.db.create_broker(broker)
        except ConflictError as e:
            raise ConflictError("Broker with this MC number already exists in your CRM") from e
        logger.info("Carrier %s added broker %s (%s)", carrier_id, created.id, created.company_name)
        return created

    async def update(self, carrier_id: str, broker_id: str, data: dict[str, Any]) -> Broker:
        """Apply a partial update; protected and unknown fields are dropped."""
        broker = await self.get(carrier_id, broker_id)
        fields = _pick(data, BROKER_FIELDS)

        if "outreach_status" in fields and fields["outreach_status"] is not None:
            target = OutreachStatus(fields["outreach_status"])
            validate_transition(broker.outreach_status, target)
            fields["outreach_status"] = target
            if target == OutreachStatus.BLACKLISTED:
                await self.db.cancel_scheduled_steps(
                    carrier_id, broker_id, "Cancelled: broker blacklisted"
                )

        if not fields:
            return broker
        try:
            updated = await self.db.update_broker_fields(broker_id, **fields)
        except ConflictError as e:
            raise ConflictError("Broker with this MC number already exists in your CRM") from e
        return updated or broker

    async def delete(self, carrier_id: str, broker_id: str) -> None:
        await self.get(carrier_id, broker_id)
        await self.db.delete("brokers", broker_id)
        logger.info("Carrier %s deleted broker %s", carrier_id, broker_id)

    async def log_contact(
        self,
        carrier_id: str,
        broker_id: str,
        responded: bool = False,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> Broker:
        """Record a manual touch (call, text, in person) against a broker."""
        now = now or _now()
        broker = await self.get(carrier_id, broker_id)

        counted = await self.db.record_contact_attempt(broker_id, now)
        attempts = counted.total_outreach_attempts if counted else broker.total_outreach_attempts + 1

        patch: dict[str, Any] = {}
        if broker.first_contact_date is None:
            patch["first_contact_date"] = now
        if responded:
            bumped = await self.db.increment("brokers", broker_id, "total_responses", 1)
            responses = (bumped or {}).get("total_responses", broker.total_responses + 1)
            patch["response_rate"] = min(100.0, round(responses / attempts * 100, 2))
            if can_transition(broker.outreach_status, OutreachStatus.RESPONDED):
                patch["outreach_status"] = OutreachStatus.RESPONDED
        elif broker.outreach_status in (None, OutreachStatus.NEW):
            patch["outreach_status"] = OutreachStatus.CONTACTED
        if notes:
            patch["notes"] = notes

        updated = await self.db.update_broker_fields(broker_id, **patch) if patch else counted
        return updated or broker

    async def import_lead(self, carrier_id: str, lead_id: str) -> Broker:
        """Copy a shared-pool lead into this carrier's CRM."""
        if not lead_id:
            raise ValidationError("lead_id required")
        lead = await self.db.get_lead(lead_id)
        if lead is None:
            raise NotFoundError("Lead not found")
        if lead.mc_number and await self.db.find_broker_by_mc(carrier_id, lead.mc_number):
            raise ConflictError("Broker already in your CRM")

        broker = Broker(
            carrier_id=carrier_id,
            company_name=lead.legal_name or lead.company_name,
            contact_name=lead.contact_name or lead.dba_name,
            mc_number=lead.mc_number,
            dot_number=lead.dot_number,
            email=lead.email,
            phone=lead.phone,
            address_city=lead.address_city,
            address_state=lead.address_state,
            authority_status=lead.authority_status or "unknown",
            credit_score=lead.credit_score,
            days_to_pay=lead.days_to_pay,
            preferred_lanes=lead.preferred_lanes,
            source="fmcsa_import",
        )
        try:
            return await self.db.create_broker(broker)
        except ConflictError as e:
            raise ConflictError("Broker already in your CRM") from e


# ---------------------------------------------------------------------------
# Carrier profiles
# ---------------------------------------------------------------------------


class CarrierProfiles:
    def __init__(self, db: RecordStore):
        self.db = db

    async def get(self, carrier_id: str) -> CarrierProfile:
        profile = await self.db.get_carrier_profile(carrier_id)
        if profile is None:
            raise NotFoundError("Carrier profile not found")
        return profile

    async def create(self, carrier_id: str, data: dict[str, Any]) -> CarrierProfile:
        if await self.db.get_carrier_profile(carrier_id) is not None:
            raise ConflictError("Carrier profile already exists")
        return await self.db.save_carrier_profile(carrier_id, self._clean(data))

    async def update(self, carrier_id: str, data: dict[str, Any]) -> CarrierProfile:
        await self.get(carrier_id)
        return await self.db.save_carrier_profile(carrier_id, self._clean(data))

    @staticmethod
    def _clean(data: dict[str, Any]) -> dict[str, Any]:
        fields = _pick(data, PROFILE_FIELDS)
        if fields.get("home_base_state"):
            fields["home_base_state"] = fields["home_base_state"].strip().upper()
        return fields


# ---------------------------------------------------------------------------
# Relationship scores
# ---------------------------------------------------------------------------


class RelationshipService:
    """Scores CRM brokers and persists ``relationship_score``: one write per broker scored."""

    def __init__(self, db: RecordStore, settings: Settings | None = None):
        self.db = db
        self.settings = settings or Settings()

    async def score(self, carrier_id: str, broker_id: str, now: datetime | None = None) -> BrokerScoreResult:
        broker = await self.db.get_broker(carrier_id, broker_id)
        if broker is None:
            raise NotFoundError("Broker not found")
        result = calculate_relationship_score(broker, now)
        await self.db.update_broker_fields(broker.id, relationship_score=result.score)
        return BrokerScoreResult(
            broker_id=broker.id,
            company=broker.company_name,
            score=result.score,
            breakdown=result.breakdown,
            label=result.label,
        )

    async def score_all(self, carrier_id: str, now: datetime | None = None) -> int:
        brokers = await self.db.list_brokers(carrier_id)
        for broker in brokers:
            result = calculate_relationship_score(broker, now)
            await self.db.update_broker_fields(broker.id, relationship_score=result.score)
        logger.info("Scored %d brokers for carrier %s", len(brokers), carrier_id)
        return len(brokers)

    async def top_brokers(self, carrier_id: str, limit: int = 10) -> list[Broker]:
        return await self.db.list_brokers(
            carrier_id, order_by="relationship_score", descending=True, limit=limit
        )

    async def needs_attention(self, carrier_id: str, now: datetime | None = None) -> list[Broker]:
        brokers = await self.db.list_brokers(carrier_id, exclude_blacklisted=True)
        return needs_attention(brokers, self.settings.stale_contact_days, now)


# ---------------------------------------------------------------------------
# Shared lead pool
# ---------------------------------------------------------------------------


class LeadDirectory:
    """The carrier-agnostic broker lead pool, fed from FMCSA."""

    def __init__(self, db: RecordStore, fmcsa: FMCSAClient):
        self.db = db
        self.fmcsa = fmcsa

    async def search(self, q: str | None = None, state: str | None = None) -> list[BrokerLead]:
        if not q and not state:
            raise ValidationError("Provide q (search term) or state filter")
        return await self.db.search_leads(q, state)

    async def import_mc(self, mc_number: str) -> tuple[BrokerLead, bool]:
        """Fetch a broker by MC into the pool. Returns ``(lead, already_imported)``."""
        mc = normalize_mc(mc_number or "")
        if not mc:
            raise ValidationError("mc number required")
        existing = await self.db.find_lead_by_mc(mc)
        if existing is not None:
            return existing, True
        lead = await self.fmcsa.fetch_by_mc(mc)
        if lead is None:
            raise NotFoundError(f"No broker found for MC {mc} in FMCSA database")
        saved = await self.db.save_lead(lead)
        logger.info("Imported FMCSA broker MC %s into the lead pool", mc)
        return saved, False

    async def import_search(self, name: str) -> list[BrokerLead]:
        """Search FMCSA by name and upsert every broker found into the pool."""
        if not name or not name.strip():
            raise ValidationError("name required")
        found = await self.fmcsa.search(name)
        return [await self.db.save_lead(lead) for lead in found]
