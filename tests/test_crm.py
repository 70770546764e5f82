"""Tests for the carrier CRM: brokers, profiles, scores, and the lead pool."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from broker_outreach.core.config import Settings
from broker_outreach.core.errors import (
    ConflictError,
    NotFoundError,
    TransitionError,
    ValidationError,
)
from broker_outreach.core.models import (
    BrokerLead,
    CampaignStatus,
    CampaignStep,
    OutreachStatus,
)
from broker_outreach.crm import BrokerCRM, CarrierProfiles, LeadDirectory, RelationshipService
from broker_outreach.providers.fmcsa import FMCSAClient

CARRIER = "carrier_1"
NOW = datetime(2026, 3, 10, 17, 0, tzinfo=timezone.utc)


@pytest.fixture
def crm(db, settings) -> BrokerCRM:
    return BrokerCRM(db, settings)


# ---------------------------------------------------------------------------
# Brokers
# ---------------------------------------------------------------------------


class TestCreateBroker:
    async def test_requires_company_name(self, crm):
        with pytest.raises(ValidationError, match="company_name"):
            await crm.create(CARRIER, {"mc_number": "1"})

    async def test_defaults_and_protected_fields(self, crm):
        broker = await crm.create(CARRIER, {
            "company_name": "Keystone Logistics",
            "mc_number": "123456",
            "relationship_score": 99,
            "carrier_id": "someone_else",
            "unknown_field": "ignored",
        })
        assert broker.carrier_id == CARRIER
        assert broker.relationship_score is None
        assert broker.authority_status == "unknown"
        assert broker.outreach_status == OutreachStatus.NEW

    async def test_duplicate_mc_conflicts(self, crm):
        await crm.create(CARRIER, {"company_name": "A", "mc_number": "123456"})
        with pytest.raises(ConflictError, match="already exists"):
            await crm.create(CARRIER, {"company_name": "B", "mc_number": "123456"})

    async def test_same_mc_for_another_carrier(self, crm):
        await crm.create(CARRIER, {"company_name": "A", "mc_number": "123456"})
        other = await crm.create("carrier_2", {"company_name": "A", "mc_number": "123456"})
        assert other.carrier_id == "carrier_2"


class TestQueryBrokers:
    async def test_get_is_scoped_to_carrier(self, crm):
        broker = await crm.create(CARRIER, {"company_name": "Keystone"})
        with pytest.raises(NotFoundError):
            await crm.get("carrier_2", broker.id)

    async def test_search(self, crm):
        await crm.create(CARRIER, {"company_name": "Keystone Logistics"})
        await crm.create(CARRIER, {"company_name": "Empire Freight"})
        found = await crm.search(CARRIER, "keyst")
        assert [b.company_name for b in found] == ["Keystone Logistics"]

    async def test_search_requires_query(self, crm):
        with pytest.raises(ValidationError):
            await crm.search(CARRIER, "  ")

    async def test_filter_by_status(self, crm):
        await crm.create(CARRIER, {"company_name": "A"})
        await crm.create(CARRIER, {"company_name": "B", "outreach_status": "blacklisted"})
        brokers = await crm.list_brokers(CARRIER, status=OutreachStatus.BLACKLISTED)
        assert [b.company_name for b in brokers] == ["B"]


class TestUpdateBroker:
    async def test_protected_fields_ignored(self, crm):
        broker = await crm.create(CARRIER, {"company_name": "Keystone"})
        updated = await crm.update(CARRIER, broker.id, {"response_rate": 99, "notes": "Good pay"})
        assert updated.response_rate is None
        assert updated.notes == "Good pay"

    async def test_illegal_transition(self, crm):
        broker = await crm.create(CARRIER, {"company_name": "Keystone"})
        with pytest.raises(TransitionError):
            await crm.update(CARRIER, broker.id, {"outreach_status": "active"})

    async def test_blacklist_cancels_scheduled_steps(self, db, crm):
        broker = await crm.create(CARRIER, {"company_name": "Keystone", "email": "a@b.example"})
        step = await db.insert_step(CampaignStep(
            carrier_id=CARRIER, broker_id=broker.id, sequence_step=2, scheduled_at=NOW,
        ))
        updated = await crm.update(CARRIER, broker.id, {"outreach_status": "blacklisted"})
        assert updated.outreach_status == OutreachStatus.BLACKLISTED
        assert (await db.get_step(step.id)).status == CampaignStatus.CANCELLED

    async def test_delete(self, crm):
        broker = await crm.create(CARRIER, {"company_name": "Keystone"})
        await crm.delete(CARRIER, broker.id)
        with pytest.raises(NotFoundError):
            await crm.get(CARRIER, broker.id)


class TestLogContact:
    async def test_first_touch(self, crm):
        broker = await crm.create(CARRIER, {"company_name": "Keystone"})
        updated = await crm.log_contact(CARRIER, broker.id, now=NOW)
        assert updated.total_outreach_attempts == 1
        assert updated.outreach_status == OutreachStatus.CONTACTED
        assert updated.first_contact_date == NOW
        assert updated.last_contact_date == NOW

    async def test_responded_touch(self, crm):
        broker = await crm.create(CARRIER, {"company_name": "Keystone"})
        await crm.log_contact(CARRIER, broker.id, now=NOW)
        updated = await crm.log_contact(CARRIER, broker.id, responded=True, notes="Call back Monday",
                                        now=NOW + timedelta(days=1))
        assert updated.total_outreach_attempts == 2
        assert updated.total_responses == 1
        assert updated.response_rate == 50.0
        assert updated.outreach_status == OutreachStatus.RESPONDED
        assert updated.first_contact_date == NOW
        assert updated.notes == "Call back Monday"


class TestImportLead:
    async def test_import(self, db, crm):
        lead = await db.save_lead(BrokerLead(
            legal_name="Empire Brokerage LLC", dba_name="Empire", mc_number="444",
            address_state="NY", authority_status="ACTIVE", broker_authority=True,
        ))
        broker = await crm.import_lead(CARRIER, lead.id)
        assert broker.company_name == "Empire Brokerage LLC"
        assert broker.contact_name == "Empire"
        assert broker.source == "fmcsa_import"
        assert broker.authority_status == "ACTIVE"

        with pytest.raises(ConflictError, match="already in your CRM"):
            await crm.import_lead(CARRIER, lead.id)

    async def test_missing_lead(self, crm):
        with pytest.raises(NotFoundError, match="Lead not found"):
            await crm.import_lead(CARRIER, "missing")


# ---------------------------------------------------------------------------
# Carrier profiles
# ---------------------------------------------------------------------------


class TestCarrierProfiles:
    async def test_lifecycle(self, db):
        profiles = CarrierProfiles(db)
        with pytest.raises(NotFoundError):
            await profiles.get(CARRIER)

        created = await profiles.create(CARRIER, {
            "company_name": "Garden State Haulers", "home_base_state": " nj ",
            "preferred_lanes": ["NJ-FL"],
        })
        assert created.home_base_state == "NJ"
        assert created.preferred_lanes == ["NJ-FL"]

        with pytest.raises(ConflictError):
            await profiles.create(CARRIER, {"company_name": "Again"})

        updated = await profiles.update(CARRIER, {"owner_name": "Sam", "user_id": "hijack"})
        assert updated.user_id == CARRIER
        assert updated.owner_name == "Sam"
        assert updated.company_name == "Garden State Haulers"

    async def test_update_requires_existing(self, db):
        with pytest.raises(NotFoundError):
            await CarrierProfiles(db).update(CARRIER, {"owner_name": "Sam"})


# ---------------------------------------------------------------------------
# Relationship scores
# ---------------------------------------------------------------------------


class TestRelationshipService:
    async def test_score_persists(self, db, settings, crm):
        broker = await crm.create(CARRIER, {"company_name": "Keystone", "total_loads_booked": 12})
        result = await RelationshipService(db, settings).score(CARRIER, broker.id, NOW)
        assert result.broker_id == broker.id
        assert result.breakdown.revenue == 25
        assert (await crm.get(CARRIER, broker.id)).relationship_score == result.score

    async def test_score_all_and_top(self, db, settings, crm):
        await crm.create(CARRIER, {"company_name": "Low"})
        await crm.create(CARRIER, {"company_name": "High", "total_loads_booked": 10,
                                   "credit_score": 96})
        service = RelationshipService(db, settings)
        assert await service.score_all(CARRIER, NOW) == 2
        top = await service.top_brokers(CARRIER, limit=1)
        assert [b.company_name for b in top] == ["High"]

    async def test_unknown_broker(self, db, settings):
        with pytest.raises(NotFoundError):
            await RelationshipService(db, settings).score(CARRIER, "missing")

    async def test_needs_attention_skips_blacklisted(self, db, settings, crm):
        await crm.create(CARRIER, {"company_name": "New"})
        await crm.create(CARRIER, {"company_name": "Banned", "outreach_status": "blacklisted"})
        flagged = await RelationshipService(db, settings).needs_attention(CARRIER, NOW)
        assert [b.company_name for b in flagged] == ["New"]


# ---------------------------------------------------------------------------
# Lead pool
# ---------------------------------------------------------------------------

FMCSA_CARRIER = {
    "legalName": "Keystone Logistics LLC",
    "dotNumber": 3100200,
    "phyState": "PA",
    "allowedToOperate": "Y",
    "brokerAuthorityStatus": "A",
}


def _fmcsa(calls: list[str]) -> FMCSAClient:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"content": [{"carrier": FMCSA_CARRIER}]})

    return FMCSAClient(Settings(fmcsa_api_key="web"), transport=httpx.MockTransport(handler))


class TestLeadDirectory:
    async def test_search_requires_filter(self, db):
        with pytest.raises(ValidationError):
            await LeadDirectory(db, _fmcsa([])).search()

    async def test_import_mc_once(self, db):
        calls: list[str] = []
        directory = LeadDirectory(db, _fmcsa(calls))

        lead, already = await directory.import_mc("MC-123456")
        assert not already
        assert lead.mc_number == "123456"
        assert lead.id is not None

        again, already = await directory.import_mc("123456")
        assert already
        assert again.id == lead.id
        assert len(calls) == 1

        found = await directory.search(state="pa")
        assert [f.mc_number for f in found] == ["123456"]
        await directory.fmcsa.close()

    async def test_import_mc_not_found(self, db):
        directory = LeadDirectory(db, FMCSAClient(Settings(fmcsa_api_key="")))
        with pytest.raises(NotFoundError, match="No broker found"):
            await directory.import_mc("123456")

    async def test_import_search(self, db):
        directory = LeadDirectory(db, _fmcsa([]))
        saved = await directory.import_search("Keystone")
        assert [lead.legal_name for lead in saved] == ["Keystone Logistics LLC"]
        assert saved[0].broker_authority
        await directory.fmcsa.close()
