"""Tests for Pydantic models and enums."""

from __future__ import annotations

from datetime import datetime, timezone

from broker_outreach.core.models import (
    Broker,
    BrokerLead,
    CampaignStatus,
    CampaignStep,
    CarrierProfile,
    ContactMethod,
    OutreachStatus,
    SweepResult,
)


class TestOutreachStatusEnum:
    def test_all_6_statuses(self):
        assert len(OutreachStatus) == 6

    def test_from_string(self):
        assert OutreachStatus("negotiating") == OutreachStatus.NEGOTIATING


class TestCampaignStatusEnum:
    def test_all_6_statuses(self):
        assert len(CampaignStatus) == 6

    def test_sending_value(self):
        assert CampaignStatus.SENDING.value == "sending"


class TestBroker:
    def test_defaults(self):
        broker = Broker(carrier_id="c1", company_name="Acme")
        assert broker.outreach_status == OutreachStatus.NEW
        assert broker.total_outreach_attempts == 0
        assert broker.total_revenue == 0.0
        assert broker.source == "manual"
        assert broker.preferred_lanes == []

    def test_coerces_stored_values(self):
        broker = Broker(
            carrier_id="c1",
            insurance_on_file=1,
            last_contact_date="2026-03-10T17:00:00+00:00",
            outreach_status="contacted",
        )
        assert broker.insurance_on_file is True
        assert broker.last_contact_date == datetime(2026, 3, 10, 17, 0, tzinfo=timezone.utc)
        assert broker.outreach_status == OutreachStatus.CONTACTED


class TestBrokerLead:
    def test_no_outreach_status_by_default(self):
        lead = BrokerLead(legal_name="Pool Freight LLC")
        assert lead.outreach_status is None
        assert lead.broker_authority is False


class TestCarrierProfile:
    def test_list_fields_default_empty(self):
        profile = CarrierProfile(user_id="c1")
        assert profile.equipment_types == []
        assert profile.preferred_lanes == []


class TestCampaignStep:
    def test_defaults(self):
        step = CampaignStep(carrier_id="c1", broker_id="b1")
        assert step.status == CampaignStatus.SCHEDULED
        assert step.method == ContactMethod.EMAIL
        assert step.sequence_step == 1


class TestSweepResult:
    def test_empty(self):
        result = SweepResult()
        assert result.processed == 0
        assert result.items == []
