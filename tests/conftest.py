"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from broker_outreach.core.config import Settings
from broker_outreach.core.database import Database
from broker_outreach.core.errors import DeliveryError
from broker_outreach.core.models import Broker, CarrierProfile, OutreachStatus
from broker_outreach.providers.base import (
    DeliveryResult,
    EmailMessage,
    EmailProvider,
    VoiceProvider,
)

# 10:00 in California, 13:00 in New Jersey (daylight time)
MIDDAY = datetime(2026, 3, 10, 17, 0, tzinfo=timezone.utc)
CARRIER_ID = "carrier_1"


# ---------------------------------------------------------------------------
# Delivery doubles
# ---------------------------------------------------------------------------


class RecordingEmail(EmailProvider):
    provider_name = "recording"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[EmailMessage] = []

    @property
    def dry_run(self) -> bool:
        return False

    async def send(self, message: EmailMessage) -> DeliveryResult:
        if self.fail:
            raise DeliveryError("mailbox unavailable")
        self.sent.append(message)
        return DeliveryResult(message_id=f"msg-{len(self.sent)}")


class RecordingVoice(VoiceProvider):
    provider_name = "recording"

    def __init__(self):
        self.calls: list[tuple[str, str]] = []

    @property
    def dry_run(self) -> bool:
        return False

    async def place_call(self, to_number: str, twiml: str) -> DeliveryResult:
        self.calls.append((to_number, twiml))
        return DeliveryResult(message_id=f"CA{len(self.calls):04d}")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        use_sqlite=True,
        sqlite_path=":memory:",
        jwt_secret="test-secret",
        cron_secret="",
        sendgrid_api_key="",
        sendgrid_from_email="",
        twilio_account_sid="",
        twilio_auth_token="",
        twilio_from_number="",
        fmcsa_api_key="",
    )


@pytest.fixture
async def db(settings):
    database = Database(settings)
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def email() -> RecordingEmail:
    return RecordingEmail()


@pytest.fixture
def voice() -> RecordingVoice:
    return RecordingVoice()


@pytest.fixture
def make_carrier():
    """Factory fixture for carrier profiles."""

    def _make(user_id: str = CARRIER_ID, **kwargs) -> CarrierProfile:
        fields = {
            "company_name": "Garden State Haulers",
            "owner_name": "Sam Rivera",
            "mc_number": "900100",
            "dot_number": "3100200",
            "phone": "555-0100",
            "email": "sam@gsh.example",
            "home_base_city": "Newark",
            "home_base_state": "NJ",
            "equipment_types": ["dry_van"],
            "preferred_lanes": ["NJ-FL", "NJ-IL"],
        }
        fields.update(kwargs)
        return CarrierProfile(user_id=user_id, **fields)

    return _make


@pytest.fixture
def make_broker():
    """Factory fixture for CRM brokers (not persisted)."""

    def _make(carrier_id: str = CARRIER_ID, **kwargs) -> Broker:
        fields = {
            "company_name": "Keystone Logistics",
            "contact_name": "Dana",
            "mc_number": "123456",
            "email": "loads@keystone.example",
            "phone": "+15550100200",
            "address_state": "PA",
            "authority_status": "active",
            "outreach_status": OutreachStatus.NEW,
        }
        fields.update(kwargs)
        return Broker(carrier_id=carrier_id, **fields)

    return _make


@pytest.fixture
async def carrier(db, make_carrier) -> CarrierProfile:
    profile = make_carrier()
    return await db.save_carrier_profile(
        profile.user_id, profile.model_dump(exclude={"user_id", "created_at", "updated_at"})
    )
