"""Tests for the maintenance tasks, run against a file-backed SQLite store."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from broker_outreach.core.config import Settings
from broker_outreach.core.database import Database
from broker_outreach.core.models import CampaignStatus, CampaignStep, CampaignType
from broker_outreach.flows.maintenance import rescore_relationships_task, sweep_follow_ups_task


@pytest.fixture
async def file_db(tmp_path, monkeypatch, make_broker):
    path = str(tmp_path / "outreach.db")
    monkeypatch.setenv("USE_SQLITE", "true")
    monkeypatch.setenv("SQLITE_PATH", path)
    for name in ("SENDGRID_API_KEY", "SENDGRID_FROM_EMAIL", "TWILIO_ACCOUNT_SID"):
        monkeypatch.setenv(name, "")

    db = Database(Settings(use_sqlite=True, sqlite_path=path))
    await db.connect()
    await db.save_carrier_profile("carrier_1", {"company_name": "Garden State Haulers"})
    broker = await db.create_broker(make_broker(total_loads_booked=3))
    step = await db.insert_step(CampaignStep(
        carrier_id="carrier_1",
        broker_id=broker.id,
        campaign_type=CampaignType.FOLLOW_UP,
        sequence_step=2,
        subject="Checking in",
        body_text="Still have capacity.",
        scheduled_at=datetime(2020, 1, 6, 15, 0, tzinfo=timezone.utc),
    ))
    yield db, broker, step
    await db.close()


class TestMaintenanceTasks:
    async def test_sweep_sends_due_step(self, file_db):
        db, _, step = file_db
        summary = await sweep_follow_ups_task.fn()
        assert summary["processed"] == 1
        assert summary["sent"] == 1
        assert "items" not in summary
        assert (await db.get_step(step.id)).status == CampaignStatus.SENT

    async def test_rescore_every_carrier(self, file_db):
        db, broker, _ = file_db
        assert await rescore_relationships_task.fn() == {"carrier_1": 1}
        assert (await db.get_broker_by_id(broker.id)).relationship_score is not None
