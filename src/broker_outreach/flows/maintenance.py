"""Prefect flows for scheduled outreach maintenance tasks."""

from __future__ import annotations

from prefect import flow, task

from broker_outreach.campaign_scheduler import CampaignScheduler
from broker_outreach.core.config import Settings
from broker_outreach.core.db_factory import create_database
from broker_outreach.crm import RelationshipService
from broker_outreach.providers.sendgrid import SendGridEmailProvider
from broker_outreach.providers.twilio import TwilioVoiceProvider


@task(name="sweep-due-follow-ups")
async def sweep_follow_ups_task() -> dict:
    settings = Settings()
    db = create_database(settings)
    email = SendGridEmailProvider(settings)
    voice = TwilioVoiceProvider(settings)
    await db.connect()
    try:
        scheduler = CampaignScheduler(db, email, voice, settings)
        result = await scheduler.sweep_due_follow_ups()
        return result.model_dump(mode="json", exclude={"items"})
    finally:
        await email.close()
        await voice.close()
        await db.close()


@task(name="rescore-relationships")
async def rescore_relationships_task() -> dict[str, int]:
    settings = Settings()
    db = create_database(settings)
    await db.connect()
    try:
        service = RelationshipService(db, settings)
        return {
            carrier_id: await service.score_all(carrier_id)
            for carrier_id in await db.list_carrier_ids()
        }
    finally:
        await db.close()


@flow(name="daily-outreach-maintenance", log_prints=True)
async def daily_maintenance_flow() -> dict:
    """Run all daily maintenance tasks:
    1. Send due follow-ups (cancelling ones for brokers who replied or were blacklisted)
    2. Re-score every carrier's broker relationships
    """
    sweep = await sweep_follow_ups_task()
    print(
        f"Follow-ups: processed={sweep['processed']} sent={sweep['sent']} "
        f"failed={sweep['failed']} cancelled={sweep['cancelled']} "
        f"deferred={sweep['deferred']} skipped={sweep['skipped']}"
    )

    rescored = await rescore_relationships_task()
    for carrier_id, count in rescored.items():
        print(f"[{carrier_id}] rescored {count} brokers")

    return {"sweep": sweep, "rescored": rescored}
