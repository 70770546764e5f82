"""Outreach campaigns: initial send, follow-up fan-out, due sweep, and reply handling.

Step lifecycle::

    scheduled -> sending -> sent -> replied
        |           |-> failed
        |           '-> scheduled   (call deferred by the calling window)
        |-> failed  (no contact info)
        '-> cancelled

Every status change goes through ``RecordStore.set_step_status``, a
conditional write on the current status, so overlapping sweeps never both
dispatch the same step. Step 1 uniqueness per (carrier, broker) is a unique
index in the store; a second initiation surfaces as ConflictError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from broker_outreach.call_script import generate_call_script
from broker_outreach.compliance import can_call_now
from broker_outreach.core.config import Settings
from broker_outreach.core.errors import (
    ComplianceError,
    ConflictError,
    DeliveryError,
    NotFoundError,
    OutreachError,
    ValidationError,
)
from broker_outreach.core.models import (
    Broker,
    BulkOutreachItem,
    CampaignStatus,
    CampaignStep,
    CampaignType,
    CarrierProfile,
    ContactMethod,
    InitiationResult,
    NextAction,
    OutreachPreview,
    OutreachStats,
    OutreachStatus,
    ResponseResult,
    Sentiment,
    SweepItem,
    SweepResult,
    TemplateCategory,
)
from broker_outreach.core.records import RecordStore
from broker_outreach.providers.base import (
    DeliveryResult,
    EmailMessage,
    EmailProvider,
    VoiceProvider,
)
from broker_outreach.state_machine import can_transition, validate_transition
from broker_outreach.templates import (
    INITIAL_TEMPLATE,
    TemplateSource,
    build_template_vars,
    render_template,
)

logger = logging.getLogger(__name__)

# negotiating brokers have replied too; automated follow-ups stop for them as well
REPLIED_STATES = {OutreachStatus.RESPONDED, OutreachStatus.ACTIVE, OutreachStatus.NEGOTIATING}

NEXT_ACTION_STATUS = {
    NextAction.NEGOTIATE: OutreachStatus.NEGOTIATING,
    NextAction.ACTIVE: OutreachStatus.ACTIVE,
    NextAction.BLACKLIST: OutreachStatus.BLACKLISTED,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CampaignScheduler:
    """Drives outreach sequences for one record store and a pair of delivery providers."""

    def __init__(
        self,
        db: RecordStore,
        email: EmailProvider,
        voice: VoiceProvider,
        settings: Settings | None = None,
        templates: TemplateSource | None = None,
    ):
        self.db = db
        self.email = email
        self.voice = voice
        self.settings = settings or Settings()
        self.templates = templates or TemplateSource(db)

    # -----------------------------------------------------------------------
    # Loading and composing
    # -----------------------------------------------------------------------

    async def _load(self, carrier_id: str, broker_id: str) -> tuple[CarrierProfile, Broker]:
        if not broker_id:
            raise ValidationError("broker_id required")
        carrier = await self.db.get_carrier_profile(carrier_id)
        if carrier is None:
            raise ValidationError("Complete your carrier profile first")
        broker = await self.db.get_broker(carrier_id, broker_id)
        if broker is None:
            raise NotFoundError("Broker not found")
        return carrier, broker

    @staticmethod
    def _address(broker: Broker, method: ContactMethod) -> str | None:
        return broker.phone if method == ContactMethod.CALL else broker.email

    @staticmethod
    def _sender_name(carrier: CarrierProfile | None) -> str | None:
        if carrier is None:
            return None
        return carrier.owner_name or carrier.company_name

    async def _compose(
        self,
        carrier: CarrierProfile,
        broker: Broker,
        method: ContactMethod,
        template_name: str | None = None,
    ) -> tuple[str, str, str | None, str | None]:
        """Return ``(subject, body, template_used, twiml)``."""
        if method == ContactMethod.CALL:
            script = generate_call_script(carrier, broker)
            return f"Call to {broker.company_name or 'broker'}", script.full_script, None, script.twiml

        name = template_name or INITIAL_TEMPLATE
        template = await self.templates.get_template(name, carrier.user_id)
        subject, body = render_template(template, build_template_vars(carrier, broker))
        return subject, body, template.name, None

    async def _dispatch(
        self,
        method: ContactMethod,
        address: str,
        subject: str,
        body: str,
        twiml: str | None,
        sender_name: str | None,
    ) -> DeliveryResult:
        if method == ContactMethod.CALL:
            return await self.voice.place_call(address, twiml or "")
        return await self.email.send(
            EmailMessage(to=address, subject=subject, body=body, from_name=sender_name)
        )

    async def _record_contact(self, broker: Broker, now: datetime) -> None:
        """Attempt counter + last contact in one write, then first-contact and status."""
        await self.db.record_contact_attempt(broker.id, now)
        patch: dict = {}
        if broker.first_contact_date is None:
            patch["first_contact_date"] = now
        if broker.outreach_status in (None, OutreachStatus.NEW):
            patch["outreach_status"] = OutreachStatus.CONTACTED
        if patch:
            await self.db.update_broker_fields(broker.id, **patch)

    # -----------------------------------------------------------------------
    # Initiation
    # -----------------------------------------------------------------------

    async def initiate(
        self,
        carrier_id: str,
        broker_id: str,
        method: ContactMethod = ContactMethod.EMAIL,
        now: datetime | None = None,
    ) -> InitiationResult:
        """Create and dispatch step 1 for a broker, then schedule email follow-ups."""
        now = now or _now()
        carrier, broker = await self._load(carrier_id, broker_id)

        if broker.outreach_status == OutreachStatus.BLACKLISTED:
            raise ValidationError("Broker is blacklisted; outreach is disabled")
        address = self._address(broker, method)
        if not address:
            kind = "phone number" if method == ContactMethod.CALL else "email address"
            raise ValidationError(f"Broker has no {kind} on file")
        if method == ContactMethod.CALL:
            window = can_call_now(broker.address_state, now)
            if not window.allowed:
                raise ComplianceError(window.reason)

        subject, body, template_used, twiml = await self._compose(carrier, broker, method)

        try:
            step = await self.db.insert_step(CampaignStep(
                carrier_id=carrier_id,
                broker_id=broker.id,
                campaign_type=CampaignType.COLD_OUTREACH,
                method=method,
                status=CampaignStatus.SENDING,
                sequence_step=1,
                subject=subject,
                body_text=body,
                template_used=template_used,
                scheduled_at=now,
            ))
        except ConflictError as e:
            raise ConflictError("Initial outreach already sent to this broker") from e

        try:
            result = await self._dispatch(
                method, address, subject, body, twiml, self._sender_name(carrier)
            )
        except DeliveryError as e:
            logger.warning("Initial outreach to broker %s failed: %s", broker.id, e)
            await self.db.set_step_status(
                step.id, CampaignStatus.SENDING, CampaignStatus.FAILED, error_message=str(e)
            )
            return InitiationResult(
                success=False,
                step=await self.db.get_step(step.id) or step,
                message=f"Failed to send: {e}",
            )

        await self.db.set_step_status(
            step.id,
            CampaignStatus.SENDING,
            CampaignStatus.SENT,
            sent_at=now,
            provider_message_id=result.message_id,
        )
        await self._record_contact(broker, now)

        follow_ups = 0
        if method == ContactMethod.EMAIL:
            follow_ups = await self.schedule_follow_ups(carrier, broker, step, now)

        name = broker.company_name or "broker"
        if method == ContactMethod.CALL:
            message = f"Calling {name} at {address}"
        elif follow_ups:
            message = f"Initial outreach sent to {name}. {follow_ups} follow-ups scheduled."
        else:
            message = f"Initial outreach sent to {name}."
        if result.dry_run:
            message = f"DRY RUN: {message}"

        logger.info(
            "Initiated %s outreach to broker %s for carrier %s (follow-ups=%d, dry_run=%s)",
            method.value, broker.id, carrier_id, follow_ups, result.dry_run,
        )
        return InitiationResult(
            success=True,
            step=await self.db.get_step(step.id) or step,
            follow_ups_scheduled=follow_ups,
            dry_run=result.dry_run,
            message=message,
        )

    async def schedule_follow_ups(
        self,
        carrier: CarrierProfile,
        broker: Broker,
        parent: CampaignStep,
        now: datetime,
    ) -> int:
        """Insert one scheduled step per follow-up template. Best-effort per template."""
        try:
            templates = await self.templates.get_templates(TemplateCategory.FOLLOW_UP)
        except OutreachError as e:
            logger.warning("Could not load follow-up templates for broker %s: %s", broker.id, e)
            return 0
        if not templates:
            return 0

        variables = build_template_vars(carrier, broker)
        scheduled = 0
        for template in templates:
            try:
                subject, body = render_template(template, variables)
                await self.db.insert_step(CampaignStep(
                    carrier_id=parent.carrier_id,
                    broker_id=parent.broker_id,
                    campaign_type=CampaignType.FOLLOW_UP,
                    method=ContactMethod.EMAIL,
                    status=CampaignStatus.SCHEDULED,
                    sequence_step=template.sequence_step,
                    parent_campaign_id=parent.id,
                    subject=subject,
                    body_text=body,
                    template_used=template.name,
                    scheduled_at=now + timedelta(days=template.delay_days),
                ))
                scheduled += 1
            except OutreachError as e:
                logger.warning(
                    "Could not schedule follow-up %s for broker %s: %s",
                    template.name, broker.id, e,
                )
        return scheduled

    async def bulk_initiate(
        self,
        carrier_id: str,
        broker_ids: list[str],
        method: ContactMethod = ContactMethod.EMAIL,
        now: datetime | None = None,
    ) -> list[BulkOutreachItem]:
        """Initiate outreach to several brokers; each broker succeeds or fails alone."""
        if not broker_ids:
            raise ValidationError("broker_ids array required")
        limit = self.settings.bulk_send_max
        if len(broker_ids) > limit:
            raise ValidationError(f"Maximum {limit} brokers per bulk send")

        results: list[BulkOutreachItem] = []
        for broker_id in broker_ids:
            try:
                outcome = await self.initiate(carrier_id, broker_id, method, now)
            except (ValidationError, NotFoundError, ConflictError) as e:
                results.append(BulkOutreachItem(broker_id=broker_id, status="skipped", error=str(e)))
                continue
            except OutreachError as e:
                logger.error("Bulk outreach to broker %s failed: %s", broker_id, e)
                results.append(BulkOutreachItem(broker_id=broker_id, status="error", error=str(e)))
                continue
            broker = await self.db.get_broker_by_id(broker_id)
            results.append(BulkOutreachItem(
                broker_id=broker_id,
                company=broker.company_name if broker else None,
                status="sent" if outcome.success else "failed",
                step_id=outcome.step.id,
                error=None if outcome.success else outcome.message,
            ))
        return results

    async def preview(
        self,
        carrier_id: str,
        broker_id: str,
        method: ContactMethod = ContactMethod.EMAIL,
        template_name: str | None = None,
    ) -> OutreachPreview:
        carrier, broker = await self._load(carrier_id, broker_id)
        subject, body, _, twiml = await self._compose(carrier, broker, method, template_name)
        missing = "NO PHONE ON FILE" if method == ContactMethod.CALL else "NO EMAIL ON FILE"
        return OutreachPreview(
            method=method,
            to=self._address(broker, method) or missing,
            subject=subject,
            body=body,
            twiml=twiml,
        )

    async def history(
        self,
        carrier_id: str,
        broker_id: str | None = None,
        method: ContactMethod | None = None,
    ) -> list[CampaignStep]:
        return await self.db.list_steps(
            carrier_id, broker_id, method, limit=self.settings.history_limit
        )

    # -----------------------------------------------------------------------
    # Due follow-up sweep
    # -----------------------------------------------------------------------

    async def sweep_due_follow_ups(self, now: datetime | None = None) -> SweepResult:
        """Process every scheduled step that is due. Safe to run concurrently or repeatedly."""
        now = now or _now()
        steps = await self.db.get_due_steps(now, limit=self.settings.sweep_batch_size)
        result = SweepResult()

        for step in steps:
            try:
                item = await self._process_due_step(step, now)
            except Exception as e:
                logger.exception("Sweep failed on step %s", step.id)
                await self._fail_claimed(step.id, str(e))
                item = SweepItem(step_id=step.id, broker="Unknown", status="failed", reason=str(e))

            result.processed += 1
            result.items.append(item)
            if item.status == "sent":
                result.sent += 1
            elif item.status == "failed":
                result.failed += 1
            elif item.status == "cancelled":
                result.cancelled += 1
            elif item.status == "deferred":
                result.deferred += 1
            else:
                result.skipped += 1

        logger.info(
            "Follow-up sweep: processed=%d sent=%d failed=%d cancelled=%d deferred=%d skipped=%d",
            result.processed, result.sent, result.failed, result.cancelled,
            result.deferred, result.skipped,
        )
        return result

    async def _fail_claimed(self, step_id: str, reason: str) -> None:
        """Don't leave a step stuck in sending after an unexpected error."""
        try:
            await self.db.set_step_status(
                step_id, CampaignStatus.SENDING, CampaignStatus.FAILED, error_message=reason
            )
        except OutreachError as e:
            logger.error("Could not mark step %s failed: %s", step_id, e)

    async def _close_step(
        self,
        step: CampaignStep,
        broker_name: str,
        status: CampaignStatus,
        reason: str,
    ) -> SweepItem:
        changed = await self.db.set_step_status(
            step.id, CampaignStatus.SCHEDULED, status, error_message=reason
        )
        if not changed:
            return SweepItem(step_id=step.id, broker=broker_name, status="skipped",
                             reason="step no longer scheduled")
        return SweepItem(step_id=step.id, broker=broker_name, status=status.value, reason=reason)

    async def _process_due_step(self, step: CampaignStep, now: datetime) -> SweepItem:
        broker = await self.db.get_broker_by_id(step.broker_id)
        if broker is None:
            return await self._close_step(step, "Unknown", CampaignStatus.FAILED, "broker not found")
        name = broker.company_name or "Unknown"

        address = self._address(broker, step.method)
        if not address:
            return await self._close_step(step, name, CampaignStatus.FAILED, "no contact info")
        if broker.outreach_status in REPLIED_STATES:
            return await self._close_step(step, name, CampaignStatus.CANCELLED, "already responded")
        if broker.outreach_status == OutreachStatus.BLACKLISTED:
            return await self._close_step(step, name, CampaignStatus.CANCELLED, "blacklisted")

        claimed = await self.db.set_step_status(step.id, CampaignStatus.SCHEDULED, CampaignStatus.SENDING)
        if not claimed:
            return SweepItem(step_id=step.id, broker=name, status="skipped",
                             reason="claimed by another sweep")

        carrier = await self.db.get_carrier_profile(step.carrier_id)
        twiml = None
        if step.method == ContactMethod.CALL:
            window = can_call_now(broker.address_state, now)
            if not window.allowed:
                await self.db.set_step_status(step.id, CampaignStatus.SENDING, CampaignStatus.SCHEDULED)
                return SweepItem(step_id=step.id, broker=name, status="deferred", reason=window.reason)
            if carrier is None:
                await self.db.set_step_status(
                    step.id, CampaignStatus.SENDING, CampaignStatus.FAILED,
                    error_message="carrier profile missing",
                )
                return SweepItem(step_id=step.id, broker=name, status="failed",
                                 reason="carrier profile missing")
            twiml = generate_call_script(carrier, broker).twiml

        try:
            result = await self._dispatch(
                step.method, address, step.subject or "", step.body_text or "",
                twiml, self._sender_name(carrier),
            )
        except DeliveryError as e:
            await self.db.set_step_status(
                step.id, CampaignStatus.SENDING, CampaignStatus.FAILED, error_message=str(e)
            )
            logger.warning("Follow-up %s to %s failed: %s", step.id, name, e)
            return SweepItem(step_id=step.id, broker=name, status="failed", reason=str(e))

        await self.db.set_step_status(
            step.id,
            CampaignStatus.SENDING,
            CampaignStatus.SENT,
            sent_at=now,
            provider_message_id=result.message_id,
        )
        await self._record_contact(broker, now)
        return SweepItem(step_id=step.id, broker=name, status="sent")

    # -----------------------------------------------------------------------
    # Replies and dispositions
    # -----------------------------------------------------------------------

    async def mark_responded(
        self,
        carrier_id: str,
        broker_id: str,
        response_text: str | None = None,
        sentiment: Sentiment | None = None,
        now: datetime | None = None,
    ) -> ResponseResult:
        """Record an inbound reply: latest sent step -> replied, every scheduled step -> cancelled."""
        now = now or _now()
        broker = await self.db.get_broker(carrier_id, broker_id)
        if broker is None:
            raise NotFoundError("Broker not found")

        replied_step_id = None
        latest = await self.db.latest_sent_step(carrier_id, broker_id)
        if latest is not None:
            changed = await self.db.set_step_status(
                latest.id,
                CampaignStatus.SENT,
                CampaignStatus.REPLIED,
                replied_at=now,
                broker_response=response_text,
                response_sentiment=sentiment or Sentiment.NEUTRAL,
            )
            if changed:
                replied_step_id = latest.id

        cancelled = await self.db.cancel_scheduled_steps(
            carrier_id, broker_id, "Cancelled: broker responded"
        )

        updated = await self.db.increment(
            "brokers", broker_id, "total_responses", 1, last_contact_date=now
        )
        responses = (updated or {}).get("total_responses", broker.total_responses + 1)
        attempts = broker.total_outreach_attempts
        rate = min(100.0, round(responses / attempts * 100, 2)) if attempts > 0 else 100.0

        patch: dict = {"response_rate": rate}
        if can_transition(broker.outreach_status, OutreachStatus.RESPONDED):
            patch["outreach_status"] = OutreachStatus.RESPONDED
        refreshed = await self.db.update_broker_fields(broker_id, **patch)

        logger.info(
            "Broker %s responded to carrier %s; cancelled %d follow-ups", broker_id, carrier_id, cancelled
        )
        return ResponseResult(
            broker_id=broker_id,
            replied_step_id=replied_step_id,
            cancelled_follow_ups=cancelled,
            response_rate=rate,
            outreach_status=refreshed.outreach_status if refreshed else broker.outreach_status,
        )

    async def log_response(
        self,
        carrier_id: str,
        broker_id: str,
        response_text: str | None = None,
        next_action: NextAction | None = None,
        now: datetime | None = None,
    ) -> Broker:
        """Store a broker's reply and apply a manual disposition."""
        now = now or _now()
        broker = await self.db.get_broker(carrier_id, broker_id)
        if broker is None:
            raise NotFoundError("Broker not found")

        patch: dict = {"last_contact_date": now}
        if response_text:
            patch["notes"] = response_text
        if next_action is not None:
            target = NEXT_ACTION_STATUS[next_action]
            validate_transition(broker.outreach_status, target)
            patch["outreach_status"] = target
            if target == OutreachStatus.BLACKLISTED:
                cancelled = await self.db.cancel_scheduled_steps(
                    carrier_id, broker_id, "Cancelled: broker blacklisted"
                )
                logger.info("Blacklisted broker %s; cancelled %d follow-ups", broker_id, cancelled)

        updated = await self.db.update_broker_fields(broker_id, **patch)
        return updated or broker

    # -----------------------------------------------------------------------
    # Stats
    # -----------------------------------------------------------------------

    async def stats(self, carrier_id: str) -> OutreachStats:
        brokers_by_status: dict[str, int] = {}
        for status in OutreachStatus:
            n = await self.db.count("brokers", {"carrier_id": carrier_id, "outreach_status": status})
            if n:
                brokers_by_status[status.value] = n

        campaigns_by_status: dict[str, int] = {}
        for status in CampaignStatus:
            n = await self.db.count(
                "outreach_campaigns", {"carrier_id": carrier_id, "status": status}
            )
            if n:
                campaigns_by_status[status.value] = n

        # a replied step was sent first
        replied = campaigns_by_status.get(CampaignStatus.REPLIED.value, 0)
        sent = campaigns_by_status.get(CampaignStatus.SENT.value, 0) + replied
        rate = f"{replied / sent * 100:.1f}%" if sent else "0%"

        return OutreachStats(
            total_brokers=sum(brokers_by_status.values()),
            brokers_by_status=brokers_by_status,
            total_campaigns=sum(campaigns_by_status.values()),
            campaigns_by_status=campaigns_by_status,
            emails_sent=sent,
            emails_replied=replied,
            overall_response_rate=rate,
            pending_follow_ups=campaigns_by_status.get(CampaignStatus.SCHEDULED.value, 0),
        )
