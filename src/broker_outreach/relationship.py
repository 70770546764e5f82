"""Broker relationship health scoring (0-100) from historical signals.

Four independent sub-scores of 0-25 each: payment, responsiveness,
revenue and reliability. Absent inputs fall back to neutral defaults so
scoring never fails.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from broker_outreach.core.models import (
    BrokerRecord,
    OutreachStatus,
    RelationshipScore,
    ScoreBreakdown,
)

SUB_SCORE_MAX = 25
MAX_SCORE = 100

# (threshold, points), checked top-down; first match wins
CREDIT_TIERS: tuple[tuple[float, int], ...] = ((95, 25), (90, 22), (85, 18), (80, 12))
CREDIT_FLOOR = 5
PAYMENT_DEFAULT = 15

# strictly-greater-than thresholds
RESPONSE_RATE_TIERS: tuple[tuple[float, int], ...] = ((80, 25), (50, 20), (25, 15), (0, 8))
RESPONSIVENESS_DEFAULT = 10
GHOSTED_SCORE = 2  # many attempts, zero replies

LOADS_TIERS: tuple[tuple[int, int], ...] = ((10, 25), (5, 20), (2, 15), (1, 10))

RELIABILITY_BASE = 10
AUTHORITY_BONUS = 8
INSURANCE_BONUS = 4
ACTIVE_RELATIONSHIP_BONUS = 3

# Score bands: EXCELLENT=80-100, GOOD=60-79, FAIR=40-59, POOR<40
LABELS: tuple[tuple[int, str], ...] = ((80, "EXCELLENT"), (60, "GOOD"), (40, "FAIR"))

# Needs-attention ordering: responded first, then never contacted, then stale
ATTENTION_PRIORITY = {OutreachStatus.RESPONDED: 0, OutreachStatus.NEW: 1}


def _clamp(value: int, low: int = 0, high: int = SUB_SCORE_MAX) -> int:
    return max(low, min(high, value))


def _days_since(when: datetime, now: datetime) -> int:
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return (now - when).days


def as_broker_record(broker: BrokerRecord | dict[str, Any]) -> BrokerRecord:
    if isinstance(broker, BrokerRecord):
        return broker
    return BrokerRecord.model_validate(broker)


def payment_score(broker: BrokerRecord) -> int:
    score = PAYMENT_DEFAULT
    if broker.credit_score is not None:
        score = next(
            (pts for threshold, pts in CREDIT_TIERS if broker.credit_score >= threshold),
            CREDIT_FLOOR,
        )
    if broker.days_to_pay is not None:
        if broker.days_to_pay <= 7:
            score += 5
        elif broker.days_to_pay <= 15:
            score += 3
        elif broker.days_to_pay > 45:
            score -= 5
    return _clamp(score)


def responsiveness_score(broker: BrokerRecord, now: datetime) -> int:
    rate = broker.response_rate or 0
    score = next(
        (pts for threshold, pts in RESPONSE_RATE_TIERS if rate > threshold),
        RESPONSIVENESS_DEFAULT,
    )
    if rate <= 0 and broker.total_outreach_attempts > 3 and broker.total_responses == 0:
        score = GHOSTED_SCORE

    if broker.last_contact_date is not None:
        days = _days_since(broker.last_contact_date, now)
        if days <= 7:
            score += 5
        elif days <= 30:
            score += 2
        elif days > 90:
            score -= 3
    return _clamp(score)


def revenue_score(broker: BrokerRecord) -> int:
    return next(
        (pts for threshold, pts in LOADS_TIERS if broker.total_loads_booked >= threshold),
        0,
    )


def reliability_score(broker: BrokerRecord) -> int:
    if broker.outreach_status == OutreachStatus.BLACKLISTED:
        return 0
    score = RELIABILITY_BASE
    if (broker.authority_status or "").lower() == "active":
        score += AUTHORITY_BONUS
    if broker.insurance_on_file:
        score += INSURANCE_BONUS
    if broker.outreach_status == OutreachStatus.ACTIVE:
        score += ACTIVE_RELATIONSHIP_BONUS
    return _clamp(score)


def score_label(score: int) -> str:
    return next((label for threshold, label in LABELS if score >= threshold), "POOR")


def calculate_relationship_score(
    broker: BrokerRecord | dict[str, Any], now: datetime | None = None
) -> RelationshipScore:
    """Score a broker relationship. Pure: persisting the result is up to the caller."""
    record = as_broker_record(broker)
    now = now or datetime.now(timezone.utc)

    breakdown = ScoreBreakdown(
        payment=payment_score(record),
        responsiveness=responsiveness_score(record, now),
        revenue=revenue_score(record),
        reliability=reliability_score(record),
    )
    total = min(
        MAX_SCORE,
        breakdown.payment + breakdown.responsiveness + breakdown.revenue + breakdown.reliability,
    )
    return RelationshipScore(score=total, breakdown=breakdown, label=score_label(total))


def needs_attention(
    brokers: list[BrokerRecord], stale_days: int = 14, now: datetime | None = None
) -> list[BrokerRecord]:
    """Brokers awaiting action, responded first, then never contacted, then stale."""
    now = now or datetime.now(timezone.utc)

    def flagged(b: BrokerRecord) -> bool:
        if b.outreach_status == OutreachStatus.BLACKLISTED:
            return False
        if b.last_contact_date is None:
            return True
        if b.outreach_status == OutreachStatus.CONTACTED:
            if _days_since(b.last_contact_date, now) > stale_days:
                return True
        return b.outreach_status == OutreachStatus.RESPONDED

    return sorted(
        (b for b in brokers if flagged(b)),
        key=lambda b: ATTENTION_PRIORITY.get(b.outreach_status, 2),
    )
