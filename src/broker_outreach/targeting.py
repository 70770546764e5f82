"""Broker targeting - who should a carrier contact next, and where is coverage thin."""

from __future__ import annotations

import logging
from typing import Any

from broker_outreach import geo
from broker_outreach.core.config import Settings
from broker_outreach.core.errors import ValidationError
from broker_outreach.core.models import (
    BrokerRecord,
    CarrierProfile,
    LaneCoverage,
    OutreachStatus,
    RecommendationSet,
    TargetRecommendation,
    TargetScore,
)
from broker_outreach.core.records import RecordStore
from broker_outreach.relationship import as_broker_record

logger = logging.getLogger(__name__)

BASE_SCORE = 50

SAME_STATE_POINTS = 20
NEIGHBOR_STATE_POINTS = 10
LANE_MATCH_POINTS = 10
AUTHORITY_POINTS = 5
HIGH_CREDIT_POINTS = 10
LOW_CREDIT_PENALTY = -15
QUICK_PAY_POINTS = 10
SLOW_PAY_PENALTY = -5
NOT_CONTACTED_POINTS = 5
POINTS_PER_LOAD = 5
HIGH_RESPONSE_POINTS = 10

HIGH_CREDIT = 90
LOW_CREDIT = 80
QUICK_PAY_DAYS = 15
SLOW_PAY_DAYS = 45
HIGH_RESPONSE_RATE = 50

# Lane coverage bands (brokers + leads touching the lane's states)
HIGH_COVERAGE = 20
MEDIUM_COVERAGE = 5


def _lanes(values: list[str] | None) -> list[str]:
    return [v.strip().upper() for v in values or [] if v and v.strip()]


def matching_lanes(carrier_lanes: list[str] | None, broker_lanes: list[str] | None) -> list[str]:
    """Carrier lanes that appear inside a broker lane, or contain one."""
    theirs = _lanes(broker_lanes)
    return [
        lane for lane in _lanes(carrier_lanes)
        if any(bl in lane or lane in bl for bl in theirs)
    ]


def score_broker_target(
    broker: BrokerRecord | dict[str, Any],
    carrier: CarrierProfile,
    carrier_state: str | None = None,
) -> TargetScore:
    """Score how worthwhile contacting ``broker`` is right now, with reasons."""
    record = as_broker_record(broker)
    home = geo.normalize_region(carrier_state or carrier.home_base_state)
    score = BASE_SCORE
    reasons: list[str] = []

    # 1. Geographic proximity
    broker_state = geo.normalize_region(record.address_state)
    if broker_state and broker_state == home:
        score += SAME_STATE_POINTS
        reasons.append("Same state as home base")
    elif geo.is_neighbor(home, broker_state):
        score += NEIGHBOR_STATE_POINTS
        reasons.append("Neighboring state")

    # 2. Lane overlap
    overlap = matching_lanes(carrier.preferred_lanes, record.preferred_lanes)
    if overlap:
        score += LANE_MATCH_POINTS * len(overlap)
        reasons.append(f"{len(overlap)} matching lane(s)")

    # 3. Broker quality
    if (record.authority_status or "").lower() == "active":
        score += AUTHORITY_POINTS
        reasons.append("Active broker authority")

    if record.credit_score is not None:
        if record.credit_score >= HIGH_CREDIT:
            score += HIGH_CREDIT_POINTS
            reasons.append("High credit score")
        elif record.credit_score < LOW_CREDIT:
            score += LOW_CREDIT_PENALTY
            reasons.append("Low credit score - risky")

    if record.days_to_pay is not None:
        if record.days_to_pay <= QUICK_PAY_DAYS:
            score += QUICK_PAY_POINTS
            reasons.append(f"Quick pay (<={QUICK_PAY_DAYS} days)")
        elif record.days_to_pay > SLOW_PAY_DAYS:
            score += SLOW_PAY_PENALTY
            reasons.append(f"Slow pay ({SLOW_PAY_DAYS}+ days)")

    # 4. Never contacted = opportunity
    if record.outreach_status in (None, OutreachStatus.NEW):
        score += NOT_CONTACTED_POINTS
        reasons.append("Not yet contacted")

    # 5. Previous success
    if record.total_loads_booked > 0:
        score += POINTS_PER_LOAD * record.total_loads_booked
        reasons.append(f"{record.total_loads_booked} loads booked previously")

    # 6. Responsiveness
    if (record.response_rate or 0) > HIGH_RESPONSE_RATE:
        score += HIGH_RESPONSE_POINTS
        reasons.append("High response rate")

    return TargetScore(score=max(0, min(100, score)), reasons=reasons)


def rank_targets(
    crm_brokers: list[BrokerRecord],
    leads: list[BrokerRecord],
    carrier: CarrierProfile,
    limit: int | None = None,
) -> list[TargetRecommendation]:
    """Score CRM brokers and pool leads together, best first.

    Blacklisted CRM brokers are dropped; leads already in the CRM (same
    MC number) are dropped from the pool side.
    """
    home = geo.normalize_region(carrier.home_base_state)
    crm = [b for b in crm_brokers if b.outreach_status != OutreachStatus.BLACKLISTED]
    known_mcs = {b.mc_number for b in crm_brokers if b.mc_number}
    fresh_leads = [lead for lead in leads if not lead.mc_number or lead.mc_number not in known_mcs]

    scored: list[TargetRecommendation] = []
    for source, records in (("crm", crm), ("lead", fresh_leads)):
        for record in records:
            result = score_broker_target(record, carrier, home)
            scored.append(TargetRecommendation(
                source=source,
                broker_id=record.id,
                company_name=record.company_name or getattr(record, "legal_name", None),
                mc_number=record.mc_number,
                address_state=record.address_state,
                outreach_status=record.outreach_status,
                target_score=result.score,
                target_reasons=result.reasons,
            ))

    scored.sort(key=lambda r: r.target_score, reverse=True)
    return scored[:limit] if limit is not None else scored


def parse_lane(lane: str) -> list[str]:
    """'NJ-FL' -> ['NJ', 'FL']"""
    return [part.strip().upper() for part in lane.split("-") if part.strip()]


def coverage_label(total: int) -> str:
    if total > HIGH_COVERAGE:
        return "HIGH"
    if total > MEDIUM_COVERAGE:
        return "MEDIUM"
    return "LOW"


class TargetingService:
    """Loads carrier, CRM and lead-pool records and ranks broker targets."""

    def __init__(self, db: RecordStore, settings: Settings | None = None):
        self.db = db
        self.settings = settings or Settings()

    async def _carrier(self, carrier_id: str) -> CarrierProfile:
        carrier = await self.db.get_carrier_profile(carrier_id)
        if carrier is None:
            raise ValidationError(
                "Carrier profile required for lane targeting. "
                "Set up your home base, equipment, and preferred lanes first."
            )
        return carrier

    async def recommendations(self, carrier_id: str) -> RecommendationSet:
        carrier = await self._carrier(carrier_id)
        home = geo.normalize_region(carrier.home_base_state)
        regions = sorted(geo.target_regions(home))

        crm = await self.db.list_brokers(carrier_id, exclude_blacklisted=True)
        leads = await self.db.list_active_leads(regions, limit=self.settings.lead_pool_limit)
        ranked = rank_targets(crm, leads, carrier, limit=self.settings.recommendation_limit)

        logger.info(
            "Ranked %d targets for carrier %s (%d CRM, %d leads, regions=%s)",
            len(ranked), carrier_id, len(crm), len(leads), ",".join(regions),
        )
        return RecommendationSet(
            recommendations=ranked,
            carrier_state=home,
            target_states=regions,
            total_crm=len(crm),
            total_leads=len(leads),
        )

    async def lane_analysis(self, carrier_id: str) -> list[LaneCoverage]:
        carrier = await self._carrier(carrier_id)
        analysis: list[LaneCoverage] = []
        for lane in carrier.preferred_lanes:
            states = parse_lane(lane)[:2]
            crm_count = await self.db.count_brokers_in_states(carrier_id, states)
            lead_count = await self.db.count_active_leads_in_states(states)
            analysis.append(LaneCoverage(
                lane=lane,
                brokers_in_crm=crm_count,
                leads_available=lead_count,
                coverage=coverage_label(crm_count + lead_count),
            ))
        return analysis
