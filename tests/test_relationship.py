"""Tests for broker relationship scoring."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from broker_outreach.core.models import BrokerRecord, OutreachStatus
from broker_outreach.relationship import (
    calculate_relationship_score,
    needs_attention,
    payment_score,
    reliability_score,
    responsiveness_score,
    revenue_score,
    score_label,
)

NOW = datetime(2026, 3, 10, 17, 0, tzinfo=timezone.utc)


class TestDefaults:
    def test_empty_record_scores_35(self):
        result = calculate_relationship_score(BrokerRecord(), NOW)
        assert result.score == 35
        assert result.breakdown.payment == 15
        assert result.breakdown.responsiveness == 10
        assert result.breakdown.revenue == 0
        assert result.breakdown.reliability == 10
        assert result.label == "POOR"

    def test_accepts_plain_dict(self):
        result = calculate_relationship_score({"total_loads_booked": 3}, NOW)
        assert result.breakdown.revenue == 15


class TestPaymentScore:
    def test_top_credit_and_quick_pay_is_capped(self):
        assert payment_score(BrokerRecord(credit_score=96, days_to_pay=5)) == 25

    def test_credit_tiers(self):
        assert payment_score(BrokerRecord(credit_score=91)) == 22
        assert payment_score(BrokerRecord(credit_score=85)) == 18
        assert payment_score(BrokerRecord(credit_score=80)) == 12
        assert payment_score(BrokerRecord(credit_score=60)) == 5

    def test_slow_pay_penalty(self):
        assert payment_score(BrokerRecord(credit_score=82, days_to_pay=60)) == 7

    def test_floor_is_zero(self):
        assert payment_score(BrokerRecord(credit_score=10, days_to_pay=90)) == 0


class TestResponsivenessScore:
    def test_high_response_rate_recent_contact(self):
        record = BrokerRecord(response_rate=85, last_contact_date=NOW - timedelta(days=2))
        assert responsiveness_score(record, NOW) == 25

    def test_ghosted(self):
        record = BrokerRecord(total_outreach_attempts=5, total_responses=0)
        assert responsiveness_score(record, NOW) == 2

    def test_long_silence_penalty(self):
        record = BrokerRecord(response_rate=30, last_contact_date=NOW - timedelta(days=120))
        assert responsiveness_score(record, NOW) == 12


class TestRevenueScore:
    @pytest.mark.parametrize("loads,expected", [(0, 0), (1, 10), (2, 15), (5, 20), (10, 25)])
    def test_load_tiers(self, loads, expected):
        assert revenue_score(BrokerRecord(total_loads_booked=loads)) == expected


class TestReliabilityScore:
    def test_blacklisted_is_zero(self):
        record = BrokerRecord(
            authority_status="active",
            insurance_on_file=True,
            outreach_status=OutreachStatus.BLACKLISTED,
        )
        assert reliability_score(record) == 0

    def test_all_bonuses(self):
        record = BrokerRecord(
            authority_status="ACTIVE",
            insurance_on_file=True,
            outreach_status=OutreachStatus.ACTIVE,
        )
        assert reliability_score(record) == 25


class TestTotals:
    def test_best_case_is_100(self):
        record = BrokerRecord(
            credit_score=97,
            days_to_pay=3,
            response_rate=90,
            last_contact_date=NOW - timedelta(days=1),
            total_loads_booked=12,
            authority_status="active",
            insurance_on_file=True,
            outreach_status=OutreachStatus.ACTIVE,
        )
        result = calculate_relationship_score(record, NOW)
        assert result.score == 100
        assert result.label == "EXCELLENT"

    def test_total_is_sum_of_breakdown(self):
        record = BrokerRecord(credit_score=88, response_rate=40, total_loads_booked=2)
        result = calculate_relationship_score(record, NOW)
        b = result.breakdown
        assert result.score == b.payment + b.responsiveness + b.revenue + b.reliability


class TestLabels:
    @pytest.mark.parametrize("score,label", [
        (100, "EXCELLENT"), (80, "EXCELLENT"), (79, "GOOD"), (60, "GOOD"),
        (59, "FAIR"), (40, "FAIR"), (39, "POOR"), (0, "POOR"),
    ])
    def test_bands(self, score, label):
        assert score_label(score) == label


class TestNeedsAttention:
    def test_ordering_and_filtering(self):
        brokers = [
            BrokerRecord(id="stale", outreach_status=OutreachStatus.CONTACTED,
                         last_contact_date=NOW - timedelta(days=20)),
            BrokerRecord(id="fresh", outreach_status=OutreachStatus.CONTACTED,
                         last_contact_date=NOW - timedelta(days=2)),
            BrokerRecord(id="new", outreach_status=OutreachStatus.NEW),
            BrokerRecord(id="replied", outreach_status=OutreachStatus.RESPONDED,
                         last_contact_date=NOW - timedelta(days=1)),
            BrokerRecord(id="banned", outreach_status=OutreachStatus.BLACKLISTED),
        ]
        flagged = needs_attention(brokers, stale_days=14, now=NOW)
        assert [b.id for b in flagged] == ["replied", "new", "stale"]
