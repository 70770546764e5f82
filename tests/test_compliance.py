"""Tests for calling windows and compliance guidance."""

from __future__ import annotations

from datetime import datetime, timezone

from broker_outreach.compliance import (
    CAN_SPAM_CHECKLIST,
    STATE_RULES,
    all_state_rules,
    can_call_now,
    get_state_rules,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestCallWindow:
    """California is UTC-7 in July."""

    def test_too_early(self):
        check = can_call_now("CA", utc(2026, 7, 15, 14, 0))
        assert not check.allowed
        assert check.reason.startswith("Too early in California")
        assert check.local_time == "07:00"

    def test_mid_morning(self):
        check = can_call_now("CA", utc(2026, 7, 15, 17, 0))
        assert check.allowed
        assert check.local_time == "10:00"
        assert "8:00 AM - 9:00 PM" in check.reason

    def test_start_hour_is_inclusive(self):
        assert can_call_now("CA", utc(2026, 7, 15, 15, 0)).allowed

    def test_end_hour_is_exclusive(self):
        check = can_call_now("CA", utc(2026, 7, 16, 4, 0))
        assert not check.allowed
        assert check.reason.startswith("Too late in California")

    def test_naive_datetime_is_utc(self):
        assert not can_call_now("CA", datetime(2026, 7, 15, 14, 0)).allowed

    def test_region_code_is_normalized(self):
        assert can_call_now(" ca ", utc(2026, 7, 15, 17, 0)).state == "CA"

    def test_state_details(self):
        check = can_call_now("NJ", utc(2026, 7, 15, 17, 0))
        assert check.state_name == "New Jersey"
        assert check.has_state_dnc
        assert check.restrictions == ["Must register with NJ DCA"]


class TestFederalDefault:
    def test_unknown_region_uses_federal_window(self):
        rules = get_state_rules("ZZ")
        assert rules.state == "ZZ"
        assert rules.call_start_hour == 8
        assert rules.call_end_hour == 21
        assert not rules.state_dnc_registry

    def test_unknown_region_evaluated_in_eastern_time(self):
        check = can_call_now("ZZ", utc(2026, 7, 15, 11, 0))
        assert not check.allowed
        assert check.local_time == "07:00"

    def test_lookup_does_not_mutate_default(self):
        get_state_rules("ZZ")
        assert get_state_rules("YY").state == "YY"


class TestRuleTables:
    def test_central_states(self):
        assert get_state_rules("tx").timezone == "America/Chicago"
        assert get_state_rules("IL").timezone == "America/Chicago"

    def test_all_state_rules(self):
        rows = all_state_rules(utc(2026, 7, 15, 17, 0))
        assert len(rows) == len(STATE_RULES) == 10
        assert all(row["can_call_now"] for row in rows)

    def test_can_spam_checklist(self):
        assert len(CAN_SPAM_CHECKLIST) == 6
        assert all(item.required for item in CAN_SPAM_CHECKLIST)
