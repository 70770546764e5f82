"""Telemarketing calling windows and outreach compliance guidance.

Calls are gated on the destination's local clock; email is never gated
here. Regions without a rule record fall back to the federal TCPA window.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import MappingProxyType
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict

from broker_outreach import geo


class StateRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: str
    name: str
    timezone: str
    call_start_hour: int = 8  # local, 24h, inclusive
    call_end_hour: int = 21  # local, 24h, exclusive
    state_dnc_registry: bool = False
    additional_restrictions: tuple[str, ...] = ()


class CallWindowCheck(BaseModel):
    allowed: bool
    reason: str
    local_time: str
    state: str
    state_name: str
    has_state_dnc: bool
    restrictions: list[str]


class ChecklistItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    rule: str
    required: bool = True


_EASTERN = "America/New_York"
_CENTRAL = "America/Chicago"
_PACIFIC = "America/Los_Angeles"

STATE_RULES: MappingProxyType[str, StateRule] = MappingProxyType({
    rule.state: rule
    for rule in (
        StateRule(
            state="CA", name="California", timezone=_PACIFIC, state_dnc_registry=True,
            additional_restrictions=(
                "Requires written consent for automated calls",
                "Must identify caller within first 30 seconds",
            ),
        ),
        StateRule(
            state="NY", name="New York", timezone=_EASTERN, state_dnc_registry=True,
            additional_restrictions=("Must register with NY DNC",),
        ),
        StateRule(
            state="TX", name="Texas", timezone=_CENTRAL, state_dnc_registry=True,
            additional_restrictions=("Must check Texas no-call list",),
        ),
        StateRule(
            state="FL", name="Florida", timezone=_EASTERN, state_dnc_registry=True,
            additional_restrictions=("Calling hours 8am-8pm local", "Must register as telemarketer"),
        ),
        StateRule(state="PA", name="Pennsylvania", timezone=_EASTERN, state_dnc_registry=True),
        StateRule(
            state="IL", name="Illinois", timezone=_CENTRAL, state_dnc_registry=True,
            additional_restrictions=("Must provide opt-out mechanism",),
        ),
        StateRule(
            state="NJ", name="New Jersey", timezone=_EASTERN, state_dnc_registry=True,
            additional_restrictions=("Must register with NJ DCA",),
        ),
        StateRule(state="GA", name="Georgia", timezone=_EASTERN, state_dnc_registry=True),
        StateRule(state="OH", name="Ohio", timezone=_EASTERN, state_dnc_registry=True),
        StateRule(state="NC", name="North Carolina", timezone=_EASTERN, state_dnc_registry=True),
    )
})

FEDERAL_DEFAULT = StateRule(
    state="DEFAULT",
    name="Federal (TCPA)",
    timezone=_EASTERN,
    additional_restrictions=(
        "Federal TCPA: No calls before 8am or after 9pm local time",
        "Must identify yourself and company",
        "Must honor do-not-call requests immediately",
        "B2B cold calls are generally permitted under TCPA",
    ),
)

CALL_NOTE = (
    "B2B cold calls to brokers are generally permitted under TCPA. "
    "State DNC lists may still apply. This is informational only, not legal advice."
)

CAN_SPAM_CHECKLIST: tuple[ChecklistItem, ...] = (
    ChecklistItem(rule="Include your physical postal address"),
    ChecklistItem(rule="Include a clear unsubscribe mechanism"),
    ChecklistItem(rule="Do not use misleading subject lines"),
    ChecklistItem(rule="Identify the message as an advertisement"),
    ChecklistItem(rule="Honor unsubscribe requests within 10 business days"),
    ChecklistItem(rule="Do not use harvested email addresses"),
)

CAN_SPAM_NOTE = (
    "CAN-SPAM applies to B2B emails. B2B cold emails are standard industry "
    "practice in freight brokerage; follow the checklist above."
)


def get_state_rules(region: str | None) -> StateRule:
    """Rule record for ``region``; unknown codes get the federal window under their own code."""
    code = geo.normalize_region(region)
    rule = STATE_RULES.get(code)
    if rule is not None:
        return rule
    return FEDERAL_DEFAULT.model_copy(update={"state": code, "name": code})


def _hour_label(hour: int) -> str:
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:00 {suffix}"


def can_call_now(region: str | None, now: datetime | None = None) -> CallWindowCheck:
    """Evaluate the calling window for ``region`` at ``now`` (defaults to the current instant)."""
    rules = get_state_rules(region)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    local = now.astimezone(ZoneInfo(rules.timezone))
    local_time = local.strftime("%H:%M")
    window = f"{_hour_label(rules.call_start_hour)} - {_hour_label(rules.call_end_hour)}"

    if local.hour < rules.call_start_hour:
        allowed = False
        reason = (
            f"Too early in {rules.name}. Calling allowed after "
            f"{_hour_label(rules.call_start_hour)} local time. Current local time: {local_time}."
        )
    elif local.hour >= rules.call_end_hour:
        allowed = False
        reason = (
            f"Too late in {rules.name}. Calling not allowed after "
            f"{_hour_label(rules.call_end_hour)} local time. Current local time: {local_time}."
        )
    else:
        allowed = True
        reason = f"OK to call {rules.name}. Current local time: {local_time}. Window: {window}."

    return CallWindowCheck(
        allowed=allowed,
        reason=reason,
        local_time=local_time,
        state=rules.state,
        state_name=rules.name,
        has_state_dnc=rules.state_dnc_registry,
        restrictions=list(rules.additional_restrictions),
    )


def all_state_rules(now: datetime | None = None) -> list[dict]:
    """Every explicitly-ruled region with whether a call is allowed at ``now``."""
    return [
        {**rule.model_dump(), "can_call_now": can_call_now(code, now).allowed}
        for code, rule in STATE_RULES.items()
    ]
