"""Broker outreach and campaign step status transitions."""

from __future__ import annotations

from types import MappingProxyType

from broker_outreach.core.errors import TransitionError
from broker_outreach.core.models import CampaignStatus, OutreachStatus


# ---------------------------------------------------------------------------
# Broker outreach status
# ---------------------------------------------------------------------------

OUTREACH_TRANSITIONS: MappingProxyType[OutreachStatus, frozenset[OutreachStatus]] = MappingProxyType({
    OutreachStatus.NEW: frozenset({
        OutreachStatus.CONTACTED,
        OutreachStatus.RESPONDED,
        OutreachStatus.BLACKLISTED,
    }),
    OutreachStatus.CONTACTED: frozenset({
        OutreachStatus.RESPONDED,
        OutreachStatus.BLACKLISTED,
    }),
    OutreachStatus.RESPONDED: frozenset({
        OutreachStatus.ACTIVE,
        OutreachStatus.NEGOTIATING,
        OutreachStatus.BLACKLISTED,
    }),
    OutreachStatus.ACTIVE: frozenset({
        OutreachStatus.NEGOTIATING,
        OutreachStatus.BLACKLISTED,
    }),
    OutreachStatus.NEGOTIATING: frozenset({
        OutreachStatus.ACTIVE,
        OutreachStatus.BLACKLISTED,
    }),
    OutreachStatus.BLACKLISTED: frozenset(),  # absorbing
})


# ---------------------------------------------------------------------------
# Campaign step status
# ---------------------------------------------------------------------------

CAMPAIGN_TRANSITIONS: MappingProxyType[CampaignStatus, frozenset[CampaignStatus]] = MappingProxyType({
    CampaignStatus.SCHEDULED: frozenset({
        CampaignStatus.SENDING,
        CampaignStatus.SENT,
        CampaignStatus.FAILED,
        CampaignStatus.CANCELLED,
    }),
    CampaignStatus.SENDING: frozenset({
        CampaignStatus.SENT,
        CampaignStatus.FAILED,
        CampaignStatus.SCHEDULED,  # claim released, e.g. call deferred by calling window
    }),
    CampaignStatus.SENT: frozenset({CampaignStatus.REPLIED}),
    CampaignStatus.FAILED: frozenset(),
    CampaignStatus.CANCELLED: frozenset(),
    CampaignStatus.REPLIED: frozenset(),
})

TERMINAL_CAMPAIGN_STATES = frozenset(
    status for status, targets in CAMPAIGN_TRANSITIONS.items() if not targets
)

# Statuses that stop any further automated contact
NO_CONTACT_STATES = frozenset({
    OutreachStatus.RESPONDED,
    OutreachStatus.ACTIVE,
    OutreachStatus.BLACKLISTED,
})


def can_transition(current: OutreachStatus | None, target: OutreachStatus) -> bool:
    """True when ``current -> target`` is legal. Same-state is always allowed."""
    current = current or OutreachStatus.NEW
    return current == target or target in OUTREACH_TRANSITIONS[current]


def validate_transition(current: OutreachStatus | None, target: OutreachStatus) -> None:
    """Raise TransitionError unless ``current -> target`` is legal."""
    if not can_transition(current, target):
        current = current or OutreachStatus.NEW
        allowed = sorted(s.value for s in OUTREACH_TRANSITIONS[current])
        raise TransitionError(
            f"Illegal transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed}"
        )


def can_transition_step(current: CampaignStatus, target: CampaignStatus) -> bool:
    return target in CAMPAIGN_TRANSITIONS[current]


def validate_step_transition(current: CampaignStatus, target: CampaignStatus) -> None:
    if not can_transition_step(current, target):
        allowed = sorted(s.value for s in CAMPAIGN_TRANSITIONS[current])
        raise TransitionError(
            f"Illegal step transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed}"
        )
