"""Outbound delivery providers and the FMCSA lead directory client."""

from broker_outreach.providers.base import (
    DRY_RUN_ID,
    DeliveryResult,
    EmailMessage,
    EmailProvider,
    VoiceProvider,
)

__all__ = ["DRY_RUN_ID", "DeliveryResult", "EmailMessage", "EmailProvider", "VoiceProvider"]
