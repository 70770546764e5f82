"""Error kinds surfaced by the outreach core."""

from __future__ import annotations


class OutreachError(Exception):
    """Base class for all outreach errors."""


class ValidationError(OutreachError):
    """Missing or malformed required input. Not retried."""


class TransitionError(ValidationError):
    """Raised when an illegal status transition is attempted."""


class ComplianceError(ValidationError):
    """A call was blocked by the destination's calling window."""


class NotFoundError(OutreachError):
    """A referenced entity does not exist."""


class ConflictError(OutreachError):
    """A uniqueness rule was violated (e.g. duplicate initial outreach)."""


class DeliveryError(OutreachError):
    """An email or voice provider refused or failed a send."""


class UpstreamError(OutreachError):
    """The record store failed."""
