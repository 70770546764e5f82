"""Abstract delivery providers for outbound email and voice."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

DRY_RUN_ID = "dry-run"


class DeliveryResult(BaseModel):
    """Outcome of a successful send. Failures raise DeliveryError instead."""

    success: bool = True
    message_id: str | None = None
    dry_run: bool = False


class EmailMessage(BaseModel):
    to: str
    subject: str
    body: str
    from_name: str | None = None


class EmailProvider(ABC):
    provider_name: str = "unknown"

    @property
    @abstractmethod
    def dry_run(self) -> bool:
        """True when credentials are missing and sends are only logged."""
        ...

    @abstractmethod
    async def send(self, message: EmailMessage) -> DeliveryResult:
        """Send one plain-text email."""
        ...

    async def close(self) -> None:
        """Clean up any resources (HTTP sessions, etc.)."""
        pass


class VoiceProvider(ABC):
    provider_name: str = "unknown"

    @property
    @abstractmethod
    def dry_run(self) -> bool:
        ...

    @abstractmethod
    async def place_call(self, to_number: str, twiml: str) -> DeliveryResult:
        """Place an outbound call that speaks ``twiml``."""
        ...

    async def close(self) -> None:
        pass
