"""SendGrid v3 email provider adapter."""

from __future__ import annotations

import logging

import httpx

from broker_outreach.core.config import Settings
from broker_outreach.core.errors import DeliveryError
from broker_outreach.providers.base import (
    DRY_RUN_ID,
    DeliveryResult,
    EmailMessage,
    EmailProvider,
)

logger = logging.getLogger(__name__)


class SendGridEmailProvider(EmailProvider):
    """SendGrid mail/send. Without an API key and sender address, sends are logged only."""

    provider_name = "sendgrid"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.api_url = settings.sendgrid_api_url.rstrip("/")
        self.api_key = settings.sendgrid_api_key
        self.from_email = settings.sendgrid_from_email
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def dry_run(self) -> bool:
        return not (self.api_key and self.from_email)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.settings.provider_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def send(self, message: EmailMessage) -> DeliveryResult:
        if self.dry_run:
            logger.info(
                "[email dry-run] to=%s subject=%r\n%s", message.to, message.subject, message.body
            )
            return DeliveryResult(message_id=DRY_RUN_ID, dry_run=True)

        payload = {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {
                "email": self.from_email,
                "name": message.from_name or self.settings.default_sender_name,
            },
            "subject": message.subject,
            "content": [{"type": "text/plain", "value": message.body}],
        }

        try:
            resp = await self.client.post("/mail/send", json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DeliveryError(
                f"SendGrid API error: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except httpx.RequestError as e:
            raise DeliveryError(f"SendGrid connection error: {e}") from e

        return DeliveryResult(message_id=resp.headers.get("X-Message-Id"))

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
