"""Twilio programmable voice provider adapter."""

from __future__ import annotations

import logging

import httpx

from broker_outreach.core.config import Settings
from broker_outreach.core.errors import DeliveryError
from broker_outreach.providers.base import DRY_RUN_ID, DeliveryResult, VoiceProvider

logger = logging.getLogger(__name__)


class TwilioVoiceProvider(VoiceProvider):
    """Twilio Calls API with inline TwiML. Missing credentials put it in dry-run."""

    provider_name = "twilio"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.api_url = settings.twilio_api_url.rstrip("/")
        self.account_sid = settings.twilio_account_sid
        self.auth_token = settings.twilio_auth_token
        self.from_number = settings.twilio_from_number
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def dry_run(self) -> bool:
        return not (self.account_sid and self.auth_token and self.from_number)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                auth=(self.account_sid, self.auth_token),
                timeout=self.settings.provider_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def place_call(self, to_number: str, twiml: str) -> DeliveryResult:
        if self.dry_run:
            logger.info("[voice dry-run] would call %s\n%s", to_number, twiml)
            return DeliveryResult(message_id=DRY_RUN_ID, dry_run=True)

        try:
            resp = await self.client.post(
                f"/Accounts/{self.account_sid}/Calls.json",
                data={"To": to_number, "From": self.from_number, "Twiml": twiml},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise DeliveryError(
                f"Twilio API error: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except httpx.RequestError as e:
            raise DeliveryError(f"Twilio connection error: {e}") from e

        return DeliveryResult(message_id=data.get("sid"))

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
