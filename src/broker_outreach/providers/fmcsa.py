"""FMCSA QCMobile lookups for the shared broker lead pool."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from broker_outreach.core.config import Settings
from broker_outreach.core.models import BrokerLead

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50


def normalize_mc(mc: str) -> str:
    """'MC-123456' / 'mc123456' -> '123456'"""
    value = mc.strip()
    if value[:2].upper() == "MC":
        value = value[2:].lstrip("-# ")
    return value.strip()


def _str(value: Any) -> str | None:
    return str(value) if value not in (None, "") else None


def lead_from_carrier(item: dict[str, Any], mc_number: str | None = None) -> BrokerLead:
    """Map an FMCSA ``carrier`` payload to a BrokerLead."""
    legal_name = item.get("legalName") or "Unknown"
    return BrokerLead(
        mc_number=mc_number or _str(item.get("mcNumber")),
        dot_number=_str(item.get("dotNumber")),
        legal_name=legal_name,
        dba_name=item.get("dbaName") or None,
        company_name=item.get("dbaName") or legal_name,
        phone=item.get("phyPhone") or None,
        address_city=item.get("phyCity") or None,
        address_state=item.get("phyState") or None,
        authority_status="ACTIVE" if item.get("allowedToOperate") == "Y" else "INACTIVE",
        broker_authority=item.get("brokerAuthorityStatus") == "A",
    )


class FMCSAClient:
    """Read-only FMCSA directory client. Lookups fail soft: errors log and return nothing."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.base_url = settings.fmcsa_base_url.rstrip("/")
        self.api_key = settings.fmcsa_api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                params={"webKey": self.api_key},
                timeout=self.settings.provider_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def _content(self, path: str) -> list[dict[str, Any]]:
        if not self.api_key:
            logger.warning("FMCSA API key not configured; skipping lookup %s", path)
            return []
        try:
            resp = await self.client.get(path)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("FMCSA API error %s for %s", e.response.status_code, path)
            return []
        except httpx.RequestError as e:
            logger.error("FMCSA connection error for %s: %s", path, e)
            return []
        return data.get("content") or []

    async def fetch_by_mc(self, mc_number: str) -> BrokerLead | None:
        mc = normalize_mc(mc_number)
        content = await self._content(f"/carriers/docket-number/{mc}")
        if not content or not content[0].get("carrier"):
            return None
        return lead_from_carrier(content[0]["carrier"], mc_number=mc)

    async def search(self, name: str) -> list[BrokerLead]:
        """Brokers (active broker authority) whose name matches ``name``."""
        content = await self._content(f"/carriers/name/{quote(name.strip(), safe='')}")
        brokers = [
            item["carrier"] for item in content
            if (item.get("carrier") or {}).get("brokerAuthorityStatus") == "A"
        ]
        return [lead_from_carrier(c) for c in brokers[:SEARCH_LIMIT]]

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
