"""Tests for SendGrid, Twilio and FMCSA adapters against a mocked transport."""

from __future__ import annotations

import json
from urllib.parse import parse_qs

import httpx
import pytest

from broker_outreach.core.config import Settings
from broker_outreach.core.errors import DeliveryError
from broker_outreach.providers.base import DRY_RUN_ID, EmailMessage
from broker_outreach.providers.fmcsa import FMCSAClient, lead_from_carrier, normalize_mc
from broker_outreach.providers.sendgrid import SendGridEmailProvider
from broker_outreach.providers.twilio import TwilioVoiceProvider

MESSAGE = EmailMessage(to="loads@keystone.example", subject="Hello", body="Body", from_name="Sam")


# ---------------------------------------------------------------------------
# SendGrid
# ---------------------------------------------------------------------------


class TestSendGrid:
    async def test_dry_run_without_credentials(self):
        provider = SendGridEmailProvider(Settings(sendgrid_api_key="", sendgrid_from_email=""))
        assert provider.dry_run
        result = await provider.send(MESSAGE)
        assert result.dry_run
        assert result.message_id == DRY_RUN_ID

    async def test_send(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202, headers={"X-Message-Id": "sg-123"})

        provider = SendGridEmailProvider(
            Settings(sendgrid_api_key="key", sendgrid_from_email="sam@gsh.example"),
            transport=httpx.MockTransport(handler),
        )
        result = await provider.send(MESSAGE)
        await provider.close()

        assert result.message_id == "sg-123"
        assert not result.dry_run
        request = seen[0]
        assert request.url.path == "/v3/mail/send"
        assert request.headers["Authorization"] == "Bearer key"
        payload = json.loads(request.content)
        assert payload["personalizations"][0]["to"][0]["email"] == "loads@keystone.example"
        assert payload["from"] == {"email": "sam@gsh.example", "name": "Sam"}
        assert payload["content"][0]["type"] == "text/plain"

    async def test_rejected_send_raises(self):
        provider = SendGridEmailProvider(
            Settings(sendgrid_api_key="key", sendgrid_from_email="sam@gsh.example"),
            transport=httpx.MockTransport(lambda request: httpx.Response(401, text="unauthorized")),
        )
        with pytest.raises(DeliveryError, match="401"):
            await provider.send(MESSAGE)
        await provider.close()


# ---------------------------------------------------------------------------
# Twilio
# ---------------------------------------------------------------------------


class TestTwilio:
    def settings(self) -> Settings:
        return Settings(
            twilio_account_sid="AC123", twilio_auth_token="tok", twilio_from_number="+15550000000"
        )

    async def test_dry_run_without_credentials(self):
        provider = TwilioVoiceProvider(Settings(twilio_account_sid=""))
        result = await provider.place_call("+15551112222", "<Response/>")
        assert result.dry_run
        assert result.message_id == DRY_RUN_ID

    async def test_place_call(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"sid": "CA999"})

        provider = TwilioVoiceProvider(self.settings(), transport=httpx.MockTransport(handler))
        result = await provider.place_call("+15551112222", "<Response/>")
        await provider.close()

        assert result.message_id == "CA999"
        request = seen[0]
        assert request.url.path == "/2010-04-01/Accounts/AC123/Calls.json"
        form = parse_qs(request.content.decode())
        assert form["To"] == ["+15551112222"]
        assert form["From"] == ["+15550000000"]
        assert form["Twiml"] == ["<Response/>"]
        assert request.headers["Authorization"].startswith("Basic ")

    async def test_connection_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        provider = TwilioVoiceProvider(self.settings(), transport=httpx.MockTransport(handler))
        with pytest.raises(DeliveryError, match="connection error"):
            await provider.place_call("+15551112222", "<Response/>")
        await provider.close()


# ---------------------------------------------------------------------------
# FMCSA
# ---------------------------------------------------------------------------

CARRIER_PAYLOAD = {
    "legalName": "Keystone Logistics LLC",
    "dbaName": "Keystone",
    "dotNumber": 3100200,
    "phyCity": "Philadelphia",
    "phyState": "PA",
    "phyPhone": "2155550100",
    "allowedToOperate": "Y",
    "brokerAuthorityStatus": "A",
}


class TestFMCSA:
    def test_normalize_mc(self):
        assert normalize_mc("MC-123456") == "123456"
        assert normalize_mc("mc123456") == "123456"
        assert normalize_mc(" 123456 ") == "123456"

    def test_lead_from_carrier(self):
        lead = lead_from_carrier(CARRIER_PAYLOAD, mc_number="123456")
        assert lead.mc_number == "123456"
        assert lead.dot_number == "3100200"
        assert lead.company_name == "Keystone"
        assert lead.authority_status == "ACTIVE"
        assert lead.broker_authority

    async def test_no_key_returns_nothing(self):
        client = FMCSAClient(Settings(fmcsa_api_key=""))
        assert await client.fetch_by_mc("123456") is None
        assert await client.search("Keystone") == []

    async def test_fetch_by_mc(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"content": [{"carrier": CARRIER_PAYLOAD}]})

        client = FMCSAClient(Settings(fmcsa_api_key="web"), transport=httpx.MockTransport(handler))
        lead = await client.fetch_by_mc("MC-123456")
        await client.close()

        assert lead is not None
        assert lead.mc_number == "123456"
        assert seen[0].url.path.endswith("/carriers/docket-number/123456")
        assert seen[0].url.params["webKey"] == "web"

    async def test_search_keeps_brokers_only(self):
        not_broker = {**CARRIER_PAYLOAD, "legalName": "Plain Carrier", "brokerAuthorityStatus": "N"}

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"content": [
                {"carrier": CARRIER_PAYLOAD}, {"carrier": not_broker},
            ]})

        client = FMCSAClient(Settings(fmcsa_api_key="web"), transport=httpx.MockTransport(handler))
        leads = await client.search("Keystone Logistics")
        await client.close()
        assert [lead.legal_name for lead in leads] == ["Keystone Logistics LLC"]

    async def test_server_error_fails_soft(self):
        client = FMCSAClient(
            Settings(fmcsa_api_key="web"),
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        assert await client.fetch_by_mc("123456") is None
        await client.close()
