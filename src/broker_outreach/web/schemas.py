"""Request bodies for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from broker_outreach.core.models import ContactMethod, NextAction, Sentiment


class BrokerIdRequest(BaseModel):
    broker_id: str


class InitiateRequest(BrokerIdRequest):
    method: ContactMethod = ContactMethod.EMAIL


class BulkInitiateRequest(BaseModel):
    broker_ids: list[str] = Field(default_factory=list)
    method: ContactMethod = ContactMethod.EMAIL


class PreviewRequest(InitiateRequest):
    template_name: str | None = None


class MarkRespondedRequest(BrokerIdRequest):
    response_text: str | None = None
    sentiment: Sentiment | None = None


class LogResponseRequest(BrokerIdRequest):
    response_text: str | None = None
    next_action: NextAction | None = None


class LogContactRequest(BaseModel):
    responded: bool = False
    notes: str | None = None


class ImportLeadRequest(BaseModel):
    lead_id: str


class ImportMCRequest(BaseModel):
    mc: str


class FMCSASearchRequest(BaseModel):
    name: str
