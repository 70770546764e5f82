"""Pydantic models for the outreach system."""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OutreachStatus(str, enum.Enum):
    NEW = "new"
    CONTACTED = "contacted"
    RESPONDED = "responded"
    ACTIVE = "active"
    NEGOTIATING = "negotiating"
    BLACKLISTED = "blacklisted"


class CampaignStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"
    REPLIED = "replied"
    CANCELLED = "cancelled"


class ContactMethod(str, enum.Enum):
    EMAIL = "email"
    CALL = "call"


class CampaignType(str, enum.Enum):
    COLD_OUTREACH = "cold_outreach"
    FOLLOW_UP = "follow_up"


class TemplateCategory(str, enum.Enum):
    INITIAL = "initial"
    FOLLOW_UP = "follow_up"


class Sentiment(str, enum.Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class NextAction(str, enum.Enum):
    NEGOTIATE = "negotiate"
    ACTIVE = "active"
    BLACKLIST = "blacklist"


# ---------------------------------------------------------------------------
# Domain models
# ---------------------------------------------------------------------------

class CarrierProfile(BaseModel):
    user_id: str
    company_name: str | None = None
    owner_name: str | None = None
    mc_number: str | None = None
    dot_number: str | None = None
    phone: str | None = None
    email: str | None = None
    home_base_city: str | None = None
    home_base_state: str | None = None
    equipment_types: list[str] = Field(default_factory=list)
    preferred_lanes: list[str] = Field(default_factory=list)
    preferred_states: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BrokerRecord(BaseModel):
    """Fields shared by CRM brokers and shared-pool leads; everything scoring reads."""

    id: str | None = None
    company_name: str | None = None
    contact_name: str | None = None
    mc_number: str | None = None
    dot_number: str | None = None
    email: str | None = None
    phone: str | None = None
    address_city: str | None = None
    address_state: str | None = None
    authority_status: str | None = None
    insurance_on_file: bool = False
    credit_score: float | None = None
    days_to_pay: int | None = None
    response_rate: float | None = None
    last_contact_date: datetime | None = None
    first_contact_date: datetime | None = None
    total_outreach_attempts: int = 0
    total_responses: int = 0
    total_loads_booked: int = 0
    outreach_status: OutreachStatus | None = None
    preferred_lanes: list[str] = Field(default_factory=list)


class Broker(BrokerRecord):
    """A broker in one carrier's private CRM."""

    carrier_id: str
    outreach_status: OutreachStatus | None = OutreachStatus.NEW
    relationship_score: int | None = None
    total_revenue: float = 0.0
    payment_method: str | None = None
    website: str | None = None
    notes: str | None = None
    source: str = "manual"
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BrokerLead(BrokerRecord):
    """A broker in the shared, carrier-agnostic lead pool."""

    legal_name: str | None = None
    dba_name: str | None = None
    broker_authority: bool = False
    created_at: datetime | None = None


class CampaignStep(BaseModel):
    id: str | None = None
    carrier_id: str
    broker_id: str
    campaign_type: CampaignType = CampaignType.COLD_OUTREACH
    method: ContactMethod = ContactMethod.EMAIL
    status: CampaignStatus = CampaignStatus.SCHEDULED
    sequence_step: int = 1
    parent_campaign_id: str | None = None
    subject: str | None = None
    body_text: str | None = None
    template_used: str | None = None
    scheduled_at: datetime | None = None
    sent_at: datetime | None = None
    replied_at: datetime | None = None
    broker_response: str | None = None
    response_sentiment: Sentiment | None = None
    provider_message_id: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class EmailTemplate(BaseModel):
    id: str | None = None
    carrier_id: str | None = None
    name: str
    category: TemplateCategory = TemplateCategory.FOLLOW_UP
    subject_template: str
    body_template: str
    sequence_step: int = 1
    delay_days: int = 0
    is_default: bool = True


# ---------------------------------------------------------------------------
# Scoring results
# ---------------------------------------------------------------------------

class ScoreBreakdown(BaseModel):
    payment: int
    responsiveness: int
    revenue: int
    reliability: int


class RelationshipScore(BaseModel):
    score: int
    breakdown: ScoreBreakdown
    label: str


class BrokerScoreResult(BaseModel):
    broker_id: str
    company: str | None = None
    score: int
    breakdown: ScoreBreakdown
    label: str


class TargetScore(BaseModel):
    score: int
    reasons: list[str] = Field(default_factory=list)


class TargetRecommendation(BaseModel):
    source: str  # "crm" or "lead"
    broker_id: str | None = None
    company_name: str | None = None
    mc_number: str | None = None
    address_state: str | None = None
    outreach_status: OutreachStatus | None = None
    target_score: int
    target_reasons: list[str] = Field(default_factory=list)


class RecommendationSet(BaseModel):
    recommendations: list[TargetRecommendation]
    carrier_state: str
    target_states: list[str]
    total_crm: int
    total_leads: int


class LaneCoverage(BaseModel):
    lane: str
    brokers_in_crm: int
    leads_available: int
    coverage: str  # HIGH, MEDIUM, LOW


# ---------------------------------------------------------------------------
# Outreach results
# ---------------------------------------------------------------------------

class InitiationResult(BaseModel):
    success: bool
    step: CampaignStep
    follow_ups_scheduled: int = 0
    dry_run: bool = False
    message: str


class BulkOutreachItem(BaseModel):
    broker_id: str
    company: str | None = None
    status: str  # sent, failed, skipped, error
    step_id: str | None = None
    error: str | None = None


class OutreachPreview(BaseModel):
    method: ContactMethod
    to: str
    subject: str
    body: str
    twiml: str | None = None


class ResponseResult(BaseModel):
    broker_id: str
    replied_step_id: str | None = None
    cancelled_follow_ups: int = 0
    response_rate: float | None = None
    outreach_status: OutreachStatus | None = None


class SweepItem(BaseModel):
    step_id: str
    broker: str
    status: str  # sent, failed, cancelled, deferred, skipped
    reason: str | None = None


class SweepResult(BaseModel):
    processed: int = 0
    sent: int = 0
    failed: int = 0
    cancelled: int = 0
    deferred: int = 0
    skipped: int = 0
    items: list[SweepItem] = Field(default_factory=list)


class OutreachStats(BaseModel):
    total_brokers: int = 0
    brokers_by_status: dict[str, int] = Field(default_factory=dict)
    total_campaigns: int = 0
    campaigns_by_status: dict[str, int] = Field(default_factory=dict)
    emails_sent: int = 0
    emails_replied: int = 0
    overall_response_rate: str = "0%"
    pending_follow_ups: int = 0
