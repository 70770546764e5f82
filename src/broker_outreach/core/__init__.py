"""Core modules: models, record store, config, errors."""

from broker_outreach.core.config import Settings
from broker_outreach.core.models import (
    Broker,
    BrokerLead,
    BrokerRecord,
    CampaignStep,
    CarrierProfile,
    EmailTemplate,
)
from broker_outreach.core.records import RecordStore

__all__ = [
    "Settings",
    "Broker",
    "BrokerLead",
    "BrokerRecord",
    "CampaignStep",
    "CarrierProfile",
    "EmailTemplate",
    "RecordStore",
]
