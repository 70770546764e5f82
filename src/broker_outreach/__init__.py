"""Broker targeting, relationship scoring and follow-up outreach for freight carriers."""

__version__ = "0.1.0"
