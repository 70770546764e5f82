"""Scheduled Prefect flows."""
