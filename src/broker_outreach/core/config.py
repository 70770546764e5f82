"""Configuration via environment variables.

Database settings follow the individual POSTGRES_* variable pattern.
Provider credentials left empty put that provider in dry-run mode.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # --- Database ---
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "postgres"
    postgres_user: str = "postgres"
    postgres_password: str = ""

    # SQLite fallback for local dev (set USE_SQLITE=true)
    use_sqlite: bool = False
    sqlite_path: str = "outreach.db"

    @property
    def database_url(self) -> str:
        if self.use_sqlite:
            return f"sqlite:///{self.sqlite_path}"
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- Auth ---
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    # Shared secret for the scheduled sweep endpoint (empty = open)
    cron_secret: str = ""

    # --- Email (SendGrid) ---
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = ""
    sendgrid_api_url: str = "https://api.sendgrid.com/v3"
    default_sender_name: str = "Dispatch Desk"

    # --- Voice (Twilio) ---
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""
    twilio_api_url: str = "https://api.twilio.com/2010-04-01"

    # --- FMCSA lead directory ---
    fmcsa_api_key: str = ""
    fmcsa_base_url: str = "https://mobile.fmcsa.dot.gov/qc/services"

    # Provider calls must finish or fail within this bound
    provider_timeout_seconds: float = 15.0

    # --- Operating limits ---
    sweep_batch_size: int = 100
    recommendation_limit: int = 30
    lead_pool_limit: int = 100
    stale_contact_days: int = 14
    bulk_send_max: int = 20
    history_limit: int = 50

    log_level: str = "INFO"

    model_config = {"env_prefix": ""}
