"""
Front desk settings read from environment variables (DATABASE_URL, SMTP_USER,
SMS_GATEWAY_URL, ...) or a .env file, validated with Pydantic Settings.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class HudumaConfig(BaseSettings):
    """
    Front-desk configuration with validation
    Automatically loads from environment variables and .env file
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Database settings
    database_url: str = Field(
        "sqlite:///huduma.db", description="SQLAlchemy database URL"
    )
    db_busy_timeout: float = Field(
        30.0,
        gt=0,
        description="Seconds a SQLite writer waits for a lock before giving up",
    )

    # Scheduling settings
    timezone: str = Field(
        "Africa/Nairobi", description="Timezone used to decide what 'today' is"
    )
    booking_horizon_days: int = Field(
        30, ge=1, le=365, description="How many days ahead citizens may book"
    )
    default_service_time_minutes: int = Field(
        15,
        ge=1,
        le=240,
        description="Average service time used for new queue counters",
    )

    # Mail transport (Gmail SMTP by default)
    smtp_host: str = Field("smtp.gmail.com", description="SMTP server host")
    smtp_port: int = Field(587, ge=1, le=65535, description="SMTP server port")
    smtp_user: Optional[str] = Field(None, description="SMTP login / sender address")
    smtp_password: Optional[str] = Field(None, description="SMTP app password")
    smtp_timeout: int = Field(20, ge=1, le=120, description="SMTP timeout in seconds")
    email_from_name: str = Field(
        "Huduma Centre", description="Display name used in the From header"
    )

    # SMS gateway (optional - SMS channel is disabled when not set)
    sms_gateway_url: Optional[str] = Field(
        None, description="HTTP endpoint of the SMS gateway"
    )
    sms_api_key: Optional[str] = Field(None, description="SMS gateway API key")
    sms_username: Optional[str] = Field(None, description="SMS gateway account name")
    sms_sender_id: Optional[str] = Field(None, description="Alphanumeric sender ID")

    # Outbox worker
    outbox_poll_interval: int = Field(
        30,
        ge=5,
        le=600,
        description="Interval in seconds between outbox drains (default: 30)",
    )
    outbox_batch_size: int = Field(
        50, ge=1, le=1000, description="Maximum notifications delivered per drain"
    )
    outbox_stale_after_minutes: int = Field(
        15,
        ge=1,
        le=1440,
        description="Minutes after which a claimed but unresolved notification is reported as stale",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL looks like an SQLAlchemy URL"""
        if "://" not in v:
            raise ValueError(
                "DATABASE_URL must be an SQLAlchemy URL (e.g. sqlite:///huduma.db)"
            )
        return v

    @field_validator("sms_gateway_url")
    @classmethod
    def validate_sms_gateway_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate SMS gateway URL scheme"""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("SMS_GATEWAY_URL must start with http:// or https://")
        return v

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    @property
    def sms_enabled(self) -> bool:
        return bool(self.sms_gateway_url and self.sms_api_key)

    def get_sender_address(self) -> str:
        """Formatted From header for outgoing mail"""
        return f"{self.email_from_name} <{self.smtp_user}>"


# Process-wide settings, built on first access
_config: Optional[HudumaConfig] = None


def get_config() -> HudumaConfig:
    """
    Settings loaded once per process

    Returns:
        HudumaConfig: Validated configuration

    Raises:
        pydantic.ValidationError: If an environment value fails validation
    """
    global _config
    if _config is None:
        _config = HudumaConfig()
    return _config
