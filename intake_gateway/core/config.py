"""
Configuration management for the Intake Gateway
Uses Pydantic Settings for environment variable management
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application Settings
    app_version: str = Field(default="2.0.0")
    company_name: str = Field(default="Drain Fortin")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    environment: str = Field(default="development")

    # Server Configuration
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000)

    # Webhook Security
    vapi_webhook_secret: str = Field(default="")
    webhook_signature_header: str = Field(default="x-vapi-signature")
    webhook_signature_algorithm: str = Field(default="sha256")
    webhook_max_payload_bytes: int = Field(default=1024 * 1024)
    webhook_max_clock_skew_seconds: int = Field(default=300)
    webhook_reject_stale_events: bool = Field(default=True)
    webhook_requests_per_minute: int = Field(default=100)

    # Twilio Configuration
    twilio_account_sid: Optional[str] = Field(default=None)
    twilio_auth_token: Optional[str] = Field(default=None)
    twilio_from_number: Optional[str] = Field(default=None)
    # must stay below downstream_timeout_seconds
    twilio_http_timeout_seconds: float = Field(default=8.0)

    # Alert routing
    sms_alert_recipients: str = Field(default="")
    alert_priorities: str = Field(default="P1,P2")
    sms_max_recipients: int = Field(default=10)
    sms_max_length: int = Field(default=1600)

    # Supabase (storage sink)
    supabase_url: Optional[str] = Field(default=None)
    supabase_service_key: Optional[str] = Field(default=None)

    # Retry policy
    retry_max_attempts: int = Field(default=3)
    retry_base_delay: float = Field(default=1.0)
    retry_max_delay: float = Field(default=30.0)
    retry_exponential_base: float = Field(default=2.0)
    retry_jitter: bool = Field(default=True)

    # Circuit breakers
    sms_circuit_failure_threshold: int = Field(default=5)
    sms_circuit_timeout_seconds: float = Field(default=30.0)
    storage_circuit_failure_threshold: int = Field(default=5)
    storage_circuit_timeout_seconds: float = Field(default=30.0)

    # Concurrency & timeouts
    notification_concurrency: int = Field(default=5)
    tool_call_concurrency: int = Field(default=5)
    downstream_timeout_seconds: float = Field(default=10.0)
    notification_grace_seconds: float = Field(default=2.0)

    # Business rules
    business_timezone: str = Field(default="America/Montreal")
    quote_currency: str = Field(default="CAD")

    @property
    def alert_recipients(self) -> List[str]:
        """Parse SMS alert recipients from comma-separated string"""
        return [number.strip() for number in self.sms_alert_recipients.split(",") if number.strip()]

    @property
    def alert_priority_tiers(self) -> List[str]:
        """Priority tiers that trigger a staff alert when a call ends"""
        return [tier.strip().upper() for tier in self.alert_priorities.split(",") if tier.strip()]

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
