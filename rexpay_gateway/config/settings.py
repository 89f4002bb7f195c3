"""Gateway settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rexpay_gateway.core.retry import RetryPolicy
from rexpay_gateway.core.subaccount_selector import FallbackPolicy, SelectionConfig

THIRTY_DAYS_SECONDS = 30 * 24 * 60 * 60


class Settings(BaseSettings):
    """Gateway settings loaded from environment variables."""

    # Rexpay Configuration
    rexpay_url: str = Field(default="https://api.rexpay.com", description="Rexpay API base URL")
    rexpay_secret_key: str = Field(default="", description="Rexpay secret key (subaccounts, refunds)")
    rexpay_api_key: str = Field(default="", description="Per-merchant API key")
    rexpay_merchant_id: str = Field(default="", description="Per-merchant identifier (X-Merchant-ID)")
    rexpay_encryption_key: str = Field(default="", description="Card envelope encryption key")
    rexpay_encryption_iv: str = Field(default="", description="Card envelope initialization vector")
    request_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-call timeout")

    # Callback Configuration
    system_url: str = Field(default="https://api.system.com", description="System base URL")
    callback_path: str = Field(
        default="/payments/callback/rexpay", description="Callback path appended to system_url"
    )

    # Retry Policy
    retry_max_attempts: int = Field(default=3, ge=0, description="Retries after the first try")
    retry_initial_delay: float = Field(default=1.0, ge=0, description="First backoff delay (seconds)")
    retry_backoff_multiplier: float = Field(default=2.0, ge=1, description="Backoff base")
    retry_max_delay: float = Field(default=30.0, gt=0, description="Upper bound on a single delay")
    retry_jitter: float = Field(default=0.0, ge=0, description="Max random jitter added per delay")
    retry_deadline_seconds: Optional[float] = Field(
        default=None, gt=0, description="Stop retrying once this much time has elapsed"
    )

    # Subaccount Selection
    subaccount_success_weight: float = Field(default=0.7, ge=0, le=1)
    subaccount_recency_weight: float = Field(default=0.3, ge=0, le=1)
    subaccount_min_success_rate: float = Field(default=0.8, ge=0, le=1)
    subaccount_recency_window_seconds: float = Field(default=THIRTY_DAYS_SECONDS, gt=0)
    subaccount_fallback_policy: Literal["best_available", "fail_fast"] = Field(
        default="best_available",
        description="Behaviour when every subaccount is below the minimum success rate",
    )

    # Refunds
    default_refund_reason: str = Field(default="Customer request")

    # Application Configuration
    app_name: str = Field(default="rexpay-gateway", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("rexpay_url", "system_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an absolute http(s) URL without a trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with 'http://' or 'https://'")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @property
    def callback_url(self) -> str:
        """Callback URL handed to the gateway on initialize."""
        return f"{self.system_url}/{self.callback_path.lstrip('/')}"

    def retry_policy(self) -> RetryPolicy:
        """Build the immutable retry policy from these settings."""
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            initial_delay=self.retry_initial_delay,
            backoff=self.retry_backoff_multiplier,
            max_delay=self.retry_max_delay,
            jitter=self.retry_jitter,
            deadline=self.retry_deadline_seconds,
        )

    def selection_config(self) -> SelectionConfig:
        """Build the subaccount selection parameters from these settings."""
        return SelectionConfig(
            success_weight=self.subaccount_success_weight,
            recency_weight=self.subaccount_recency_weight,
            min_success_rate=self.subaccount_min_success_rate,
            recency_window=self.subaccount_recency_window_seconds,
            fallback_policy=FallbackPolicy(self.subaccount_fallback_policy),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Intended for process bootstrap; core components take a Settings
    instance explicitly.
    """
    return Settings()
