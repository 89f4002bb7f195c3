"""
Unit tests for gateway settings.
"""
import pytest
from pydantic import ValidationError

from rexpay_gateway.config import Settings
from rexpay_gateway.core.retry import RetryPolicy
from rexpay_gateway.core.subaccount_selector import FallbackPolicy


@pytest.mark.unit
def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.request_timeout_seconds == 30.0
    assert settings.retry_policy() == RetryPolicy()
    config = settings.selection_config()
    assert config.success_weight == 0.7
    assert config.recency_weight == 0.3
    assert config.min_success_rate == 0.8
    assert config.fallback_policy == FallbackPolicy.BEST_AVAILABLE


@pytest.mark.unit
def test_loads_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REXPAY_URL", "https://sandbox.rexpay.test/")
    monkeypatch.setenv("REXPAY_MERCHANT_ID", "MID999")
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("RETRY_DEADLINE_SECONDS", "12.5")
    monkeypatch.setenv("SUBACCOUNT_FALLBACK_POLICY", "fail_fast")

    settings = Settings(_env_file=None)

    assert settings.rexpay_url == "https://sandbox.rexpay.test"
    assert settings.rexpay_merchant_id == "MID999"
    assert settings.retry_policy().total_tries == 6
    assert settings.retry_policy().deadline == 12.5
    assert settings.selection_config().fallback_policy == FallbackPolicy.FAIL_FAST


@pytest.mark.unit
def test_callback_url(test_settings: Settings) -> None:
    assert test_settings.callback_url == "https://merchant.test/payments/callback/rexpay"


@pytest.mark.unit
def test_rejects_relative_url() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, rexpay_url="api.rexpay.com")


@pytest.mark.unit
def test_log_level_normalised() -> None:
    assert Settings(_env_file=None, log_level="warning").log_level == "WARNING"

    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="verbose")


@pytest.mark.unit
def test_unknown_fallback_policy_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, subaccount_fallback_policy="random")
