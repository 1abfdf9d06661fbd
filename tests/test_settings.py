"""
Tests for settings validation.
"""
import pytest
from pydantic import ValidationError

from payout_gateway.config import Settings


@pytest.mark.unit
def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.payment_events_queue == "payment_events"
    assert settings.wise_target_currency == "INR"
    assert settings.api_port == 3001
    assert settings.transport_reconnect_interval_seconds == 0
    assert not settings.is_sqlite


@pytest.mark.unit
def test_log_level_normalized() -> None:
    assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"


@pytest.mark.unit
def test_invalid_log_level_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, log_level="verbose")


@pytest.mark.unit
def test_target_currency_must_be_three_letters() -> None:
    assert Settings(_env_file=None, wise_target_currency="eur").wise_target_currency == "EUR"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, wise_target_currency="EURO")


@pytest.mark.unit
def test_allowed_origins_list() -> None:
    settings = Settings(_env_file=None, allowed_origins="https://a.test, https://b.test,")

    assert settings.get_allowed_origins_list() == ["https://a.test", "https://b.test"]


@pytest.mark.unit
def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PAYMENT_EVENTS_QUEUE", "payouts")
    monkeypatch.setenv("WISE_PROFILE_ID", "999")

    settings = Settings(_env_file=None)

    assert settings.payment_events_queue == "payouts"
    assert settings.wise_profile_id == "999"
