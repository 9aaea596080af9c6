"""Tests for configuration settings."""

from decimal import Decimal

import pydantic
import pytest


def test_settings_loads_from_env():
    """Test that settings loads from environment variables."""
    # Import after env vars are set in conftest
    from daily_closing.config.settings import get_settings

    get_settings.cache_clear()

    settings = get_settings()

    assert settings.edit_secret.get_secret_value() == "2468"
    assert settings.store_url == "http://store.test"


def test_settings_has_defaults():
    """Test that settings has sensible defaults."""
    from daily_closing.config.settings import get_settings

    get_settings.cache_clear()
    settings = get_settings()

    assert settings.vat_rate == Decimal("0.15")
    assert settings.terminal_ids[0] == "63427603"
    assert len(settings.terminal_ids) == 6
    assert settings.card_networks == ["mada", "visa", "master", "amex", "gcci"]
    assert settings.denominations == [500, 200, 100, 50, 20, 10, 5, 1]
    assert settings.closings_collection == "dailyClosings"
    assert settings.audit_collection == "audit_logs"
    assert settings.store_api_key is None
    assert settings.ws_port == 8765


def test_settings_are_cached():
    """Test that get_settings returns cached instance."""
    from daily_closing.config.settings import get_settings

    get_settings.cache_clear()

    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_list_and_rate_overrides(monkeypatch):
    """List settings are read as JSON arrays."""
    from daily_closing.config.settings import Settings

    monkeypatch.setenv("CLOSING_VAT_RATE", "0.05")
    monkeypatch.setenv("CLOSING_TERMINAL_IDS", '["A", "B"]')
    monkeypatch.setenv("CLOSING_DENOMINATIONS", "[100, 10]")

    settings = Settings(_env_file=None)

    assert settings.vat_rate == Decimal("0.05")
    assert settings.terminal_ids == ["A", "B"]
    assert settings.denominations == [100, 10]


def test_edit_secret_is_required(monkeypatch):
    from daily_closing.config.settings import Settings

    monkeypatch.delenv("CLOSING_EDIT_SECRET", raising=False)

    with pytest.raises(pydantic.ValidationError):
        Settings(_env_file=None)


def test_configure_logging_json(caplog):
    """Structured events render as JSON lines when requested."""
    import logging

    import structlog

    from daily_closing.config import configure_logging

    configure_logging(level="INFO", format="json")
    try:
        with caplog.at_level(logging.INFO):
            structlog.get_logger("daily_closing.test").info("closing_created", closing_id="CLOSE-1")
    finally:
        structlog.reset_defaults()

    assert '"event": "closing_created"' in caplog.text
    assert '"closing_id": "CLOSE-1"' in caplog.text


def test_credentials_are_redacted():
    from daily_closing.config.logging import redact_sensitive

    event = redact_sensitive(None, "info", {"event": "x", "secret": "2468", "closing_id": "C"})

    assert event == {"event": "x", "secret": "***", "closing_id": "C"}
