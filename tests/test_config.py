"""Unit tests for core/config.py -- startup key policy.

Settings are built with explicit keyword arguments so the test process
environment (DEBUG=true from conftest) does not decide the outcome.
"""

import pytest
from pydantic import ValidationError

from chat.crypto import generate_key
from core.config import Settings

_SECRET = "s" * 32


def test_production_requires_secret_key():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="", crypto_key=generate_key())


def test_production_requires_crypto_key():
    with pytest.raises(ValidationError, match="CRYPTO_KEY is required"):
        Settings(debug=False, secret_key=_SECRET, crypto_key="")


def test_short_secret_key_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, secret_key="short", crypto_key=generate_key())


def test_bad_crypto_key_rejected():
    with pytest.raises(ValidationError, match="CRYPTO_KEY must be"):
        Settings(debug=True, secret_key=_SECRET, crypto_key="not-a-fernet-key")


def test_bad_push_environment_rejected():
    with pytest.raises(ValidationError, match="REMOTE_PUSH_ENVIRONMENT"):
        Settings(debug=True, secret_key=_SECRET, crypto_key=generate_key(), remote_push_environment="staging")


def test_debug_generates_missing_keys(caplog):
    with caplog.at_level("WARNING", logger="chatlink.config"):
        settings = Settings(debug=True, secret_key="", crypto_key="")
    assert len(settings.secret_key) >= 32
    assert settings.crypto_key
    assert "auto-generated CRYPTO_KEY" in caplog.text


def test_production_with_keys():
    key = generate_key()
    settings = Settings(debug=False, secret_key=_SECRET, crypto_key=key)
    assert settings.crypto_key == key
    assert settings.remote_timeout_seconds == 10.0
