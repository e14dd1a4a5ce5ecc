"""Unit tests for environment-driven settings."""

import logging

import pytest
from unittest.mock import patch

from secrypt.core.config import CUSTODIAN_KEYRING, CUSTODIAN_PASSPHRASE, Settings, load_settings
from secrypt.core.exceptions import ConfigError


def test_defaults_from_empty_environment():
    with patch("secrypt.core.config.getpass.getuser", return_value="alice"):
        settings = load_settings({})

    assert settings == Settings(
        custodian=CUSTODIAN_KEYRING,
        keyring_service="secrypt",
        keyring_account="alice",
        passphrase=None,
        auth_reuse_seconds=0.0,
        log_level=logging.WARNING,
    )


def test_all_variables_are_read():
    settings = load_settings(
        {
            "SECRYPT_CUSTODIAN": "Passphrase",
            "SECRYPT_KEYRING_SERVICE": "svc",
            "SECRYPT_KEYRING_ACCOUNT": "bob",
            "SECRYPT_PASSPHRASE": "pw",
            "SECRYPT_AUTH_REUSE_SECONDS": "30",
            "SECRYPT_LOG_LEVEL": "debug",
        }
    )

    assert settings.custodian == CUSTODIAN_PASSPHRASE
    assert settings.keyring_service == "svc"
    assert settings.keyring_account == "bob"
    assert settings.passphrase == "pw"
    assert settings.auth_reuse_seconds == 30.0
    assert settings.log_level == logging.DEBUG


def test_account_falls_back_when_user_unknown():
    with patch("secrypt.core.config.getpass.getuser", side_effect=OSError("no user")):
        assert load_settings({}).keyring_account == "default"


@pytest.mark.parametrize(
    "env",
    [
        {"SECRYPT_CUSTODIAN": "tpm"},
        {"SECRYPT_AUTH_REUSE_SECONDS": "soon"},
        {"SECRYPT_AUTH_REUSE_SECONDS": "-1"},
        {"SECRYPT_LOG_LEVEL": "chatty"},
    ],
)
def test_invalid_values_raise_config_error(env):
    with pytest.raises(ConfigError):
        load_settings(env)
