"""
Unit tests for the keystore module.
"""

import base64
import importlib.util
import sys

import pytest
from unittest.mock import MagicMock, patch
from keyring.errors import KeyringError
from secrypt.security import keystore


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def mock_keyring_lib():
    """Patches the keyring module within secrypt.security.keystore."""
    with patch("secrypt.security.keystore.keyring", autospec=True) as mock_lib:
        yield mock_lib


@pytest.fixture
def no_keyring_lib():
    """Simulates keyring not being installed."""
    with patch("secrypt.security.keystore.keyring", None):
        yield


# ==============================================================================
# Tests: Dependency Availability
# ==============================================================================

def test_require_keyring_raises_if_missing(no_keyring_lib):
    with pytest.raises(keystore.KeystoreUnavailableError, match="keyring package is not available"):
        keystore.save_key("service", "user", b"key")

    with pytest.raises(keystore.KeystoreUnavailableError, match="keyring package is not available"):
        keystore.load_key("service", "user")


def test_assess_backend_returns_false_if_missing(no_keyring_lib):
    is_secure, msg = keystore.assess_keyring_backend()
    assert is_secure is False
    assert "not installed" in msg


class _BrokenKeyringFinder:
    """Import hook that fails the way a broken backend plugin would."""

    def find_spec(self, name, path=None, target=None):
        if name == "keyring" or name.startswith("keyring."):
            raise RuntimeError("keyring backend failed to initialise")
        return None


def _load_fresh_keystore():
    spec = importlib.util.spec_from_file_location("_keystore_fresh", keystore.__file__)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_missing_keyring_package_leaves_module_importable():
    with patch.dict(sys.modules, {"keyring": None, "keyring.errors": None}):
        fresh = _load_fresh_keystore()
    assert fresh.keyring is None


def test_keyring_import_failure_other_than_missing_propagates():
    with patch.dict(sys.modules), patch.object(sys, "meta_path", [_BrokenKeyringFinder()] + sys.meta_path):
        sys.modules.pop("keyring", None)
        sys.modules.pop("keyring.errors", None)
        with pytest.raises(RuntimeError, match="failed to initialise"):
            _load_fresh_keystore()


# ==============================================================================
# Tests: save_key
# ==============================================================================

def test_save_key_encodes_and_stores(mock_keyring_lib):
    """Bytes are base64 encoded before storage."""
    key_bytes = b"\x01\x02\x03\x04"

    keystore.save_key("secrypt_test", "alice", key_bytes)

    called_service, called_account, called_secret = mock_keyring_lib.set_password.call_args[0]
    assert called_service == "secrypt_test"
    assert called_account == "alice"
    assert called_secret == base64.b64encode(key_bytes).decode("ascii")


def test_save_key_backend_error_is_unavailable(mock_keyring_lib):
    mock_keyring_lib.set_password.side_effect = KeyringError("locked")

    with pytest.raises(keystore.KeystoreUnavailableError, match="failed to write"):
        keystore.save_key("svc", "usr", b"k")


# ==============================================================================
# Tests: load_key
# ==============================================================================

def test_load_key_returns_bytes(mock_keyring_lib):
    original_key = b"secret_bytes"
    mock_keyring_lib.get_password.return_value = base64.b64encode(original_key).decode("ascii")

    assert keystore.load_key("svc", "usr") == original_key


def test_load_key_returns_none_if_missing(mock_keyring_lib):
    mock_keyring_lib.get_password.return_value = None

    assert keystore.load_key("svc", "usr") is None


def test_load_key_corrupt_data_raises(mock_keyring_lib):
    """A damaged entry is an error, never the same as a missing one."""
    mock_keyring_lib.get_password.return_value = "NotValidBase64!!!"

    with pytest.raises(keystore.KeystoreUnavailableError, match="not valid base64"):
        keystore.load_key("svc", "usr")


def test_load_key_backend_error_is_unavailable(mock_keyring_lib):
    mock_keyring_lib.get_password.side_effect = KeyringError("no dbus")

    with pytest.raises(keystore.KeystoreUnavailableError, match="failed to read"):
        keystore.load_key("svc", "usr")


# ==============================================================================
# Tests: assess_keyring_backend
# ==============================================================================

def test_assess_backend_handles_exception(mock_keyring_lib):
    mock_keyring_lib.get_keyring.side_effect = Exception("DBus error")

    is_secure, msg = keystore.assess_keyring_backend()
    assert is_secure is False
    assert "failed to get keyring backend" in msg


def test_assess_backend_insecure_names(mock_keyring_lib):
    mock_backend = MagicMock()
    mock_backend.__class__.__name__ = "SimplePlaintextKeyring"
    mock_keyring_lib.get_keyring.return_value = mock_backend

    is_secure, msg = keystore.assess_keyring_backend()
    assert is_secure is False
    assert "insecure backend detected" in msg


def test_assess_backend_low_priority(mock_keyring_lib):
    mock_backend = MagicMock()
    mock_backend.__class__.__name__ = "SomeGenericBackend"
    mock_backend.priority = 0
    mock_keyring_lib.get_keyring.return_value = mock_backend

    is_secure, msg = keystore.assess_keyring_backend()
    assert is_secure is False
    assert "no suitable secure keyring backend" in msg


def test_assess_backend_secure_names(mock_keyring_lib):
    for name in ["KeychainKeyring", "WindowsWinVaultKeyring", "SecretServiceKeyring", "KWallet"]:
        mock_backend = MagicMock()
        mock_backend.__class__.__name__ = name
        mock_backend.priority = 1
        mock_keyring_lib.get_keyring.return_value = mock_backend

        is_secure, msg = keystore.assess_keyring_backend()
        assert is_secure is True
        assert "looks acceptable" in msg


def test_assess_backend_unknown_but_high_priority(mock_keyring_lib):
    mock_backend = MagicMock()
    mock_backend.__class__.__name__ = "SuperSecureHardwareKeyring"
    mock_backend.priority = 5
    mock_keyring_lib.get_keyring.return_value = mock_backend

    is_secure, msg = keystore.assess_keyring_backend()
    assert is_secure is True
    assert "unknown backend" in msg
