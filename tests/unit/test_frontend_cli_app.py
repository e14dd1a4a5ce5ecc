"""Tests for the secrypt command-line tool."""

import pytest
from unittest.mock import patch

from secrypt.core.config import Settings
from secrypt.frontend.cli import app
from secrypt.frontend.cli.context import build_context, confirm_on_terminal
from secrypt.security.custodian import KeyringCustodian, PassphraseCustodian


@pytest.fixture
def passphrase_env(monkeypatch):
    monkeypatch.setenv("SECRYPT_CUSTODIAN", "passphrase")
    monkeypatch.setenv("SECRYPT_PASSPHRASE", "cli passphrase")
    # keep Argon2 cheap for the CLI round trip
    with patch(
        "secrypt.frontend.cli.context.PassphraseCustodian",
        lambda: PassphraseCustodian(time_cost=1, memory_cost=8, parallelism=1),
    ):
        yield


def test_seal_then_open_files(tmp_path, passphrase_env):
    plain = tmp_path / "plain.txt"
    sealed = tmp_path / "plain.txt.sealed"
    opened = tmp_path / "plain.out"
    plain.write_bytes(b"hello world")

    assert app.main(["seal", str(plain), str(sealed)]) == 0
    assert sealed.read_bytes() != b"hello world"
    assert app.main(["open", str(sealed), str(opened)]) == 0
    assert opened.read_bytes() == b"hello world"


def test_open_failure_writes_nothing(tmp_path, passphrase_env, capsys):
    sealed = tmp_path / "bad.sealed"
    out = tmp_path / "out.txt"
    sealed.write_bytes(b"\xa0")  # empty CBOR map

    assert app.main(["open", str(sealed), str(out)]) == 1
    assert not out.exists()
    assert list(tmp_path.iterdir()) == [sealed]
    assert "missingEphemeralPublicKey" in capsys.readouterr().err


def test_missing_input_file_exits_1(tmp_path, passphrase_env, capsys):
    assert app.main(["seal", str(tmp_path / "nope"), str(tmp_path / "out")]) == 1
    assert "secrypt:" in capsys.readouterr().err


def test_config_error_exits_1(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("SECRYPT_CUSTODIAN", "tpm")
    src = tmp_path / "in"
    src.write_bytes(b"x")

    assert app.main(["seal", str(src), str(tmp_path / "out")]) == 1
    assert "SECRYPT_CUSTODIAN" in capsys.readouterr().err


def test_usage_error_exits_2():
    with pytest.raises(SystemExit) as exc:
        app.main(["frobnicate"])
    assert exc.value.code == 2


def test_version_flag(capsys):
    with pytest.raises(SystemExit) as exc:
        app.main(["--version"])
    assert exc.value.code == 0
    assert app.VERSION in capsys.readouterr().out


def test_write_atomic_replaces_existing(tmp_path):
    target = tmp_path / "file"
    target.write_bytes(b"old")

    app.write_atomic(target, b"new")

    assert target.read_bytes() == b"new"
    assert list(tmp_path.iterdir()) == [target]


# ==============================================================================
# Tests: context building
# ==============================================================================

def test_build_context_keyring():
    ctx = build_context(Settings(keyring_service="svc", keyring_account="alice"))

    assert isinstance(ctx.custodian, KeyringCustodian)
    assert ctx.custodian.service == "svc"
    assert ctx.custodian.account == "alice"


def test_build_context_passphrase_from_settings():
    ctx = build_context(Settings(custodian="passphrase", passphrase="preset", auth_reuse_seconds=5))

    assert isinstance(ctx.custodian, PassphraseCustodian)
    assert ctx.auth.passphrase("unlock") == b"preset"
    assert ctx.auth.reuse_seconds == 5


def test_build_context_prompts_with_getpass():
    ctx = build_context(Settings(custodian="passphrase"))
    with patch("secrypt.frontend.cli.context.getpass.getpass", return_value="typed") as mock_getpass:
        assert ctx.auth.passphrase("unlock the key") == b"typed"
    assert "unlock the key" in mock_getpass.call_args[0][0]


def test_confirm_denies_without_terminal():
    with patch("secrypt.frontend.cli.context.sys.stdin") as mock_stdin:
        mock_stdin.isatty.return_value = False
        assert confirm_on_terminal("use key") is False


@pytest.mark.parametrize("answer, expected", [("y\n", True), ("YES\n", True), ("\n", False), ("n\n", False)])
def test_confirm_reads_terminal_answer(answer, expected):
    with patch("secrypt.frontend.cli.context.sys.stdin") as mock_stdin, \
            patch("secrypt.frontend.cli.context.sys.stderr"):
        mock_stdin.isatty.return_value = True
        mock_stdin.readline.return_value = answer
        assert confirm_on_terminal("use key") is expected


# ==============================================================================
# Tests: init
# ==============================================================================

@pytest.fixture
def fake_keystore():
    store = {}
    with patch("secrypt.security.custodian.save_key", side_effect=lambda s, a, k: store.__setitem__((s, a), k)), \
            patch("secrypt.security.custodian.load_key", side_effect=lambda s, a: store.get((s, a))), \
            patch("secrypt.security.custodian.assess_keyring_backend", return_value=(True, "ok")):
        yield store


def test_init_creates_keyring_domain_key_once(fake_keystore, monkeypatch, capsys):
    monkeypatch.delenv("SECRYPT_CUSTODIAN", raising=False)
    argv = ["--service", "svc", "--account", "alice", "init"]

    assert app.main(argv) == 0
    first = fake_keystore[("svc", "alice")]
    assert "created" in capsys.readouterr().out

    assert app.main(argv) == 0
    assert fake_keystore[("svc", "alice")] == first
    assert "nothing to create" in capsys.readouterr().out


def test_seal_before_init_fails_without_writing(tmp_path, fake_keystore, monkeypatch, capsys):
    monkeypatch.delenv("SECRYPT_CUSTODIAN", raising=False)
    src = tmp_path / "in"
    src.write_bytes(b"x")

    assert app.main(["--service", "svc", "--account", "alice", "seal", str(src), str(tmp_path / "out")]) == 1
    assert "secrypt init" in capsys.readouterr().err
    assert fake_keystore == {}
    assert not (tmp_path / "out").exists()


def test_init_passphrase_custodian_is_a_no_op(passphrase_env, capsys):
    assert app.main(["init"]) == 0
    assert "nothing to create" in capsys.readouterr().out


def test_seal_prompts_twice_for_a_new_passphrase(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("SECRYPT_CUSTODIAN", "passphrase")
    monkeypatch.delenv("SECRYPT_PASSPHRASE", raising=False)
    src = tmp_path / "in"
    src.write_bytes(b"x")

    with patch(
        "secrypt.frontend.cli.context.PassphraseCustodian",
        lambda: PassphraseCustodian(time_cost=1, memory_cost=8, parallelism=1),
    ), patch("secrypt.frontend.cli.context.getpass.getpass", side_effect=["one", "two"]) as mock_getpass:
        assert app.main(["seal", str(src), str(tmp_path / "out")]) == 1

    assert mock_getpass.call_count == 2
    assert "do not match" in capsys.readouterr().err
    assert not (tmp_path / "out").exists()
