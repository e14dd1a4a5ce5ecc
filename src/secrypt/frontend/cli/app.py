"""secrypt command-line tool: seal and open files with custodian-backed keys.

    secrypt init
    secrypt seal INPUT OUTPUT
    secrypt open INPUT OUTPUT
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from secrypt.core.config import CUSTODIANS, load_settings
from secrypt.core.exceptions import SecryptError
from secrypt.core.pipeline import open_envelope, seal
from .context import build_context
from .logging_config import configure_logging

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` next to ``path`` and rename it into place."""
    path = Path(path)
    with tempfile.NamedTemporaryFile(dir=path.parent, prefix=f".{path.name}.", delete=False) as tmpf:
        tmp_path = Path(tmpf.name)
        try:
            tmpf.write(data)
            tmpf.flush()
            os.fsync(tmpf.fileno())
        except BaseException:
            tmpf.close()
            tmp_path.unlink(missing_ok=True)
            raise
    try:
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secrypt",
        description="A utility to encrypt files with custodian-backed keys.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument(
        "--custodian",
        choices=CUSTODIANS,
        default=None,
        help="Key custodian to use (default: $SECRYPT_CUSTODIAN or keyring)",
    )
    parser.add_argument(
        "--service",
        default=None,
        help="Keyring service name (default: $SECRYPT_KEYRING_SERVICE or secrypt)",
    )
    parser.add_argument(
        "--account",
        default=None,
        help="Keyring account (default: $SECRYPT_KEYRING_ACCOUNT or current user)",
    )
    parser.add_argument(
        "--reuse-seconds",
        type=float,
        default=None,
        help="Reuse a successful authentication for this many seconds",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init", help="Create the custodian's domain key if it does not exist yet.")
    seal_parser = subparsers.add_parser("seal", help="Seal data with a custodian key.")
    seal_parser.add_argument("input", help="Input file.")
    seal_parser.add_argument("output", help="Output file.")
    open_parser = subparsers.add_parser("open", help="Open data sealed with a custodian key.")
    open_parser.add_argument("input", help="Input file.")
    open_parser.add_argument("output", help="Output file.")
    return parser


def run(args: argparse.Namespace) -> None:
    settings = load_settings()
    overrides = {}
    if args.custodian is not None:
        overrides["custodian"] = args.custodian
    if args.service is not None:
        overrides["keyring_service"] = args.service
    if args.account is not None:
        overrides["keyring_account"] = args.account
    if args.reuse_seconds is not None:
        overrides["auth_reuse_seconds"] = args.reuse_seconds
    if args.verbose:
        overrides["log_level"] = logging.DEBUG
    settings = replace(settings, **overrides)

    configure_logging(settings.log_level)
    ctx = build_context(settings)

    if args.command == "init":
        if ctx.custodian.initialize():
            print(f"secrypt: created domain key for {settings.custodian} custodian")
        else:
            print(f"secrypt: {settings.custodian} custodian is ready, nothing to create")
        return

    data = Path(args.input).read_bytes()
    if args.command == "seal":
        result = seal(data, ctx.custodian, ctx.auth)
    else:
        result = open_envelope(data, ctx.custodian, ctx.auth)
    write_atomic(Path(args.output), result)
    logger.info("%s: wrote %d bytes to %s", args.command, len(result), args.output)


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    if args.reuse_seconds is not None and args.reuse_seconds < 0:
        parser.error("--reuse-seconds must not be negative")

    try:
        run(args)
    except (SecryptError, OSError) as e:
        logger.debug("%s failed", args.command, exc_info=True)
        print(f"secrypt: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    sys.exit(main())
