#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from typing import Any

from nacl.encoding import HexEncoder
from nacl.signing import SigningKey

try:
    # Preferred: module execution (`python -m connectors.medreg_cli`).
    from .medreg_client import MedregAuth, MedregClient
except ImportError:  # pragma: no cover
    # Also support script execution (`python connectors/medreg_cli.py`).
    import sys

    sys.path.append(str(Path(__file__).resolve().parents[1]))
    from connectors.medreg_client import MedregAuth, MedregClient  # type: ignore


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _report_payload(args: argparse.Namespace) -> str:
    if args.data_file is not None:
        return _read_text(args.data_file)
    return args.data


def _emit(payload: Any, output_format: str) -> None:
    if output_format == "json":
        print(json.dumps(payload, sort_keys=True))
        return
    print(payload)


def _fail(message: str, output_format: str, *, code: int = 1) -> None:
    payload = {"status": "error", "error": message, "exit_code": code}
    _emit(payload if output_format == "json" else message, output_format)
    raise SystemExit(code)


def _keygen() -> dict[str, str]:
    signing_key = SigningKey.generate()
    return {
        "private_key_hex": signing_key.encode(encoder=HexEncoder).decode(),
        "public_key_hex": signing_key.verify_key.encode(encoder=HexEncoder).decode(),
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MEDREG client CLI")
    parser.add_argument("--url", default=os.getenv("MEDREG_URL", "http://localhost:8000"))
    parser.add_argument("--token", default=os.getenv("MEDREG_TOKEN"))
    parser.add_argument("--format", choices=["json", "text"], default="json")

    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("health", help="Check server health")
    sub.add_parser("keygen", help="Generate an Ed25519 keypair locally")

    p_reg = sub.add_parser("register", help="Register a public key as an account")
    p_reg.add_argument("--name", required=True)
    p_reg.add_argument("--public-key", required=True)

    p_login = sub.add_parser("login", help="Run the challenge flow and print a token")
    p_login.add_argument("--address", required=True)
    p_login.add_argument("--private-key", default=os.getenv("MEDREG_PRIVATE_KEY"))

    sub.add_parser("deploy", help="Deploy the registry with the token's account as owner")
    sub.add_parser("owner", help="Show the registry owner")

    p_get = sub.add_parser("get", help="Read the report for a patient id")
    p_get.add_argument("patient_id", type=int)

    p_add = sub.add_parser("add", help="Store a report (owner only, once per patient id)")
    p_add.add_argument("patient_id", type=int)
    source = p_add.add_mutually_exclusive_group(required=True)
    source.add_argument("--data", help="Report text, stored verbatim")
    source.add_argument("--data-file", help="Path to a file holding the report text")

    p_notes = sub.add_parser("notifications", help="List insert notifications")
    p_notes.add_argument("--patient-id", type=int, default=None)
    p_notes.add_argument("--limit", type=int, default=50)

    sub.add_parser("verify", help="Verify the notification hash chain")
    return parser


def main() -> None:
    args = build_parser().parse_args()

    if args.cmd == "keygen":
        _emit(_keygen(), args.format)
        return

    c = MedregClient(args.url, auth=MedregAuth(bearer_token=args.token))
    try:
        try:
            if args.cmd == "health":
                _emit(c.health_check(), args.format)
            elif args.cmd == "register":
                _emit(c.register(args.name, args.public_key), args.format)
            elif args.cmd == "login":
                if not args.private_key:
                    _fail("missing --private-key or MEDREG_PRIVATE_KEY", args.format, code=2)
                data = c.login(args.address, args.private_key)
                _emit(data if args.format == "json" else data["token"], args.format)
            elif args.cmd == "deploy":
                _emit(c.deploy(), args.format)
            elif args.cmd == "owner":
                owner = c.get_owner()
                _emit({"owner": owner} if args.format == "json" else owner, args.format)
            elif args.cmd == "get":
                report = c.get_report(args.patient_id)
                payload = {"patient_id": args.patient_id, "report_data": report}
                _emit(payload if args.format == "json" else report, args.format)
            elif args.cmd == "add":
                _emit(c.add_report(args.patient_id, _report_payload(args)), args.format)
            elif args.cmd == "notifications":
                _emit(c.notifications(patient_id=args.patient_id, limit=args.limit), args.format)
            elif args.cmd == "verify":
                result = c.verify_notifications()
                _emit(result, args.format)
                if not result.get("valid"):
                    raise SystemExit(2)
            else:
                _fail(f"unknown cmd: {args.cmd}", args.format, code=2)
        except SystemExit:
            raise
        except Exception as exc:  # pragma: no cover - network/runtime error path
            _fail(str(exc), args.format, code=1)
    finally:
        c.close()


if __name__ == "__main__":
    main()
