"""cmsauth CLI."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from cmsauth.config import AuthSettings
from cmsauth.directory import fetch_directory, parse_directory_file
from cmsauth.dn import sorted_dn
from cmsauth.errors import CMSAuthError
from cmsauth.hmac_auth import HMAC_HEADER, CMSAuth


def _header_pair(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"header must be name=value, got {raw!r}")
    return name.strip(), value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cmsauth", description="CMS trust-header tools")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    subparsers = parser.add_subparsers(dest="command", required=True)

    dn_parser = subparsers.add_parser("dn", help="Print the sorted form of a DN")
    dn_parser.add_argument("dn")

    for name, help_text in (("sign", "Compute cms-authn-hmac for headers"), ("verify", "Verify signed headers")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--key-file", default=None)
        sub.add_argument("-H", "--header", dest="headers", action="append", type=_header_pair, default=[])
        sub.add_argument("--json", action="store_true")

    directory_parser = subparsers.add_parser("directory", help="Load and index identity records")
    source = directory_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", default=None)
    source.add_argument("--url", default=None)
    directory_parser.add_argument("--key", default=None)
    directory_parser.add_argument("--json", action="store_true")

    return parser


def _auth(key_file: str | None) -> CMSAuth:
    return AuthSettings.from_env(key_file=key_file).build_auth()


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG if args.verbose > 1 else logging.INFO)

    if args.command == "dn":
        print(sorted_dn(args.dn))
        return 0

    if args.command == "sign":
        signed = _auth(args.key_file).sign(args.headers)
        if args.json:
            print(json.dumps({"command": "sign", "hmac": signed[HMAC_HEADER][0], "headers": signed}, sort_keys=True))
            return 0
        print(signed[HMAC_HEADER][0])
        return 0

    if args.command == "verify":
        auth = _auth(args.key_file)
        result = auth.authenticate(args.headers)
        if args.json:
            print(
                json.dumps(
                    {
                        "command": "verify",
                        "valid": result.valid,
                        "reason": result.reason,
                        "derived_headers": result.derived_headers,
                    },
                    sort_keys=True,
                )
            )
        else:
            print("valid" if result.valid else f"invalid: {result.reason}")
        return 0 if result.valid else 1

    if args.command == "directory":
        settings = AuthSettings.from_env()
        try:
            if args.file:
                directory = parse_directory_file(args.file, args.key or "login", verbose=bool(args.verbose))
            else:
                directory = fetch_directory(
                    args.url,
                    args.key or "dn",
                    token=settings.token or None,
                    timeout=settings.timeout,
                    cert_cache=settings.build_cert_cache(),
                    verbose=bool(args.verbose),
                )
        except CMSAuthError as error:
            print(f"cmsauth: {error}", file=sys.stderr)
            return 2
        if args.json:
            payload = {key: record.to_dict() for key, record in directory.items()}
            print(json.dumps({"command": "directory", "count": len(directory), "records": payload}, sort_keys=True))
            return 0
        for key, record in directory.items():
            print(f"{key}: {record.login} {record.name}")
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
