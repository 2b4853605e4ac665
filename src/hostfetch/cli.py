"""Command-line front end.

Usage:
    hostfetch fetch mega 'https://mega.nz/folder/ID#KEY' --hash sha256-...
    hostfetch hash ./some/dir --sri
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from hostfetch.adapters import HostKind
from hostfetch.digest import SUPPORTED_ALGORITHMS, digest, to_sri
from hostfetch.errors import HostFetchError
from hostfetch.fetch import fetch
from hostfetch.models import FetchOptions, Locator
from hostfetch.observability import StructuredLogger
from hostfetch.policy import Policy


def cmd_fetch(args: argparse.Namespace) -> int:
    logger = StructuredLogger()
    try:
        artifact = fetch(
            args.host,
            Locator(ref=args.locator, folder=args.folder),
            args.hash,
            args.algo,
            FetchOptions(
                retries=args.retries,
                rename_to=args.rename_to,
                sub_path=args.sub_path,
                unpack=args.unpack,
                collapse=not args.no_collapse,
                backoff=args.backoff,
            ),
            store=args.store,
            policy=Policy(network_mode="offline" if args.offline else "online"),
            logger=logger,
        )
    except HostFetchError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        if args.log_file:
            logger.to_json_lines(args.log_file)
    print(artifact.path)
    return 0


def cmd_hash(args: argparse.Namespace) -> int:
    try:
        value = digest(args.path, args.algo)
    except (HostFetchError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(to_sri(value, args.algo) if args.sri else value)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostfetch",
        description="Hash-verified fetches from file-hosting services",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    fetch_p = sub.add_parser("fetch", help="Fetch a locator and verify it against a digest")
    fetch_p.add_argument("host", choices=[kind.value for kind in HostKind])
    fetch_p.add_argument("locator", help="Host ID or share link")
    fetch_p.add_argument("--hash", required=True, help="Expected digest (hex or SRI)")
    fetch_p.add_argument("--algo", default="sha256", choices=SUPPORTED_ALGORITHMS)
    folder = fetch_p.add_mutually_exclusive_group()
    folder.add_argument("--folder", dest="folder", action="store_true", default=None)
    folder.add_argument("--file", dest="folder", action="store_false", default=None)
    fetch_p.add_argument("--retries", type=int, default=0)
    fetch_p.add_argument("--backoff", type=float, default=0.0, help="Seconds, doubled per retry")
    fetch_p.add_argument("--sub-path", default=None, help="Entry to select inside a folder")
    fetch_p.add_argument("--rename-to", default=None)
    fetch_p.add_argument("--unpack", action="store_true", help="Unpack an archive before hashing")
    fetch_p.add_argument("--no-collapse", action="store_true", help="Keep a single wrapper dir")
    fetch_p.add_argument("--store", default=None, help="Artifact store directory")
    fetch_p.add_argument("--offline", action="store_true", help="Refuse network access")
    fetch_p.add_argument("--log-file", default=None, help="Write structured log as JSON lines")
    fetch_p.set_defaults(func=cmd_fetch)

    hash_p = sub.add_parser("hash", help="Print the digest of a file or directory tree")
    hash_p.add_argument("path")
    hash_p.add_argument("--algo", default="sha256", choices=SUPPORTED_ALGORITHMS)
    hash_p.add_argument("--sri", action="store_true", help="Print in SRI form")
    hash_p.set_defaults(func=cmd_hash)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.func(args))
    except HostFetchError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
