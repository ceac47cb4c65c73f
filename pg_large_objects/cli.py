"""
Command line access to large objects.

Usage:
    python -m pg_large_objects import FILE
    python -m pg_large_objects export OID [-o FILE]
    python -m pg_large_objects size OID
    python -m pg_large_objects remove OID
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from .errors import LargeObjectError
from .repo import LargeObjectRepo

logger = logging.getLogger("pg_large_objects.cli")


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pg_large_objects", description="Import, export and remove PostgreSQL large objects")
    parser.add_argument("--dsn", default=None, help="Connection string (defaults to LARGE_OBJECTS_DATABASE_URL/DATABASE_URL)")
    parser.add_argument("--timeout", type=float, default=None, help="Transfer timeout in seconds")
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Store a file as a new large object and print its oid")
    p_import.add_argument("path", help="File to import ('-' for stdin)")

    p_export = sub.add_parser("export", help="Write a large object to a file or stdout")
    p_export.add_argument("oid", type=int)
    p_export.add_argument("-o", "--output", default="-", help="Target file ('-' for stdout)")

    p_size = sub.add_parser("size", help="Print the size of a large object in bytes")
    p_size.add_argument("oid", type=int)

    p_remove = sub.add_parser("remove", help="Delete a large object")
    p_remove.add_argument("oid", type=int)
    return parser.parse_args(argv)


def _run(args: argparse.Namespace, repo: LargeObjectRepo) -> None:
    if args.command == "import":
        if args.path == "-":
            oid = repo.import_large_object(sys.stdin.buffer, timeout=args.timeout)
        else:
            with open(args.path, "rb") as fh:
                oid = repo.import_large_object(fh, timeout=args.timeout)
        print(oid)
    elif args.command == "export":
        if args.output == "-":
            repo.export_large_object(args.oid, sink=sys.stdout.buffer, timeout=args.timeout)
            sys.stdout.buffer.flush()
        else:
            with open(args.output, "wb") as fh:
                repo.export_large_object(args.oid, sink=fh, timeout=args.timeout)
    elif args.command == "size":
        print(repo.large_object_size(args.oid))
    elif args.command == "remove":
        repo.remove_large_object(args.oid)


def main(argv: Optional[Sequence[str]] = None, *, repo: Optional[LargeObjectRepo] = None) -> int:
    """CLI entrypoint; returns the process exit code."""
    level_name = os.getenv("LOG_LEVEL", "WARNING")
    logging.basicConfig(level=level_name.strip().upper() or "WARNING", format="%(levelname)s:%(name)s:%(message)s")
    args = _parse_args(argv)
    repo = repo or LargeObjectRepo(args.dsn)
    try:
        _run(args, repo)
    except LargeObjectError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - manual entry point
    sys.exit(main())
