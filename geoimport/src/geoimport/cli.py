"""CLI entrypoint for the geo reference-data importer."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

import psycopg

from geoimport.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_DELIMITER,
    default_dsn,
    default_log_level,
    default_source_dir,
    migrations_dir,
)
from geoimport.db.connection import connect
from geoimport.db.migrations import MigrationError, apply_migrations
from geoimport.db.store import PostgresStore, StorageWriteError
from geoimport.ingest.workflows import ImportStageError, resolve_source_paths, run_import
from geoimport.logging_setup import configure_logging


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if parsed < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return parsed


def _single_char(value: str) -> str:
    if len(value) != 1:
        raise argparse.ArgumentTypeError("delimiter must be a single character")
    return value


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="geoimport")
    parser.add_argument("--dsn", default=default_dsn(), help="PostgreSQL DSN")
    parser.add_argument("--log-level", default=default_log_level(), help="Logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    db_parser = subparsers.add_parser("db", help="Database operations")
    db_subparsers = db_parser.add_subparsers(dest="db_command", required=True)
    db_subparsers.add_parser("migrate", help="Apply SQL migrations")

    import_parser = subparsers.add_parser(
        "import",
        help="Import prov/kabkota/kec/desakel CSV files into the geo tables",
    )
    import_parser.add_argument(
        "--dir",
        type=Path,
        default=default_source_dir(),
        help="Folder holding prov.csv, kabkota.csv, kec.csv and desakel.csv",
    )
    import_parser.add_argument("--delimiter", type=_single_char, default=DEFAULT_DELIMITER)
    import_parser.add_argument(
        "--truncate",
        action="store_true",
        help="Empty the geo tables before importing",
    )
    import_parser.add_argument("--batch", type=_positive_int, default=DEFAULT_BATCH_SIZE)
    import_parser.add_argument("--no-progress", action="store_true", help="Hide progress bars")

    return parser


def _error(payload: dict) -> int:
    print(json.dumps({"status": "error", **payload}), file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    parser = _parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        if args.command == "db" and args.db_command == "migrate":
            with connect(args.dsn) as conn:
                applied = apply_migrations(conn, migrations_dir())
            print(json.dumps({"status": "ok", "migrations_applied": applied}))
            return 0

        if args.command == "import":
            # Fail on missing files before opening a connection.
            resolve_source_paths(args.dir)
            with connect(args.dsn) as conn:
                result = run_import(
                    PostgresStore(conn),
                    args.dir,
                    delimiter=args.delimiter,
                    truncate=args.truncate,
                    batch_size=args.batch,
                    show_progress=not args.no_progress,
                )
            print(
                json.dumps(
                    {
                        "status": result.status,
                        "import_run_id": result.run_id,
                        "stages": [asdict(stage) for stage in result.stages],
                        "totals": result.totals(),
                    }
                )
            )
            return 0

        parser.print_help(sys.stderr)
        return 2
    except ImportStageError as exc:
        payload = {"stage": exc.stage, "error": str(exc)}
        if exc.result is not None:
            payload["import_run_id"] = exc.result.run_id
        return _error(payload)
    except (FileNotFoundError, StorageWriteError, MigrationError, psycopg.Error) as exc:
        return _error({"error": str(exc)})


if __name__ == "__main__":
    raise SystemExit(main())
