"""Runtime configuration for the geo reference-data importer."""

from __future__ import annotations

import os
from pathlib import Path

DEFAULT_DELIMITER = ","
DEFAULT_BATCH_SIZE = 1000

SOURCE_FILE_NAMES = {
    "province": "prov.csv",
    "city": "kabkota.csv",
    "district": "kec.csv",
    "village": "desakel.csv",
}


def default_dsn() -> str:
    return os.getenv("GEOIMPORT_DSN", "dbname=geoimport")


def default_source_dir() -> Path:
    return Path(os.getenv("GEOIMPORT_SOURCE_DIR", "storage/app/kodepos"))


def default_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO")


def repo_root() -> Path:
    return Path(__file__).resolve().parents[3]


def migrations_dir() -> Path:
    return repo_root() / "geoimport" / "sql" / "migrations"
