"""Database connection helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

import psycopg

APPLICATION_NAME = "geoimport"


@contextmanager
def connect(dsn: str) -> Iterator[psycopg.Connection]:
    """Open a connection tagged with the importer's application name."""

    conn = psycopg.connect(dsn, application_name=APPLICATION_NAME)
    try:
        yield conn
    finally:
        conn.close()
