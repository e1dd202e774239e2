"""SQL migration runner for the geo reference schema."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

import psycopg


class MigrationError(RuntimeError):
    """Raised when a migration cannot be applied."""


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path


def discover_migrations(migrations_dir: Path) -> List[Migration]:
    """Return sorted migration files based on numeric filename prefix."""

    if not migrations_dir.is_dir():
        raise MigrationError(f"Migrations directory not found: {migrations_dir}")

    migrations: List[Migration] = []
    for path in sorted(migrations_dir.glob("*.sql")):
        version = path.stem.split("_", 1)[0]
        migrations.append(Migration(version=version, path=path))
    return migrations


def apply_migrations(conn: psycopg.Connection, migrations_dir: Path) -> int:
    """Apply unapplied migrations in filename order, one transaction each."""

    migrations = discover_migrations(migrations_dir)
    applied_count = 0

    with conn.cursor() as cur:
        cur.execute("CREATE SCHEMA IF NOT EXISTS meta")
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meta.schema_migration (
                version text PRIMARY KEY,
                applied_at timestamptz NOT NULL DEFAULT now()
            )
            """
        )
        cur.execute("SELECT version FROM meta.schema_migration")
        applied_versions = {row[0] for row in cur.fetchall()}
    conn.commit()

    for migration in migrations:
        if migration.version in applied_versions:
            continue
        try:
            with conn.cursor() as cur:
                cur.execute(migration.path.read_text(encoding="utf-8"))
                cur.execute(
                    "INSERT INTO meta.schema_migration (version) VALUES (%s)",
                    (migration.version,),
                )
            conn.commit()
        except psycopg.Error as exc:
            conn.rollback()
            raise MigrationError(f"Migration {migration.path.name} failed: {exc}") from exc
        applied_count += 1

    return applied_count
