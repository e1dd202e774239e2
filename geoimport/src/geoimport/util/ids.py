"""Run identifier helpers."""

from __future__ import annotations

from uuid import uuid4


def generate_import_run_id() -> str:
    """Generate import run ID as UUIDv4."""

    return str(uuid4())


__all__ = ["generate_import_run_id"]
