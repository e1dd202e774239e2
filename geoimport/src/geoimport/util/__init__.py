"""Utility helpers for the importer."""

from .ids import generate_import_run_id

__all__ = ["generate_import_run_id"]
