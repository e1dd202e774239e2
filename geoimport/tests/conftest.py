from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

import pytest

from geoimport.db.store import StorageWriteError


class MemoryStore:
    """In-memory stand-in for PostgresStore, keyed by conflict columns."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[tuple[Any, ...], dict[str, Any]]] = {}
        self.foreign_key_checks = True
        self.calls: list[tuple[str, str, int]] = []
        self.fail_on: str | None = None

    def _table(self, collection: str) -> dict[tuple[Any, ...], dict[str, Any]]:
        return self.tables.setdefault(collection, {})

    def _check(self, collection: str) -> None:
        if self.fail_on == collection:
            raise StorageWriteError(f"simulated failure writing {collection}")

    def rows(self, collection: str) -> list[dict[str, Any]]:
        return list(self._table(collection).values())

    def upsert(
        self,
        collection: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str],
        update_columns: Sequence[str],
    ) -> int:
        self._check(collection)
        self.calls.append(("upsert", collection, len(rows)))
        table = self._table(collection)
        for row in rows:
            key = tuple(row[column] for column in conflict_keys)
            if key in table:
                for column in update_columns:
                    table[key][column] = row[column]
            else:
                table[key] = dict(row)
        return len(rows)

    def insert_ignore(
        self,
        collection: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_keys: Sequence[str] = (),
    ) -> int:
        self._check(collection)
        self.calls.append(("insert_ignore", collection, len(rows)))
        table = self._table(collection)
        written = 0
        for row in rows:
            key = tuple(row[column] for column in conflict_keys)
            if key not in table:
                table[key] = dict(row)
                written += 1
        return written

    def truncate(self, collection: str) -> None:
        self.calls.append(("truncate", collection, 0))
        self._table(collection).clear()

    def set_foreign_key_checks(self, enabled: bool) -> None:
        self.calls.append(("foreign_key_checks", "on" if enabled else "off", 0))
        self.foreign_key_checks = enabled


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[[str, str], Path]:
    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def source_dir(tmp_path: Path, write_csv: Callable[[str, str], Path]) -> Path:
    write_csv("prov.csv", "id,nm\n11,DKI Jakarta\n")
    write_csv("kabkota.csv", "id,nm,type\n11.01,Kota Jakarta Selatan,kota\n")
    write_csv("kec.csv", "id,nm\n11.01.01,Kebayoran Baru\n")
    write_csv("desakel.csv", "id,nm,zip\n11.01.01.1001,Gandaria Utara,12140\n")
    return tmp_path
