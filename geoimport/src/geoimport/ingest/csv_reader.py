"""Streaming CSV reader for geo reference source files."""

from __future__ import annotations

import csv
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator, TypeVar

T = TypeVar("T")


def _normalise_header(value: str) -> str:
    return value.strip().lower()


def _iter_records(path: Path, delimiter: str) -> Iterator[dict[str, str | None]]:
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        reader = csv.reader(handle, delimiter=delimiter)
        headers: list[str] | None = None
        for values in reader:
            if not values:
                continue
            if headers is None:
                headers = [_normalise_header(value) for value in values]
                continue
            record: dict[str, str | None] = {}
            for index, key in enumerate(headers):
                record[key] = values[index] if index < len(values) else None
            yield record


def iter_csv_rows(path: Path, delimiter: str = ",") -> Iterator[dict[str, str | None]]:
    """Return a lazy, single-pass iterator of header-keyed rows.

    Header names come from the first non-empty line, trimmed and
    lower-cased. Blank lines are skipped. Values missing from a short row
    are yielded as ``None``.

    The path is checked before the iterator is returned, so a missing file
    raises ``FileNotFoundError`` at call time rather than on first use.
    """

    if len(delimiter) != 1:
        raise ValueError(f"CSV delimiter must be a single character, got {delimiter!r}")
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    return _iter_records(path, delimiter)


def chunked(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Group ``items`` lazily into lists of at most ``size`` elements."""

    if size < 1:
        raise ValueError("chunk size must be >= 1")
    iterator = iter(items)
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk
