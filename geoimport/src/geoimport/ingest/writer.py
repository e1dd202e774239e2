"""Bounded batch writer over a ``GeoStore``."""

from __future__ import annotations

import enum
import logging
from typing import Any, Mapping, Sequence

from geoimport.config import DEFAULT_BATCH_SIZE
from geoimport.db.store import GeoStore

logger = logging.getLogger(__name__)


class WriteStrategy(enum.Enum):
    # Merge listed columns into existing rows on key conflict.
    UPSERT = "upsert"
    # Keep the existing row untouched on key conflict. Used where the key is
    # already unique in the source and volume makes the merge path costly.
    INSERT_IGNORE = "insert_ignore"


class BatchWriter:
    """Buffer rows for one collection and flush them in batches.

    Used as a context manager, any partial batch is flushed on a clean
    exit. On an exception the buffer is dropped and the error propagates.
    """

    def __init__(
        self,
        store: GeoStore,
        collection: str,
        strategy: WriteStrategy,
        conflict_keys: Sequence[str] = (),
        update_columns: Sequence[str] = (),
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if strategy is WriteStrategy.UPSERT and not conflict_keys:
            raise ValueError("upsert strategy requires conflict keys")

        self.store = store
        self.collection = collection
        self.strategy = strategy
        self.conflict_keys = tuple(conflict_keys)
        self.update_columns = tuple(update_columns)
        self.batch_size = batch_size

        self.written = 0
        self.batches = 0
        self._buffer: list[Mapping[str, Any]] = []

    @property
    def pending(self) -> int:
        return len(self._buffer)

    def add(self, row: Mapping[str, Any]) -> None:
        self._buffer.append(row)
        if len(self._buffer) >= self.batch_size:
            self.flush()

    def extend(self, rows: Sequence[Mapping[str, Any]]) -> None:
        for row in rows:
            self.add(row)

    def flush(self) -> int:
        if not self._buffer:
            return 0

        if self.strategy is WriteStrategy.UPSERT:
            written = self.store.upsert(
                self.collection,
                self._buffer,
                self.conflict_keys,
                self.update_columns,
            )
        else:
            written = self.store.insert_ignore(self.collection, self._buffer, self.conflict_keys)

        logger.debug(
            "flushed %d row(s) to %s via %s, %d written",
            len(self._buffer),
            self.collection,
            self.strategy.value,
            written,
        )
        self._buffer = []
        self.written += written
        self.batches += 1
        return written

    def __enter__(self) -> "BatchWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.flush()
        else:
            self._buffer = []
