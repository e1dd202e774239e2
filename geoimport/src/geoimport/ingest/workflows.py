"""Geo reference import workflow: provinces, cities, districts, villages."""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Sequence

from tqdm import tqdm

from geoimport.config import DEFAULT_BATCH_SIZE, DEFAULT_DELIMITER, SOURCE_FILE_NAMES
from geoimport.db.store import GeoStore
from geoimport.ingest.csv_reader import chunked, iter_csv_rows
from geoimport.ingest.hierarchy import MalformedRowError
from geoimport.ingest.normalise import (
    RowTally,
    as_row,
    normalise_city,
    normalise_district,
    normalise_province,
    normalise_village,
)
from geoimport.ingest.writer import BatchWriter, WriteStrategy
from geoimport.util.ids import generate_import_run_id

logger = logging.getLogger(__name__)


class ImportStageError(RuntimeError):
    """Raised when a stage fails; earlier stages stay committed."""

    def __init__(self, stage: str, message: str, result: "ImportResult | None" = None) -> None:
        super().__init__(f"{stage} stage failed: {message}")
        self.stage = stage
        self.result = result


class PipelineState(enum.Enum):
    IDLE = "idle"
    FOREIGN_KEY_CHECKS_SUSPENDED = "foreign_key_checks_suspended"
    TRUNCATING = "truncating"
    IMPORTING_PROVINCES = "importing_provinces"
    IMPORTING_CITIES = "importing_cities"
    IMPORTING_DISTRICTS = "importing_districts"
    IMPORTING_VILLAGES_AND_POSTAL_CODES = "importing_villages_and_postal_codes"
    FOREIGN_KEY_CHECKS_RESTORED = "foreign_key_checks_restored"
    DONE = "done"
    FAILED = "failed"


PROVINCE_COLLECTION = "geo.province"
CITY_COLLECTION = "geo.city"
DISTRICT_COLLECTION = "geo.district"
VILLAGE_COLLECTION = "geo.village"
POSTAL_CODE_COLLECTION = "geo.postal_code"

# Children before parents.
TRUNCATE_ORDER = (
    POSTAL_CODE_COLLECTION,
    VILLAGE_COLLECTION,
    DISTRICT_COLLECTION,
    CITY_COLLECTION,
    PROVINCE_COLLECTION,
)

PROVINCE_UPDATE_COLUMNS = ("name", "updated_at")
CITY_UPDATE_COLUMNS = ("province_code", "name", "type", "updated_at")
DISTRICT_UPDATE_COLUMNS = ("name", "updated_at")
VILLAGE_CONFLICT_KEYS = ("code",)
POSTAL_CODE_CONFLICT_KEYS = ("village_code", "postal_code")


@dataclass(frozen=True)
class SourcePaths:
    province: Path
    city: Path
    district: Path
    village: Path


@dataclass(frozen=True)
class StageResult:
    stage: str
    accepted: int
    skipped: int
    written: int
    postal_codes_accepted: int = 0
    postal_codes_written: int = 0


@dataclass
class ImportResult:
    run_id: str
    status: str = "pending"
    state: PipelineState = PipelineState.IDLE
    stages: list[StageResult] = field(default_factory=list)
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])

    def transition(self, state: PipelineState) -> None:
        self.state = state
        self.history.append(state)

    def totals(self) -> dict[str, int]:
        return {
            "accepted": sum(stage.accepted for stage in self.stages),
            "skipped": sum(stage.skipped for stage in self.stages),
            "written": sum(stage.written for stage in self.stages),
            "postal_codes_written": sum(stage.postal_codes_written for stage in self.stages),
        }


def resolve_source_paths(source_dir: Path) -> SourcePaths:
    """Locate the four source files, failing before any write if one is absent."""

    source_dir = Path(source_dir)
    paths = {entity: source_dir / file_name for entity, file_name in SOURCE_FILE_NAMES.items()}
    missing = [str(path) for path in paths.values() if not path.is_file()]
    if missing:
        raise FileNotFoundError(f"File not found: {', '.join(missing)}")
    return SourcePaths(**paths)


@contextmanager
def foreign_key_checks_suspended(store: GeoStore) -> Iterator[None]:
    """Suspend foreign-key enforcement for the block, restoring it on any exit."""

    store.set_foreign_key_checks(False)
    try:
        yield
    finally:
        store.set_foreign_key_checks(True)


def _progress(stage: str, show_progress: bool) -> tqdm:
    return tqdm(desc=stage, unit="row", disable=not show_progress, leave=False)


def _log_extra(run_id: str, stage: str) -> dict[str, str]:
    return {"run_id": run_id, "stage": stage}


def _import_entities(
    store: GeoStore,
    path: Path,
    *,
    stage: str,
    collection: str,
    normalise: Callable[[Any], Any],
    update_columns: Sequence[str],
    delimiter: str,
    batch_size: int,
    show_progress: bool,
    run_id: str,
) -> StageResult:
    tally = RowTally()
    stamp = datetime.now(timezone.utc)
    writer = BatchWriter(
        store,
        collection,
        WriteStrategy.UPSERT,
        conflict_keys=("code",),
        update_columns=update_columns,
        batch_size=batch_size,
    )

    with _progress(stage, show_progress) as bar, writer:
        for row in iter_csv_rows(path, delimiter):
            try:
                record = normalise(row)
            except MalformedRowError as exc:
                tally.skip()
                logger.debug("skipped row: %s", exc, extra=_log_extra(run_id, stage))
            else:
                tally.accept()
                writer.add(as_row(record, stamp))
            bar.update(1)

    return StageResult(
        stage=stage,
        accepted=tally.accepted,
        skipped=tally.skipped,
        written=writer.written,
    )


def import_provinces(
    store: GeoStore,
    path: Path,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    batch_size: int = DEFAULT_BATCH_SIZE,
    show_progress: bool = False,
    run_id: str = "-",
) -> StageResult:
    return _import_entities(
        store,
        path,
        stage="provinces",
        collection=PROVINCE_COLLECTION,
        normalise=normalise_province,
        update_columns=PROVINCE_UPDATE_COLUMNS,
        delimiter=delimiter,
        batch_size=batch_size,
        show_progress=show_progress,
        run_id=run_id,
    )


def import_cities(
    store: GeoStore,
    path: Path,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    batch_size: int = DEFAULT_BATCH_SIZE,
    show_progress: bool = False,
    run_id: str = "-",
) -> StageResult:
    return _import_entities(
        store,
        path,
        stage="cities",
        collection=CITY_COLLECTION,
        normalise=normalise_city,
        update_columns=CITY_UPDATE_COLUMNS,
        delimiter=delimiter,
        batch_size=batch_size,
        show_progress=show_progress,
        run_id=run_id,
    )


def import_districts(
    store: GeoStore,
    path: Path,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    batch_size: int = DEFAULT_BATCH_SIZE,
    show_progress: bool = False,
    run_id: str = "-",
) -> StageResult:
    return _import_entities(
        store,
        path,
        stage="districts",
        collection=DISTRICT_COLLECTION,
        normalise=normalise_district,
        update_columns=DISTRICT_UPDATE_COLUMNS,
        delimiter=delimiter,
        batch_size=batch_size,
        show_progress=show_progress,
        run_id=run_id,
    )


def import_villages_and_postal_codes(
    store: GeoStore,
    path: Path,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    batch_size: int = DEFAULT_BATCH_SIZE,
    show_progress: bool = False,
    run_id: str = "-",
) -> StageResult:
    """Import villages and their postal codes in one chunked pass.

    Each chunk of ``batch_size`` source rows is flushed to both
    collections before the next chunk is read.
    """

    stage = "villages_and_postal_codes"
    villages = RowTally()
    postal_codes = RowTally()
    stamp = datetime.now(timezone.utc)

    village_writer = BatchWriter(
        store,
        VILLAGE_COLLECTION,
        WriteStrategy.INSERT_IGNORE,
        conflict_keys=VILLAGE_CONFLICT_KEYS,
        batch_size=batch_size,
    )
    postal_code_writer = BatchWriter(
        store,
        POSTAL_CODE_COLLECTION,
        WriteStrategy.INSERT_IGNORE,
        conflict_keys=POSTAL_CODE_CONFLICT_KEYS,
        batch_size=batch_size,
    )

    with _progress(stage, show_progress) as bar:
        for chunk in chunked(iter_csv_rows(path, delimiter), batch_size):
            for row in chunk:
                try:
                    village, postal_code = normalise_village(row)
                except MalformedRowError as exc:
                    villages.skip()
                    logger.debug("skipped row: %s", exc, extra=_log_extra(run_id, stage))
                else:
                    villages.accept()
                    village_writer.add(as_row(village, stamp))
                    if postal_code is not None:
                        postal_codes.accept()
                        postal_code_writer.add(as_row(postal_code, stamp))
                bar.update(1)

            village_writer.flush()
            postal_code_writer.flush()

    # First-seen rows win; conflicting rows are not compared.
    for label, accepted, written in (
        ("village", villages.accepted, village_writer.written),
        ("postal code", postal_codes.accepted, postal_code_writer.written),
    ):
        if accepted > written:
            logger.warning(
                "%d %s row(s) already present, existing rows kept",
                accepted - written,
                label,
                extra=_log_extra(run_id, stage),
            )

    return StageResult(
        stage=stage,
        accepted=villages.accepted,
        skipped=villages.skipped,
        written=village_writer.written,
        postal_codes_accepted=postal_codes.accepted,
        postal_codes_written=postal_code_writer.written,
    )


STAGES = (
    ("provinces", PipelineState.IMPORTING_PROVINCES, import_provinces, "province"),
    ("cities", PipelineState.IMPORTING_CITIES, import_cities, "city"),
    ("districts", PipelineState.IMPORTING_DISTRICTS, import_districts, "district"),
    (
        "villages_and_postal_codes",
        PipelineState.IMPORTING_VILLAGES_AND_POSTAL_CODES,
        import_villages_and_postal_codes,
        "village",
    ),
)


def truncate_collections(store: GeoStore) -> None:
    for collection in TRUNCATE_ORDER:
        store.truncate(collection)


def _log_stage_summary(run_id: str, result: StageResult) -> None:
    if result.stage == "villages_and_postal_codes":
        logger.info(
            "villages inserted=%d skipped=%d | postal codes inserted=%d",
            result.written,
            result.skipped,
            result.postal_codes_written,
            extra=_log_extra(run_id, result.stage),
        )
        return
    logger.info(
        "%s written=%d skipped=%d",
        result.stage,
        result.written,
        result.skipped,
        extra=_log_extra(run_id, result.stage),
    )


def run_import(
    store: GeoStore,
    source_dir: Path,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    truncate: bool = False,
    batch_size: int = DEFAULT_BATCH_SIZE,
    show_progress: bool = False,
    run_id: str | None = None,
) -> ImportResult:
    """Run all four stages in dependency order.

    Source files are checked before anything is written. Foreign-key
    checks are suspended for the run and restored on every exit path.
    A failing stage raises ``ImportStageError`` naming the stage.
    """

    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    paths = resolve_source_paths(source_dir)
    result = ImportResult(run_id=run_id or generate_import_run_id(), status="running")
    current_stage = "foreign_key_checks"

    try:
        with foreign_key_checks_suspended(store):
            result.transition(PipelineState.FOREIGN_KEY_CHECKS_SUSPENDED)

            if truncate:
                current_stage = "truncate"
                result.transition(PipelineState.TRUNCATING)
                logger.warning(
                    "truncating geo reference tables",
                    extra=_log_extra(result.run_id, current_stage),
                )
                truncate_collections(store)

            for stage, state, handler, entity in STAGES:
                current_stage = stage
                result.transition(state)
                logger.info("import %s", stage, extra=_log_extra(result.run_id, stage))
                stage_result = handler(
                    store,
                    getattr(paths, entity),
                    delimiter=delimiter,
                    batch_size=batch_size,
                    show_progress=show_progress,
                    run_id=result.run_id,
                )
                result.stages.append(stage_result)
                _log_stage_summary(result.run_id, stage_result)

            current_stage = "foreign_key_checks"
    except Exception as exc:
        result.transition(PipelineState.FAILED)
        result.status = "failed"
        logger.error(
            "import failed: %s",
            exc,
            extra=_log_extra(result.run_id, current_stage),
        )
        raise ImportStageError(current_stage, str(exc), result=result) from exc

    result.transition(PipelineState.FOREIGN_KEY_CHECKS_RESTORED)
    result.transition(PipelineState.DONE)
    result.status = "imported"
    totals = result.totals()
    logger.info(
        "done: written=%d skipped=%d postal_codes=%d",
        totals["written"],
        totals["skipped"],
        totals["postal_codes_written"],
        extra=_log_extra(result.run_id, "-"),
    )
    return result
