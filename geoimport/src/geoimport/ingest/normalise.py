"""Row normalisation for each geo entity type."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Mapping

from geoimport.ingest.hierarchy import (
    CITY_DEPTH,
    DISTRICT_DEPTH,
    VILLAGE_DEPTH,
    MalformedRowError,
    derive_ancestors,
)

CITY_TYPES = ("kota", "kabupaten")
DEFAULT_CITY_TYPE = "kabupaten"

# ASCII only; the schema rejects any other digit.
_NON_DIGIT_RE = re.compile(r"[^0-9]+")

Row = Mapping[str, Any]


@dataclass(frozen=True)
class Province:
    code: str
    name: str


@dataclass(frozen=True)
class City:
    code: str
    province_code: str
    name: str
    type: str


@dataclass(frozen=True)
class District:
    code: str
    city_code: str
    province_code: str
    name: str


@dataclass(frozen=True)
class Village:
    code: str
    district_code: str
    city_code: str
    province_code: str
    name: str


@dataclass(frozen=True)
class PostalCode:
    village_code: str
    postal_code: str


@dataclass
class RowTally:
    accepted: int = 0
    skipped: int = 0

    def accept(self) -> None:
        self.accepted += 1

    def skip(self) -> None:
        self.skipped += 1


def as_row(record: Any, stamp: datetime) -> dict[str, Any]:
    """Turn a normalised record into a store row with audit timestamps."""

    row = asdict(record)
    row["created_at"] = stamp
    row["updated_at"] = stamp
    return row


def _text(row: Row, *keys: str) -> str:
    for key in keys:
        value = row.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return ""


def _code_and_name(row: Row) -> tuple[str, str]:
    code = _text(row, "id")
    name = _text(row, "nm", "name")
    if not code:
        raise MalformedRowError("row has an empty id")
    if not name:
        raise MalformedRowError(f"row {code!r} has an empty name")
    return code, name


def postal_code_digits(value: Any) -> str:
    if value is None:
        return ""
    return _NON_DIGIT_RE.sub("", str(value))


def city_type(value: Any) -> str:
    text = str(value).strip().lower() if value is not None else ""
    if text in CITY_TYPES:
        return text
    return DEFAULT_CITY_TYPE


def normalise_province(row: Row) -> Province:
    code, name = _code_and_name(row)
    return Province(code=code, name=name)


def normalise_city(row: Row) -> City:
    code, name = _code_and_name(row)
    ancestors = derive_ancestors(code, CITY_DEPTH)
    return City(
        code=code,
        province_code=ancestors.province_code,
        name=name,
        type=city_type(row.get("type")),
    )


def normalise_district(row: Row) -> District:
    code, name = _code_and_name(row)
    ancestors = derive_ancestors(code, DISTRICT_DEPTH)
    return District(
        code=code,
        city_code=ancestors.city_code or "",
        province_code=ancestors.province_code,
        name=name,
    )


def normalise_village(row: Row) -> tuple[Village, PostalCode | None]:
    """Normalise a village row and the postal code it may carry.

    The zip column is reduced to its digits; when nothing is left the
    village is still returned, just without a postal code.
    """

    code, name = _code_and_name(row)
    ancestors = derive_ancestors(code, VILLAGE_DEPTH)
    village = Village(
        code=code,
        district_code=ancestors.district_code or "",
        city_code=ancestors.city_code or "",
        province_code=ancestors.province_code,
        name=name,
    )

    digits = postal_code_digits(row.get("zip"))
    postal_code = PostalCode(village_code=code, postal_code=digits) if digits else None
    return village, postal_code
