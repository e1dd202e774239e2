"""Hierarchical code rules: a child's ancestors are prefixes of its own code."""

from __future__ import annotations

from dataclasses import dataclass

CODE_SEPARATOR = "."

PROVINCE_DEPTH = 1
CITY_DEPTH = 2
DISTRICT_DEPTH = 3
VILLAGE_DEPTH = 4


class MalformedRowError(ValueError):
    """Raised when a source row cannot be normalised; the row is skipped."""


@dataclass(frozen=True)
class Ancestors:
    province_code: str
    city_code: str | None = None
    district_code: str | None = None


def split_code(code: str) -> list[str]:
    # Spreadsheet exports sometimes leave spaces around the dots.
    return [segment.strip() for segment in code.split(CODE_SEPARATOR)]


def _prefix(segments: list[str], length: int) -> str:
    return CODE_SEPARATOR.join(segments[:length])


def derive_ancestors(code: str, depth: int) -> Ancestors:
    """Derive ancestor codes for an entity ``depth`` levels deep.

    Raises ``MalformedRowError`` when ``code`` has fewer than ``depth``
    dot-separated segments.
    """

    if depth < CITY_DEPTH or depth > VILLAGE_DEPTH:
        raise ValueError(f"depth must be between {CITY_DEPTH} and {VILLAGE_DEPTH}, got {depth}")

    segments = split_code(code)
    if len(segments) < depth:
        raise MalformedRowError(
            f"code {code!r} has {len(segments)} segment(s), expected at least {depth}"
        )
    if not all(segments[:depth]):
        raise MalformedRowError(f"code {code!r} has an empty segment")

    return Ancestors(
        province_code=_prefix(segments, PROVINCE_DEPTH),
        city_code=_prefix(segments, CITY_DEPTH) if depth > CITY_DEPTH else None,
        district_code=_prefix(segments, DISTRICT_DEPTH) if depth > DISTRICT_DEPTH else None,
    )
