"""genotype_etl.validate

Per-row validation of the tab-delimited genotype matrix.

Column layout (1-based):
  1 variant name    2 backbone name    3 position (1-based integer)
  4 sample name     5 allele           6+ ignored
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Sequence

from genotype_etl.errors import InvalidField, MissingField, UnknownSample
from genotype_etl.normalize import (
    derive_marker_name,
    parse_position,
    position_to_interval,
    trim,
)

if TYPE_CHECKING:
    from genotype_etl.config import SampleRecord

COLUMN_NAMES = ("variant_name", "backbone", "position", "source", "allele")


@dataclass(frozen=True)
class ValidatedRow:
    variant_name: str
    backbone_name: str
    marker_name: str
    fmin: int
    fmax: int
    source_name: str
    allele: str
    sample: SampleRecord


def split_row(line: str) -> list[str]:
    """Split a data line on tabs, dropping the line terminator."""
    return line.rstrip("\r\n").split("\t")


def is_blank_row(fields: Sequence[str]) -> bool:
    """True for rows with fewer than 2 populated columns (blank / comment)."""
    return sum(1 for f in fields if trim(f) is not None) < 2


def _column(fields: Sequence[str], idx: int) -> str | None:
    return trim(fields[idx]) if idx < len(fields) else None


def validate_row(
    fields: Sequence[str],
    sample_list: Mapping[str, SampleRecord],
    marker_type: str,
    line_no: int | None = None,
) -> ValidatedRow | None:
    """Validate one row; return None when the row is to be skipped.

    Skipped (no error): fewer than 2 populated columns, or an empty allele.

    Raises:
        MissingField: variant name, backbone, position or source is empty.
        InvalidField: position is not a positive integer.
        UnknownSample: source is not in sample_list.
    """
    if is_blank_row(fields):
        return None

    variant_name = _column(fields, 0)
    if variant_name is None:
        raise MissingField("variant_name", line_no=line_no)

    backbone_name = _column(fields, 1)
    if backbone_name is None:
        raise MissingField("backbone", line_no=line_no, context={"variant": variant_name})

    raw_position = _column(fields, 2)
    if raw_position is None:
        raise MissingField("position", line_no=line_no, context={"variant": variant_name})
    position = parse_position(raw_position)
    if position is None or position < 1:
        raise InvalidField(
            "position", raw_position, line_no=line_no, context={"variant": variant_name}
        )
    fmin, fmax = position_to_interval(position)

    source_name = _column(fields, 3)
    if source_name is None:
        raise MissingField("source", line_no=line_no, context={"variant": variant_name})
    sample = sample_list.get(source_name)
    if sample is None:
        raise UnknownSample(source_name, line_no=line_no, context={"variant": variant_name})

    allele = trim(fields[4]) if len(fields) > 4 else None
    if allele is None:
        return None

    return ValidatedRow(
        variant_name=variant_name,
        backbone_name=backbone_name,
        marker_name=derive_marker_name(variant_name, marker_type),
        fmin=fmin,
        fmax=fmax,
        source_name=source_name,
        allele=allele,
        sample=sample,
    )
