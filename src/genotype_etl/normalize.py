"""Normalization functions for genotype matrix ingestion.

All string functions accept str | None and return the appropriate type or None.
"""

from __future__ import annotations

import re
import string


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: marker_type_suffix
# ---------------------------------------------------------------------------

def marker_type_suffix(marker_type: str | None) -> str | None:
    """Title-case a marker type for use in marker names.

    Underscores become spaces and every word is capitalized with the rest
    lowercased: "snp_marker" -> "Snp Marker", "SNP" -> "Snp".
    """
    v = normalize_space(marker_type.replace("_", " ") if marker_type else None)
    if v is None:
        return None
    return string.capwords(v)


# ---------------------------------------------------------------------------
# Rule 4: derive_marker_name
# ---------------------------------------------------------------------------

def derive_marker_name(variant_name: str, marker_type: str) -> str:
    """Return '<variant_name> <Marker Type>'.

    The result is both the marker's display name and its unique name, so it
    must depend only on file content and configuration.
    """
    suffix = marker_type_suffix(marker_type)
    if not suffix:
        return variant_name
    return f"{variant_name} {suffix}"


# ---------------------------------------------------------------------------
# Rule 5: parse_position / position_to_interval
# ---------------------------------------------------------------------------

def parse_position(value: str | None) -> int | None:
    """Parse a 1-based integer position; None if blank or not an integer.

    Accepts thousands separators ("1,500") and a trailing ".0" from
    spreadsheet exports.
    """
    v = trim(value)
    if v is None:
        return None
    v = v.replace(",", "")
    if v.endswith(".0"):
        v = v[:-2]
    if not re.fullmatch(r"[+-]?\d+", v):
        return None
    return int(v)


def position_to_interval(position: int) -> tuple[int, int]:
    """Convert a 1-based SNP position to a half-open (fmin, fmax) interval."""
    return position - 1, position
