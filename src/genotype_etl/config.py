"""genotype_etl.config

YAML load configuration.

Responsibilities:
  - Load and validate a load-configuration YAML file
  - Parse insert modes (names or legacy 0/1/2 codes) into Mode
  - Build the sample lookup (sample name -> SampleRecord)
  - Hash YAML content for the run report

Usage:
    from pathlib import Path
    from genotype_etl.config import load_config

    config = load_config(Path("config/load.yml"))
    config.required_type_names()
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from genotype_etl.errors import ConfigValidationError
from genotype_etl.normalize import trim
from genotype_etl.resolver import Mode
from genotype_etl.storage import STORAGE_METHODS, get_storage_class

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REQUIRED_YAML_KEYS = frozenset({
    "organism_id",
    "variant_type",
    "feature_type_of_marker",
    "marker_type",
    "storage_method",
    "sample_list",
})

OPTIONAL_YAML_KEYS = frozenset({
    "project_id",
    "project_name",
    "insert_variants",
    "insert_markers",
    "nd_geolocation",
})

# cvterm names the loader needs regardless of configuration
MARKER_TYPE_PROPERTY = "marker_type"
MARKER_OF_RELATIONSHIP = "is_marker_of"


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SampleRecord:
    """A pre-existing sample resolved to its stock."""

    sample_name: str
    stock_id: int
    stock_name: str
    germplasm_id: int | None = None


@dataclass
class LoadConfig:
    """Parsed, validated configuration for one genotype matrix load."""

    organism_id: int
    variant_type: str
    feature_type_of_marker: str
    marker_type: str
    storage_method: str
    sample_list: dict[str, SampleRecord]
    project_id: int | None = None
    project_name: str | None = None
    insert_variants: Mode = Mode.INSERT_OR_SELECT
    insert_markers: Mode = Mode.INSERT_OR_SELECT
    nd_geolocation: str | None = None
    yaml_hash: str = field(default="", repr=False)

    def required_type_names(self) -> list[str]:
        """cvterm names that must be present in the types map."""
        names = [
            self.variant_type,
            self.feature_type_of_marker,
            MARKER_TYPE_PROPERTY,
            MARKER_OF_RELATIONSHIP,
        ]
        names.extend(get_storage_class(self.storage_method).required_types)
        return list(dict.fromkeys(names))


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_config(yaml_path: Path) -> LoadConfig:
    """Load, validate, and return a LoadConfig from a YAML file.

    Raises:
        ConfigValidationError: If any required field is missing or invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    config = build_config(data)
    config.yaml_hash = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    return config


def build_config(data: Any) -> LoadConfig:
    """Validate a parsed mapping and build a LoadConfig from it."""
    validate_config(data)
    return LoadConfig(
        organism_id=int(data["organism_id"]),
        variant_type=str(data["variant_type"]).strip(),
        feature_type_of_marker=str(data["feature_type_of_marker"]).strip(),
        marker_type=str(data["marker_type"]).strip(),
        storage_method=str(data["storage_method"]).strip(),
        sample_list=parse_sample_list(data["sample_list"]),
        project_id=int(data["project_id"]) if data.get("project_id") is not None else None,
        project_name=trim(data.get("project_name")),
        insert_variants=Mode.parse(data.get("insert_variants", Mode.INSERT_OR_SELECT)),
        insert_markers=Mode.parse(data.get("insert_markers", Mode.INSERT_OR_SELECT)),
        nd_geolocation=trim(data.get("nd_geolocation")),
    )


def validate_config(data: Any) -> None:
    """Raise ConfigValidationError if data does not match required schema.

    Validates:
      - data is a mapping with all required keys, and no unknown keys
      - organism_id / project_id are integers
      - one of project_id / project_name is given
      - storage_method names a registered storage strategy
      - insert modes parse
      - sample_list is a non-empty mapping
    """
    if not isinstance(data, dict):
        raise ConfigValidationError("config must be a YAML mapping")

    missing = REQUIRED_YAML_KEYS - set(data.keys())
    if missing:
        raise ConfigValidationError(f"missing required keys: {sorted(missing)}")

    unknown = set(data.keys()) - REQUIRED_YAML_KEYS - OPTIONAL_YAML_KEYS
    if unknown:
        raise ConfigValidationError(f"unknown keys: {sorted(unknown)}")

    for key in ("variant_type", "feature_type_of_marker", "marker_type", "storage_method"):
        if not trim(str(data[key]) if data[key] is not None else None):
            raise ConfigValidationError(f"{key} must not be empty")

    _require_int(data, "organism_id")
    if data.get("project_id") is not None:
        _require_int(data, "project_id")
    elif not trim(data.get("project_name")):
        raise ConfigValidationError("one of project_id or project_name is required")

    method = str(data["storage_method"]).strip()
    if method not in STORAGE_METHODS:
        raise ConfigValidationError(
            f"storage_method {method!r} must be one of {sorted(STORAGE_METHODS)}"
        )

    for key in ("insert_variants", "insert_markers"):
        if key in data:
            Mode.parse(data[key])

    samples = data["sample_list"]
    if not isinstance(samples, dict) or not samples:
        raise ConfigValidationError("sample_list must be a non-empty mapping")


def parse_sample_list(raw: dict[str, Any]) -> dict[str, SampleRecord]:
    """Build the sample lookup.

    Each value is either a stock id or a mapping with stock_id and optional
    stock_name / germplasm_id.
    """
    samples: dict[str, SampleRecord] = {}
    for name, value in raw.items():
        sample_name = trim(str(name))
        if sample_name is None:
            raise ConfigValidationError("sample_list contains an empty sample name")
        if isinstance(value, dict):
            if value.get("stock_id") is None:
                raise ConfigValidationError(f"sample {sample_name!r} has no stock_id")
            stock_id = _as_int(value["stock_id"], f"sample_list.{sample_name}.stock_id")
            stock_name = trim(value.get("stock_name")) or sample_name
            germplasm = value.get("germplasm_id")
            germplasm_id = (
                _as_int(germplasm, f"sample_list.{sample_name}.germplasm_id")
                if germplasm is not None
                else None
            )
        else:
            stock_id = _as_int(value, f"sample_list.{sample_name}")
            stock_name = sample_name
            germplasm_id = None
        samples[sample_name] = SampleRecord(
            sample_name=sample_name,
            stock_id=stock_id,
            stock_name=stock_name,
            germplasm_id=germplasm_id,
        )
    return samples


def _require_int(data: dict[str, Any], key: str) -> None:
    _as_int(data[key], key)


def _as_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ConfigValidationError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigValidationError(f"{key} must be an integer, got {value!r}") from None
