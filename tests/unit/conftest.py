"""Unit test fixtures.

An in-memory RecordStore stands in for Chado so the loader, resolver and
storage strategies can be exercised without a database.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from genotype_etl.config import build_config
from genotype_etl.resolver import EntityKind


class InMemoryStore:
    """RecordStore keeping each table as a list of row dicts."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.fail_inserts: set[str] = set()
        self._next_id = 1

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.get(table, [])

    def add(self, table: str, pk: str, **fields: Any) -> int:
        new_id = self._next_id
        self._next_id += 1
        self.tables.setdefault(table, []).append({pk: new_id, **fields})
        return new_id

    def select(self, kind: EntityKind, fields: dict[str, Any]) -> int | None:
        matches = [
            r[kind.pk]
            for r in self.rows(kind.table)
            if all(r.get(k) == v for k, v in fields.items())
        ]
        return min(matches) if matches else None

    def insert(self, kind: EntityKind, fields: dict[str, Any]) -> int | None:
        if kind.table in self.fail_inserts:
            return None
        return self.add(kind.table, kind.pk, **fields)

    def find_experiment(self, genotype_id: int, stock_id: int, project_id: int) -> int | None:
        def exp_ids(table: str, col: str, value: int) -> set[int]:
            return {r["nd_experiment_id"] for r in self.rows(table) if r[col] == value}

        common = (
            exp_ids("nd_experiment_genotype", "genotype_id", genotype_id)
            & exp_ids("nd_experiment_stock", "stock_id", stock_id)
            & exp_ids("nd_experiment_project", "project_id", project_id)
        )
        return min(common) if common else None


TYPES = {
    "SNP": 10,
    "genetic_marker": 11,
    "marker_type": 12,
    "is_marker_of": 13,
    "genotyping": 14,
}

BASE_CONFIG = {
    "organism_id": 1,
    "variant_type": "SNP",
    "feature_type_of_marker": "genetic_marker",
    "marker_type": "SNP",
    "project_id": 7,
    "project_name": "Lentil Diversity Panel",
    "storage_method": "genotype_call",
    "insert_variants": "INSERT_OR_SELECT",
    "insert_markers": "INSERT_OR_SELECT",
    "sample_list": {
        "SampleA": {"stock_id": 101, "stock_name": "SampleA-stock", "germplasm_id": 55},
        "SampleB": 102,
    },
}


@pytest.fixture
def store() -> InMemoryStore:
    s = InMemoryStore()
    # Chr1 is the only backbone that exists up front.
    s.add("feature", "feature_id", name="Chr1", uniquename="Chr1", organism_id=1, type_id=99)
    return s


@pytest.fixture
def types() -> dict[str, int]:
    return dict(TYPES)


@pytest.fixture
def config_data() -> dict[str, Any]:
    """A fresh copy of the base configuration mapping."""
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def make_config():
    def _make(**overrides: Any):
        data = {**BASE_CONFIG, **overrides}
        return build_config(data)

    return _make


@pytest.fixture
def write_matrix(tmp_path: Path):
    """Write a genotype matrix (header + tab-joined rows) and return its path."""

    def _write(rows: list[tuple[str, ...] | str], name: str = "matrix.tsv") -> Path:
        lines = ["variant\tbackbone\tposition\tsample\tallele"]
        for row in rows:
            lines.append(row if isinstance(row, str) else "\t".join(row))
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
