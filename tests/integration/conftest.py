"""Integration test fixtures.

Applies the Chado subset migration against an ephemeral PostgreSQL database
provided by pytest-postgresql, then seeds the organism, cvterms, project,
stocks and backbone a genotype load expects to find.  Tests are skipped when
no PostgreSQL server binaries are installed.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import psycopg
import pytest
import yaml
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = [
    PROJECT_ROOT / "migrations" / "0001_chado_genotype_subset.sql",
]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


def find_pg_ctl() -> str | None:
    """Locate the pg_ctl server binary, on PATH or in `pg_config --bindir`.

    pg_config alone ships with client packages and does not imply a server.
    """
    found = shutil.which("pg_ctl")
    if found:
        return found
    pg_config = shutil.which("pg_config")
    if pg_config is None:
        return None
    bindir = subprocess.run(
        [pg_config, "--bindir"], capture_output=True, text=True, check=False
    ).stdout.strip()
    candidate = Path(bindir) / "pg_ctl"
    return str(candidate) if bindir and candidate.is_file() else None


@pytest.fixture
def pg_ctl_lookup():
    return find_pg_ctl


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(request):
    """Return (connection, dsn) with the schema applied.

    Each test gets a fresh schema via function scope so tests are isolated.
    """
    if find_pg_ctl() is None:
        pytest.skip("PostgreSQL binaries not available")
    pg = request.getfixturevalue("postgresql")
    dsn = (
        f"host={pg.info.host} "
        f"port={pg.info.port} "
        f"dbname={pg.info.dbname} "
        f"user={pg.info.user} "
        f"password={pg.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            conn.execute(migration.read_text(encoding="utf-8"))
        conn.autocommit = False
        yield conn, dsn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

CVTERMS = {
    "sequence": ["SNP", "genetic_marker", "chromosome"],
    "feature_property": ["marker_type"],
    "relationship": ["is_marker_of"],
    "experiment_type": ["genotyping"],
    "stock_type": ["accession"],
}


@pytest.fixture
def chado(db_conn):
    """Seed reference rows and return their ids keyed by name."""
    conn, _ = db_conn
    ids: dict[str, int] = {}
    ids["organism"] = conn.execute(
        "INSERT INTO organism (genus, species, common_name) "
        "VALUES ('Lens', 'culinaris', 'lentil') RETURNING organism_id"
    ).fetchone()[0]
    for cv_name, terms in CVTERMS.items():
        cv_id = conn.execute(
            "INSERT INTO cv (name) VALUES (%s) RETURNING cv_id", (cv_name,)
        ).fetchone()[0]
        for term in terms:
            ids[term] = conn.execute(
                "INSERT INTO cvterm (cv_id, name) VALUES (%s, %s) RETURNING cvterm_id",
                (cv_id, term),
            ).fetchone()[0]
    ids["project"] = conn.execute(
        "INSERT INTO project (name) VALUES ('Lentil Diversity Panel') RETURNING project_id"
    ).fetchone()[0]
    for stock in ("SampleA", "SampleB"):
        ids[stock] = conn.execute(
            "INSERT INTO stock (organism_id, name, uniquename, type_id) "
            "VALUES (%s, %s, %s, %s) RETURNING stock_id",
            (ids["organism"], stock, stock, ids["accession"]),
        ).fetchone()[0]
    ids["Chr1"] = conn.execute(
        "INSERT INTO feature (organism_id, name, uniquename, type_id) "
        "VALUES (%s, 'Chr1', 'Chr1', %s) RETURNING feature_id",
        (ids["organism"], ids["chromosome"]),
    ).fetchone()[0]
    conn.commit()
    return ids


@pytest.fixture
def write_config(tmp_path: Path, chado):
    """Write a load-configuration YAML for the seeded database."""

    def _write(**overrides) -> Path:
        data = {
            "organism_id": chado["organism"],
            "variant_type": "SNP",
            "feature_type_of_marker": "genetic_marker",
            "marker_type": "SNP",
            "project_name": "Lentil Diversity Panel",
            "storage_method": "genotype_call",
            "insert_variants": "INSERT_OR_SELECT",
            "insert_markers": "INSERT_OR_SELECT",
            "sample_list": {
                "SampleA": {"stock_id": chado["SampleA"], "germplasm_id": 55},
                "SampleB": chado["SampleB"],
            },
        }
        data.update(overrides)
        path = tmp_path / "load.yml"
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_matrix(tmp_path: Path):
    def _write(rows: list[tuple[str, ...]], name: str = "matrix.tsv") -> Path:
        lines = ["variant\tbackbone\tposition\tsample\tallele"]
        lines.extend("\t".join(r) for r in rows)
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
