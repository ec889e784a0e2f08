"""genotype_etl.import_genotype_matrix

CLI entrypoint for genotype matrix loads.

Usage:
    python -m genotype_etl.import_genotype_matrix \\
        --db-dsn "$DB_DSN" \\
        --input-path "data/cohort_genotypes.tsv" \\
        --config-path "config/cohort_load.yml" \\
        --rejects-path "artifacts/rejects/cohort_rejects.csv"

The whole file is loaded in one transaction: it is committed only when
every row succeeds and rolled back on the first error (or always, with
--dry-run).
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime
from pathlib import Path

import click
import psycopg
import yaml

from genotype_etl.chado import ChadoRecordStore, fetch_type_ids, resolve_project_id
from genotype_etl.config import LoadConfig, load_config
from genotype_etl.errors import ConfigValidationError, GenotypeLoadError
from genotype_etl.loader import GenotypeLoader
from genotype_etl.shared import RejectWriter, RunCounters, write_run_report


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

class ProgressReporter:
    """Echo progress each time another ``step_pct`` percent of lines is done."""

    def __init__(self, run_id: str, step_pct: int = 10) -> None:
        self.run_id = run_id
        self.step_pct = max(1, step_pct)
        self._next_pct = self.step_pct

    def __call__(self, current: int, total: int) -> None:
        if total <= 0:
            return
        pct = current * 100 // total
        if pct >= self._next_pct:
            click.echo(f"[{self.run_id}] Progress: {current}/{total} lines ({pct}%)")
            while self._next_pct <= pct:
                self._next_pct += self.step_pct


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------

def _build_loader(
    run_id: str,
    conn: psycopg.Connection,
    config: LoadConfig,
    rejects: RejectWriter,
    progress_step: int,
) -> GenotypeLoader:
    """Resolve project and cvterms, then wire the loader to the connection."""
    if config.project_id is None:
        config.project_id = resolve_project_id(conn, config.project_name)  # type: ignore[arg-type]
        click.echo(f"[{run_id}] Project {config.project_name!r} -> project_id={config.project_id}")

    types = fetch_type_ids(conn, config.required_type_names())
    return GenotypeLoader(
        ChadoRecordStore(conn),
        config,
        types,
        on_progress=ProgressReporter(run_id, progress_step),
        rejects=rejects,
    )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option("--db-dsn", required=True, help="PostgreSQL DSN")
@click.option("--input-path", required=True, type=click.Path(), help="Tab-delimited genotype matrix")
@click.option("--config-path", required=True, type=click.Path(), help="YAML load configuration")
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/genotype_rejects.csv",
    show_default=True,
)
@click.option("--report-dir", default="./artifacts/reports", show_default=True, type=click.Path())
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--progress-step",
    default=10,
    type=int,
    show_default=True,
    help="Echo progress every N percent of data lines",
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    show_default=True,
)
def main(
    db_dsn: str,
    input_path: str,
    config_path: str,
    dry_run: bool,
    rejects_path: str,
    report_dir: str,
    run_id: str | None,
    progress_step: int,
    log_level: str,
) -> None:
    """Load a genotype matrix into a Chado database."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()

    click.echo(f"[{run_id}] Starting genotype matrix load (dry_run={dry_run})")

    try:
        config = load_config(Path(config_path))
    except (ConfigValidationError, OSError, yaml.YAMLError) as e:
        click.echo(f"[{run_id}] FATAL: invalid config {config_path}: {e}", err=True)
        sys.exit(1)

    rejects = RejectWriter(Path(rejects_path))
    counters = RunCounters()
    status = "failed"
    error: str | None = None
    loader: GenotypeLoader | None = None

    try:
        conn = psycopg.connect(db_dsn, autocommit=False)
    except psycopg.OperationalError as e:
        click.echo(f"[{run_id}] FATAL: cannot connect to database: {e}", err=True)
        sys.exit(1)
    try:
        loader = _build_loader(run_id, conn, config, rejects, progress_step)
        counters = loader.load(Path(input_path))
        if dry_run:
            conn.rollback()
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
            status = "dry_run"
        else:
            conn.commit()
            click.echo(f"[{run_id}] Committed.")
            status = "committed"
    except (GenotypeLoadError, ConfigValidationError) as e:
        conn.rollback()
        if loader is not None:
            counters = loader.counters
        error = str(e)
        click.echo(f"[{run_id}] FATAL: {e}; rolling back.", err=True)
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
        rejects.close()

    report_path = write_run_report(
        run_id, started_at, dry_run,
        {
            "input_path": input_path,
            "config_path": config_path,
            "config_hash": config.yaml_hash,
            "storage_method": config.storage_method,
        },
        counters,
        status=status,
        error=error,
        report_dir=Path(report_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    click.echo(json.dumps(counters.to_dict(), indent=2, default=str))

    if status == "failed":
        if error and rejects.path.exists():
            click.echo(f"[{run_id}] Offending row written to {rejects.path}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
