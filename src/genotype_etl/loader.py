"""genotype_etl.loader

Genotype matrix load orchestration.

Processing order per data line:
  1.  Validate (skip blank rows and rows without an allele)
  2.  Backbone                      SELECT_ONLY
  3.  Variant                       config.insert_variants
  4.  Marker                        config.insert_markers
  5.  Marker type property          INSERT_OR_SELECT
  6.  Marker is_marker_of Variant   INSERT_OR_SELECT
  7.  Variant featureloc            INSERT_OR_SELECT
  8.  Marker featureloc             INSERT_OR_SELECT (same interval)
  9.  GenotypeCall -> storage strategy
  10. Progress callback (current, total)

The first failure aborts the load: the error is annotated with the line
number and backbone / variant / marker names, the line is written to the
rejects file, and the error propagates to the caller.  The loader never
commits or rolls back; the caller owns the transaction.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Sequence

from genotype_etl.config import MARKER_OF_RELATIONSHIP, MARKER_TYPE_PROPERTY, LoadConfig
from genotype_etl.errors import (
    ConfigValidationError,
    FileUnreadable,
    GenotypeLoadError,
    LineCountUnavailable,
    LocationFailed,
    MissingTypeError,
    RelationshipFailed,
    ResolutionError,
    StorageFailed,
)
from genotype_etl.resolver import (
    FEATURE,
    FEATURE_RELATIONSHIP,
    FEATURELOC,
    FEATUREPROP,
    EntityResolver,
    Mode,
    RecordStore,
)
from genotype_etl.shared import RejectWriter, RunCounters
from genotype_etl.storage import GenotypeCall, build_storage
from genotype_etl.validate import ValidatedRow, is_blank_row, split_row, validate_row

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


# ---------------------------------------------------------------------------
# Line counting
# ---------------------------------------------------------------------------

def count_data_lines(path: Path) -> int:
    """Count data lines: everything after the header not starting with '#'."""
    try:
        with path.open(encoding="utf-8") as fh:
            next(fh, None)
            return sum(1 for line in fh if not line.startswith("#"))
    except (OSError, UnicodeDecodeError) as exc:
        raise LineCountUnavailable(f"cannot count lines in {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

class GenotypeLoader:
    """Stream a genotype matrix into the record store, one row at a time.

    One instance may run several loads; line counters are reset by load().
    """

    def __init__(
        self,
        store: RecordStore,
        config: LoadConfig,
        types: dict[str, int],
        on_progress: ProgressCallback | None = None,
        rejects: RejectWriter | None = None,
    ) -> None:
        missing = [n for n in config.required_type_names() if n not in types]
        if missing:
            raise MissingTypeError(missing)
        if config.project_id is None:
            raise ConfigValidationError(
                f"project {config.project_name!r} has not been resolved to a project_id"
            )

        self.config = config
        self.types = types
        self.on_progress = on_progress
        self.rejects = rejects
        self.counters = RunCounters()
        self.resolver = EntityResolver(store, self.counters)
        self.storage = build_storage(config.storage_method, self.resolver, types)
        self.current_line = 0
        self.total_lines = 0

    # -- whole file --------------------------------------------------------

    def load(self, path: Path) -> RunCounters:
        """Load every row of path; return the run counters on success.

        Raises the first GenotypeLoadError encountered.
        """
        if not path.is_file():
            raise FileUnreadable(f"{path} is not a readable file")
        self.counters = RunCounters()
        self.resolver.counters = self.counters
        self.current_line = 0
        self.total_lines = count_data_lines(path)
        self.counters.lines_total = self.total_lines

        log.info(
            "Loading %s (%d data lines) with storage_method=%s",
            path, self.total_lines, self.config.storage_method,
        )
        try:
            fh = path.open(encoding="utf-8")
        except OSError as exc:
            raise FileUnreadable(f"cannot open {path}: {exc}") from exc

        with fh:
            try:
                next(fh, None)  # header
                for line_no, line in enumerate(fh, start=2):
                    if line.startswith("#"):
                        self.counters.comment_lines += 1
                        continue
                    self.process_line(split_row(line), line_no)
            except UnicodeDecodeError as exc:
                raise FileUnreadable(f"cannot decode {path}: {exc}") from exc
            except OSError as exc:
                raise FileUnreadable(f"read of {path} failed: {exc}") from exc

        log.info("Loaded %s: %d rows stored", path, self.counters.rows_loaded)
        skipped = self.counters.rows_skipped_blank + self.counters.rows_skipped_no_allele
        if skipped:
            log.warning(
                "%s: skipped %d rows (%d blank, %d without allele)",
                path, skipped,
                self.counters.rows_skipped_blank,
                self.counters.rows_skipped_no_allele,
            )
        return self.counters

    # -- single row --------------------------------------------------------

    def process_line(self, fields: Sequence[str], line_no: int) -> int | None:
        """Validate and load one data line.

        Returns the id of the stored genotype fact, or None if skipped.
        """
        self.counters.lines_read += 1
        try:
            if is_blank_row(fields):
                self.counters.rows_skipped_blank += 1
                stored_id = None
            else:
                row = validate_row(
                    fields, self.config.sample_list, self.config.marker_type, line_no
                )
                if row is None:
                    self.counters.rows_skipped_no_allele += 1
                    self.counters.warnings.append(f"line {line_no}: empty allele, row skipped")
                    stored_id = None
                else:
                    stored_id = self._load_row(row, line_no)
        except GenotypeLoadError as exc:
            exc.add_context(line_no)
            self.counters.rows_failed += 1
            if self.rejects is not None:
                self.rejects.write_fields(line_no, list(fields), f"{exc.reason}: {exc}")
            log.error("Aborting load at line %d: %s", line_no, exc)
            raise

        self._advance()
        return stored_id

    def _advance(self) -> None:
        self.current_line += 1
        if self.on_progress is not None:
            self.on_progress(self.current_line, self.total_lines)

    def _load_row(self, row: ValidatedRow, line_no: int) -> int:
        try:
            stored_id = self._resolve_chain(row)
        except GenotypeLoadError as exc:
            exc.add_context(
                line_no,
                backbone=row.backbone_name,
                variant=row.variant_name,
                marker=row.marker_name,
            )
            raise
        self.counters.rows_loaded += 1
        self.counters.genotype_calls_stored += 1
        log.debug(
            "line %d: %s / %s on %s:%d stored as %d",
            line_no, row.variant_name, row.source_name, row.backbone_name, row.fmax, stored_id,
        )
        return stored_id

    def _resolve_chain(self, row: ValidatedRow) -> int:
        cfg = self.config
        resolve = self.resolver.resolve

        backbone_id = resolve(
            "Backbone", FEATURE, Mode.SELECT_ONLY,
            {"name": row.backbone_name, "uniquename": row.backbone_name,
             "organism_id": cfg.organism_id},
        )
        variant_id = resolve(
            "Variant", FEATURE, cfg.insert_variants,
            {"name": row.variant_name, "uniquename": row.variant_name,
             "organism_id": cfg.organism_id, "type_id": self.types[cfg.variant_type]},
        )
        marker_id = resolve(
            "Marker", FEATURE, cfg.insert_markers,
            {"name": row.marker_name, "uniquename": row.marker_name,
             "organism_id": cfg.organism_id,
             "type_id": self.types[cfg.feature_type_of_marker]},
        )
        resolve(
            "Marker type property", FEATUREPROP, Mode.INSERT_OR_SELECT,
            {"feature_id": marker_id, "type_id": self.types[MARKER_TYPE_PROPERTY],
             "value": cfg.marker_type, "rank": 0},
        )

        try:
            resolve(
                "Marker variant relationship", FEATURE_RELATIONSHIP, Mode.INSERT_OR_SELECT,
                {"subject_id": marker_id, "object_id": variant_id,
                 "type_id": self.types[MARKER_OF_RELATIONSHIP]},
            )
        except ResolutionError as exc:
            raise RelationshipFailed(
                f"could not link marker to variant: {exc.message}", context=exc.context
            ) from exc

        for label, feature_id in (("Variant location", variant_id), ("Marker location", marker_id)):
            try:
                resolve(
                    label, FEATURELOC, Mode.INSERT_OR_SELECT,
                    {"feature_id": feature_id, "srcfeature_id": backbone_id,
                     "fmin": row.fmin, "fmax": row.fmax, "rank": 0, "locgroup": 0},
                )
            except ResolutionError as exc:
                raise LocationFailed(
                    f"{label.lower()} failed: {exc.message}", context=exc.context
                ) from exc

        call = GenotypeCall(
            project_id=cfg.project_id,  # type: ignore[arg-type]
            project_name=cfg.project_name,
            variant_id=variant_id,
            variant_name=row.variant_name,
            variant_type=cfg.variant_type,
            marker_id=marker_id,
            marker_name=row.marker_name,
            marker_type=cfg.marker_type,
            feature_type_of_marker=cfg.feature_type_of_marker,
            sample_name=row.source_name,
            stock_id=row.sample.stock_id,
            stock_name=row.sample.stock_name,
            allele=row.allele,
            germplasm_id=row.sample.germplasm_id,
            nd_geolocation=cfg.nd_geolocation if self.storage.uses_geolocation else None,
        )
        try:
            return self.storage.store(call)
        except ResolutionError as exc:
            raise StorageFailed(
                f"{cfg.storage_method} storage failed: {exc.message}", context=exc.context
            ) from exc
