"""genotype_etl.resolver

Mode-controlled entity resolution.

The resolver implements only the select / insert / both policy.  How a
record of a given kind is looked up or created is supplied by a
RecordStore (ChadoRecordStore in production, an in-memory store in unit
tests).

Usage:
    resolver = EntityResolver(store)
    backbone_id = resolver.resolve(
        "Backbone", FEATURE, Mode.SELECT_ONLY,
        {"name": "Chr1", "uniquename": "Chr1", "organism_id": 1},
    )
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from genotype_etl.errors import (
    ConfigValidationError,
    EntityCreationFailed,
    EntityNotFound,
)

if TYPE_CHECKING:
    from genotype_etl.shared import RunCounters

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Mode
# ---------------------------------------------------------------------------

class Mode(enum.Enum):
    SELECT_ONLY = "select_only"
    INSERT_ONLY = "insert_only"
    INSERT_OR_SELECT = "insert_or_select"

    @classmethod
    def parse(cls, value: Any) -> "Mode":
        """Accept a Mode, its name/value in any case, or a legacy int code.

        Legacy codes: 0 = select only, 1 = insert only, 2 = both.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ConfigValidationError(f"invalid mode: {value!r}")
        if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
            code = int(value)
            if code in _LEGACY_CODES:
                return _LEGACY_CODES[code]
            raise ConfigValidationError(f"invalid legacy mode code: {value!r}")
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_")
            if key == "both":
                return cls.INSERT_OR_SELECT
            for mode in cls:
                if key == mode.value:
                    return mode
        raise ConfigValidationError(
            f"invalid mode: {value!r}; expected one of {[m.name for m in cls]}"
        )


_LEGACY_CODES = {
    0: Mode.SELECT_ONLY,
    1: Mode.INSERT_ONLY,
    2: Mode.INSERT_OR_SELECT,
}


# ---------------------------------------------------------------------------
# Entity kinds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EntityKind:
    """A persisted record shape: table, primary key and lookup key columns.

    Lookups match on the key columns present in the supplied fields, so a
    caller may select a feature by (name, uniquename, organism_id) without
    knowing its type.
    """

    table: str
    pk: str
    key_columns: tuple[str, ...]


FEATURE = EntityKind("feature", "feature_id", ("name", "uniquename", "organism_id", "type_id"))
FEATUREPROP = EntityKind("featureprop", "featureprop_id", ("feature_id", "type_id", "value"))
FEATURE_RELATIONSHIP = EntityKind(
    "feature_relationship", "feature_relationship_id", ("subject_id", "object_id", "type_id")
)
FEATURELOC = EntityKind("featureloc", "featureloc_id", ("feature_id", "srcfeature_id", "fmin", "fmax"))
GENOTYPE = EntityKind("genotype", "genotype_id", ("uniquename",))
FEATURE_GENOTYPE = EntityKind(
    "feature_genotype", "feature_genotype_id", ("feature_id", "genotype_id", "cvterm_id")
)
GENOTYPE_CALL = EntityKind(
    "genotype_call",
    "genotype_call_id",
    ("variant_id", "marker_id", "genotype_id", "project_id", "stock_id"),
)
STOCK_GENOTYPE = EntityKind("stock_genotype", "stock_genotype_id", ("stock_id", "genotype_id"))
ND_GEOLOCATION = EntityKind("nd_geolocation", "nd_geolocation_id", ("description",))
ND_EXPERIMENT = EntityKind("nd_experiment", "nd_experiment_id", ())
ND_EXPERIMENT_GENOTYPE = EntityKind(
    "nd_experiment_genotype", "nd_experiment_genotype_id", ("nd_experiment_id", "genotype_id")
)
ND_EXPERIMENT_STOCK = EntityKind(
    "nd_experiment_stock", "nd_experiment_stock_id", ("nd_experiment_id", "stock_id")
)
ND_EXPERIMENT_PROJECT = EntityKind(
    "nd_experiment_project", "nd_experiment_project_id", ("nd_experiment_id", "project_id")
)

ENTITY_KINDS: dict[str, EntityKind] = {
    k.table: k
    for k in (
        FEATURE, FEATUREPROP, FEATURE_RELATIONSHIP, FEATURELOC,
        GENOTYPE, FEATURE_GENOTYPE, GENOTYPE_CALL, STOCK_GENOTYPE,
        ND_GEOLOCATION, ND_EXPERIMENT, ND_EXPERIMENT_GENOTYPE,
        ND_EXPERIMENT_STOCK, ND_EXPERIMENT_PROJECT,
    )
}


def lookup_fields(kind: EntityKind, fields: dict[str, Any]) -> dict[str, Any]:
    """Return the subset of fields that identifies a record of this kind."""
    return {c: fields[c] for c in kind.key_columns if c in fields}


# ---------------------------------------------------------------------------
# RecordStore capability
# ---------------------------------------------------------------------------

class RecordStore(Protocol):
    def select(self, kind: EntityKind, fields: dict[str, Any]) -> int | None:
        """Return the id of an existing record matching fields, or None."""
        ...

    def insert(self, kind: EntityKind, fields: dict[str, Any]) -> int | None:
        """Create a record and return its id (None if nothing was created)."""
        ...

    def find_experiment(
        self, genotype_id: int, stock_id: int, project_id: int
    ) -> int | None:
        """Return an nd_experiment already linking genotype, stock and project."""
        ...


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class EntityResolver:
    """Apply a Mode to a RecordStore lookup/creation."""

    def __init__(self, store: RecordStore, counters: RunCounters | None = None) -> None:
        self.store = store
        self.counters = counters

    def resolve(
        self,
        label: str,
        kind: EntityKind,
        mode: Mode,
        fields: dict[str, Any],
    ) -> int:
        """Return the id of the record described by fields.

        Raises:
            EntityNotFound: SELECT_ONLY and no match.
            EntityCreationFailed: the store created nothing.
            EntityLookupFailed: raised by the store on a query error.
        """
        if mode is not Mode.INSERT_ONLY:
            criteria = lookup_fields(kind, fields)
            # A kind without key columns can never be matched.
            existing = self.store.select(kind, criteria) if criteria else None
            if existing is not None:
                self._tally(kind, inserted=False)
                log.debug("%s matched %s.%s=%s", label, kind.table, kind.pk, existing)
                return existing
            if mode is Mode.SELECT_ONLY:
                raise EntityNotFound(label, context=_describe(fields))

        new_id = self.store.insert(kind, fields)
        if new_id is None:
            raise EntityCreationFailed(label, "no id returned", context=_describe(fields))
        self._tally(kind, inserted=True)
        log.debug("%s inserted %s.%s=%s", label, kind.table, kind.pk, new_id)
        return new_id

    def _tally(self, kind: EntityKind, inserted: bool) -> None:
        if self.counters is not None:
            self.counters.record_entity(kind.table, inserted)


def _describe(fields: dict[str, Any]) -> dict[str, Any]:
    # Names identify the record for a curator; raw ids are noise next to them.
    named = {k: v for k, v in fields.items() if k in ("name", "uniquename", "description")}
    return named or dict(fields)
