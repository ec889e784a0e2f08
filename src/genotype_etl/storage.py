"""genotype_etl.storage

Genotype storage strategies.

A strategy persists one fully assembled GenotypeCall.  The strategy is
chosen once per load by the ``storage_method`` config value:

  nd_experiment   genotype + feature_genotype, linked to the stock and the
                  project through an nd_experiment at a geolocation
  genotype_call   genotype + one genotype_call row referencing variant,
                  marker, stock and project directly
  stock_genotype  genotype + feature_genotype + stock_genotype

All strategies accept the same GenotypeCall.  Only nd_experiment makes use
of ``nd_geolocation``; when it is absent the experiment is attached to the
shared "Not Applicable" geolocation.

New strategies are added with the ``register_storage`` decorator; the
loader only ever looks them up by name.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Callable, ClassVar, Protocol

from genotype_etl.errors import UnknownStorageMethod
from genotype_etl.resolver import (
    FEATURE_GENOTYPE,
    GENOTYPE,
    GENOTYPE_CALL,
    ND_EXPERIMENT,
    ND_EXPERIMENT_GENOTYPE,
    ND_EXPERIMENT_PROJECT,
    ND_EXPERIMENT_STOCK,
    ND_GEOLOCATION,
    STOCK_GENOTYPE,
    EntityResolver,
    Mode,
)

NOT_APPLICABLE_GEOLOCATION = "Not Applicable"
GENOTYPING_EXPERIMENT_TYPE = "genotyping"


# ---------------------------------------------------------------------------
# GenotypeCall
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GenotypeCall:
    """The observed allele for one (marker, sample) pair."""

    project_id: int
    project_name: str | None
    variant_id: int
    variant_name: str
    variant_type: str
    marker_id: int
    marker_name: str
    marker_type: str
    feature_type_of_marker: str
    sample_name: str
    stock_id: int
    stock_name: str
    allele: str
    germplasm_id: int | None = None
    nd_geolocation: str | None = None

    @property
    def genotype_uniquename(self) -> str:
        return f"{self.marker_name}_{self.allele}"

    def meta_data(self) -> str:
        """Descriptive fields not otherwise normalized, as a JSON document."""
        keep = ("sample_name", "stock_name", "germplasm_id", "marker_type", "project_name")
        d = asdict(self)
        return json.dumps({k: d[k] for k in keep if d[k] is not None}, sort_keys=True)


# ---------------------------------------------------------------------------
# Strategy protocol + registry
# ---------------------------------------------------------------------------

class GenotypeStorage(Protocol):
    name: ClassVar[str]
    required_types: ClassVar[tuple[str, ...]]
    uses_geolocation: ClassVar[bool]

    def store(self, call: GenotypeCall) -> int:
        """Persist the call and return the id of the stored fact."""
        ...


STORAGE_METHODS: dict[str, type] = {}


def register_storage(name: str) -> Callable[[type], type]:
    """Class decorator registering a storage strategy under ``name``."""

    def decorator(cls: type) -> type:
        if name in STORAGE_METHODS:
            raise ValueError(f"storage method {name!r} is already registered")
        cls.name = name
        STORAGE_METHODS[name] = cls
        return cls

    return decorator


def get_storage_class(name: str) -> type:
    try:
        return STORAGE_METHODS[name]
    except KeyError:
        raise UnknownStorageMethod(name, list(STORAGE_METHODS)) from None


def build_storage(
    name: str, resolver: EntityResolver, types: dict[str, int]
) -> GenotypeStorage:
    """Instantiate the strategy registered under ``name``."""
    return get_storage_class(name)(resolver, types)


# ---------------------------------------------------------------------------
# Shared genotype handling
# ---------------------------------------------------------------------------

class _GenotypeWriter:
    required_types: ClassVar[tuple[str, ...]] = ()
    uses_geolocation: ClassVar[bool] = False

    def __init__(self, resolver: EntityResolver, types: dict[str, int]) -> None:
        self.resolver = resolver
        self.types = types

    def _genotype(self, call: GenotypeCall) -> int:
        return self.resolver.resolve(
            "Genotype",
            GENOTYPE,
            Mode.INSERT_OR_SELECT,
            {
                "name": call.allele,
                "uniquename": call.genotype_uniquename,
                "description": call.allele,
                "type_id": self.types[call.variant_type],
            },
        )

    def _link_marker(self, call: GenotypeCall, genotype_id: int) -> int:
        return self.resolver.resolve(
            "Marker genotype link",
            FEATURE_GENOTYPE,
            Mode.INSERT_OR_SELECT,
            {
                "feature_id": call.marker_id,
                "genotype_id": genotype_id,
                "cvterm_id": self.types[call.variant_type],
                "rank": 0,
                "cgroup": 0,
            },
        )


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

@register_storage("nd_experiment")
class NdExperimentStorage(_GenotypeWriter):
    required_types = (GENOTYPING_EXPERIMENT_TYPE,)
    uses_geolocation = True

    def store(self, call: GenotypeCall) -> int:
        genotype_id = self._genotype(call)
        self._link_marker(call, genotype_id)

        store = self.resolver.store
        experiment_id = store.find_experiment(genotype_id, call.stock_id, call.project_id)
        if experiment_id is None:
            geolocation_id = self.resolver.resolve(
                "Geolocation",
                ND_GEOLOCATION,
                Mode.INSERT_OR_SELECT,
                {"description": call.nd_geolocation or NOT_APPLICABLE_GEOLOCATION},
            )
            experiment_id = self.resolver.resolve(
                "Experiment",
                ND_EXPERIMENT,
                Mode.INSERT_ONLY,
                {
                    "nd_geolocation_id": geolocation_id,
                    "type_id": self.types[GENOTYPING_EXPERIMENT_TYPE],
                },
            )

        links = (
            ("Experiment genotype link", ND_EXPERIMENT_GENOTYPE, {"genotype_id": genotype_id}),
            ("Experiment stock link", ND_EXPERIMENT_STOCK, {
                "stock_id": call.stock_id,
                "type_id": self.types[GENOTYPING_EXPERIMENT_TYPE],
            }),
            ("Experiment project link", ND_EXPERIMENT_PROJECT, {"project_id": call.project_id}),
        )
        for label, kind, fields in links:
            self.resolver.resolve(
                label, kind, Mode.INSERT_OR_SELECT,
                {"nd_experiment_id": experiment_id, **fields},
            )
        return experiment_id


@register_storage("genotype_call")
class GenotypeCallStorage(_GenotypeWriter):
    def store(self, call: GenotypeCall) -> int:
        genotype_id = self._genotype(call)
        return self.resolver.resolve(
            "Genotype call",
            GENOTYPE_CALL,
            Mode.INSERT_OR_SELECT,
            {
                "variant_id": call.variant_id,
                "marker_id": call.marker_id,
                "genotype_id": genotype_id,
                "project_id": call.project_id,
                "stock_id": call.stock_id,
                "meta_data": call.meta_data(),
            },
        )


@register_storage("stock_genotype")
class StockGenotypeStorage(_GenotypeWriter):
    def store(self, call: GenotypeCall) -> int:
        genotype_id = self._genotype(call)
        self._link_marker(call, genotype_id)
        return self.resolver.resolve(
            "Stock genotype link",
            STOCK_GENOTYPE,
            Mode.INSERT_OR_SELECT,
            {"stock_id": call.stock_id, "genotype_id": genotype_id},
        )
