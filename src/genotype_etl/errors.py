"""genotype_etl.errors

Exception taxonomy for genotype matrix loads.

Every error raised while processing rows derives from GenotypeLoadError and
carries the file line number plus a context dict (entity label, backbone /
variant / marker names) so the offending line can be located from the
message alone.  Set-up errors (bad config, unknown storage method, missing
cvterms) are raised before the first row is read.
"""

from __future__ import annotations

from typing import Any


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class GenotypeLoadError(Exception):
    """Base class for all load failures."""

    def __init__(
        self,
        message: str,
        *,
        line_no: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.line_no = line_no
        self.context: dict[str, Any] = dict(context or {})

    def add_context(self, line_no: int | None = None, **context: Any) -> None:
        """Attach row context without overwriting what the raiser already set."""
        if self.line_no is None:
            self.line_no = line_no
        for key, value in context.items():
            if value is not None:
                self.context.setdefault(key, value)

    @property
    def reason(self) -> str:
        """Short snake_case reason used in reject files and reports."""
        return _snake(type(self).__name__)

    def __str__(self) -> str:
        parts = [self.message]
        if self.line_no is not None:
            parts.append(f"line={self.line_no}")
        parts.extend(f"{k}={v!r}" for k, v in self.context.items())
        return " ".join(parts)


def _snake(name: str) -> str:
    out = []
    for idx, ch in enumerate(name):
        if ch.isupper() and idx:
            out.append("_")
        out.append(ch.lower())
    return "".join(out)


# ---------------------------------------------------------------------------
# Row validation
# ---------------------------------------------------------------------------

class RowValidationError(GenotypeLoadError):
    """A data line failed column-presence or lookup rules."""


class MissingField(RowValidationError):
    def __init__(self, field: str, **kwargs: Any) -> None:
        super().__init__(f"missing required field {field!r}", **kwargs)
        self.field = field


class InvalidField(RowValidationError):
    def __init__(self, field: str, value: str, **kwargs: Any) -> None:
        super().__init__(f"invalid value for {field!r}: {value!r}", **kwargs)
        self.field = field
        self.value = value


class UnknownSample(RowValidationError):
    def __init__(self, name: str, **kwargs: Any) -> None:
        super().__init__(f"sample {name!r} is not in the sample list", **kwargs)
        self.name = name


# ---------------------------------------------------------------------------
# Entity resolution
# ---------------------------------------------------------------------------

class ResolutionError(GenotypeLoadError):
    """An entity could not be selected or created."""

    def __init__(self, label: str, message: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.label = label
        self.context.setdefault("entity", label)


class EntityNotFound(ResolutionError):
    def __init__(self, label: str, **kwargs: Any) -> None:
        super().__init__(label, f"{label} not found", **kwargs)


class EntityCreationFailed(ResolutionError):
    def __init__(self, label: str, detail: str = "", **kwargs: Any) -> None:
        msg = f"could not create {label}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(label, msg, **kwargs)


class EntityLookupFailed(ResolutionError):
    def __init__(self, label: str, detail: str = "", **kwargs: Any) -> None:
        msg = f"lookup of {label} failed"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(label, msg, **kwargs)


class RelationshipFailed(GenotypeLoadError):
    """Marker is_marker_of Variant link could not be resolved."""


class LocationFailed(GenotypeLoadError):
    """A featureloc for the variant or marker could not be resolved."""


class StorageFailed(GenotypeLoadError):
    """The genotype storage strategy could not persist the call."""


# ---------------------------------------------------------------------------
# Input file
# ---------------------------------------------------------------------------

class FileUnreadable(GenotypeLoadError):
    pass


class LineCountUnavailable(GenotypeLoadError):
    pass


# ---------------------------------------------------------------------------
# Set-up (raised before any row is processed)
# ---------------------------------------------------------------------------

class ConfigValidationError(ValueError):
    """Raised when the load configuration fails schema validation."""


class UnknownStorageMethod(ConfigValidationError):
    def __init__(self, name: str, known: list[str]) -> None:
        super().__init__(
            f"unknown storage_method {name!r}; expected one of {sorted(known)}"
        )
        self.name = name


class MissingTypeError(ConfigValidationError):
    def __init__(self, names: list[str]) -> None:
        super().__init__(f"cvterm(s) not found: {sorted(names)}")
        self.names = names
