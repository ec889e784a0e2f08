"""genotype_etl.chado

psycopg-backed record store and lookups against a Chado schema.

Caller manages transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

import psycopg
from psycopg import sql

from genotype_etl.errors import (
    EntityCreationFailed,
    EntityLookupFailed,
    EntityNotFound,
)
from genotype_etl.resolver import ENTITY_KINDS, EntityKind

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Record store
# ---------------------------------------------------------------------------

class ChadoRecordStore:
    """RecordStore implementation issuing one statement per call.

    Only kinds registered in ENTITY_KINDS may be read or written.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn

    def select(self, kind: EntityKind, fields: dict[str, Any]) -> int | None:
        _check_kind(kind)
        conditions, params = where_clause(fields)
        query = sql.SQL(
            "SELECT {pk} FROM {table} WHERE {conditions} ORDER BY {pk} ASC LIMIT 1"
        ).format(
            pk=sql.Identifier(kind.pk),
            table=sql.Identifier(kind.table),
            conditions=conditions,
        )
        try:
            row = self.conn.execute(query, params).fetchone()
        except psycopg.Error as exc:
            raise EntityLookupFailed(kind.table, str(exc).strip()) from exc
        return int(row[0]) if row else None

    def insert(self, kind: EntityKind, fields: dict[str, Any]) -> int | None:
        _check_kind(kind)
        query = sql.SQL("INSERT INTO {table} ({cols}) VALUES ({vals}) RETURNING {pk}").format(
            table=sql.Identifier(kind.table),
            cols=sql.SQL(", ").join(sql.Identifier(c) for c in fields),
            vals=sql.SQL(", ").join(sql.Placeholder() for _ in fields),
            pk=sql.Identifier(kind.pk),
        )
        try:
            row = self.conn.execute(query, tuple(fields.values())).fetchone()
        except psycopg.Error as exc:
            raise EntityCreationFailed(kind.table, str(exc).strip()) from exc
        return int(row[0]) if row else None

    def find_experiment(
        self, genotype_id: int, stock_id: int, project_id: int
    ) -> int | None:
        try:
            row = self.conn.execute(
                """
                SELECT e.nd_experiment_id
                FROM nd_experiment e
                JOIN nd_experiment_genotype g ON g.nd_experiment_id = e.nd_experiment_id
                JOIN nd_experiment_stock s ON s.nd_experiment_id = e.nd_experiment_id
                JOIN nd_experiment_project p ON p.nd_experiment_id = e.nd_experiment_id
                WHERE g.genotype_id = %s
                  AND s.stock_id = %s
                  AND p.project_id = %s
                ORDER BY e.nd_experiment_id ASC
                LIMIT 1
                """,
                (genotype_id, stock_id, project_id),
            ).fetchone()
        except psycopg.Error as exc:
            raise EntityLookupFailed("nd_experiment", str(exc).strip()) from exc
        return int(row[0]) if row else None


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------

def where_clause(fields: dict[str, Any]) -> tuple[sql.Composed, list[Any]]:
    """Build an index-friendly AND of equality tests.

    None values become `IS NULL` and take no parameter.
    """
    parts = []
    params: list[Any] = []
    for col, value in fields.items():
        if value is None:
            parts.append(sql.SQL("{} IS NULL").format(sql.Identifier(col)))
        else:
            parts.append(sql.SQL("{} = %s").format(sql.Identifier(col)))
            params.append(value)
    return sql.SQL(" AND ").join(parts), params


def _check_kind(kind: EntityKind) -> None:
    if ENTITY_KINDS.get(kind.table) != kind:
        raise ValueError(f"unregistered entity kind: {kind.table!r}")


# ---------------------------------------------------------------------------
# Lookups used while setting up a load
# ---------------------------------------------------------------------------

def fetch_type_ids(conn: psycopg.Connection, names: Iterable[str]) -> dict[str, int]:
    """Map cvterm names to ids.  Names that are not found are left out.

    When a name exists in several CVs the lowest cvterm_id wins.
    """
    wanted = list(dict.fromkeys(names))
    rows = conn.execute(
        "SELECT name, cvterm_id FROM cvterm WHERE name = ANY(%s) ORDER BY cvterm_id ASC",
        (wanted,),
    ).fetchall()
    types: dict[str, int] = {}
    for name, cvterm_id in rows:
        types.setdefault(name, int(cvterm_id))
    missing = [n for n in wanted if n not in types]
    if missing:
        log.debug("cvterms not found: %s", missing)
    return types


def resolve_project_id(conn: psycopg.Connection, project_name: str) -> int:
    row = conn.execute(
        "SELECT project_id FROM project WHERE name = %s ORDER BY project_id ASC LIMIT 1",
        (project_name,),
    ).fetchone()
    if not row:
        raise EntityNotFound("Project", context={"name": project_name})
    return int(row[0])
