"""Unit tests for genotype_etl.chado query building (no database)."""

from __future__ import annotations

import pytest

from genotype_etl.chado import ChadoRecordStore, where_clause
from genotype_etl.resolver import FEATURE, EntityKind


class TestWhereClause:
    def test_equality_per_column(self):
        conditions, params = where_clause({"uniquename": "Chr1", "organism_id": 1})
        assert conditions.as_string() == '"uniquename" = %s AND "organism_id" = %s'
        assert params == ["Chr1", 1]

    def test_none_becomes_is_null_without_parameter(self):
        conditions, params = where_clause({"name": "T", "description": None})
        assert conditions.as_string() == '"name" = %s AND "description" IS NULL'
        assert params == ["T"]

    def test_never_uses_is_not_distinct_from(self):
        conditions, _ = where_clause({"feature_id": 3, "fmin": 1499, "fmax": 1500})
        assert "DISTINCT" not in conditions.as_string()


class TestKindCheck:
    def test_unregistered_table_rejected_before_query(self):
        store = ChadoRecordStore(conn=None)
        with pytest.raises(ValueError, match="pg_authid"):
            store.select(EntityKind("pg_authid", "oid", ("rolname",)), {"rolname": "x"})
        with pytest.raises(ValueError):
            store.insert(EntityKind("pg_authid", "oid", ("rolname",)), {"rolname": "x"})

    def test_altered_key_columns_rejected(self):
        store = ChadoRecordStore(conn=None)
        with pytest.raises(ValueError):
            store.select(EntityKind("feature", "feature_id", ("name",)), {"name": "x"})

    def test_registered_kind_reaches_connection(self):
        class FakeConn:
            def execute(self, query, params):
                self.params = params
                return self

            def fetchone(self):
                return (42,)

        conn = FakeConn()
        assert ChadoRecordStore(conn).select(FEATURE, {"uniquename": "Chr1", "name": None}) == 42
        assert conn.params == ["Chr1"]
