"""Tests for idempotency transforms on SQL cells."""

from __future__ import annotations

import sqlite3

import pytest

from sqlnb.engine.errors import TransformError
from sqlnb.engine.idempotency import transform
from sqlnb.engine.models import (
    CellMetadata,
    CodeFragment,
    ResolvedCell,
    RowsFragment,
    SQLFragment,
    fragment_sql,
)
from sqlnb.engine.utils import SQLExpr, sql_literal


def make_cell(fragment, **meta) -> ResolvedCell:
    meta.setdefault("identifier", "cell")
    if isinstance(fragment, str):
        fragment = SQLFragment(fragment)
    return ResolvedCell(
        identifier=meta["identifier"],
        metadata=CellMetadata(**meta),
        fragment=fragment,
        sql_text=fragment_sql(fragment),
        source_location="tests:Notebook.cell",
        notebook_name="Notebook",
    )


def run_twice(statements: list[str], setup: str = "") -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    if setup:
        conn.execute(setup)
    for _ in range(2):
        for stmt in statements:
            conn.execute(stmt)
    return conn


class TestPassThrough:
    def test_none_mode_splits_statements(self):
        cell = make_cell("CREATE TABLE a (id INTEGER);\nINSERT INTO a VALUES (1);")
        assert transform(cell) == ["CREATE TABLE a (id INTEGER)", "INSERT INTO a VALUES (1)"]

    def test_semicolon_in_string_not_split(self):
        cell = make_cell("INSERT INTO a VALUES ('x;y')")
        assert transform(cell) == ["INSERT INTO a VALUES ('x;y')"]

    def test_empty_body(self):
        assert transform(make_cell("  ")) == []

    def test_comment_only_body(self):
        assert transform(make_cell("-- nothing to do\n")) == []

    def test_store_only_sql_cell(self):
        assert transform(make_cell("SELECT 1", emit="store")) == []

    def test_non_sql_cell(self):
        cell = make_cell(CodeFragment("echo hi"), kind="non-sql-code")
        assert transform(cell) == []

    def test_block_comment_with_semicolon(self):
        cell = make_cell("/* create; seed */\nCREATE TABLE a (id INTEGER);\nINSERT INTO a VALUES (1);")
        assert transform(cell) == ["/* create; seed */\nCREATE TABLE a (id INTEGER)", "INSERT INTO a VALUES (1)"]

    def test_none_create_fails_on_rerun(self):
        (stmt,) = transform(make_cell("CREATE TABLE a (id INTEGER)"))
        assert stmt == "CREATE TABLE a (id INTEGER)"
        with pytest.raises(sqlite3.OperationalError, match="already exists"):
            run_twice([stmt])

    def test_unterminated_string(self):
        with pytest.raises(TransformError, match="cannot split"):
            transform(make_cell("SELECT 'abc"))

    def test_selects_pass_through_in_upsert_mode(self):
        cell = make_cell("SELECT 1 UNION ALL SELECT 2", idempotency="upsert")
        assert transform(cell) == ["SELECT 1 UNION ALL SELECT 2"]


class TestRowsFragment:
    rows = RowsFragment("t", ("id", "name"), [(1, "a"), (2, "b")], natural_key="id")
    setup = "CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)"

    def test_plain_insert(self):
        (stmt,) = transform(make_cell(self.rows))
        assert stmt == "INSERT INTO t (id, name) VALUES\n  (1, 'a'),\n  (2, 'b')"

    def test_upsert(self):
        (stmt,) = transform(make_cell(self.rows, idempotency="upsert"))
        assert stmt.endswith("ON CONFLICT (id) DO UPDATE SET name = excluded.name")
        conn = run_twice([stmt], self.setup)
        assert conn.execute("SELECT count(*) FROM t").fetchone() == (2,)

    def test_replace(self):
        delete, insert = transform(make_cell(self.rows, idempotency="replace"))
        assert delete == "DELETE FROM t WHERE id IN (1, 2)"
        conn = run_twice([delete, insert], self.setup)
        assert conn.execute("SELECT count(*) FROM t").fetchone() == (2,)

    def test_replace_composite_key(self):
        rows = RowsFragment("m", ("a", "b", "v"), [(1, "x", 10)], natural_key=("a", "b"))
        delete, _ = transform(make_cell(rows, idempotency="replace"))
        assert delete == "DELETE FROM m WHERE (a = 1 AND b = 'x')"

    def test_key_from_metadata(self):
        rows = RowsFragment("t", ("id", "name"), [(1, "a")])
        (stmt,) = transform(make_cell(rows, idempotency="upsert", natural_key="id"))
        assert "ON CONFLICT (id)" in stmt

    def test_upsert_without_key(self):
        rows = RowsFragment("t", ("id", "name"), [(1, "a")])
        with pytest.raises(TransformError, match="natural key"):
            transform(make_cell(rows, idempotency="upsert"))

    def test_key_not_in_columns(self):
        rows = RowsFragment("t", ("id", "name"), [(1, "a")])
        with pytest.raises(TransformError, match="code"):
            transform(make_cell(rows, idempotency="upsert", natural_key="code"))

    def test_target_table_mismatch(self):
        with pytest.raises(TransformError, match="target table"):
            transform(make_cell(self.rows, idempotency="upsert", target_table="other"))

    def test_key_only_columns_do_nothing(self):
        rows = RowsFragment("tags", ("tag",), [("a",)], natural_key="tag")
        (stmt,) = transform(make_cell(rows, idempotency="upsert"))
        assert stmt.endswith("ON CONFLICT (tag) DO NOTHING")

    def test_quotes_escaped(self):
        rows = RowsFragment("t", ("id", "name"), [(1, "O'Brien")])
        (stmt,) = transform(make_cell(rows))
        assert "'O''Brien'" in stmt

    def test_rows_length_checked(self):
        with pytest.raises(ValueError, match="expected 2"):
            RowsFragment("t", ("id", "name"), [(1,)])

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_rejected(self, value):
        with pytest.raises(ValueError, match="non-finite"):
            RowsFragment("t", ("id", "score"), [(1, value)])

    def test_from_records(self):
        rows = RowsFragment.from_records(
            "t",
            [{"id": 1, "name": "a"}, {"name": "b", "id": 2}],
            natural_key="id",
        )
        assert rows.columns == ("id", "name")
        assert rows.rows == ((1, "a"), (2, "b"))
        (stmt,) = transform(make_cell(rows, idempotency="upsert"))
        conn = run_twice([stmt], self.setup)
        assert conn.execute("SELECT name FROM t ORDER BY id").fetchall() == [("a",), ("b",)]

    def test_from_records_mismatched_keys(self):
        with pytest.raises(ValueError, match="does not have columns"):
            RowsFragment.from_records("t", [{"id": 1, "name": "a"}, {"id": 2}])

    def test_from_records_empty(self):
        with pytest.raises(ValueError, match="No records"):
            RowsFragment.from_records("t", [])


class TestRawCreate:
    def test_upsert_adds_if_not_exists(self):
        (stmt,) = transform(
            make_cell("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)", idempotency="upsert")
        )
        assert stmt == "CREATE TABLE IF NOT EXISTS t (id INTEGER PRIMARY KEY, name TEXT)"
        run_twice([stmt])

    def test_upsert_keeps_postgres_text(self):
        sql = "CREATE TABLE docs (id SERIAL PRIMARY KEY, body JSONB DEFAULT '{}'::jsonb)"
        (stmt,) = transform(make_cell(sql, idempotency="upsert"), "postgres")
        assert stmt == "CREATE TABLE IF NOT EXISTS docs (id SERIAL PRIMARY KEY, body JSONB DEFAULT '{}'::jsonb)"

    def test_create_index(self):
        (stmt,) = transform(make_cell("CREATE INDEX idx_t_name ON t (name)", idempotency="upsert"))
        assert stmt == "CREATE INDEX IF NOT EXISTS idx_t_name ON t (name)"
        run_twice([stmt], "CREATE TABLE t (id INTEGER, name TEXT)")

    def test_block_comment_upsert(self):
        sql = "/* schema; v1 */ CREATE TABLE t (id INTEGER PRIMARY KEY)"
        (stmt,) = transform(make_cell(sql, idempotency="upsert"))
        assert stmt == "/* schema; v1 */ CREATE TABLE IF NOT EXISTS t (id INTEGER PRIMARY KEY)"
        run_twice([stmt])

    def test_block_comment_replace(self):
        sql = "/* schema; v1 */ CREATE TABLE t (id INTEGER PRIMARY KEY)"
        drop, create = transform(make_cell(sql, idempotency="replace"))
        assert drop == "DROP TABLE IF EXISTS t"
        assert create == sql
        run_twice([drop, create])

    def test_already_guarded_untouched(self):
        sql = "CREATE TABLE IF NOT EXISTS t (id INTEGER)"
        assert transform(make_cell(sql, idempotency="upsert")) == [sql]

    def test_create_view(self):
        (stmt,) = transform(make_cell("CREATE VIEW v AS SELECT 1 AS one", idempotency="upsert"))
        assert "IF NOT EXISTS" in stmt.upper()
        run_twice([stmt])

    def test_replace_drops_first(self):
        drop, create = transform(make_cell("CREATE TABLE t (id INTEGER)", idempotency="replace"))
        assert drop == "DROP TABLE IF EXISTS t"
        assert create == "CREATE TABLE t (id INTEGER)"
        run_twice([drop, create])

    def test_drop_guarded(self):
        (stmt,) = transform(make_cell("DROP TABLE t", idempotency="upsert"))
        assert stmt == "DROP TABLE IF EXISTS t"
        run_twice([stmt])


class TestRawInsert:
    setup = "CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)"

    def test_upsert_values(self):
        (stmt,) = transform(
            make_cell("INSERT INTO t (id, name) VALUES (1, 'a')", idempotency="upsert", natural_key="id")
        )
        assert stmt == (
            "INSERT INTO t (id, name) VALUES (1, 'a')\n"
            "ON CONFLICT (id) DO UPDATE SET name = excluded.name"
        )
        conn = run_twice([stmt], self.setup)
        assert conn.execute("SELECT count(*) FROM t").fetchone() == (1,)

    def test_upsert_returning(self):
        (stmt,) = transform(
            make_cell(
                "INSERT INTO t (id, name) VALUES (1, 'a') RETURNING id",
                idempotency="upsert",
                natural_key="id",
            )
        )
        assert stmt == (
            "INSERT INTO t (id, name) VALUES (1, 'a')\n"
            "ON CONFLICT (id) DO UPDATE SET name = excluded.name\n"
            "RETURNING id"
        )
        conn = sqlite3.connect(":memory:")
        conn.execute(self.setup)
        for _ in range(2):
            assert conn.execute(stmt).fetchall() == [(1,)]
        assert conn.execute("SELECT count(*) FROM t").fetchone() == (1,)

    def test_upsert_select_returning_on_sqlite(self):
        (stmt,) = transform(
            make_cell(
                "INSERT INTO t (id, name) SELECT 1, 'a' RETURNING id",
                idempotency="upsert",
                natural_key="id",
            )
        )
        head, _, tail = stmt.partition("\nON CONFLICT")
        assert "WHERE TRUE" in head
        assert tail.endswith("\nRETURNING id")

    def test_block_comment_upsert(self):
        sql = "/* seed; first row */ INSERT INTO t (id, name) VALUES (1, 'a')"
        (stmt,) = transform(make_cell(sql, idempotency="upsert", natural_key="id"))
        assert stmt.startswith(sql + "\nON CONFLICT (id)")
        conn = run_twice([stmt], self.setup)
        assert conn.execute("SELECT count(*) FROM t").fetchone() == (1,)

    def test_key_from_fragment(self):
        fragment = SQLFragment("INSERT INTO t (id, name) VALUES (1, 'a')", natural_key="id")
        (stmt,) = transform(make_cell(fragment, idempotency="upsert"))
        assert "ON CONFLICT (id)" in stmt

    def test_upsert_select_on_sqlite_gets_where(self):
        (stmt,) = transform(
            make_cell("INSERT INTO t (id, name) SELECT 1, 'a'", idempotency="upsert", natural_key="id")
        )
        assert "WHERE" in stmt
        conn = run_twice([stmt], self.setup)
        assert conn.execute("SELECT count(*) FROM t").fetchone() == (1,)

    def test_upsert_select_on_duckdb_untouched(self):
        sql = "INSERT INTO t (id, name) SELECT 1, 'a'"
        (stmt,) = transform(make_cell(sql, idempotency="upsert", natural_key="id"), "duckdb")
        assert stmt.startswith(sql + "\nON CONFLICT")

    def test_replace_values(self):
        delete, insert = transform(
            make_cell(
                "INSERT INTO t (id, name) VALUES (1, 'a'), (2, 'b')",
                idempotency="replace",
                natural_key="id",
            )
        )
        assert delete == "DELETE FROM t WHERE (id = 1)\n   OR (id = 2)"
        conn = run_twice([delete, insert], self.setup)
        assert conn.execute("SELECT count(*) FROM t").fetchone() == (2,)

    def test_replace_select_rejected(self):
        with pytest.raises(TransformError, match="VALUES"):
            transform(make_cell("INSERT INTO t (id) SELECT 1", idempotency="replace", natural_key="id"))

    def test_existing_conflict_clause_untouched(self):
        sql = "INSERT INTO t (id, name) VALUES (1, 'a') ON CONFLICT (id) DO NOTHING"
        assert transform(make_cell(sql, idempotency="upsert")) == [sql]

    def test_missing_key(self):
        with pytest.raises(TransformError, match="natural key"):
            transform(make_cell("INSERT INTO t (id, name) VALUES (1, 'a')", idempotency="upsert"))

    def test_missing_column_list(self):
        with pytest.raises(TransformError, match="column list"):
            transform(make_cell("INSERT INTO t VALUES (1, 'a')", idempotency="upsert", natural_key="id"))

    def test_key_not_in_column_list(self):
        with pytest.raises(TransformError, match="code"):
            transform(make_cell("INSERT INTO t (id) VALUES (1)", idempotency="upsert", natural_key="code"))


class TestUnsupported:
    def test_alter_rejected(self):
        with pytest.raises(TransformError, match="cell"):
            transform(make_cell("ALTER TABLE t ADD COLUMN x INTEGER", idempotency="upsert"))


class TestSqlLiteral:
    def test_scalars(self):
        assert [sql_literal(v) for v in (None, True, 3, 1.5, "it's")] == ["NULL", "TRUE", "3", "1.5", "'it''s'"]

    def test_expression_verbatim(self):
        assert sql_literal(SQLExpr("CURRENT_TIMESTAMP")) == "CURRENT_TIMESTAMP"

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_float(self, value):
        with pytest.raises(ValueError, match="non-finite"):
            sql_literal(value)
