"""Tests for statement splitting and sqlglot-based checks."""

from __future__ import annotations

import pytest
import sqlglot
from sqlglot import exp

from sqlnb.engine.sql_analysis import check_statements, parse_statement, split_statements


class TestSplitStatements:
    def test_basic(self):
        assert split_statements("SELECT 1; SELECT 2;") == ["SELECT 1", "SELECT 2"]

    def test_no_trailing_semicolon(self):
        assert split_statements("SELECT 1;\nSELECT 2") == ["SELECT 1", "SELECT 2"]

    def test_semicolon_in_single_quotes(self):
        assert split_statements("SELECT 'a;b'; SELECT 2") == ["SELECT 'a;b'", "SELECT 2"]

    def test_escaped_quote(self):
        assert split_statements("SELECT 'it''s; fine'") == ["SELECT 'it''s; fine'"]

    def test_semicolon_in_double_quotes(self):
        assert split_statements('SELECT 1 AS "a;b"') == ['SELECT 1 AS "a;b"']

    def test_semicolon_in_comment(self):
        sql = "SELECT 1 -- first; not a split\n;SELECT 2"
        assert split_statements(sql) == ["SELECT 1 -- first; not a split", "SELECT 2"]

    def test_comment_only_pieces_dropped(self):
        assert split_statements("-- header\n;\nSELECT 1;\n-- trailer") == ["SELECT 1"]

    def test_empty(self):
        assert split_statements("  \n ") == []

    def test_semicolon_in_block_comment(self):
        sql = "/* create; then seed */ CREATE TABLE t (id INTEGER); INSERT INTO t VALUES (1)"
        assert split_statements(sql) == [
            "/* create; then seed */ CREATE TABLE t (id INTEGER)",
            "INSERT INTO t VALUES (1)",
        ]

    def test_dollar_quoted_function_body(self):
        sql = (
            "CREATE FUNCTION one() RETURNS integer AS $$ SELECT 1; $$ LANGUAGE sql;\n"
            "SELECT one();"
        )
        assert split_statements(sql, "postgres") == [
            "CREATE FUNCTION one() RETURNS integer AS $$ SELECT 1; $$ LANGUAGE sql",
            "SELECT one()",
        ]

    def test_unterminated_string_raises(self):
        with pytest.raises(sqlglot.errors.SqlglotError):
            split_statements("SELECT 'abc; SELECT 2")


class TestParse:
    def test_dialect_aware(self):
        assert isinstance(parse_statement("CREATE TABLE t (id INTEGER)", "duckdb"), exp.Create)

    def test_parse_error(self):
        with pytest.raises(sqlglot.errors.ParseError):
            parse_statement("SELECT (1", "sqlite")

    def test_check_statements(self):
        problems = check_statements(["SELECT 1", "SELECT (1"], "sqlite")
        assert [p["index"] for p in problems] == [1]
        assert problems[0]["statement"] == "SELECT (1"

    def test_check_clean(self):
        assert check_statements(["SELECT 1"], "postgres") == []

    def test_check_unterminated_string(self):
        problems = check_statements(["SELECT 1", "SELECT 'abc"], "sqlite")
        assert [p["index"] for p in problems] == [1]
        assert problems[0]["error"]
