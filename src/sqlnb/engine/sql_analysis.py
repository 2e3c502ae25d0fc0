"""SQL text helpers: statement splitting and sqlglot-based checks."""

from __future__ import annotations

import sqlglot
from sqlglot import exp
from sqlglot.tokens import Token, TokenType

from .dialects import Dialect, get_dialect


def tokenize(sql: str, dialect: Dialect | str = "sqlite") -> list[Token]:
    """Tokenize SQL for a dialect. Raises sqlglot.errors.TokenError."""
    d = get_dialect(dialect)
    return sqlglot.tokenize(sql, read=d.sqlglot_dialect)


def split_statements(sql: str, dialect: Dialect | str = "sqlite") -> list[str]:
    """Split SQL on top-level semicolons.

    Uses the dialect's tokenizer, so semicolons inside quoted strings and
    identifiers, line and block comments, and dollar-quoted bodies are not
    treated as separators. Pieces holding only comments are dropped. The
    original text of each statement is kept as written.
    """
    statements: list[str] = []
    start = 0
    has_tokens = False
    for token in tokenize(sql, dialect):
        if token.token_type is TokenType.SEMICOLON:
            if has_tokens:
                statements.append(sql[start:token.start].strip())
            start = token.end + 1
            has_tokens = False
        else:
            has_tokens = True
    if has_tokens:
        statements.append(sql[start:].strip())
    return statements


def parse_statement(statement: str, dialect: Dialect | str = "sqlite") -> exp.Expression:
    """Parse one statement with sqlglot. Raises sqlglot.errors.SqlglotError."""
    d = get_dialect(dialect)
    parsed = sqlglot.parse_one(statement, read=d.sqlglot_dialect)
    if parsed is None:
        raise sqlglot.errors.ParseError(f"Empty statement: {statement!r}")
    return parsed


def check_statements(statements: list[str] | tuple[str, ...], dialect: Dialect | str = "sqlite") -> list[dict]:
    """Parse every statement; return one ``{index, statement, error}`` per failure."""
    problems: list[dict] = []
    for index, statement in enumerate(statements):
        try:
            parse_statement(statement, dialect)
        except sqlglot.errors.SqlglotError as e:
            problems.append({"index": index, "statement": statement, "error": str(e)})
    return problems
