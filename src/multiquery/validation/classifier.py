"""Lexical read-only gate for SQL scripts.

The classifier is deliberately shallow: it skips over quoted text, strips
comments, splits on ``;`` and looks at the leading keyword of each
statement. Statements keep the text the user wrote, so what is validated
is exactly what is executed. Anything it cannot recognise is rejected, so
the gate fails closed. It is backed at execution time by a
database-enforced read-only transaction.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from multiquery.logger import get_logger

logger = get_logger(__name__)


class StatementType(str, Enum):
    SELECT = "Select"
    DML = "Dml"
    DDL = "Ddl"
    TRANSACTION_CONTROL = "TransactionControl"
    PROCEDURE = "Procedure"
    UNKNOWN = "Unknown"


# Quoted text is matched first so comment markers and semicolons inside
# literals and quoted identifiers are left alone.
_TOKEN_PATTERN = re.compile(
    r"'(?:[^']|'')*'"
    r'|"(?:[^"]|"")*"'
    r"|`(?:[^`]|``)*`"
    r"|--[^\r\n]*"
    r"|/\*.*?\*/"
    r"|;",
    re.DOTALL,
)

# Order matters only for readability; the keyword sets are disjoint.
_STATEMENT_PATTERNS: List[Tuple[StatementType, re.Pattern]] = [
    (StatementType.SELECT, re.compile(r"^\s*SELECT\b", re.IGNORECASE)),
    (StatementType.DML, re.compile(r"^\s*(INSERT|UPDATE|DELETE|MERGE)\b", re.IGNORECASE)),
    (StatementType.DDL, re.compile(r"^\s*(CREATE|ALTER|DROP|TRUNCATE|RENAME)\b", re.IGNORECASE)),
    (StatementType.TRANSACTION_CONTROL, re.compile(r"^\s*(BEGIN|COMMIT|ROLLBACK|START\s+TRANSACTION)\b", re.IGNORECASE)),
    (StatementType.PROCEDURE, re.compile(r"^\s*(CALL|EXEC|EXECUTE)\b", re.IGNORECASE)),
]

_REJECTION_MESSAGES = {
    StatementType.DML: "DML operations (INSERT, UPDATE, DELETE, MERGE) are not allowed",
    StatementType.DDL: "DDL operations (CREATE, ALTER, DROP, TRUNCATE, RENAME) are not allowed",
    StatementType.TRANSACTION_CONTROL: "Transaction control statements are not allowed",
    StatementType.PROCEDURE: "Procedure calls are not allowed",
    StatementType.UNKNOWN: "Unknown or unsupported SQL statement type",
}


class StatementOutcome(BaseModel):
    """Classification of a single statement."""
    model_config = ConfigDict(frozen=True)

    index: int
    raw_text: str
    is_valid: bool
    statement_type: StatementType
    error_message: str = ""


class ValidationOutcome(BaseModel):
    """Result of validating a whole query text."""
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    error_message: str = ""
    statement_count: int = 0
    statements: List[StatementOutcome] = Field(default_factory=list)
    original_query: str = ""
    cleaned_query: str = ""

    @property
    def select_statements(self) -> List[str]:
        """Text of every statement classified as Select, in order, as written."""
        return [s.raw_text for s in self.statements if s.statement_type == StatementType.SELECT]


def _replace_comment(match: re.Match) -> str:
    token = match.group(0)
    return " " if token.startswith(("--", "/*")) else token


def strip_comments(query: str) -> str:
    """Replaces ``--`` line comments and ``/* */`` block comments with a space.

    Quoted strings and identifiers are kept verbatim.
    """
    return _TOKEN_PATTERN.sub(_replace_comment, query)


def split_statements(query: str) -> List[str]:
    """
    Splits SQL on ``;`` outside quoted text and comments.

    Fragments are returned as written, comments included. Fragments that are
    blank once comments are removed are dropped.
    """
    fragments = []
    start = 0
    for match in _TOKEN_PATTERN.finditer(query):
        if match.group(0) == ";":
            fragments.append(query[start:match.start()])
            start = match.end()
    fragments.append(query[start:])
    return [part.strip() for part in fragments if strip_comments(part).strip()]


def classify_statement(statement: str) -> StatementType:
    """Classifies one statement by its leading keyword.

    Comments are stripped first, so a statement and its comment-free form
    always classify the same way.
    """
    cleaned = strip_comments(statement)
    for statement_type, pattern in _STATEMENT_PATTERNS:
        if pattern.match(cleaned):
            return statement_type
    return StatementType.UNKNOWN


def _validate_statement(statement: str, index: int) -> StatementOutcome:
    statement_type = classify_statement(statement)
    if statement_type == StatementType.SELECT:
        return StatementOutcome(index=index, raw_text=statement, is_valid=True, statement_type=statement_type)

    return StatementOutcome(
        index=index,
        raw_text=statement,
        is_valid=False,
        statement_type=statement_type,
        error_message=f"Statement {index}: {_REJECTION_MESSAGES[statement_type]}",
    )


def validate(query: str) -> ValidationOutcome:
    """
    Checks that a query text contains only SELECT statements.

    Every statement is classified, even after the first failure, so the
    outcome carries full diagnostics. The overall error message is the one
    of the first rejected statement.

    Args:
        query: Raw query text, possibly with comments and several statements.

    Returns:
        ValidationOutcome: ``is_valid`` is True only when at least one
        statement exists and all of them are SELECTs.
    """
    query = query or ""
    cleaned = strip_comments(query)

    if not cleaned.strip():
        return ValidationOutcome(
            is_valid=False,
            error_message="Query contains only comments or whitespace",
            original_query=query,
            cleaned_query=cleaned,
        )

    statements = [
        _validate_statement(statement, index)
        for index, statement in enumerate(split_statements(query), start=1)
    ]

    is_valid = True
    error_message = ""
    for outcome in statements:
        if not outcome.is_valid:
            is_valid = False
            if not error_message:
                error_message = outcome.error_message

    if is_valid and not any(s.statement_type == StatementType.SELECT for s in statements):
        is_valid = False
        error_message = "No valid SELECT statements found in query"

    if not is_valid:
        logger.info(f"Query rejected: {error_message}")

    return ValidationOutcome(
        is_valid=is_valid,
        error_message=error_message,
        statement_count=len(statements),
        statements=statements,
        original_query=query,
        cleaned_query=cleaned,
    )
