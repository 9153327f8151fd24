from .classifier import (
    StatementType,
    StatementOutcome,
    ValidationOutcome,
    classify_statement,
    split_statements,
    strip_comments,
    validate,
)

__all__ = [
    "StatementType",
    "StatementOutcome",
    "ValidationOutcome",
    "classify_statement",
    "split_statements",
    "strip_comments",
    "validate",
]
