"""Database-enforced read-only execution of a validated query."""
from __future__ import annotations

import time
from typing import Any, List, Sequence, Union

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from multiquery.engine_factory import describe_error
from multiquery.errors import ErrorCode, ExecutionError
from multiquery.logger import endpoint_logger, get_logger
from multiquery.schemas import QueryOutcome

logger = get_logger(__name__)

# Keyed by SQLAlchemy dialect name.
READ_ONLY_DIRECTIVES = {
    "postgresql": "SET TRANSACTION READ ONLY",
    "mysql": "SET TRANSACTION READ ONLY",
    "sqlite": "PRAGMA query_only = ON",
}


def read_only_directive(connection: Connection) -> str:
    """
    Returns the statement that makes the current transaction read-only.

    Raises:
        ExecutionError: If the dialect has no known directive.
    """
    dialect = connection.dialect.name
    try:
        return READ_ONLY_DIRECTIVES[dialect]
    except KeyError:
        raise ExecutionError(f"No read-only transaction support for dialect '{dialect}'") from None


def run_read_only(
    connection: Connection,
    query: Union[str, Sequence[str]],
    endpoint_id: str,
) -> QueryOutcome:
    """
    Execute a query inside a read-only transaction that is never committed.

    The read-only directive is the first statement of the transaction. When
    several statements are given they run in order inside that same
    transaction and the result set of the last one is captured. The
    transaction is rolled back on every path.

    Args:
        connection: An open connection with no transaction in progress.
        query: One SQL statement, or the ordered statements of a script.
        endpoint_id: Id reported on the outcome.

    Returns:
        QueryOutcome: Successful outcome with columns and rows, or a failed
        outcome carrying the error message. Never raises for database errors.
    """
    statements = [query] if isinstance(query, str) else list(query)
    log = endpoint_logger(logger, endpoint_id)
    start = time.perf_counter()

    def _elapsed() -> float:
        return (time.perf_counter() - start) * 1000

    if not statements:
        return QueryOutcome.failure(endpoint_id, "No statements to execute", _elapsed())

    try:
        directive = read_only_directive(connection)
        columns: List[str] = []
        rows: List[List[Any]] = []

        transaction = connection.begin()
        try:
            connection.exec_driver_sql(directive)
            for statement in statements:
                result = connection.exec_driver_sql(statement)
                if result.returns_rows:
                    columns = list(result.keys())
                    rows = [list(row) for row in result]
                else:
                    result.close()
                    columns, rows = [], []
        finally:
            if transaction.is_active:
                transaction.rollback()

        outcome = QueryOutcome(
            endpoint_id=endpoint_id,
            success=True,
            columns=columns,
            rows=rows,
            elapsed_ms=_elapsed(),
        )
        log.info(f"{outcome.row_count} row(s) in {outcome.elapsed_ms:.0f}ms")
        return outcome

    except ExecutionError as exc:
        log.error(exc.message)
        return QueryOutcome.failure(endpoint_id, exc.message, _elapsed(), exc.error_code)
    except SQLAlchemyError as exc:
        message = describe_error(exc)
        log.warning(f"query failed: {message}")
        return QueryOutcome.failure(endpoint_id, message, _elapsed(), ErrorCode.DB_EXECUTION_ERROR)
    except Exception as exc:
        log.exception("unexpected error during guarded execution")
        return QueryOutcome.failure(endpoint_id, f"Unexpected error: {exc}", _elapsed(), ErrorCode.UNKNOWN_ERROR)
