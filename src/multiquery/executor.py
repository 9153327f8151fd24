from __future__ import annotations

import concurrent.futures
import time
from typing import Callable, Iterable, List, Optional, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError

from multiquery.engine_factory import ConnectionFactory
from multiquery.environment_config import EndpointDescriptor
from multiquery.errors import ConnectivityError, ErrorCode, ValidationError
from multiquery.logger import endpoint_logger, get_logger
from multiquery.schemas import ConnectionTestResult, MultiQueryResult, QueryOutcome
from multiquery.transaction_guard import run_read_only
from multiquery.validation import ValidationOutcome, validate

logger = get_logger(__name__)

OutcomeCallback = Callable[[QueryOutcome], None]
QueryInput = Union[str, ValidationOutcome]


def select_reachable(
    endpoints: Sequence[EndpointDescriptor],
    probe_results: Iterable[ConnectionTestResult],
) -> List[EndpointDescriptor]:
    """Keeps the endpoints whose probe succeeded, preserving input order."""
    reachable = {r.endpoint_id for r in probe_results if r.success}
    return [endpoint for endpoint in endpoints if endpoint.id in reachable]


class ExecutionCoordinator:
    """
    Runs one validated query against a list of endpoints.

    Endpoints are processed in input order and each outcome is delivered as
    soon as its endpoint finishes. With ``max_workers > 1`` endpoints run
    concurrently, but delivery still follows input order and every outcome
    is handed over whole.
    """

    def __init__(self, connection_factory: Optional[ConnectionFactory] = None, max_workers: int = 1):
        self.connection_factory = connection_factory or ConnectionFactory()
        self.max_workers = max(1, max_workers)

    def _statements(self, query: QueryInput) -> List[str]:
        validation = query if isinstance(query, ValidationOutcome) else validate(query)
        if not validation.is_valid:
            raise ValidationError(validation.error_message)
        return validation.select_statements

    def execute_on_endpoint(self, statements: Sequence[str], endpoint: EndpointDescriptor) -> QueryOutcome:
        """Opens a connection, runs the guarded query and closes the connection."""
        start = time.perf_counter()
        try:
            connection = self.connection_factory.open(endpoint)
        except ConnectivityError as exc:
            return QueryOutcome.failure(
                endpoint.id,
                exc.message,
                (time.perf_counter() - start) * 1000,
                ErrorCode.CONNECTION_FAILED,
            )

        try:
            outcome = run_read_only(connection, statements, endpoint.id)
        finally:
            try:
                connection.close()
            except SQLAlchemyError as exc:
                endpoint_logger(logger, endpoint.id).warning(f"error closing connection: {exc}")
        return outcome.model_copy(update={"elapsed_ms": (time.perf_counter() - start) * 1000})

    def run(self, query: QueryInput, endpoints: Sequence[EndpointDescriptor], on_outcome: OutcomeCallback) -> None:
        """
        Streaming form: calls ``on_outcome`` once per endpoint, in input order.

        Raises:
            ValidationError: If the query is not read-only. Nothing is executed.
        """
        statements = self._statements(query)
        logger.info(f"Executing {len(statements)} statement(s) against {len(endpoints)} endpoint(s)")

        if self.max_workers == 1 or len(endpoints) <= 1:
            for endpoint in endpoints:
                on_outcome(self.execute_on_endpoint(statements, endpoint))
            return

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="endpoint") as executor:
            futures = [executor.submit(self.execute_on_endpoint, statements, endpoint) for endpoint in endpoints]
            # Waiting in submission order keeps delivery in input order.
            for future in futures:
                on_outcome(future.result())

    def run_batch(
        self,
        query: QueryInput,
        endpoints: Sequence[EndpointDescriptor],
        query_file: Optional[str] = None,
    ) -> MultiQueryResult:
        """Batch form: same execution as :meth:`run`, collected into one result."""
        result = MultiQueryResult(query_file=query_file)
        self.run(query, endpoints, result.outcomes.append)
        return result
