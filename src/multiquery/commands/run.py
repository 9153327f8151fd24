from __future__ import annotations

import sys
import traceback
from typing import Optional, TextIO

from pydantic import BaseModel

from multiquery.engine_factory import ConnectionFactory
from multiquery.environment_config import load_environments
from multiquery.errors import MultiQueryError, ValidationError
from multiquery.executor import ExecutionCoordinator, select_reachable
from multiquery.formatting import ResultRenderer
from multiquery.logger import get_logger
from multiquery.query_file import read_query_file, resolve_environments_file, resolve_query_file
from multiquery.reporting import ConsolePresenter
from multiquery.schemas import QueryOutcome
from multiquery.settings import settings
from multiquery.validation import validate

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


class RunConfig(BaseModel):
    """Options for one multiquery run."""
    query_file: str
    environments_file: str = settings.environments_file
    environments_fallbacks: list[str] = []
    csv_output: bool = False
    verbose: bool = False
    max_workers: int = settings.max_workers
    probe_concurrency: int = settings.probe_concurrency


def run_multi_query(
    config: RunConfig,
    presenter: Optional[ConsolePresenter] = None,
    sink: Optional[TextIO] = None,
    connection_factory: Optional[ConnectionFactory] = None,
) -> int:
    """
    Runs the whole pipeline: resolve, load, probe, validate, execute, render.

    Rendered results go to ``sink`` (stdout by default); diagnostics go to
    the presenter.

    Returns:
        int: Process exit code.
    """
    presenter = presenter or ConsolePresenter(verbose=config.verbose)
    sink = sink or sys.stdout
    factory = connection_factory or ConnectionFactory()

    try:
        return _run(config, presenter, sink, factory)
    except ValidationError as exc:
        presenter.print_error(f"Query validation failed. Only SELECT statements are allowed. {exc.message}")
        return EXIT_FAILURE
    except MultiQueryError as exc:
        presenter.print_error(exc.message)
        return EXIT_FAILURE
    except Exception as exc:
        logger.exception("Unexpected error")
        presenter.print_error(str(exc) or type(exc).__name__)
        if config.verbose:
            presenter.console.print(traceback.format_exc(), markup=False)
        return EXIT_FAILURE
    finally:
        factory.dispose()


def _run(config: RunConfig, presenter: ConsolePresenter, sink: TextIO, factory: ConnectionFactory) -> int:
    # Phase 1: paths
    query_path = resolve_query_file(config.query_file)
    env_path = resolve_environments_file(config.environments_file, fallback_names=config.environments_fallbacks)

    presenter.print_arguments(config.query_file, config.environments_file, config.csv_output)
    presenter.print_path_resolution(query_path, "Query File")
    presenter.print_path_resolution(env_path, "Environments File")
    presenter.print_success("All required files exist and paths resolved")

    # Phase 2: environments
    env_config = load_environments(env_path.resolved)
    presenter.print_environments(env_config)

    # Phase 3: read and validate the query before any endpoint is touched
    query = read_query_file(query_path.resolved)
    presenter.print_query(query, query_path.resolved)

    validation = validate(query)
    presenter.print_validation(validation)
    if not validation.is_valid:
        raise ValidationError(validation.error_message)

    # Phase 4: connectivity
    probe_results = factory.test_all_connections(env_config.environments, max_concurrency=config.probe_concurrency)
    presenter.print_connection_results(probe_results)
    endpoints = select_reachable(env_config.environments, probe_results)

    # Phase 5: streaming execution
    presenter.print_execution_header(query_path.resolved, len(endpoints))
    renderer = ResultRenderer(csv_output=config.csv_output)
    coordinator = ExecutionCoordinator(factory, max_workers=config.max_workers)

    def _on_outcome(outcome: QueryOutcome) -> None:
        if config.csv_output and not outcome.success:
            presenter.print_warning(f"[{outcome.endpoint_id}] {outcome.error_message}")
        renderer.write(outcome, sink)

    coordinator.run(validation, endpoints, _on_outcome)
    presenter.print_success("Query execution complete!")
    return EXIT_OK
