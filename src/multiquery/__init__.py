"""Run one read-only SQL script against a fleet of databases."""
from multiquery.engine_factory import ConnectionFactory
from multiquery.environment_config import EndpointDescriptor, EnvironmentConfig, load_environments
from multiquery.errors import (
    ConfigurationError,
    ConnectivityError,
    ExecutionError,
    MultiQueryError,
    QueryFileError,
    RenderError,
    ValidationError,
)
from multiquery.executor import ExecutionCoordinator, select_reachable
from multiquery.formatting import RenderSession, ResultRenderer, render_batch, render_one
from multiquery.schemas import ConnectionTestResult, MultiQueryResult, QueryOutcome
from multiquery.transaction_guard import run_read_only
from multiquery.validation import StatementType, ValidationOutcome, validate

__all__ = [
    "ConnectionFactory",
    "EndpointDescriptor",
    "EnvironmentConfig",
    "load_environments",
    "ConfigurationError",
    "ConnectivityError",
    "ExecutionError",
    "MultiQueryError",
    "QueryFileError",
    "RenderError",
    "ValidationError",
    "ExecutionCoordinator",
    "select_reachable",
    "RenderSession",
    "ResultRenderer",
    "render_batch",
    "render_one",
    "ConnectionTestResult",
    "MultiQueryResult",
    "QueryOutcome",
    "run_read_only",
    "StatementType",
    "ValidationOutcome",
    "validate",
]
