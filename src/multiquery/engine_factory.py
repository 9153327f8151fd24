from __future__ import annotations

import concurrent.futures
import pathlib
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from multiquery.environment_config import EndpointDescriptor
from multiquery.errors import ConnectivityError, ErrorCode
from multiquery.logger import endpoint_logger, get_logger
from multiquery.schemas import ConnectionTestResult
from multiquery.settings import settings

logger = get_logger(__name__)

DEFAULT_PROBE_CONCURRENCY = 5
PROBE_SQL = "SELECT 1"

_DRIVERS = {
    "postgres": "postgresql+psycopg2",
    "mysql": "mysql+pymysql",
}


def build_url(endpoint: EndpointDescriptor) -> URL:
    """
    Build the SQLAlchemy URL for an endpoint.

    SQLite files are opened through a ``mode=ro`` URI so the driver itself
    refuses writes and never creates a missing file.
    """
    if endpoint.engine == "sqlite":
        if endpoint.database == ":memory:":
            return URL.create("sqlite", database=":memory:")
        db_path = pathlib.Path(endpoint.database).expanduser().resolve()
        return URL.create(
            "sqlite",
            database=f"file:{db_path.as_posix()}",
            query={"mode": "ro", "uri": "true"},
        )

    return URL.create(
        _DRIVERS[endpoint.engine],
        username=endpoint.username,
        password=endpoint.password.get_secret_value(),
        host=endpoint.host,
        port=endpoint.port,
        database=endpoint.database,
    )


def engine_options(
    endpoint: EndpointDescriptor,
    connect_timeout_sec: int,
    command_timeout_sec: int,
    pool_size: int,
) -> Dict[str, Any]:
    """Per-engine keyword arguments for ``create_engine``."""
    if endpoint.engine == "sqlite":
        return {"connect_args": {"timeout": command_timeout_sec, "check_same_thread": False}}

    options: Dict[str, Any] = {
        "pool_pre_ping": True,
        "pool_size": pool_size,
        "max_overflow": 0,
        "pool_timeout": connect_timeout_sec,
    }
    if endpoint.engine == "postgres":
        # Statement timeout applies to every statement on the session.
        options["connect_args"] = {
            "connect_timeout": connect_timeout_sec,
            "sslmode": "prefer",
            "application_name": "multiquery",
            "options": f"-c statement_timeout={command_timeout_sec * 1000}",
        }
    elif endpoint.engine == "mysql":
        options["connect_args"] = {
            "connect_timeout": connect_timeout_sec,
            "read_timeout": command_timeout_sec,
            "write_timeout": command_timeout_sec,
        }
    return options


def make_engine(
    endpoint: EndpointDescriptor,
    connect_timeout_sec: Optional[int] = None,
    command_timeout_sec: Optional[int] = None,
    pool_size: Optional[int] = None,
) -> Engine:
    """
    Create a SQLAlchemy engine for the endpoint with fixed safety defaults.

    Args:
        endpoint: The endpoint descriptor.
        connect_timeout_sec: Connect timeout, defaults to settings.
        command_timeout_sec: Statement timeout, defaults to settings.
        pool_size: Max pooled connections for server engines, defaults to settings.

    Returns:
        A SQLAlchemy Engine instance.
    """
    options = engine_options(
        endpoint,
        connect_timeout_sec if connect_timeout_sec is not None else settings.connect_timeout_sec,
        command_timeout_sec if command_timeout_sec is not None else settings.command_timeout_sec,
        pool_size if pool_size is not None else settings.pool_size,
    )
    return create_engine(build_url(endpoint), **options)


def _error_code(exc: BaseException) -> Optional[str]:
    """Best-effort driver error code (SQLSTATE for PostgreSQL)."""
    orig = getattr(exc, "orig", None)
    if orig is not None:
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if code:
            return str(code)
        if orig.args and isinstance(orig.args[0], int):
            return str(orig.args[0])
    code = getattr(exc, "code", None)
    return str(code) if code else None


def describe_error(exc: BaseException) -> str:
    """Short message for a driver failure, without SQLAlchemy's boilerplate."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig).strip() or type(exc.orig).__name__
    return str(exc).strip() or type(exc).__name__


class ConnectionFactory:
    """
    Opens connections to endpoints and probes their connectivity.

    Engines are created lazily, one per endpoint id, and kept until
    :meth:`dispose` is called.
    """

    def __init__(
        self,
        connect_timeout_sec: Optional[int] = None,
        command_timeout_sec: Optional[int] = None,
        pool_size: Optional[int] = None,
        engine_builder: Callable[..., Engine] = make_engine,
    ):
        self.connect_timeout_sec = connect_timeout_sec
        self.command_timeout_sec = command_timeout_sec
        self.pool_size = pool_size
        self._engine_builder = engine_builder
        self._engines: Dict[str, Engine] = {}
        self._lock = threading.Lock()

    def get_engine(self, endpoint: EndpointDescriptor) -> Engine:
        """Retrieves (or creates) the engine for an endpoint."""
        with self._lock:
            if endpoint.id not in self._engines:
                self._engines[endpoint.id] = self._engine_builder(
                    endpoint,
                    connect_timeout_sec=self.connect_timeout_sec,
                    command_timeout_sec=self.command_timeout_sec,
                    pool_size=self.pool_size,
                )
            return self._engines[endpoint.id]

    def open(self, endpoint: EndpointDescriptor) -> Connection:
        """
        Open a connection to the endpoint.

        Raises:
            ConnectivityError: If the engine cannot be built or the connection fails.
        """
        try:
            return self.get_engine(endpoint).connect()
        except SQLAlchemyError as exc:
            raise ConnectivityError(
                f"Failed to connect to {endpoint.id}: {describe_error(exc)}",
                endpoint_id=endpoint.id,
            ) from exc
        except (OSError, ImportError) as exc:
            # Missing driver module or socket-level failure outside the DBAPI.
            raise ConnectivityError(
                f"Failed to connect to {endpoint.id}: {exc}",
                endpoint_id=endpoint.id,
            ) from exc

    def test_connection(self, endpoint: EndpointDescriptor) -> ConnectionTestResult:
        """Runs ``SELECT 1`` against the endpoint and reports the server version."""
        log = endpoint_logger(logger, endpoint.id)
        start = time.perf_counter()
        result = ConnectionTestResult(endpoint_id=endpoint.id, success=False)

        try:
            with self.open(endpoint) as conn:
                value = conn.exec_driver_sql(PROBE_SQL).scalar()
                version_info = conn.dialect.server_version_info
            if value is None:
                result.message = "Failed to execute test query"
            else:
                result.success = True
                result.message = "Connection successful"
                if version_info:
                    result.server_version = ".".join(str(part) for part in version_info)
        except ConnectivityError as exc:
            cause = exc.__cause__
            result.message = exc.message
            if cause is not None:
                result.error_code = _error_code(cause)
                if isinstance(cause, TimeoutError):
                    result.message = f"Connection timeout: {cause}"
                    result.error_code = ErrorCode.CONNECTION_TIMEOUT.value
        except SQLAlchemyError as exc:
            result.message = f"Database error: {describe_error(exc)}"
            result.error_code = _error_code(exc)
        except Exception as exc:
            log.exception("unexpected error during probe")
            result.message = f"Unexpected error: {exc}"
        finally:
            result.duration_ms = (time.perf_counter() - start) * 1000

        if result.success:
            log.info(f"probe OK ({result.duration_ms:.0f}ms)")
        else:
            log.warning(f"probe failed: {result.message}")
        return result

    def test_all_connections(
        self,
        endpoints: Iterable[EndpointDescriptor],
        max_concurrency: int = DEFAULT_PROBE_CONCURRENCY,
    ) -> List[ConnectionTestResult]:
        """
        Probes every endpoint with at most ``max_concurrency`` probes in flight.

        Returns:
            One ConnectionTestResult per endpoint, in input order.
        """
        endpoints = list(endpoints)
        if not endpoints:
            return []

        workers = max(1, min(max_concurrency, len(endpoints)))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as executor:
            futures = [executor.submit(self.test_connection, endpoint) for endpoint in endpoints]
            return [future.result() for future in futures]

    def dispose(self) -> None:
        """Closes every pooled connection and forgets the engines."""
        with self._lock:
            for engine in self._engines.values():
                engine.dispose()
            self._engines.clear()

    def __enter__(self) -> "ConnectionFactory":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()
