import threading
import time
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from multiquery.engine_factory import ConnectionFactory, build_url, describe_error, engine_options
from multiquery.environment_config import EndpointDescriptor
from multiquery.errors import ConnectivityError
from multiquery.schemas import ConnectionTestResult


def _pg(endpoint_id="pg1"):
    return EndpointDescriptor(
        id=endpoint_id,
        engine="postgres",
        host="db.example.com",
        port=5433,
        database="sales",
        username="reader",
        password="p@ss",
    )


class TestBuildUrl:

    def test_postgres_url(self):
        url = build_url(_pg())
        assert url.drivername == "postgresql+psycopg2"
        assert url.host == "db.example.com"
        assert url.port == 5433
        assert url.database == "sales"
        assert url.password == "p@ss"
        assert "p@ss" not in url.render_as_string(hide_password=True)

    def test_mysql_url(self):
        endpoint = EndpointDescriptor(
            id="my", engine="mysql", host="h", port=3306, database="d", username="u", password="p",
        )
        assert build_url(endpoint).drivername == "mysql+pymysql"

    def test_sqlite_url_is_read_only(self, tmp_path):
        endpoint = EndpointDescriptor(id="lite", engine="sqlite", database=str(tmp_path / "a.db"))
        url = build_url(endpoint)
        assert url.get_backend_name() == "sqlite"
        assert url.query["mode"] == "ro"
        assert url.database.startswith("file:")


class TestEngineOptions:

    def test_postgres_options(self):
        options = engine_options(_pg(), connect_timeout_sec=30, command_timeout_sec=60, pool_size=5)
        assert options["pool_size"] == 5
        assert options["max_overflow"] == 0
        assert options["pool_pre_ping"] is True
        connect_args = options["connect_args"]
        assert connect_args["connect_timeout"] == 30
        assert connect_args["sslmode"] == "prefer"
        assert connect_args["options"] == "-c statement_timeout=60000"

    def test_sqlite_options_have_no_pool_sizing(self, tmp_path):
        endpoint = EndpointDescriptor(id="lite", engine="sqlite", database=str(tmp_path / "a.db"))
        options = engine_options(endpoint, 30, 60, 5)
        assert "pool_size" not in options
        assert options["connect_args"]["timeout"] == 60


class TestConnectionFactory:

    def test_probe_success(self, sqlite_endpoint, connection_factory):
        result = connection_factory.test_connection(sqlite_endpoint("alpha"))
        assert result.success
        assert result.message == "Connection successful"
        assert result.server_version
        assert result.duration_ms >= 0

    def test_probe_unreachable(self, missing_sqlite_endpoint, connection_factory):
        result = connection_factory.test_connection(missing_sqlite_endpoint)
        assert not result.success
        assert result.endpoint_id == "ghost"
        assert "ghost" in result.message

    def test_open_raises_connectivity_error(self, missing_sqlite_endpoint, connection_factory):
        with pytest.raises(ConnectivityError) as exc_info:
            connection_factory.open(missing_sqlite_endpoint)
        assert exc_info.value.endpoint_id == "ghost"

    def test_engine_is_cached_per_endpoint(self, sqlite_endpoint):
        builder = MagicMock()
        factory = ConnectionFactory(engine_builder=builder)
        endpoint = sqlite_endpoint("alpha")
        assert factory.get_engine(endpoint) is factory.get_engine(endpoint)
        builder.assert_called_once()
        factory.dispose()
        builder.return_value.dispose.assert_called_once()

    def test_probe_all_preserves_order(self, sqlite_endpoint, missing_sqlite_endpoint, connection_factory):
        endpoints = [sqlite_endpoint("a"), missing_sqlite_endpoint, sqlite_endpoint("b")]
        results = connection_factory.test_all_connections(endpoints)
        assert [r.endpoint_id for r in results] == ["a", "ghost", "b"]
        assert [r.success for r in results] == [True, False, True]

    def test_probe_concurrency_is_bounded(self, monkeypatch):
        factory = ConnectionFactory()
        lock = threading.Lock()
        state = {"in_flight": 0, "peak": 0}

        def fake_probe(endpoint):
            with lock:
                state["in_flight"] += 1
                state["peak"] = max(state["peak"], state["in_flight"])
            time.sleep(0.02)
            with lock:
                state["in_flight"] -= 1
            return ConnectionTestResult(endpoint_id=endpoint.id, success=True)

        monkeypatch.setattr(factory, "test_connection", fake_probe)
        endpoints = [_pg(f"pg{i}") for i in range(12)]
        results = factory.test_all_connections(endpoints, max_concurrency=3)

        assert [r.endpoint_id for r in results] == [f"pg{i}" for i in range(12)]
        assert 1 <= state["peak"] <= 3

    def test_probe_all_empty(self, connection_factory):
        assert connection_factory.test_all_connections([]) == []


def test_describe_error_uses_driver_message():
    exc = OperationalError("SELECT 1", {}, Exception("password authentication failed"))
    assert describe_error(exc) == "password authentication failed"
