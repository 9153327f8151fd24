import io
import json
import logging

from multiquery.logger import JsonFormatter, configure_logging, endpoint_logger


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("multiquery.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.endpoint_id = "alpha"
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["endpoint_id"] == "alpha"
    assert "lineno" not in payload


def test_endpoint_logger_prefixes_and_tags(caplog):
    log = endpoint_logger(logging.getLogger("multiquery.test"), "beta")
    with caplog.at_level(logging.INFO, logger="multiquery.test"):
        log.info("3 row(s)")
    record = caplog.records[-1]
    assert record.getMessage() == "[beta] 3 row(s)"
    assert record.endpoint_id == "beta"


def test_configure_logging_json_stream():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    stream = io.StringIO()
    try:
        configure_logging(level="INFO", json_format=True, stream=stream)
        logging.getLogger("multiquery.test").info("ready")
        assert logging.getLogger("sqlalchemy").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
    assert json.loads(stream.getvalue().strip())["message"] == "ready"
