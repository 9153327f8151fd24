import json
import logging
from typing import Any, Dict, MutableMapping, Optional, TextIO, Tuple

# Third-party loggers that are noisy at INFO.
QUIET_LOGGERS = ("sqlalchemy", "sqlalchemy.engine", "sqlalchemy.pool")

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# LogRecord attributes that are not user-supplied ``extra`` fields.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record.

    Fields passed through ``extra`` (for example ``endpoint_id``) become
    top-level keys.
    """
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value) for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class EndpointAdapter(logging.LoggerAdapter):
    """Prefixes messages with ``[endpoint_id]`` and attaches it as an extra field."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        endpoint_id = self.extra["endpoint_id"]
        kwargs.setdefault("extra", {})["endpoint_id"] = endpoint_id
        return f"[{endpoint_id}] {msg}", kwargs


def configure_logging(level: str = "INFO", json_format: bool = False, stream: Optional[TextIO] = None):
    """
    Configure the root logger.

    Handlers write to stderr unless ``stream`` is given, leaving stdout to
    rendered results.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def endpoint_logger(logger: logging.Logger, endpoint_id: str) -> EndpointAdapter:
    return EndpointAdapter(logger, {"endpoint_id": endpoint_id})
