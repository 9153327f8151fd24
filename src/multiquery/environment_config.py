from __future__ import annotations

import os
import pathlib
import re
from typing import Any, Dict, List, Optional

import pydantic
import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

from multiquery.errors import ConfigurationError
from multiquery.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_ENGINES = {"postgres", "mysql", "sqlite"}

_SECRET_REF = re.compile(r"^\$\{env:(?P<key>[^}]+)\}$")


def _normalize_engine_id(backend: str) -> str:
    """Normalizes dialect names to internal engine IDs."""
    backend = backend.lower()
    if backend in {"postgresql", "postgres", "pg"}: return "postgres"
    if backend in {"mysql", "mariadb"}: return "mysql"
    if backend in {"sqlite", "sqlite3"}: return "sqlite"
    return backend


def resolve_secret(value: str) -> str:
    """
    Resolves a ``${env:NAME}`` reference from the process environment.

    Plain strings are returned unchanged.

    Raises:
        ValueError: If the referenced variable is not set.
    """
    match = _SECRET_REF.match(value.strip())
    if not match:
        return value
    key = match.group("key")
    resolved = os.environ.get(key)
    if resolved is None:
        raise ValueError(f"environment variable '{key}' referenced by password is not set")
    return resolved


class EndpointDescriptor(BaseModel):
    """
    One configured target database.

    Attributes:
        id: Unique identifier of the endpoint (the client id).
        engine: Database engine ("postgres", "mysql" or "sqlite").
        host: Server hostname or IP address.
        port: Server port, 1-65535.
        database: Database name, or file path for sqlite.
        username: Login user.
        password: Login password, never rendered.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("id", "clientId", "client_id"))
    engine: str = "postgres"
    host: str = Field(default="", validation_alias=AliasChoices("host", "hostname"))
    port: int = Field(default=5432, ge=1, le=65535)
    database: str
    username: str = Field(default="", validation_alias=AliasChoices("username", "user"))
    password: SecretStr = Field(default=SecretStr(""))

    @field_validator("id", "database")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("engine")
    @classmethod
    def _known_engine(cls, value: str) -> str:
        engine = _normalize_engine_id(value)
        if engine not in SUPPORTED_ENGINES:
            raise ValueError(f"unsupported engine '{value}' (expected one of {sorted(SUPPORTED_ENGINES)})")
        return engine

    @field_validator("password", mode="before")
    @classmethod
    def _resolve_password(cls, value: Any) -> Any:
        if isinstance(value, str):
            return resolve_secret(value)
        return value

    @model_validator(mode="after")
    def _server_fields_required(self) -> "EndpointDescriptor":
        if self.engine == "sqlite":
            return self
        missing = [
            name for name, value in (
                ("host", self.host),
                ("username", self.username),
                ("password", self.password.get_secret_value()),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ValueError(f"{', '.join(missing)} required for engine '{self.engine}'")
        return self

    def display_url(self) -> str:
        """Connection summary with the password masked."""
        if self.engine == "sqlite":
            return f"sqlite:///{self.database}"
        scheme = "postgresql" if self.engine == "postgres" else self.engine
        return f"{scheme}://{self.username}:***@{self.host}:{self.port}/{self.database}"

    def __str__(self) -> str:
        return f"{self.id} ({self.display_url()})"


class EnvironmentConfig(BaseModel):
    """Ordered collection of endpoints loaded from an environments file."""
    environments: List[EndpointDescriptor] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> "EnvironmentConfig":
        seen = set()
        for env in self.environments:
            if env.id in seen:
                raise ValueError(f"Duplicate endpoint id '{env.id}'")
            seen.add(env.id)
        return self

    @property
    def count(self) -> int:
        return len(self.environments)

    def get(self, endpoint_id: str) -> EndpointDescriptor:
        for env in self.environments:
            if env.id == endpoint_id:
                return env
        raise KeyError(f"Endpoint '{endpoint_id}' not found")


def _format_validation_error(prefix: str, exc: pydantic.ValidationError) -> List[str]:
    lines = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "__root__")
        msg = err.get("msg", "invalid value")
        lines.append(f"{prefix}: {loc + ': ' if loc else ''}{msg}")
    return lines


def parse_environments(raw: Any) -> EnvironmentConfig:
    """
    Validates raw (already decoded) configuration data.

    Accepts either a mapping with an ``environments`` list or a bare list.

    Raises:
        ConfigurationError: With one line per problem found.
    """
    if isinstance(raw, dict):
        items = raw.get("environments")
    else:
        items = raw

    if not isinstance(items, list):
        raise ConfigurationError("Environment config must contain a list of environments")
    if not items:
        raise ConfigurationError("No environments found in configuration")

    endpoints: List[EndpointDescriptor] = []
    errors: List[str] = []
    for i, item in enumerate(items, start=1):
        prefix = f"Environment {i}"
        if not isinstance(item, dict):
            errors.append(f"{prefix}: expected a mapping, got {type(item).__name__}")
            continue
        try:
            endpoints.append(EndpointDescriptor.model_validate(item))
        except pydantic.ValidationError as exc:
            errors.extend(_format_validation_error(prefix, exc))

    if errors:
        raise ConfigurationError("Environment configuration validation failed:\n" + "\n".join(errors))

    try:
        return EnvironmentConfig(environments=endpoints)
    except pydantic.ValidationError as exc:
        raise ConfigurationError(
            "Environment configuration validation failed:\n"
            + "\n".join(_format_validation_error("Environments", exc))
        ) from exc


def load_environments(path: pathlib.Path) -> EnvironmentConfig:
    """
    Load endpoint descriptors from a YAML or JSON file.

    JSON is a subset of YAML, so both go through ``yaml.safe_load``.

    Args:
        path: Path to the environments file.

    Returns:
        The validated EnvironmentConfig, endpoints in file order.

    Raises:
        ConfigurationError: If the file is missing, empty, malformed or invalid.
    """
    if not path.exists():
        raise ConfigurationError(f"Environment file not found: {path}")

    text = path.read_text(encoding="utf-8-sig")
    if not text.strip():
        raise ConfigurationError("Environment file is empty")

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid environment file '{path}': {exc}") from exc

    config = parse_environments(raw)
    logger.info(f"Loaded {config.count} environment(s) from {path}")
    return config
