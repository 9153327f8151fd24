from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application defaults backed by environment variables."""

    environments_file: str = Field(default="environments.yaml", validation_alias="MULTIQUERY_ENVIRONMENTS_FILE")
    user_config_dir: str = Field(
        default="~/.multiquery",
        validation_alias="MULTIQUERY_CONFIG_DIR",
        description="Fallback directory searched for the environments file."
    )
    connect_timeout_sec: int = Field(
        default=30,
        validation_alias="MULTIQUERY_CONNECT_TIMEOUT_SEC",
        description="Driver-level connect timeout."
    )
    command_timeout_sec: int = Field(
        default=60,
        validation_alias="MULTIQUERY_COMMAND_TIMEOUT_SEC",
        description="Driver-level statement timeout."
    )
    pool_size: int = Field(default=5, validation_alias="MULTIQUERY_POOL_SIZE")
    probe_concurrency: int = Field(
        default=5,
        validation_alias="MULTIQUERY_PROBE_CONCURRENCY",
        description="Max simultaneous connectivity probes."
    )
    max_workers: int = Field(
        default=1,
        validation_alias="MULTIQUERY_MAX_WORKERS",
        description="Endpoints executed concurrently. 1 means strictly sequential."
    )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
