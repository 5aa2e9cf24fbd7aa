"""Configuration models using Pydantic for validation."""
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from promconvert.exceptions import ConfigurationError

EXPORTER_AUTH_ENV_PREFIX = "EXPORTER_"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ExporterAuth(BaseModel):
    """Credentials sent to a scraped exporter."""
    user: str = ""
    password: str = ""
    header: str = ""

    @property
    def has_basic_auth(self) -> bool:
        return bool(self.user and self.password)


class Settings(BaseModel):
    """All options of one conversion run."""
    exporter_url: str = ""
    exporter_user: str = ""
    exporter_password: str = ""
    exporter_authorization: str = ""
    prom_url: str = "http://localhost:9090"
    prom_query: str = "up"
    output_format: str = "influx"
    include_regex: str = ""
    exclude_regex: str = ""
    statsd_host: str = "localhost"
    statsd_port: int = Field(default=8125, ge=1, le=65535)
    metric_prefix: str = ""
    global_tags: str = ""
    insecure_skip_verify: bool = False
    log_level: str = "INFO"
    request_timeout_s: float = Field(default=10.0, gt=0)

    model_config = {"extra": "forbid"}

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Accept standard logging level names in any case."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level {v!r}")
        return level


def _normalize_keys(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {str(key).replace("-", "_"): value for key, value in raw.items()}


def build_settings(raw: Dict[str, Any]) -> Settings:
    try:
        return Settings(**_normalize_keys(raw))
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def load_config(config_path: Optional[str], overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """
    Load settings from an optional YAML file.

    Keys may use dashes or underscores. ``overrides`` (typically explicit
    command line flags) win over the file, and the LOG_LEVEL environment
    variable wins over the file's log level.
    """
    import yaml

    raw_config: Dict[str, Any] = {}
    if config_path:
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_path, "r") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse {config_path}: {e}") from e

        if not isinstance(raw_config, dict):
            raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
        raw_config = _normalize_keys(raw_config)

    if env_log_level := os.getenv("LOG_LEVEL"):
        raw_config["log_level"] = env_log_level

    if overrides:
        raw_config.update(_normalize_keys(overrides))

    return build_settings(raw_config)


def load_exporter_auth(user: str = "", password: str = "", header: str = "") -> ExporterAuth:
    """
    Resolve exporter credentials from the environment and explicit values.

    EXPORTER_USER, EXPORTER_PASSWORD and EXPORTER_HEADER provide the base.
    An explicit user and password, both non-empty, replace the environment
    pair; an explicit header replaces the environment header.
    """
    auth = ExporterAuth(
        user=os.getenv(f"{EXPORTER_AUTH_ENV_PREFIX}USER", ""),
        password=os.getenv(f"{EXPORTER_AUTH_ENV_PREFIX}PASSWORD", ""),
        header=os.getenv(f"{EXPORTER_AUTH_ENV_PREFIX}HEADER", ""),
    )

    if user and password:
        auth.user = user
        auth.password = password

    if header:
        auth.header = header

    return auth
