"""Router settings loaded from the environment and an optional YAML file.

Environment variables win over values from the file. Per-command timeout
overrides can only be given in the file::

    transport: auto
    vault_path: ~/notes
    timeouts:
      search: 30
      orphans: 60
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from vaultgate.core.config import (
    CONFIG_FILE_ENV,
    DEFAULT_EXECUTABLE,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_PROCESS_TIMEOUT,
    DEFAULT_REST_URL,
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_TAG_SAMPLE_SIZE,
    ENV_FIELDS,
    get_env,
)
from vaultgate.core.errors import ConfigError
from vaultgate.core.types import Command, TransportMode

logger = logging.getLogger(__name__)


class RouterConfig(BaseModel):
    """Typed router configuration.

    Frozen to prevent accidental mutation.
    Extra fields are forbidden to catch typos in config.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    transport: TransportMode = TransportMode.AUTO
    vault_name: str | None = None
    vault_path: Path | None = None
    executable: str = DEFAULT_EXECUTABLE
    rest_url: str = DEFAULT_REST_URL
    rest_key: str | None = None
    process_timeout: float = Field(default=DEFAULT_PROCESS_TIMEOUT, gt=0)
    http_timeout: float = Field(default=DEFAULT_HTTP_TIMEOUT, gt=0)
    probe_timeout: float = Field(default=DEFAULT_PROBE_TIMEOUT, gt=0)
    sample_size: int = Field(default=DEFAULT_SAMPLE_SIZE, gt=0)
    tag_sample_size: int = Field(default=DEFAULT_TAG_SAMPLE_SIZE, gt=0)
    case_sensitive_links: bool = False
    timeouts: dict[str, float] = Field(default_factory=dict)

    @field_validator("transport", mode="before")
    @classmethod
    def _parse_transport(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return TransportMode.parse(value)
            except ValueError as e:
                raise ValueError(f"unknown transport {value!r}") from e
        return value

    @field_validator("vault_path", mode="after")
    @classmethod
    def _expand_vault_path(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None

    @field_validator("rest_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("timeouts", mode="after")
    @classmethod
    def _check_timeouts(cls, value: dict[str, float]) -> dict[str, float]:
        normalized = {}
        for name, seconds in value.items():
            command = Command.parse(name)
            if seconds <= 0:
                raise ValueError(f"timeout for {name} must be positive")
            normalized[command.value] = seconds
        return normalized


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug(f"Loading config from {path}")
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {path}: {e}")
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(
            f"{path.name} must be a mapping, got {type(raw).__name__}"
        )
    return raw


def load_config(
    config_file: Path | str | None = None, **overrides: Any
) -> RouterConfig:
    """
    Load router configuration.

    Search order, later wins:
    1. YAML file (config_file, else VAULTGATE_CONFIG_FILE)
    2. VAULTGATE_* environment variables
    3. keyword overrides

    Raises:
        ConfigError: If the file is missing, malformed, or a value is invalid.
    """
    data: dict[str, Any] = {}

    path_str = str(config_file) if config_file else get_env(CONFIG_FILE_ENV)
    if path_str:
        data.update(_read_config_file(Path(path_str).expanduser()))

    for env_key, field_name in ENV_FIELDS.items():
        value = get_env(env_key)
        if value:
            data[field_name] = value

    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        config = RouterConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    logger.debug(
        f"Router config: transport={config.transport.value}, "
        f"vault_path={config.vault_path}, rest_url={config.rest_url}"
    )
    return config
