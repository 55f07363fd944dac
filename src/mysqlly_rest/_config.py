"""YAML service configuration loading."""

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ._connections import DEFAULT_PAGE_SIZE, ConnectionRegistry
from ._stores import (
    DEFAULT_NAMESPACE,
    DEFAULT_STATE_FILE,
    KeyringSecretStore,
    MemoryConfigStore,
    MemorySecretStore,
    YamlConfigStore,
)


class Settings(BaseModel):
    """Service settings.

    Expected format:
        state_file: ~/.mysqlly/connections.yaml
        namespace: mysql
        page_size: 25
        cors_origins:
          - http://localhost:3000
    """

    model_config = ConfigDict(extra="forbid")

    state_file: Path = DEFAULT_STATE_FILE
    namespace: str = DEFAULT_NAMESPACE
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    cors_origins: list[str] | None = None
    ephemeral: bool = False


def load_settings_from_yaml(path: str | Path) -> Settings:
    """Load Settings from a YAML config file."""
    with open(path) as f:
        config = yaml.safe_load(f)

    if config is None:
        return Settings()
    if not isinstance(config, dict):
        raise ValueError("Config file must be a mapping of settings")

    try:
        return Settings(**config)
    except ValidationError as exc:
        raise ValueError(f"Invalid config file {path}: {exc}") from exc


def build_registry(settings: Settings) -> ConnectionRegistry:
    """Create a ConnectionRegistry wired to the stores named by settings.

    Ephemeral settings keep configs and passwords in memory only.
    """
    if settings.ephemeral:
        return ConnectionRegistry(
            config_store=MemoryConfigStore(),
            secret_store=MemorySecretStore(settings.namespace),
        )
    return ConnectionRegistry(
        config_store=YamlConfigStore(settings.state_file),
        secret_store=KeyringSecretStore(settings.namespace),
    )
