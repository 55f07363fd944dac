"""Persistence for connection configs and their passwords.

Configs and passwords are kept apart: the config store only ever sees
configs whose password is blank, and the secret store holds one password per
connection id (the OS keyring by default).
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

import keyring
import yaml
from keyring.errors import KeyringError, PasswordDeleteError
from pydantic import ValidationError

from ._errors import CredentialStoreError
from ._models import ConnectionConfig

logger = logging.getLogger(__name__)

# Service name used for keyring storage
KEYRING_SERVICE_NAME = "mysqlly"

DEFAULT_NAMESPACE = "mysql"
DEFAULT_STATE_FILE = Path.home() / ".mysqlly" / "connections.yaml"


# === Config stores ===


class ConfigStore(ABC):
    """Plain key-value store for non-secret connection configs."""

    @abstractmethod
    def load(self) -> list[ConnectionConfig]:
        """Return the persisted configs, in insertion order."""
        ...

    @abstractmethod
    def save(self, configs: list[ConnectionConfig]) -> None:
        """Replace the persisted list. Passwords are always written blank."""
        ...


class MemoryConfigStore(ConfigStore):
    """Config store kept in memory (tests and ephemeral runs)."""

    def __init__(self, configs: list[ConnectionConfig] | None = None) -> None:
        self._configs = [c.without_password() for c in configs or []]

    def load(self) -> list[ConnectionConfig]:
        return list(self._configs)

    def save(self, configs: list[ConnectionConfig]) -> None:
        self._configs = [c.without_password() for c in configs]


class YamlConfigStore(ConfigStore):
    """Config store backed by a YAML file.

    Expected format:
        connections:
          - id: "1718000000000-k3j9x"
            name: Local MySQL
            host: localhost
            port: 3306
            user: root
            password: ""
    """

    _CONNECTIONS_KEY = "connections"

    def __init__(self, path: str | Path = DEFAULT_STATE_FILE) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> list[ConnectionConfig]:
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except FileNotFoundError:
            return []

        if data is None:
            return []
        if not isinstance(data, dict) or not isinstance(data.get(self._CONNECTIONS_KEY, []), list):
            raise ValueError(
                f"State file {self.path} must have a top-level '{self._CONNECTIONS_KEY}' list"
            )

        configs: list[ConnectionConfig] = []
        for raw in data.get(self._CONNECTIONS_KEY) or []:
            if not isinstance(raw, dict):
                logger.warning("Skipping malformed connection entry in %s", self.path)
                continue
            try:
                configs.append(ConnectionConfig.model_validate(raw).without_password())
            except ValidationError as exc:
                logger.warning("Skipping invalid connection entry in %s: %s", self.path, exc)
        return configs

    def save(self, configs: list[ConnectionConfig]) -> None:
        payload = {
            self._CONNECTIONS_KEY: [c.without_password().model_dump() for c in configs],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w") as f:
            yaml.safe_dump(payload, f, sort_keys=False)
        os.replace(tmp_path, self.path)


# === Secret stores ===


def secret_key(namespace: str, connection_id: str) -> str:
    """Key under which a connection's password is stored."""
    return f"{namespace}-password-{connection_id}"


class SecretStore(ABC):
    """Secret-bearing store for connection passwords, keyed by connection id."""

    def __init__(self, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.namespace = namespace

    @abstractmethod
    def get_password(self, connection_id: str) -> str | None:
        """Return the stored password, or None if there is none."""
        ...

    @abstractmethod
    def set_password(self, connection_id: str, password: str) -> None:
        """Store a password.

        Raises:
            CredentialStoreError: If the backend refused the write.
        """
        ...

    @abstractmethod
    def delete_password(self, connection_id: str) -> None:
        """Delete a password. Deleting a missing password is not an error."""
        ...


class MemorySecretStore(SecretStore):
    """Secret store kept in memory.

    WARNING: passwords are not persisted. Use only for tests and ephemeral runs.
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE) -> None:
        super().__init__(namespace)
        self._passwords: dict[str, str] = {}

    def get_password(self, connection_id: str) -> str | None:
        return self._passwords.get(secret_key(self.namespace, connection_id))

    def set_password(self, connection_id: str, password: str) -> None:
        self._passwords[secret_key(self.namespace, connection_id)] = password

    def delete_password(self, connection_id: str) -> None:
        self._passwords.pop(secret_key(self.namespace, connection_id), None)

    def keys(self) -> list[str]:
        """Stored keys (testing helper)."""
        return list(self._passwords)


class KeyringSecretStore(SecretStore):
    """Secret store using the OS keyring (Keychain, Credential Locker, Secret Service)."""

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        service_name: str = KEYRING_SERVICE_NAME,
    ) -> None:
        super().__init__(namespace)
        self.service_name = service_name

    def get_password(self, connection_id: str) -> str | None:
        key = secret_key(self.namespace, connection_id)
        try:
            value = keyring.get_password(self.service_name, key)
        except KeyringError as exc:
            logger.warning("Could not read password %s from keyring: %s", key, exc)
            return None
        return value if isinstance(value, str) else None

    def set_password(self, connection_id: str, password: str) -> None:
        key = secret_key(self.namespace, connection_id)
        try:
            keyring.set_password(self.service_name, key, password)
        except KeyringError as exc:
            raise CredentialStoreError(f"Could not store password in keyring: {exc}") from exc

    def delete_password(self, connection_id: str) -> None:
        key = secret_key(self.namespace, connection_id)
        try:
            keyring.delete_password(self.service_name, key)
        except PasswordDeleteError:
            pass
        except KeyringError as exc:
            logger.warning("Could not delete password %s from keyring: %s", key, exc)
