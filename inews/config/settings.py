"""Client settings for the iNews FTP client.

Provides the ClientConfig dataclass and SettingsManager for persisting
it as JSON. Passwords are never written to the settings file; they
live in the system keyring (see CredentialManager).
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Optional

from inews.config.paths import get_settings_path
from inews.utils.validators import (
    validate_count,
    validate_host,
    validate_port,
    validate_timeout,
)

logger = logging.getLogger("inews.settings")


# SITE commands sent after login: UTF-8 listings and NSML 3 story format
DEFAULT_SITE_COMMANDS = ["CHARSET=UTF-8", "FORMAT=3NSML"]


@dataclass
class ClientConfig:
    """Connection and scheduling configuration for INewsClient."""

    # Servers, tried round-robin on reconnect
    hosts: List[str] = field(default_factory=list)
    host: Optional[str] = None
    port: int = 21
    user: str = ""
    password: str = ""
    passive_mode: bool = True

    # Seconds
    connect_timeout: float = 30.0
    reconnect_delay: float = 5.0
    timeout: float = 60.0

    # None means retry the connection forever
    max_reconnect_attempts: Optional[int] = None
    max_operations: int = 5
    max_operation_attempts: int = 5

    site_commands: List[str] = field(default_factory=lambda: list(DEFAULT_SITE_COMMANDS))

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.hosts and self.host:
            self.hosts = [self.host]
        if not self.hosts:
            raise ValueError("Host is required")

        for host in self.hosts:
            is_valid, error = validate_host(host)
            if not is_valid:
                raise ValueError(error)

        checks = [
            validate_port(self.port),
            validate_timeout(self.connect_timeout, "Connection timeout"),
            validate_timeout(self.reconnect_delay, "Reconnect delay"),
            validate_timeout(self.timeout, "Operation timeout"),
            validate_count(self.max_reconnect_attempts, "Reconnect attempts", allow_unbounded=True),
            validate_count(self.max_operations, "Maximum operations"),
            validate_count(self.max_operation_attempts, "Operation attempts"),
        ]
        for is_valid, error in checks:
            if not is_valid:
                raise ValueError(error)

        if self.timeout == 0:
            raise ValueError("Operation timeout must be greater than 0")

    def to_dict(self) -> dict:
        """Convert settings to a dictionary, leaving out the password."""
        data = asdict(self)
        data.pop("password", None)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ClientConfig":
        """Create settings from dictionary, ignoring unknown keys."""
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)


class SettingsManager:
    """Manages ClientConfig persistence."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize settings manager.

        Args:
            config_path: Optional custom path, defaults to platform standard
        """
        self._config_path = config_path or get_settings_path()
        self._config: Optional[ClientConfig] = None

    @property
    def config_path(self) -> Path:
        """Path to settings file."""
        return self._config_path

    def load(self) -> Optional[ClientConfig]:
        """
        Load settings from disk.

        Returns:
            ClientConfig, or None if no valid settings file exists
        """
        self._config = None
        if self._config_path.exists():
            try:
                with open(self._config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._config = ClientConfig.from_dict(data)
            except (json.JSONDecodeError, IOError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring unreadable settings file {self._config_path}: {e}")

        return self._config

    def save(self, config: ClientConfig) -> None:
        """
        Persist settings to disk.

        Args:
            config: Settings to save
        """
        self._config = config

        # Ensure parent directory exists
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(self._config_path, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2)

    def reset(self) -> None:
        """Forget saved settings and remove the file."""
        self._config = None

        if self._config_path.exists():
            self._config_path.unlink()

    def update(self, **kwargs) -> ClientConfig:
        """
        Update specific settings fields.

        Args:
            **kwargs: Field names and new values

        Returns:
            Updated ClientConfig instance

        Raises:
            ValueError: If nothing is saved yet and no host is given,
                or if the updated values are invalid
        """
        if self._config is None:
            self.load()

        data = self._config.to_dict() if self._config else {}
        for key, value in kwargs.items():
            if key in ClientConfig.__dataclass_fields__:
                data[key] = value

        # A new host list replaces the old single-host alias
        if "hosts" in kwargs and "host" not in kwargs:
            data["host"] = None
        elif "host" in kwargs and "hosts" not in kwargs:
            data["hosts"] = []

        config = ClientConfig.from_dict(data)
        self.save(config)
        return config
