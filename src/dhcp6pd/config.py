"""
Configuration management for dhcp6pd.

Loads client settings from environment variables or a .env file.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from dhcp6pd.dhcp6.client import ClientConfig
from dhcp6pd.dhcp6.exchange import DEFAULT_READ_TIMEOUT, DEFAULT_WRITE_TIMEOUT
from dhcp6pd.dhcp6.messages import DHCP6_SERVER_PORT

ENV_PREFIX = "DHCP6PD_"


def env_locations() -> list[Path]:
    """Common locations for .env, in lookup order."""
    return [
        Path.home() / ".dhcp6pd" / ".env",
        Path.home() / ".config" / "dhcp6pd" / ".env",
        Path.cwd() / ".env",
    ]


def load_env_file() -> Path | None:
    """Load the first .env found. Existing environment variables win."""
    for env_path in env_locations():
        if env_path.exists():
            load_dotenv(env_path)
            return env_path
    return None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


@dataclass
class Settings:
    """Client settings with defaults."""

    interface: str | None = None
    duid: str | None = None  # hex, e.g. 00:03:00:01:4c:5e:0c:41:bf:39
    hardware_address: str | None = None
    server: str | None = None  # unicast server address; multicast if unset

    read_timeout: float = DEFAULT_READ_TIMEOUT
    write_timeout: float = DEFAULT_WRITE_TIMEOUT

    lease_file: str | None = None
    log_level: str = "INFO"
    log_file: str | None = None  # rotating log for long-running `run`

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            interface=os.getenv(f"{ENV_PREFIX}INTERFACE") or None,
            duid=os.getenv(f"{ENV_PREFIX}DUID") or None,
            hardware_address=os.getenv(f"{ENV_PREFIX}HARDWARE_ADDRESS") or None,
            server=os.getenv(f"{ENV_PREFIX}SERVER") or None,
            read_timeout=_env_float(f"{ENV_PREFIX}READ_TIMEOUT", DEFAULT_READ_TIMEOUT),
            write_timeout=_env_float(f"{ENV_PREFIX}WRITE_TIMEOUT", DEFAULT_WRITE_TIMEOUT),
            lease_file=os.getenv(f"{ENV_PREFIX}LEASE_FILE") or None,
            log_level=os.getenv(f"{ENV_PREFIX}LOG_LEVEL") or "INFO",
            log_file=os.getenv(f"{ENV_PREFIX}LOG_FILE") or None,
        )

    def client_config(self, **overrides: Any) -> ClientConfig:
        """
        Build a ClientConfig from these settings.

        Keyword overrides that are None fall back to the settings value.
        """
        values: dict[str, Any] = {
            "interface": self.interface,
            "duid": self.duid,
            "hardware_address": self.hardware_address,
            "read_timeout": self.read_timeout,
            "write_timeout": self.write_timeout,
        }
        server = overrides.pop("server", None) or self.server
        if server:
            values["remote_address"] = (server, DHCP6_SERVER_PORT)
        for key, value in overrides.items():
            if value is not None:
                values[key] = value
        return ClientConfig(**values)


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, loading .env on first use."""
    global _settings
    if _settings is None:
        load_env_file()
        _settings = Settings.from_env()
    return _settings


def set_settings(settings: Settings | None) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings
