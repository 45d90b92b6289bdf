"""
Config Module - Black Box Interface

Purpose: Process-level settings (Redis location, bind address, log level)
Interface: get_config(), ConfigModule.get(), ConfigModule.redis_url()
Hidden: Environment variable names, parsing, validation

Typed authentication, webhook and secret settings live in
tunnelgate.config.provider; this module only covers what the server
process needs before any module is built.
"""

import logging
import os
from typing import Any, Callable, Dict, NamedTuple, Optional

LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def _parse_port(raw: str) -> int:
    # Kubernetes service links inject REDIS_PORT=tcp://10.0.0.5:6379
    if raw.startswith("tcp://"):
        raw = raw.rsplit(":", 1)[-1]
    return int(raw)


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes")


def _parse_level(raw: str) -> str:
    level = raw.strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}, got {raw!r}")
    return level


class Setting(NamedTuple):
    env: str
    description: str
    default: Optional[str]
    parse: Callable[[str], Any] = str


# Configuration Contract: Required and Optional Keys

REQUIRED_SETTINGS: Dict[str, Setting] = {
    "redis_host": Setting("REDIS_HOST", "Redis server hostname", "localhost"),
    "redis_port": Setting("REDIS_PORT", "Redis server port (plain or tcp://host:port)", "6379", _parse_port),
    "redis_db": Setting("REDIS_DB", "Redis database number", "0", int),
    "host": Setting("API_HOST", "API server bind address", "0.0.0.0"),
    "port": Setting("API_PORT", "API server port", "8080", int),
    "log_level": Setting("LOG_LEVEL", "Logging level (DEBUG, INFO, WARNING, ERROR)", "INFO", _parse_level),
}

OPTIONAL_SETTINGS: Dict[str, Setting] = {
    "redis_password": Setting("REDIS_PASSWORD", "Redis authentication password", None),
    "debug": Setting("DEBUG", "Enable auto-reload when run directly", "false", _parse_bool),
}

REQUIRED_CONFIG_KEYS = {key: s.description for key, s in REQUIRED_SETTINGS.items()}
OPTIONAL_CONFIG_KEYS = {
    key: {"description": s.description, "default": s.parse(s.default) if s.default is not None else None}
    for key, s in OPTIONAL_SETTINGS.items()
}


class ConfigModule:
    """Process settings read once from the environment."""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        """
        Load and validate settings.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ValueError: A setting is missing or cannot be parsed
        """
        env = os.environ if environ is None else environ
        self._config: Dict[str, Any] = {}

        for key, setting in {**REQUIRED_SETTINGS, **OPTIONAL_SETTINGS}.items():
            raw = env.get(setting.env) or setting.default
            if raw is None:
                if key in REQUIRED_SETTINGS:
                    raise ValueError(f"Missing required configuration: {setting.env}")
                self._config[key] = None
                continue
            try:
                self._config[key] = setting.parse(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {setting.env}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._config.get(key, default)

    def get_all(self) -> Dict[str, Any]:
        """All settings, with the Redis password masked."""
        settings = self._config.copy()
        if settings.get("redis_password"):
            settings["redis_password"] = "***"
        return settings

    def redis_url(self) -> str:
        """Redis URL without credentials; the password is passed separately."""
        return f"redis://{self._config['redis_host']}:{self._config['redis_port']}/{self._config['redis_db']}"

    @staticmethod
    def get_config_schema() -> Dict[str, Any]:
        """
        Get the configuration schema (contract) for this module.

        Returns:
            Dictionary with 'required' and 'optional' key specifications
        """
        return {
            "required": REQUIRED_CONFIG_KEYS.copy(),
            "optional": OPTIONAL_CONFIG_KEYS.copy(),
        }


# Singleton instance
_instance = None


def get_config() -> ConfigModule:
    """Get the configuration module singleton."""
    global _instance
    if _instance is None:
        _instance = ConfigModule()
    return _instance


__all__ = ["get_config", "ConfigModule"]
