"""
Logging configuration for the API process.

uvicorn and tunnelgate loggers write to stdout; GET requests to the
health endpoints are dropped from the access log.
"""

import logging
from typing import Any, Dict

HEALTH_PATHS = ("/health", "/readyz")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class HealthCheckFilter(logging.Filter):
    """Drop uvicorn access lines for liveness and readiness checks."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name != "uvicorn.access":
            return True
        message = record.getMessage()
        return not ("GET" in message and any(path in message for path in HEALTH_PATHS))


def _stdout_handler(formatter: str, **extra: Any) -> Dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "formatter": formatter,
        "stream": "ext://sys.stdout",
        **extra,
    }


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """
    Build a dictConfig mapping.

    Args:
        level: Level for tunnelgate loggers and the root logger
    """
    level = level.upper()
    loggers = {
        name: {"handlers": ["default"], "level": "INFO", "propagate": False}
        for name in ("uvicorn", "uvicorn.error")
    }
    loggers["uvicorn.access"] = {"handlers": ["access"], "level": "INFO", "propagate": False}
    loggers["tunnelgate"] = {"handlers": ["default"], "level": level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"health_check_filter": {"()": HealthCheckFilter}},
        "formatters": {
            "default": {"format": LOG_FORMAT},
            "access": {"format": "%(message)s"},
        },
        "handlers": {
            "default": _stdout_handler("default"),
            "access": _stdout_handler("access", filters=["health_check_filter"]),
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["default"]},
    }
