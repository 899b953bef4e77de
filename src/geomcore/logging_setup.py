from __future__ import annotations
import io
import json
import os
import logging
from logging.config import dictConfig
from logging import Filter

DEFAULT_LEVEL = os.getenv("LOG_LEVEL", "INFO")


class HealthCheckFilter(Filter):
    """
    Drop uvicorn access-log lines for the health endpoints.

    Load balancers and the idle watchdog hit /healthcheck constantly; those
    lines drown out the solve traffic we actually want to see.
    """

    QUIET_PATHS = ("/healthcheck", "/metrics")

    def filter(self, record):
        if record.name != "uvicorn.access":
            return True
        message = record.getMessage()
        return not any(f" {path} " in message or f'"GET {path}' in message for path in self.QUIET_PATHS)


_STDOUT_ONLY = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "std": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"}
    },
    "filters": {
        "health_check_filter": {
            "()": "geomcore.logging_setup.HealthCheckFilter",
        }
    },
    "handlers": {
        "stdout": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "std",
            "level": DEFAULT_LEVEL,
            "filters": ["health_check_filter"],
        }
    },
    "loggers": {
        # azure-core logs every HTTP request at INFO
        "azure": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
    },
    "root": {"level": DEFAULT_LEVEL, "handlers": ["stdout"]},
}


def setup_logging(app_name: str = "", config_path_env: str = "GEOMCORE_LOGCFG"):
    """
    Call this as the FIRST thing in your entrypoint.
    - If GEOMCORE_LOGCFG points to a YAML/JSON dictConfig file, we load it.
    - Otherwise we force a stdout-only config.
    """
    cfg_path = os.getenv(config_path_env, "").strip()
    if cfg_path and os.path.exists(cfg_path):
        with open(cfg_path, "r", encoding="utf-8") as fh:
            text = fh.read()
        try:
            dictConfig(json.loads(text))
        except json.JSONDecodeError:
            import yaml
            dictConfig(yaml.safe_load(io.StringIO(text)))
        return

    dictConfig(_STDOUT_ONLY)
    if app_name:
        logging.getLogger(app_name).info("Logging configured (level=%s)", DEFAULT_LEVEL)


def ensure_logger(module: str, level: str = "INFO") -> logging.Logger:
    """
    Get a module logger and set its level.

    Assumes ``setup_logging()`` has already configured the root handler; the
    logger keeps propagating to root.
    """
    logger = logging.getLogger(module)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = True
    return logger
