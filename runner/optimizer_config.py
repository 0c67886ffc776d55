"""Runtime settings for the optimizer.

Values come from (highest priority first) explicit overrides, ``WINOPTIMIZER_*``
environment variables, and a ``.env`` file loaded with python-dotenv. The file
is looked up at ``WINOPTIMIZER_ENV_FILE`` or next to this module.
"""

import logging
import os
import sys
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

VERSION = "4.0.0"

DEFAULT_RESTORE_POINT_DESCRIPTION = "WinOptimizer-Backup"


def _default_log_dir() -> str:
    base = os.getenv("LOCALAPPDATA") or os.path.join(os.path.expanduser("~"), ".local", "share")
    return os.path.join(base, "WinOptimizer", "logs")


def detect_environment() -> str:
    """Return 'development' or 'production'.

    ``WINOPTIMIZER_ENV`` wins; otherwise a frozen executable is production and
    a plain interpreter run is development.
    """
    env_var = os.environ.get("WINOPTIMIZER_ENV", "").lower()
    if env_var in ("development", "dev"):
        return "development"
    if env_var in ("production", "prod"):
        return "production"
    return "production" if getattr(sys, "frozen", False) else "development"


@dataclass(frozen=True)
class OptimizerSettings:
    version: str = VERSION
    restore_point_description: str = DEFAULT_RESTORE_POINT_DESCRIPTION
    min_search_term_length: int = 3
    log_dir: str = ""
    log_retention_days: int = 30
    sentry_dsn: Optional[str] = None
    sentry_enabled: bool = True
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.0
    environment: str = "development"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default
    if value < minimum:
        logger.warning(f"Ignoring out-of-range {name}={value}; using {default}")
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}; using {default}")
        return default
    return min(max(value, 0.0), 1.0)


def load_settings(
    env_file: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None
) -> OptimizerSettings:
    """Build OptimizerSettings from the .env file, the environment and overrides.

    Args:
        env_file: Explicit .env path. Defaults to ``WINOPTIMIZER_ENV_FILE`` or
            ``.env`` beside the runner.
        overrides: Field values that take precedence over everything else.
    """
    env_path = env_file or os.getenv("WINOPTIMIZER_ENV_FILE") or os.path.join(
        os.path.dirname(os.path.abspath(__file__)), ".env"
    )
    if os.path.isfile(env_path):
        # Never clobber variables already set in the real environment
        load_dotenv(env_path, override=False)
        logger.debug(f"Loaded settings from {env_path}")

    settings = OptimizerSettings(
        restore_point_description=os.getenv(
            "WINOPTIMIZER_RESTORE_POINT_DESCRIPTION", DEFAULT_RESTORE_POINT_DESCRIPTION
        ),
        min_search_term_length=_env_int("WINOPTIMIZER_MIN_SEARCH_TERM_LENGTH", 3, minimum=1),
        log_dir=os.getenv("WINOPTIMIZER_LOG_DIR") or _default_log_dir(),
        log_retention_days=_env_int("WINOPTIMIZER_LOG_RETENTION_DAYS", 30, minimum=1),
        sentry_dsn=os.getenv("WINOPTIMIZER_SENTRY_DSN") or None,
        sentry_enabled=_env_bool("WINOPTIMIZER_SENTRY_ENABLED", True),
        sentry_send_pii=_env_bool("WINOPTIMIZER_SENTRY_SEND_PII", False),
        sentry_traces_sample_rate=_env_float("WINOPTIMIZER_SENTRY_TRACES_SAMPLE_RATE", 0.0),
        environment=detect_environment(),
    )

    if overrides:
        settings = replace(settings, **overrides)
    return settings


__all__ = ["OptimizerSettings", "VERSION", "detect_environment", "load_settings"]
