"""Sentry configuration and helpers for error tracking and performance monitoring.

All Sentry-related logic for the optimizer lives here. Every helper is a silent
no-op until ``init_sentry`` has succeeded, so services and the pipeline can
call them unconditionally (including from tests, where Sentry is never set up).

Tracking is off unless a DSN is configured (``WINOPTIMIZER_SENTRY_DSN``).
"""

import os
import sys
import platform
import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

import psutil
import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

# Set once init_sentry() succeeds
_sentry_initialized = False


def is_initialized() -> bool:
    return _sentry_initialized


def get_system_context() -> Dict[str, Any]:
    """Collect OS, hardware and process information attached to every event."""
    context: Dict[str, Any] = {}

    context["os"] = {
        "name": platform.system(),
        "version": platform.version(),
        "release": platform.release(),
        "architecture": platform.machine(),
    }
    context["python"] = {
        "version": platform.python_version(),
        "implementation": platform.python_implementation(),
    }

    try:
        mem = psutil.virtual_memory()
        context["memory"] = {
            "total_gb": round(mem.total / (1024**3), 2),
            "available_gb": round(mem.available / (1024**3), 2),
            "percent_used": mem.percent,
        }
    except Exception as e:  # noqa: BLE001
        logger.debug(f"Failed to collect memory info: {e}")
        context["memory"] = {"error": str(e)}

    try:
        context["cpu"] = {
            "count_physical": psutil.cpu_count(logical=False),
            "count_logical": psutil.cpu_count(logical=True),
        }
    except Exception as e:  # noqa: BLE001
        logger.debug(f"Failed to collect CPU info: {e}")
        context["cpu"] = {"error": str(e)}

    try:
        system_drive = os.environ.get("SystemDrive", "C:") + "\\" if os.name == "nt" else "/"
        usage = psutil.disk_usage(system_drive)
        context["system_drive"] = {
            "mountpoint": system_drive,
            "free_gb": round(usage.free / (1024**3), 2),
            "percent_used": usage.percent,
        }
    except (PermissionError, OSError) as e:
        context["system_drive"] = {"error": str(e)}

    try:
        process = psutil.Process()
        context["process"] = {
            "pid": process.pid,
            "memory_mb": round(process.memory_info().rss / (1024**2), 2),
            "frozen": getattr(sys, "frozen", False),
        }
    except Exception as e:  # noqa: BLE001
        logger.debug(f"Failed to collect process info: {e}")
        context["process"] = {"pid": os.getpid(), "error": str(e)}

    return context


def init_sentry(
    dsn: Optional[str],
    enabled: bool = True,
    send_pii: bool = False,
    traces_sample_rate: float = 0.0,
    send_system_info: bool = True,
    environment: str = "production",
    release: Optional[str] = None,
) -> bool:
    """Initialize the Sentry SDK. Safe to call more than once.

    Args:
        dsn: Project DSN. Tracking stays off when empty.
        enabled: Runtime switch (``WINOPTIMIZER_SENTRY_ENABLED``).
        send_pii: Include hostname/username in events.
        traces_sample_rate: Performance sample rate, 0.0-1.0.
        send_system_info: Attach the psutil system context to events.
        environment: "development" or "production".
        release: Release tag, e.g. "winoptimizer@4.0.0".

    Returns:
        True if Sentry is initialized after the call.
    """
    global _sentry_initialized

    if not enabled or not dsn:
        logger.debug("Sentry is disabled")
        return False

    if _sentry_initialized:
        return True

    system_context = get_system_context() if send_system_info else {}

    def before_send(event, hint):
        if system_context:
            event.setdefault("contexts", {})["system_info"] = system_context
            event.setdefault("tags", {})["os_release"] = system_context["os"]["release"]

        # Group by pipeline step so failures of different steps never merge
        transaction = event.get("transaction") or ""
        if transaction.startswith("step.") and event.get("fingerprint") in (None, ["{{ default }}"]):
            message = (event.get("logentry") or {}).get("formatted", "") or event.get("message", "")
            event["fingerprint"] = [transaction, str(message)[:100]]
        return event

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=release,
            traces_sample_rate=traces_sample_rate,
            send_default_pii=send_pii,
            before_send=before_send,
            integrations=[
                LoggingIntegration(
                    level=logging.INFO,  # breadcrumbs only
                    event_level=None,
                ),
            ],
        )
    except Exception as e:  # noqa: BLE001
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    _sentry_initialized = True
    logger.info(f"Sentry initialized in {environment} environment")
    return True


def capture_step_exception(
    exception: BaseException,
    step_name: str,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """Report an exception raised by a pipeline step, grouped by step name."""
    if not _sentry_initialized:
        return None

    try:
        with sentry_sdk.new_scope() as scope:
            scope.fingerprint = [step_name, exception.__class__.__name__]
            scope.set_tag("step", step_name)
            scope.set_tag("error_type", exception.__class__.__name__)
            for key, value in (extra_context or {}).items():
                scope.set_context(key, value)
            return sentry_sdk.capture_exception(exception)
    except Exception as e:  # noqa: BLE001
        logger.error(f"Failed to capture step exception: {e}")
        return None


def capture_step_failure(
    step_name: str,
    failure_reason: str,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """Report a step that finished with a failure status but did not raise."""
    if not _sentry_initialized:
        return None

    try:
        with sentry_sdk.new_scope() as scope:
            scope.fingerprint = [step_name, "step_failure"]
            scope.set_tag("step", step_name)
            for key, value in (extra_context or {}).items():
                scope.set_context(key, value)
            return sentry_sdk.capture_message(f"{step_name}: {failure_reason}", level="error")
    except Exception as e:  # noqa: BLE001
        logger.error(f"Failed to capture step failure: {e}")
        return None


@contextmanager
def create_step_span(step_name: str, step_index: int, total_steps: int):
    """Wrap one pipeline step in a Sentry transaction.

    Yields the transaction, or None when Sentry is not initialized.

    Example:
        >>> with create_step_span("Cleaning Disk", 5, 8) as span:
        ...     if span:
        ...         span.set_data("bytes_freed", freed)
    """
    if not _sentry_initialized:
        yield None
        return

    with sentry_sdk.start_transaction(op="step", name=f"step.{step_name}") as transaction:
        transaction.set_tag("step", step_name)
        transaction.set_tag("step_index", step_index)
        transaction.set_tag("total_steps", total_steps)
        yield transaction


def add_breadcrumb(message: str, category: str = "info", level: str = "info", **data):
    """Add a breadcrumb to the current Sentry scope.

    Args:
        message: What happened.
        category: e.g. 'step', 'action', 'subprocess', 'lifecycle'.
        level: 'debug', 'info', 'warning', 'error' or 'critical'.
        **data: Extra key/value context.
    """
    if not _sentry_initialized:
        return

    try:
        sentry_sdk.add_breadcrumb(category=category, message=message, level=level, data=data)
    except Exception as e:  # noqa: BLE001
        logger.debug(f"Failed to add breadcrumb: {e}")
