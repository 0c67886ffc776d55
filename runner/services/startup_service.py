"""Startup entry cleanup.

Enumerates Run/RunOnce registry values for the current user and the local
machine, classifies them against the startup pattern tables, removes the
selected entries and then disables scheduled tasks that belong to the same
software (vendor updaters and tray helpers re-create themselves otherwise).

Task schema (dict expected):
  type: "startup_cleanup"
  mode: str (optional, default "category_a_only"; see removal_planner.Mode)
  remove: [str] (optional) ids to remove in the mixed/individual modes,
          used instead of asking
  disable_related_tasks: bool (optional, default True)
  min_search_term_length: int (optional, default 3)

Return dict structure:
  {
    task_type: "startup_cleanup",
    status: "success" | "warning" | "error" | "skipped",
    summary: {
      human_readable: { message: str, ... },
      results: {
        classification: {protected, category_a, category_b, unknown},
        removed: [...], failed: [...], tasks_disabled: [...],
        tasks_error: str (only when the scheduled tasks could not be listed), ...
      }
    },
    duration_seconds: float
  }
"""

import csv
import io
import logging
import platform
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from classifier import ClassifiedItem, InventoryItem, classify_with
from pattern_tables import PROTECTED_TASK_PATTERNS, STARTUP_TABLES
from removal_planner import Confirm, Mode, find_related_tasks, plan
from safe_executor import ExecutionOutcome, batch_status, execute, summarize
from sentry_config import add_breadcrumb
from subprocess_utils import check_command, run_command

logger = logging.getLogger(__name__)

try:
    import winreg  # type: ignore
except ImportError:  # Non-Windows systems will not support this service
    winreg = None  # type: ignore


REGISTRY_RUN_PATHS = [
    ("HKEY_CURRENT_USER", r"Software\Microsoft\Windows\CurrentVersion\Run"),
    ("HKEY_CURRENT_USER", r"Software\Microsoft\Windows\CurrentVersion\RunOnce"),
    ("HKEY_LOCAL_MACHINE", r"Software\Microsoft\Windows\CurrentVersion\Run"),
    ("HKEY_LOCAL_MACHINE", r"Software\Microsoft\Windows\CurrentVersion\RunOnce"),
]


@dataclass(frozen=True)
class RunKeyLocation:
    hive: str
    key_path: str

    def __str__(self) -> str:
        return f"{self.hive}\\{self.key_path}"


def _get_hive(name: str):  # type: ignore
    if winreg is None:
        return None
    return {
        "HKEY_LOCAL_MACHINE": winreg.HKEY_LOCAL_MACHINE,
        "HKEY_CURRENT_USER": winreg.HKEY_CURRENT_USER,
    }.get(name)


def enumerate_startup_items() -> List[InventoryItem]:
    """Read every value under the four Run/RunOnce keys."""
    items: List[InventoryItem] = []
    if winreg is None:
        return items

    for hive_name, path in REGISTRY_RUN_PATHS:
        hive = _get_hive(hive_name)
        if hive is None:
            continue
        try:
            with winreg.OpenKey(hive, path) as key:  # type: ignore
                index = 0
                while True:
                    try:
                        value_name, value_data, _ = winreg.EnumValue(key, index)  # type: ignore
                    except OSError:
                        break
                    index += 1
                    if not value_name:
                        # the unnamed default value is not a startup entry
                        continue
                    items.append(
                        InventoryItem(
                            id=value_name,
                            raw_value=str(value_data),
                            source_location=RunKeyLocation(hive_name, path),
                        )
                    )
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(f"Failed reading registry {hive_name}\\{path}: {e}")

    logger.info(f"Found {len(items)} startup entries")
    sys.stderr.flush()
    return items


def remove_run_value(item: ClassifiedItem) -> None:
    """Delete one Run/RunOnce value. Raises on any failure."""
    if winreg is None:
        raise OSError("Registry access is only available on Windows")
    location: RunKeyLocation = item.source_location
    hive = _get_hive(location.hive)
    if hive is None:
        raise OSError(f"Unsupported registry hive: {location.hive}")
    with winreg.OpenKey(hive, location.key_path, 0, winreg.KEY_SET_VALUE) as key:  # type: ignore
        winreg.DeleteValue(key, item.id)  # type: ignore


def parse_task_list(csv_output: str) -> List[str]:
    """Extract task paths from ``schtasks /query /fo csv /nh`` output."""
    names: List[str] = []
    for row in csv.reader(io.StringIO(csv_output)):
        if not row:
            continue
        name = row[0].strip()
        # schtasks repeats the header per folder on some builds
        if not name.startswith("\\") or name in names:
            continue
        names.append(name)
    return names


def list_scheduled_tasks() -> List[str]:
    proc = run_command(["schtasks", "/query", "/fo", "csv", "/nh"], timeout=60)
    if proc.returncode != 0:
        logger.warning(f"Could not list scheduled tasks (exit {proc.returncode})")
        return []
    return parse_task_list(proc.stdout)


def disable_scheduled_task(task_name: str) -> None:
    check_command(["schtasks", "/change", "/tn", task_name, "/disable"], timeout=30)


def _term_length(raw, default: int = 3) -> int:
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring invalid min_search_term_length={raw!r}; using {default}")
        return default
    if value < 1:
        logger.warning(f"Ignoring out-of-range min_search_term_length={value}; using {default}")
        return default
    return value


def cleanup_startup(
    inventory: Iterable[InventoryItem],
    mode,
    confirm: Optional[Confirm] = None,
    chosen_ids: Optional[Iterable[str]] = None,
    remove_action: Callable[[ClassifiedItem], None] = remove_run_value,
    task_names: Optional[Callable[[], List[str]]] = list_scheduled_tasks,
    disable_task: Callable[[str], None] = disable_scheduled_task,
    min_term_length: int = 3,
) -> Tuple[Dict[str, Any], List[ExecutionOutcome]]:
    """Classify, plan, remove, then disable related tasks.

    ``task_names`` may be None to skip the scheduled-task pass.
    Returns the ``results`` part of the task result and every outcome
    (entries first, then tasks).
    """
    classified = classify_with(list(inventory), STARTUP_TABLES)
    counts = classified.counts()
    logger.info(
        f"Startup entries: {counts['protected']} protected, {counts['category_a']} junk, "
        f"{counts['category_b']} popular, {counts['unknown']} unrecognised"
    )
    for item in classified.protected_items:
        logger.info(f"  [KEEP] {item.label} ({item.id})")

    removal = plan(
        classified,
        mode,
        confirm=confirm,
        chosen_ids=set(chosen_ids) if chosen_ids is not None else None,
        min_term_length=min_term_length,
    )

    outcomes = execute(removal.targets, remove_action, verb="Removed")

    task_outcomes = []
    related: List[str] = []
    tasks_error = None
    if task_names is not None and removal.derived_task_search_terms:
        try:
            existing = task_names()
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Could not list scheduled tasks: {e}")
            tasks_error = str(e)
            existing = []
        related = find_related_tasks(
            existing, sorted(removal.derived_task_search_terms), PROTECTED_TASK_PATTERNS
        )
        if related:
            logger.info(f"Disabling {len(related)} related scheduled task(s)...")
            task_outcomes = execute(related, disable_task, verb="Disabled task")

    results = {
        "mode": Mode.parse(mode).value,
        "classification": counts,
        "protected": [item.to_dict() for item in classified.protected_items],
        "removed": [o.to_dict() for o in outcomes if o.succeeded],
        "failed": [o.to_dict() for o in outcomes if not o.succeeded],
        "removal_counts": summarize(outcomes),
        "search_terms": sorted(removal.derived_task_search_terms),
        "tasks_disabled": [o.item for o in task_outcomes if o.succeeded],
        "tasks_failed": [
            {"task": o.item, "error": o.error_detail} for o in task_outcomes if not o.succeeded
        ],
    }
    if tasks_error is not None:
        results["tasks_error"] = tasks_error
    return results, outcomes + task_outcomes


def run_startup_cleanup(task: Dict[str, Any], confirm: Optional[Confirm] = None) -> Dict[str, Any]:
    """Clean up registry startup entries and their related scheduled tasks."""
    start_time = time.time()

    if platform.system().lower() != "windows" or winreg is None:
        return {
            "task_type": "startup_cleanup",
            "status": "skipped",
            "summary": {
                "human_readable": {"message": "Startup cleanup is only available on Windows."},
                "results": {"error_details": "Unsupported platform"},
            },
            "duration_seconds": round(time.time() - start_time, 2),
        }

    try:
        mode = Mode.parse(task.get("mode") or Mode.CATEGORY_A_ONLY)
    except ValueError as e:
        return {
            "task_type": "startup_cleanup",
            "status": "error",
            "summary": {
                "human_readable": {"message": str(e)},
                "results": {"error_type": "invalid_mode"},
            },
            "duration_seconds": round(time.time() - start_time, 2),
        }

    add_breadcrumb("Starting startup cleanup", category="task", level="info", mode=mode.value)

    results, outcomes = cleanup_startup(
        enumerate_startup_items(),
        mode,
        confirm=confirm,
        chosen_ids=task.get("remove"),
        task_names=list_scheduled_tasks if task.get("disable_related_tasks", True) else None,
        min_term_length=_term_length(task.get("min_search_term_length")),
    )
    status = batch_status(outcomes)

    removed = len(results["removed"])
    message = (
        f"Removed {removed} startup item(s), kept {results['classification']['protected']} protected"
    )
    if results["tasks_disabled"]:
        message += f", disabled {len(results['tasks_disabled'])} related task(s)"
    failures = len(results["failed"]) + len(results["tasks_failed"])
    if failures:
        message += f"; {failures} action(s) failed"

    add_breadcrumb(
        "Startup cleanup finished",
        category="task",
        level="info" if status == "success" else "warning",
        removed=removed,
        failed=failures,
    )

    return {
        "task_type": "startup_cleanup",
        "status": status,
        "summary": {
            "human_readable": {"message": message, "removed": removed, "failed": failures},
            "results": results,
        },
        "duration_seconds": round(time.time() - start_time, 2),
    }


__all__ = [
    "REGISTRY_RUN_PATHS",
    "RunKeyLocation",
    "cleanup_startup",
    "enumerate_startup_items",
    "parse_task_list",
    "run_startup_cleanup",
]
