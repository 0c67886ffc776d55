"""Preinstalled app (Appx package) removal.

Lists installed packages with Get-AppxPackage, classifies them against the
package tables and removes the selected ones with Remove-AppxPackage. Core
Store, runtime and driver-companion packages are protected and never removed.

Task schema (dict expected):
  type: "bloatware_removal"
  mode: str (optional, default "category_a_only")
  remove: [str] (optional) package names to remove in the mixed/individual modes
  all_users: bool (optional, default False)

Return dict structure:
  {
    task_type: "bloatware_removal",
    status: "success" | "warning" | "error" | "skipped",
    summary: {
      human_readable: { message: str, removed: int, failed: int },
      results: { classification: {...}, removed: [...], failed: [...] }
    },
    duration_seconds: float
  }
"""

import json
import logging
import platform
import subprocess
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from classifier import ClassifiedItem, InventoryItem, classify_with
from pattern_tables import PACKAGE_TABLES
from removal_planner import Confirm, Mode, plan
from safe_executor import batch_status, execute, summarize
from sentry_config import add_breadcrumb
from subprocess_utils import CommandError, check_powershell, ps_quote

logger = logging.getLogger(__name__)

LIST_PACKAGES_SCRIPT = (
    "Get-AppxPackage{scope} | Where-Object {{ -not $_.IsFramework -and -not $_.NonRemovable }} | "
    "Select-Object Name, PackageFullName, Version, Publisher | ConvertTo-Json -Compress"
)


def parse_package_list(json_output: str) -> List[InventoryItem]:
    """Turn Get-AppxPackage JSON (one object or an array) into inventory items."""
    text = (json_output or "").strip()
    if not text:
        return []
    data = json.loads(text)
    if isinstance(data, dict):
        data = [data]

    items: List[InventoryItem] = []
    seen = set()
    for pkg in data:
        name = str(pkg.get("Name") or "").strip()
        full_name = str(pkg.get("PackageFullName") or "").strip()
        if not name or not full_name or full_name in seen:
            continue
        seen.add(full_name)
        items.append(
            InventoryItem(id=name, raw_value=str(pkg.get("Version") or ""), source_location=full_name)
        )
    return items


def enumerate_packages(all_users: bool = False) -> List[InventoryItem]:
    script = LIST_PACKAGES_SCRIPT.format(scope=" -AllUsers" if all_users else "")
    output = check_powershell(script, timeout=120)
    items = parse_package_list(output)
    logger.info(f"Found {len(items)} removable packages")
    return items


def remove_package_action(all_users: bool = False) -> Callable[[ClassifiedItem], None]:
    scope = " -AllUsers" if all_users else ""

    def _remove(item: ClassifiedItem) -> None:
        check_powershell(
            f"Remove-AppxPackage -Package {ps_quote(str(item.source_location))}{scope} -ErrorAction Stop",
            timeout=300,
        )

    return _remove


def remove_bloatware(
    inventory: Iterable[InventoryItem],
    mode,
    remove_action: Callable[[ClassifiedItem], None],
    confirm: Optional[Confirm] = None,
    chosen_ids: Optional[Iterable[str]] = None,
):
    """Classify packages and remove the planned ones. Returns (results, outcomes)."""
    classified = classify_with(list(inventory), PACKAGE_TABLES)
    counts = classified.counts()
    logger.info(
        f"Packages: {counts['protected']} protected, {counts['category_a']} bloatware, "
        f"{counts['category_b']} optional, {counts['unknown']} other"
    )

    removal = plan(
        classified,
        mode,
        confirm=confirm,
        chosen_ids=set(chosen_ids) if chosen_ids is not None else None,
        derive_task_terms=False,
    )
    outcomes = execute(removal.targets, remove_action, verb="Uninstalled")

    results = {
        "mode": Mode.parse(mode).value,
        "classification": counts,
        "removed": [o.to_dict() for o in outcomes if o.succeeded],
        "failed": [o.to_dict() for o in outcomes if not o.succeeded],
        "removal_counts": summarize(outcomes),
    }
    return results, outcomes


def run_bloatware_removal(task: Dict[str, Any], confirm: Optional[Confirm] = None) -> Dict[str, Any]:
    start_time = time.time()

    def _result(status: str, message: str, results: Dict[str, Any], **human) -> Dict[str, Any]:
        return {
            "task_type": "bloatware_removal",
            "status": status,
            "summary": {"human_readable": {"message": message, **human}, "results": results},
            "duration_seconds": round(time.time() - start_time, 2),
        }

    if platform.system().lower() != "windows":
        return _result(
            "skipped",
            "App removal is only available on Windows.",
            {"error_details": "Unsupported platform"},
        )

    try:
        mode = Mode.parse(task.get("mode") or Mode.CATEGORY_A_ONLY)
    except ValueError as e:
        return _result("error", str(e), {"error_type": "invalid_mode"})

    all_users = bool(task.get("all_users", False))
    add_breadcrumb("Starting bloatware removal", category="task", mode=mode.value, all_users=all_users)

    try:
        inventory = enumerate_packages(all_users)
    except (CommandError, ValueError, OSError, subprocess.TimeoutExpired) as e:
        logger.error(f"Failed to list installed packages: {e}")
        return _result(
            "error",
            f"Failed to list installed packages: {e}",
            {"error_type": "enumeration_failed"},
        )

    results, outcomes = remove_bloatware(
        inventory,
        mode,
        remove_package_action(all_users),
        confirm=confirm,
        chosen_ids=task.get("remove"),
    )
    removed = len(results["removed"])
    failed = len(results["failed"])
    message = f"Removed {removed} app(s)"
    if failed:
        message += f", {failed} could not be removed"
    return _result(batch_status(outcomes), message, results, removed=removed, failed=failed)


__all__ = ["parse_package_list", "remove_bloatware", "run_bloatware_removal"]
