"""RAM optimization by trimming process working sets.

Calls ``EmptyWorkingSet`` on every process the current user may open, which
pushes rarely used pages to the standby list. RAM usage is sampled with psutil
before and after so the result shows what was actually freed.

Task schema (dict expected):
  type: "memory_optimization"
  settle_seconds: float (optional, default 2) wait before measuring "after"

Return dict structure:
  {
    task_type: "memory_optimization",
    status: "success" | "warning" | "skipped",
    summary: {
      human_readable: { message: str, ram_before_gb, ram_after_gb, ram_freed_gb },
      results: { used_before_bytes, used_after_bytes, freed_bytes,
                 processes_trimmed, processes_denied }
    },
    duration_seconds: float
  }
"""

import ctypes
import logging
import os
import platform
import time
from typing import Any, Callable, Dict, Iterable, Tuple

import psutil

from sentry_config import add_breadcrumb

logger = logging.getLogger(__name__)

PROCESS_QUERY_INFORMATION = 0x0400
PROCESS_SET_QUOTA = 0x0100

GB = 1024**3


def _empty_working_set(pid: int) -> bool:
    """Trim one process. Returns False when the process cannot be opened."""
    kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
    psapi = ctypes.windll.psapi  # type: ignore[attr-defined]
    handle = kernel32.OpenProcess(PROCESS_QUERY_INFORMATION | PROCESS_SET_QUOTA, False, pid)
    if not handle:
        return False
    try:
        return bool(psapi.EmptyWorkingSet(handle))
    finally:
        kernel32.CloseHandle(handle)


def trim_working_sets(
    pids: Iterable[int], trim: Callable[[int], bool] = _empty_working_set
) -> Tuple[int, int]:
    """Trim every pid; returns (trimmed, denied). Never raises for a single process."""
    trimmed = denied = 0
    own_pid = os.getpid()
    for pid in pids:
        if pid in (0, 4, own_pid):  # idle, System, ourselves
            continue
        try:
            ok = trim(pid)
        except OSError:
            ok = False
        if ok:
            trimmed += 1
        else:
            denied += 1
    return trimmed, denied


def _used_bytes() -> int:
    mem = psutil.virtual_memory()
    return int(mem.total - mem.available)


def optimize_memory(
    trim: Callable[[int], bool] = _empty_working_set,
    used_bytes: Callable[[], int] = _used_bytes,
    settle_seconds: float = 2.0,
) -> Dict[str, Any]:
    before = used_bytes()
    logger.info(f"RAM Before: {before / GB:.1f} GB")

    trimmed, denied = trim_working_sets(psutil.pids(), trim)
    if settle_seconds > 0:
        time.sleep(settle_seconds)

    after = used_bytes()
    freed = max(before - after, 0)
    logger.info(f"RAM After: {after / GB:.1f} GB")
    logger.info(f"[SUCCESS] RAM Freed: {freed / GB:.1f} GB")

    return {
        "used_before_bytes": before,
        "used_after_bytes": after,
        "freed_bytes": freed,
        "processes_trimmed": trimmed,
        "processes_denied": denied,
    }


def run_memory_optimization(task: Dict[str, Any], confirm=None) -> Dict[str, Any]:
    start_time = time.time()

    if platform.system().lower() != "windows":
        return {
            "task_type": "memory_optimization",
            "status": "skipped",
            "summary": {
                "human_readable": {"message": "RAM optimization is only available on Windows."},
                "results": {"error_details": "Unsupported platform"},
            },
            "duration_seconds": round(time.time() - start_time, 2),
        }

    add_breadcrumb("Starting RAM optimization", category="task")
    results = optimize_memory(settle_seconds=float(task.get("settle_seconds", 2.0)))

    status = "success" if results["processes_trimmed"] else "warning"
    return {
        "task_type": "memory_optimization",
        "status": status,
        "summary": {
            "human_readable": {
                "message": f"Freed {results['freed_bytes'] / GB:.1f} GB of RAM "
                f"({results['processes_trimmed']} processes trimmed)",
                "ram_before_gb": round(results["used_before_bytes"] / GB, 2),
                "ram_after_gb": round(results["used_after_bytes"] / GB, 2),
                "ram_freed_gb": round(results["freed_bytes"] / GB, 2),
            },
            "results": results,
        },
        "duration_seconds": round(time.time() - start_time, 2),
    }


__all__ = ["optimize_memory", "run_memory_optimization", "trim_working_sets"]
