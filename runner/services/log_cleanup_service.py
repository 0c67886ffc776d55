"""Log cleanup: old optimizer logs and stale Windows log files.

Only ``*.log`` files older than the retention window are deleted. The log file
of the current run is always kept.

Task schema (dict expected):
  type: "log_cleanup"
  log_dir: str (optional) optimizer log directory
  retention_days: int (optional, default 30)
  current_log: str (optional) path of this run's log file, never deleted
"""

import logging
import os
import platform
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from sentry_config import add_breadcrumb
from services.disk_cleanup_service import MB, CleanupStats, empty_directory

logger = logging.getLogger(__name__)

DAY = 86400


def windows_log_dirs() -> List[Path]:
    windir = os.environ.get("SystemRoot") or os.environ.get("windir")
    if not windir:
        return []
    dirs = [
        Path(windir) / "Logs" / "CBS",
        Path(windir) / "Logs" / "DISM",
        Path(windir) / "Logs" / "WindowsUpdate",
        Path(windir) / "Temp",
    ]
    return [d for d in dirs if d.is_dir()]


def clean_logs(
    directories: List[Path],
    retention_days: int,
    current_log: Optional[str] = None,
) -> List[CleanupStats]:
    keep_path = os.path.normcase(os.path.abspath(current_log)) if current_log else None

    def _keep(path: Path) -> bool:
        if not path.is_file() or path.suffix.lower() != ".log":
            return True
        return keep_path is not None and os.path.normcase(os.path.abspath(str(path))) == keep_path

    stats = []
    for directory in directories:
        result = empty_directory(directory, retention_days * DAY, keep=_keep)
        if result.entries_deleted or result.entries_locked:
            logger.info(
                f"  ✓ {directory}: {result.entries_deleted} log(s) removed, "
                f"{result.bytes_freed / MB:.1f} MB"
            )
        stats.append(result)
    return stats


def run_log_cleanup(task: Dict[str, Any], confirm=None) -> Dict[str, Any]:
    start_time = time.time()
    retention_days = int(task.get("retention_days") or 30)

    directories: List[Path] = []
    log_dir = task.get("log_dir")
    if log_dir and os.path.isdir(log_dir):
        directories.append(Path(log_dir))
    if platform.system().lower() == "windows":
        directories.extend(windows_log_dirs())

    if not directories:
        return {
            "task_type": "log_cleanup",
            "status": "skipped",
            "summary": {
                "human_readable": {"message": "No log directories found."},
                "results": {"directories": []},
            },
            "duration_seconds": round(time.time() - start_time, 2),
        }

    add_breadcrumb("Starting log cleanup", category="task", retention_days=retention_days)
    stats = clean_logs(directories, retention_days, task.get("current_log"))

    deleted = sum(s.entries_deleted for s in stats)
    freed = sum(s.bytes_freed for s in stats)
    return {
        "task_type": "log_cleanup",
        "status": "success",
        "summary": {
            "human_readable": {
                "message": f"Removed {deleted} log file(s) older than {retention_days} days "
                f"({freed / MB:.1f} MB)",
            },
            "results": {
                "directories": [s.to_dict() for s in stats],
                "files_deleted": deleted,
                "bytes_freed": freed,
                "retention_days": retention_days,
            },
        },
        "duration_seconds": round(time.time() - start_time, 2),
    }


__all__ = ["clean_logs", "run_log_cleanup", "windows_log_dirs"]
