"""Disk cleanup: temp folders and caches.

Deletes the contents (never the folder itself) of the current user's temp
directories, the Windows temp directory and a few well-known caches. Files in
use are skipped and counted; they are not errors.

Task schema (dict expected):
  type: "disk_cleanup"
  min_age_hours: float (optional, default 0) keep entries newer than this

Return dict structure:
  {
    task_type: "disk_cleanup",
    status: "success" | "warning" | "skipped",
    summary: {
      human_readable: { message: str, freed_mb: float },
      results: { locations: [{path, bytes_freed, entries_deleted, entries_locked}], ... }
    },
    duration_seconds: float
  }
"""

import logging
import os
import platform
import shutil
import stat
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from sentry_config import add_breadcrumb

logger = logging.getLogger(__name__)

MB = 1024**2


@dataclass
class CleanupStats:
    path: str
    bytes_freed: int = 0
    entries_deleted: int = 0
    entries_locked: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def cleanup_locations() -> List[Path]:
    """Temp and cache directories to empty, de-duplicated, existing only."""
    candidates: List[Path] = []
    for env_name in ("TEMP", "TMP"):
        value = os.environ.get(env_name)
        if value:
            candidates.append(Path(value))
    local = os.environ.get("LOCALAPPDATA")
    if local:
        candidates.append(Path(local) / "Temp")
        candidates.append(Path(local) / "Microsoft" / "Windows" / "INetCache")
        candidates.append(Path(local) / "CrashDumps")
    windir = os.environ.get("SystemRoot") or os.environ.get("windir")
    if windir:
        candidates.append(Path(windir) / "Temp")
        candidates.append(Path(windir) / "SoftwareDistribution" / "Download")

    seen = set()
    locations: List[Path] = []
    for path in candidates:
        key = os.path.normcase(os.path.abspath(str(path)))
        if key in seen or not path.is_dir():
            continue
        seen.add(key)
        locations.append(path)
    return locations


def path_size(path: Path) -> int:
    try:
        if path.is_symlink() or path.is_file():
            return path.lstat().st_size
        total = 0
        for root, _dirs, files in os.walk(path):
            for name in files:
                try:
                    total += os.lstat(os.path.join(root, name)).st_size
                except OSError:
                    continue
        return total
    except OSError:
        return 0


def older_than(path: Path, seconds: float, now: Optional[float] = None) -> bool:
    if seconds <= 0:
        return True
    try:
        mtime = path.lstat().st_mtime
    except OSError:
        return False
    return ((now if now is not None else time.time()) - mtime) >= seconds


def delete_path(path: Path) -> int:
    """Delete a file or directory tree; returns the bytes it occupied. Raises OSError."""
    size = path_size(path)
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        try:
            path.unlink()
        except PermissionError:
            os.chmod(path, stat.S_IWRITE)
            path.unlink()
    return size


def empty_directory(
    directory: Path,
    min_age_seconds: float = 0,
    keep: Callable[[Path], bool] = lambda p: False,
) -> CleanupStats:
    stats = CleanupStats(path=str(directory))
    try:
        entries = list(directory.iterdir())
    except OSError as e:
        logger.warning(f"Cannot list {directory}: {e}")
        return stats

    for entry in entries:
        if keep(entry) or not older_than(entry, min_age_seconds):
            continue
        try:
            stats.bytes_freed += delete_path(entry)
            stats.entries_deleted += 1
        except OSError:
            # in use by a running program
            stats.entries_locked += 1
    return stats


def clean_locations(locations: Iterable[Path], min_age_seconds: float = 0) -> List[CleanupStats]:
    all_stats = []
    for location in locations:
        stats = empty_directory(location, min_age_seconds)
        logger.info(
            f"  ✓ {location}: {stats.bytes_freed / MB:.1f} MB freed"
            + (f" ({stats.entries_locked} in use)" if stats.entries_locked else "")
        )
        all_stats.append(stats)
    return all_stats


def run_disk_cleanup(task: Dict[str, Any], confirm=None) -> Dict[str, Any]:
    start_time = time.time()

    if platform.system().lower() != "windows":
        return {
            "task_type": "disk_cleanup",
            "status": "skipped",
            "summary": {
                "human_readable": {"message": "Disk cleanup is only available on Windows."},
                "results": {"error_details": "Unsupported platform"},
            },
            "duration_seconds": round(time.time() - start_time, 2),
        }

    locations = cleanup_locations()
    add_breadcrumb("Starting disk cleanup", category="task", locations=len(locations))
    stats = clean_locations(locations, float(task.get("min_age_hours", 0)) * 3600)

    freed = sum(s.bytes_freed for s in stats)
    deleted = sum(s.entries_deleted for s in stats)
    locked = sum(s.entries_locked for s in stats)
    message = f"Freed {freed / MB:.1f} MB ({deleted} entries removed"
    message += f", {locked} in use)" if locked else ")"

    return {
        "task_type": "disk_cleanup",
        "status": "success" if deleted or not locked else "warning",
        "summary": {
            "human_readable": {"message": message, "freed_mb": round(freed / MB, 1)},
            "results": {
                "locations": [s.to_dict() for s in stats],
                "bytes_freed": freed,
                "entries_deleted": deleted,
                "entries_locked": locked,
            },
        },
        "duration_seconds": round(time.time() - start_time, 2),
    }


__all__ = [
    "CleanupStats",
    "clean_locations",
    "cleanup_locations",
    "delete_path",
    "empty_directory",
    "older_than",
    "run_disk_cleanup",
]
