"""System Restore point creation.

Creates a restore point with PowerShell Checkpoint-Computer before anything
else is changed. This is the first step of the "run all" pipeline.

Task schema (dict expected):
  type: "system_restore"
  description: str (optional, default "WinOptimizer-Backup")

Return dict structure:
  {
    task_type: "system_restore",
    status: "success" | "error" | "skipped",
    summary: {
      human_readable: { message: str, warnings: [str] (optional) },
      results: {
        restore_point_created: bool,
        description: str,
        error_details: str (optional)
      }
    },
    duration_seconds: float
  }
"""

import subprocess
import logging
import platform
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from optimizer_config import DEFAULT_RESTORE_POINT_DESCRIPTION
from sentry_config import add_breadcrumb
from subprocess_utils import ps_quote, run_powershell

logger = logging.getLogger(__name__)

# Windows only allows one restore point per 24h by default; stay quiet on back-to-back runs
RECENT_POINT_MINUTES = 30


class RestorePointError(Exception):
    """A restore point could not be created."""

    def __init__(self, message: str, reason: str, output: str = ""):
        super().__init__(message)
        self.reason = reason
        self.output = output


class RestorePointThrottled(Exception):
    """Windows refused a new restore point because one was created recently."""


# RPSessionInterval is 1 while System Protection is on for at least one drive
PROTECTION_ENABLED_CHECK = (
    "(Get-ItemProperty -Path 'HKLM:\\SOFTWARE\\Microsoft\\Windows NT\\CurrentVersion\\SystemRestore' "
    "-Name RPSessionInterval -ErrorAction SilentlyContinue).RPSessionInterval -ge 1"
)


def attempt_enable_system_protection() -> Tuple[bool, str]:
    """Try to enable System Protection on the system drive.

    Makes sure the VSS and swprv services are not disabled, starts them and
    calls Enable-ComputerRestore.
    """
    script = r"""
      $ErrorActionPreference = 'SilentlyContinue'
      $changed = @()
      foreach ($svcName in @('VSS','swprv')) {
        $svc = Get-Service -Name $svcName
        if ($null -ne $svc) {
          if ($svc.StartType -eq 'Disabled') {
            Set-Service -Name $svcName -StartupType Manual
            $changed += "Set $svcName StartupType=Manual"
          }
          if ($svc.Status -ne 'Running') {
            Start-Service -Name $svcName
            $changed += "Started $svcName"
          }
        }
      }
      Enable-ComputerRestore -Drive "$env:SystemDrive\" | Out-Null
      if ($changed.Count -gt 0) { $changed -join '; ' } else { 'No service changes' }
    """
    try:
        proc = run_powershell(script, timeout=60)
        time.sleep(2)
        verify = run_powershell(PROTECTION_ENABLED_CHECK, timeout=20)
    except (OSError, subprocess.TimeoutExpired) as e:
        return False, f"Enable attempt failed: {e}"
    ok = (verify.stdout or "").strip().splitlines()[-1:] == ["True"]
    return ok, (proc.stdout or "").strip()


def recent_restore_point_age_minutes() -> Optional[float]:
    """Age in minutes of the newest restore point, or None if there is none."""
    script = r"""
      $rp = Get-ComputerRestorePoint -ErrorAction SilentlyContinue | Sort-Object -Property SequenceNumber -Descending | Select-Object -First 1
      if ($null -eq $rp) { '' } else { $rp.ConvertToDateTime($rp.CreationTime).ToUniversalTime().ToString('o') }
    """
    try:
        proc = run_powershell(script, timeout=20)
    except (OSError, subprocess.TimeoutExpired):
        return None
    iso = (proc.stdout or "").strip()
    if not iso:
        return None
    try:
        created = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    except ValueError:
        return None
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    age = (datetime.now(timezone.utc) - created).total_seconds() / 60.0
    return age if age >= 0 else None


def _classify_failure(output: str) -> Optional[str]:
    lowered = output.lower()
    if "created within the past" in lowered or "a new system restore point cannot be created" in lowered:
        return "throttled"
    if "access is denied" in lowered or "requires elevation" in lowered:
        return "access_denied"
    if (
        ("system protection" in lowered and ("disabled" in lowered or "not enabled" in lowered))
        or "servicedisabled" in lowered
        or "the service cannot be started because it is disabled" in lowered
    ):
        return "protection_disabled"
    return None


def create_restore_point(description: str, timeout: float = 300) -> Dict[str, Any]:
    """Create a restore point. Raises RestorePointError or RestorePointThrottled."""
    script = (
        f"Checkpoint-Computer -Description {ps_quote(description)} "
        "-RestorePointType 'MODIFY_SETTINGS' -ErrorAction Stop"
    )
    logger.info(f"Creating System Restore point: {description}")
    sys.stderr.flush()
    add_breadcrumb("Executing Checkpoint-Computer", category="subprocess", description=description)

    try:
        proc = run_powershell(script, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise RestorePointError(
            f"Restore point creation timed out after {int(timeout // 60)} minutes", "timeout"
        )
    except FileNotFoundError:
        raise RestorePointError("PowerShell not found", "powershell_missing")

    output = "\n".join(part for part in (proc.stdout, proc.stderr) if part).strip()
    if proc.returncode == 0 and not _classify_failure(output):
        return {"restore_point_created": True, "description": description}

    reason = _classify_failure(output)
    if reason == "throttled":
        raise RestorePointThrottled(output)

    if reason == "protection_disabled":
        add_breadcrumb(
            "System Protection appears disabled; attempting remediation",
            category="task",
            level="warning",
        )
        enabled, details = attempt_enable_system_protection()
        if enabled:
            try:
                retry = run_powershell(script, timeout=timeout)
            except (OSError, subprocess.TimeoutExpired):
                retry = None
            if retry is not None and retry.returncode == 0:
                return {
                    "restore_point_created": True,
                    "description": description,
                    "remediation": details,
                }
        raise RestorePointError(
            "System Protection is disabled. Enable it under System Properties > "
            "System Protection > Configure.",
            reason,
            output,
        )

    if reason == "access_denied":
        raise RestorePointError(
            "Creating a restore point requires administrator privileges", reason, output
        )

    raise RestorePointError(
        f"Checkpoint-Computer exited with code {proc.returncode}", "command_failed", output
    )


def run_system_restore(task: Dict[str, Any], confirm=None) -> Dict[str, Any]:
    """Create a Windows System Restore point."""
    start_time = time.time()
    description = str(task.get("description") or DEFAULT_RESTORE_POINT_DESCRIPTION)

    def _result(status: str, message: str, results: Dict[str, Any], warnings=None) -> Dict[str, Any]:
        human: Dict[str, Any] = {"message": message}
        if warnings:
            human["warnings"] = warnings
        results.setdefault("description", description)
        return {
            "task_type": "system_restore",
            "status": status,
            "summary": {"human_readable": human, "results": results},
            "duration_seconds": round(time.time() - start_time, 2),
        }

    if platform.system().lower() != "windows":
        return _result(
            "skipped",
            "System Restore is only available on Windows. Skipping on this OS.",
            {"restore_point_created": False, "error_details": "Unsupported platform"},
        )

    add_breadcrumb("Starting System Restore point creation", category="task", level="info")

    age = recent_restore_point_age_minutes()
    if age is not None and age <= RECENT_POINT_MINUTES:
        logger.info(f"Restore point already created {int(age)} min ago, skipping")
        return _result(
            "skipped",
            f"Skipped creating System Restore point (existing point {int(age)} min ago).",
            {"restore_point_created": False},
        )

    try:
        results = create_restore_point(description)
    except RestorePointThrottled as e:
        return _result(
            "skipped",
            "Skipped: Windows only allows one restore point within 24 hours by default.",
            {"restore_point_created": False, "error_details": "24-hour throttle", "output": str(e)[:500]},
        )
    except RestorePointError as e:
        logger.error(f"Restore point not created: {e}")
        add_breadcrumb(
            "System Restore point creation failed",
            category="task",
            level="error",
            reason=e.reason,
        )
        return _result(
            "error",
            str(e),
            {
                "restore_point_created": False,
                "error_details": e.reason,
                "output": e.output[:500],
            },
            warnings=["System Restore point was not created"],
        )

    logger.info("✓ Restore point created")
    add_breadcrumb("System Restore point created successfully", category="task", level="info")
    return _result("success", f"System Restore point created: {description}", results)


__all__ = [
    "RestorePointError",
    "RestorePointThrottled",
    "create_restore_point",
    "run_system_restore",
]
