"""Windows service start-type optimization.

Sets telemetry and rarely used services to Manual or Disabled with
``sc config``. Services that do not exist on this edition are skipped, not
counted as failures. Security, update and networking services are never
touched.

Task schema (dict expected):
  type: "services_optimization"
  services: [str] (optional) restrict to these service names

Return dict structure:
  {
    task_type: "services_optimization",
    status: "success" | "warning" | "error" | "skipped",
    summary: {
      human_readable: { message: str },
      results: { changed: [...], failed: [...], not_present: [str] }
    },
    duration_seconds: float
  }
"""

import logging
import platform
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from safe_executor import batch_status, execute, summarize
from sentry_config import add_breadcrumb
from subprocess_utils import check_command, run_command

logger = logging.getLogger(__name__)

# sc.exe: "The specified service does not exist as an installed service."
SERVICE_DOES_NOT_EXIST = 1060


@dataclass(frozen=True)
class ServiceTweak:
    id: str
    label: str
    start_type: str  # sc.exe value: "demand" or "disabled"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


SERVICE_TWEAKS = (
    ServiceTweak("DiagTrack", "Connected User Experiences and Telemetry", "disabled"),
    ServiceTweak("dmwappushservice", "WAP Push Message Routing", "disabled"),
    ServiceTweak("RetailDemo", "Retail Demo Service", "disabled"),
    ServiceTweak("RemoteRegistry", "Remote Registry", "disabled"),
    ServiceTweak("Fax", "Fax", "disabled"),
    ServiceTweak("WMPNetworkSvc", "Windows Media Player Network Sharing", "disabled"),
    ServiceTweak("MapsBroker", "Downloaded Maps Manager", "demand"),
    ServiceTweak("lfsvc", "Geolocation Service", "demand"),
    ServiceTweak("WerSvc", "Windows Error Reporting", "demand"),
    ServiceTweak("PhoneSvc", "Phone Service", "demand"),
    ServiceTweak("XblAuthManager", "Xbox Live Auth Manager", "demand"),
    ServiceTweak("XblGameSave", "Xbox Live Game Save", "demand"),
    ServiceTweak("XboxNetApiSvc", "Xbox Live Networking", "demand"),
    ServiceTweak("XboxGipSvc", "Xbox Accessory Management", "demand"),
    ServiceTweak("WpcMonSvc", "Parental Controls", "demand"),
    ServiceTweak("SharedAccess", "Internet Connection Sharing", "demand"),
)


def service_exists(name: str) -> bool:
    proc = run_command(["sc", "query", name], timeout=30)
    return proc.returncode != SERVICE_DOES_NOT_EXIST


def apply_tweak(tweak: ServiceTweak) -> None:
    check_command(["sc", "config", tweak.id, "start=", tweak.start_type], timeout=30)
    if tweak.start_type == "disabled":
        # Not running is fine; the start type is what matters
        run_command(["sc", "stop", tweak.id], timeout=30)


def optimize_services(
    tweaks: Iterable[ServiceTweak],
    exists: Callable[[str], bool] = service_exists,
    action: Callable[[ServiceTweak], None] = apply_tweak,
):
    present: List[ServiceTweak] = []
    missing: List[str] = []
    for tweak in tweaks:
        if exists(tweak.id):
            present.append(tweak)
        else:
            logger.info(f"  - {tweak.id} not installed, skipping")
            missing.append(tweak.id)

    outcomes = execute(present, action, verb="Configured")
    results = {
        "changed": [o.to_dict() for o in outcomes if o.succeeded],
        "failed": [o.to_dict() for o in outcomes if not o.succeeded],
        "not_present": missing,
        "counts": summarize(outcomes),
    }
    return results, outcomes


def run_services_optimization(task: Dict[str, Any], confirm=None) -> Dict[str, Any]:
    start_time = time.time()

    if platform.system().lower() != "windows":
        return {
            "task_type": "services_optimization",
            "status": "skipped",
            "summary": {
                "human_readable": {"message": "Service optimization is only available on Windows."},
                "results": {"error_details": "Unsupported platform"},
            },
            "duration_seconds": round(time.time() - start_time, 2),
        }

    wanted: Optional[List[str]] = task.get("services")
    tweaks = [
        t for t in SERVICE_TWEAKS if wanted is None or t.id.lower() in {w.lower() for w in wanted}
    ]
    add_breadcrumb("Starting services optimization", category="task", count=len(tweaks))

    results, outcomes = optimize_services(tweaks)
    changed = len(results["changed"])
    failed = len(results["failed"])
    message = f"Configured {changed} service(s)"
    if failed:
        message += f", {failed} failed"

    return {
        "task_type": "services_optimization",
        "status": batch_status(outcomes),
        "summary": {"human_readable": {"message": message}, "results": results},
        "duration_seconds": round(time.time() - start_time, 2),
    }


__all__ = ["SERVICE_TWEAKS", "ServiceTweak", "optimize_services", "run_services_optimization"]
