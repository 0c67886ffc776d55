"""Privacy Shield: registry lockdowns against telemetry and tracking.

Each lockdown is a single DWORD write. Missing keys are created. A failed
write (usually a policy key without admin rights) is reported per item and
does not stop the rest.

Task schema (dict expected):
  type: "privacy_shield"

Return dict structure:
  {
    task_type: "privacy_shield",
    status: "success" | "warning" | "error" | "skipped",
    summary: {
      human_readable: { message: str },
      results: { applied: [...], failed: [...], counts: {...} }
    },
    duration_seconds: float
  }
"""

import logging
import platform
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable

from safe_executor import batch_status, execute, summarize
from sentry_config import add_breadcrumb

logger = logging.getLogger(__name__)

try:
    import winreg  # type: ignore
except ImportError:
    winreg = None  # type: ignore

HKLM = "HKEY_LOCAL_MACHINE"
HKCU = "HKEY_CURRENT_USER"


@dataclass(frozen=True)
class RegistryTweak:
    label: str
    hive: str
    key_path: str
    value_name: str
    value: int

    @property
    def id(self) -> str:
        return f"{self.hive}\\{self.key_path}\\{self.value_name}"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "value": self.value}


PRIVACY_TWEAKS = (
    RegistryTweak("Telemetry level: Security", HKLM,
                  r"SOFTWARE\Policies\Microsoft\Windows\DataCollection", "AllowTelemetry", 0),
    RegistryTweak("Telemetry (data collection)", HKLM,
                  r"SOFTWARE\Microsoft\Windows\CurrentVersion\Policies\DataCollection", "AllowTelemetry", 0),
    RegistryTweak("Advertising ID", HKCU,
                  r"SOFTWARE\Microsoft\Windows\CurrentVersion\AdvertisingInfo", "Enabled", 0),
    RegistryTweak("Advertising ID policy", HKLM,
                  r"SOFTWARE\Policies\Microsoft\Windows\AdvertisingInfo", "DisabledByGroupPolicy", 1),
    RegistryTweak("Location services", HKLM,
                  r"SOFTWARE\Policies\Microsoft\Windows\LocationAndSensors", "DisableLocation", 1),
    RegistryTweak("Activity history", HKLM,
                  r"SOFTWARE\Policies\Microsoft\Windows\System", "EnableActivityFeed", 0),
    RegistryTweak("Activity history upload", HKLM,
                  r"SOFTWARE\Policies\Microsoft\Windows\System", "UploadUserActivities", 0),
    RegistryTweak("Tailored experiences", HKCU,
                  r"SOFTWARE\Microsoft\Windows\CurrentVersion\Privacy", "TailoredExperiencesWithDiagnosticDataEnabled", 0),
    RegistryTweak("Feedback notifications", HKCU,
                  r"SOFTWARE\Microsoft\Siuf\Rules", "NumberOfSIUFInPeriod", 0),
    RegistryTweak("Start menu suggestions", HKCU,
                  r"SOFTWARE\Microsoft\Windows\CurrentVersion\ContentDeliveryManager", "SystemPaneSuggestionsEnabled", 0),
    RegistryTweak("Silent app installs", HKCU,
                  r"SOFTWARE\Microsoft\Windows\CurrentVersion\ContentDeliveryManager", "SilentInstalledAppsEnabled", 0),
    RegistryTweak("Tips and suggestions", HKCU,
                  r"SOFTWARE\Microsoft\Windows\CurrentVersion\ContentDeliveryManager", "SubscribedContent-338389Enabled", 0),
    RegistryTweak("Consumer features", HKLM,
                  r"SOFTWARE\Policies\Microsoft\Windows\CloudContent", "DisableWindowsConsumerFeatures", 1),
    RegistryTweak("Bing in Start search", HKCU,
                  r"SOFTWARE\Microsoft\Windows\CurrentVersion\Search", "BingSearchEnabled", 0),
    RegistryTweak("Cortana", HKLM,
                  r"SOFTWARE\Policies\Microsoft\Windows\Windows Search", "AllowCortana", 0),
    RegistryTweak("Language list access", HKCU,
                  r"Control Panel\International\User Profile", "HttpAcceptLanguageOptOut", 1),
    RegistryTweak("Error reporting", HKLM,
                  r"SOFTWARE\Microsoft\Windows\Windows Error Reporting", "Disabled", 1),
    RegistryTweak("Inking and typing personalization", HKCU,
                  r"SOFTWARE\Microsoft\InputPersonalization", "RestrictImplicitTextCollection", 1),
)


def _get_hive(name: str):  # type: ignore
    if winreg is None:
        return None
    return {HKLM: winreg.HKEY_LOCAL_MACHINE, HKCU: winreg.HKEY_CURRENT_USER}.get(name)


def set_dword(tweak: RegistryTweak) -> None:
    if winreg is None:
        raise OSError("Registry access is only available on Windows")
    hive = _get_hive(tweak.hive)
    with winreg.CreateKeyEx(hive, tweak.key_path, 0, winreg.KEY_SET_VALUE) as key:  # type: ignore
        winreg.SetValueEx(key, tweak.value_name, 0, winreg.REG_DWORD, tweak.value)  # type: ignore


def apply_privacy_shield(
    tweaks: Iterable[RegistryTweak] = PRIVACY_TWEAKS,
    action: Callable[[RegistryTweak], None] = set_dword,
):
    outcomes = execute(list(tweaks), action, verb="Locked down")
    results = {
        "applied": [o.to_dict() for o in outcomes if o.succeeded],
        "failed": [o.to_dict() for o in outcomes if not o.succeeded],
        "counts": summarize(outcomes),
    }
    return results, outcomes


def run_privacy_shield(task: Dict[str, Any], confirm=None) -> Dict[str, Any]:
    start_time = time.time()

    if platform.system().lower() != "windows" or winreg is None:
        return {
            "task_type": "privacy_shield",
            "status": "skipped",
            "summary": {
                "human_readable": {"message": "Privacy Shield is only available on Windows."},
                "results": {"error_details": "Unsupported platform"},
            },
            "duration_seconds": round(time.time() - start_time, 2),
        }

    add_breadcrumb("Applying Privacy Shield", category="task", count=len(PRIVACY_TWEAKS))
    results, outcomes = apply_privacy_shield()
    counts = results["counts"]
    message = f"Applied {counts['succeeded']}/{counts['attempted']} privacy lockdowns"

    return {
        "task_type": "privacy_shield",
        "status": batch_status(outcomes),
        "summary": {"human_readable": {"message": message}, "results": results},
        "duration_seconds": round(time.time() - start_time, 2),
    }


__all__ = ["PRIVACY_TWEAKS", "RegistryTweak", "apply_privacy_shield", "run_privacy_shield"]
