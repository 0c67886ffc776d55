"""Network optimization with safety checks.

Always flushes the DNS cache and restores TCP receive-window auto-tuning.
Winsock and TCP/IP stack resets are only done when they cannot break the
machine's connectivity: they are skipped when a VPN or virtual-machine adapter
is present (resets drop their bindings) or when the PC is joined to a domain.

Task schema (dict expected):
  type: "network_optimization"
  allow_stack_reset: bool (optional, default True) set False to never reset
"""

import json
import logging
import platform
import subprocess
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple

import psutil

from pattern_matcher import match
from pattern_tables import VPN_VM_ADAPTER_PATTERNS
from safe_executor import batch_status, execute, summarize
from sentry_config import add_breadcrumb
from subprocess_utils import CommandError, check_command, check_powershell

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkAction:
    id: str
    label: str
    command: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, "command": " ".join(self.command)}


BASE_ACTIONS = (
    NetworkAction("flush_dns", "Flush DNS cache", ("ipconfig", "/flushdns")),
    NetworkAction(
        "tcp_autotuning",
        "TCP auto-tuning: normal",
        ("netsh", "int", "tcp", "set", "global", "autotuninglevel=normal"),
    ),
)

RESET_ACTIONS = (
    NetworkAction("winsock_reset", "Reset Winsock catalog", ("netsh", "winsock", "reset")),
    NetworkAction("ip_reset", "Reset TCP/IP stack", ("netsh", "int", "ip", "reset")),
)


def adapter_names() -> List[str]:
    """Adapter names from psutil plus interface descriptions from Get-NetAdapter."""
    names = list(psutil.net_if_stats().keys())
    if platform.system().lower() != "windows":
        return names
    try:
        output = check_powershell(
            "Get-NetAdapter -IncludeHidden | Select-Object -ExpandProperty InterfaceDescription "
            "| ConvertTo-Json -Compress",
            timeout=30,
        )
        descriptions = json.loads(output) if output.strip() else []
    except (CommandError, ValueError, OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Could not read adapter descriptions: {e}")
        descriptions = []
    if isinstance(descriptions, str):
        descriptions = [descriptions]
    for description in descriptions:
        if description and description not in names:
            names.append(description)
    return names


def find_vpn_vm_adapters(names: Iterable[str]) -> List[Dict[str, str]]:
    found = []
    for name in names:
        entry = match(name, VPN_VM_ADAPTER_PATTERNS)
        if entry is not None:
            found.append({"adapter": name, "label": entry.label, "pattern": entry.pattern})
    return found


def is_domain_joined() -> bool:
    try:
        output = check_powershell("(Get-CimInstance Win32_ComputerSystem).PartOfDomain", timeout=30)
    except (CommandError, OSError, subprocess.TimeoutExpired) as e:
        # unknown: assume joined so nothing destructive runs
        logger.warning(f"Could not determine domain membership: {e}")
        return True
    return output.strip().lower() == "true"


def reset_blockers(names: Sequence[str], domain_joined: bool) -> List[str]:
    """Human-readable reasons why stack resets must be skipped (empty when safe)."""
    reasons = [
        f"{hit['label']} detected ({hit['adapter']})" for hit in find_vpn_vm_adapters(names)
    ]
    if domain_joined:
        reasons.append("PC is joined to a domain")
    return reasons


def _run_action(action: NetworkAction) -> None:
    check_command(list(action.command), timeout=60)


def optimize_network(
    names: Sequence[str],
    domain_joined: bool,
    allow_stack_reset: bool = True,
    action: Callable[[NetworkAction], None] = _run_action,
):
    blockers = reset_blockers(names, domain_joined)
    actions = list(BASE_ACTIONS)
    if allow_stack_reset and not blockers:
        actions.extend(RESET_ACTIONS)
    elif blockers:
        logger.info("Skipping Winsock/TCP-IP reset:")
        for reason in blockers:
            logger.info(f"  - {reason}")

    outcomes = execute(actions, action, verb="Applied")
    results = {
        "applied": [o.to_dict() for o in outcomes if o.succeeded],
        "failed": [o.to_dict() for o in outcomes if not o.succeeded],
        "stack_reset": any(o.item in RESET_ACTIONS for o in outcomes if o.succeeded),
        "reset_skipped_reasons": blockers,
        "counts": summarize(outcomes),
    }
    return results, outcomes


def run_network_optimization(task: Dict[str, Any], confirm=None) -> Dict[str, Any]:
    start_time = time.time()

    if platform.system().lower() != "windows":
        return {
            "task_type": "network_optimization",
            "status": "skipped",
            "summary": {
                "human_readable": {"message": "Network optimization is only available on Windows."},
                "results": {"error_details": "Unsupported platform"},
            },
            "duration_seconds": round(time.time() - start_time, 2),
        }

    add_breadcrumb("Starting network optimization", category="task")
    results, outcomes = optimize_network(
        adapter_names(),
        is_domain_joined(),
        allow_stack_reset=bool(task.get("allow_stack_reset", True)),
    )

    message = f"Applied {len(results['applied'])} network optimization(s)"
    if results["reset_skipped_reasons"]:
        message += "; stack reset skipped for safety"
    elif results["stack_reset"]:
        message += "; restart required for the stack reset"

    return {
        "task_type": "network_optimization",
        "status": batch_status(outcomes),
        "summary": {"human_readable": {"message": message}, "results": results},
        "duration_seconds": round(time.time() - start_time, 2),
    }


__all__ = [
    "NetworkAction",
    "find_vpn_vm_adapters",
    "optimize_network",
    "reset_blockers",
    "run_network_optimization",
]
