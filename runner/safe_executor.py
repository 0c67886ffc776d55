"""Apply a removal/disable action to each planned item without aborting the batch.

One item failing (access denied, value in use, policy-blocked) is recorded and
the next item is attempted. Nothing is retried automatically.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from sentry_config import add_breadcrumb

logger = logging.getLogger(__name__)

Action = Callable[[Any], None]


@dataclass(frozen=True)
class ExecutionOutcome:
    item: Any
    succeeded: bool
    error_detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        item_dict = self.item.to_dict() if hasattr(self.item, "to_dict") else {"id": str(self.item)}
        item_dict["succeeded"] = self.succeeded
        if self.error_detail is not None:
            item_dict["error"] = self.error_detail
        return item_dict


def _describe(item: Any) -> str:
    label = getattr(item, "label", None)
    item_id = getattr(item, "id", None)
    if label and item_id and label != item_id:
        return f"{label} ({item_id})"
    return str(label or item_id or item)


def _error_detail(exc: Exception) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


def execute(
    targets: Sequence[Any], action: Action, verb: str = "Removed"
) -> List[ExecutionOutcome]:
    """Run ``action`` on every target, capturing success or failure per item.

    Args:
        targets: Items to act on, usually ``RemovalPlan.targets``.
        action: Performs the real change for one item; raises on failure.
        verb: Past-tense verb used in log lines ("Removed", "Disabled", ...).

    Returns:
        One ExecutionOutcome per target, in the same order as ``targets``.
    """
    outcomes: List[ExecutionOutcome] = []
    total = len(targets)

    for idx, item in enumerate(targets, 1):
        name = _describe(item)
        try:
            action(item)
        except Exception as e:  # noqa: BLE001
            detail = _error_detail(e)
            logger.error(f"  [{idx}/{total}] ✗ Failed: {name} - {detail}")
            add_breadcrumb(
                f"Action failed: {name}",
                category="action",
                level="warning",
                error=detail,
            )
            outcomes.append(ExecutionOutcome(item, False, detail))
        else:
            logger.info(f"  [{idx}/{total}] ✓ {verb}: {name}")
            outcomes.append(ExecutionOutcome(item, True, None))
        sys.stderr.flush()

    return outcomes


def succeeded_count(outcomes: Sequence[ExecutionOutcome]) -> int:
    return sum(1 for outcome in outcomes if outcome.succeeded)


def failed_count(outcomes: Sequence[ExecutionOutcome]) -> int:
    return sum(1 for outcome in outcomes if not outcome.succeeded)


def summarize(outcomes: Sequence[ExecutionOutcome]) -> Dict[str, int]:
    return {
        "attempted": len(outcomes),
        "succeeded": succeeded_count(outcomes),
        "failed": failed_count(outcomes),
    }


def batch_status(outcomes: Sequence[ExecutionOutcome]) -> str:
    """Map a batch to a result status: all ok, partial ("warning"), or none ("error")."""
    failed = failed_count(outcomes)
    if not failed:
        return "success"
    return "warning" if succeeded_count(outcomes) else "error"


__all__ = [
    "Action",
    "ExecutionOutcome",
    "batch_status",
    "execute",
    "failed_count",
    "succeeded_count",
    "summarize",
]
