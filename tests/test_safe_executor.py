"""
Unit tests for failure-tolerant batch execution.
"""

import pytest

from classifier import ClassifiedItem, InventoryItem
from pattern_matcher import Bucket
from safe_executor import (
    ExecutionOutcome,
    batch_status,
    execute,
    failed_count,
    succeeded_count,
    summarize,
)


def _target(item_id, label=None):
    return ClassifiedItem(InventoryItem(item_id, "C:\\x.exe"), Bucket.CATEGORY_A, label or item_id)


class TestExecute:
    """Test that every target is attempted regardless of failures."""

    def test_scenario_c(self, recorder):
        targets = [_target("One"), _target("Two"), _target("Three")]
        action = recorder(fail_on={"Two"})

        outcomes = execute(targets, action)

        assert action.calls == ["One", "Two", "Three"]
        assert [o.succeeded for o in outcomes] == [True, False, True]
        assert "Access is denied" in outcomes[1].error_detail
        assert succeeded_count(outcomes) == 2
        assert failed_count(outcomes) == 1

    @pytest.mark.parametrize("failing", [(0, 1), (0, 6), (3, 5), (5, 6)])
    def test_failures_at_any_position(self, recorder, failing):
        targets = [_target(f"item{n}") for n in range(7)]
        action = recorder(fail_on={f"item{n}" for n in failing})

        outcomes = execute(targets, action)

        assert len(outcomes) == 7
        assert len(action.calls) == 7
        assert [n for n, o in enumerate(outcomes) if not o.succeeded] == list(failing)
        assert [o.item for o in outcomes] == targets

    def test_empty_batch(self, recorder):
        action = recorder()
        assert execute([], action) == []
        assert action.calls == []

    def test_blank_error_message_uses_exception_name(self):
        def action(item):
            raise OSError()

        outcome = execute([_target("x")], action)[0]
        assert outcome.error_detail == "OSError"

    def test_plain_strings_as_targets(self, recorder):
        action = recorder(fail_on={"\\Vendor\\Task"})
        outcomes = execute(["\\Vendor\\Task", "\\Other"], action, verb="Disabled")
        assert [o.succeeded for o in outcomes] == [False, True]


class TestSummaries:
    def _outcomes(self, *flags):
        return [ExecutionOutcome(_target(str(n)), ok, None if ok else "denied") for n, ok in enumerate(flags)]

    def test_summarize(self):
        assert summarize(self._outcomes(True, False, True)) == {
            "attempted": 3,
            "succeeded": 2,
            "failed": 1,
        }

    @pytest.mark.parametrize(
        "flags,status",
        [
            ((), "success"),
            ((True, True), "success"),
            ((True, False), "warning"),
            ((False, False), "error"),
        ],
    )
    def test_batch_status(self, flags, status):
        assert batch_status(self._outcomes(*flags)) == status

    def test_outcome_to_dict(self):
        failed = ExecutionOutcome(_target("Steam", "Steam Client"), False, "denied")
        assert failed.to_dict()["id"] == "Steam"
        assert failed.to_dict()["succeeded"] is False
        assert failed.to_dict()["error"] == "denied"

        ok = ExecutionOutcome("\\Vendor\\Task", True)
        assert ok.to_dict() == {"id": "\\Vendor\\Task", "succeeded": True}
