"""Sequential, failure-tolerant execution of the "run all" maintenance steps.

Steps are independent subsystems (restore point, services, startup, RAM,
privacy, disk, network, logs). A failing step is recorded and reported but
does not stop the others unless the continue-callback answers "no".

Per step: PENDING -> RUNNING -> COMPLETED | FAILED.
Per run:  NOT_STARTED -> IN_PROGRESS -> FINISHED.
"""

import logging
import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

from sentry_config import (
    add_breadcrumb,
    capture_step_exception,
    create_step_span,
)

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]


class StepFailedError(Exception):
    """A step's underlying service reported a failure status."""

    def __init__(self, step: str, reason: str):
        super().__init__(reason)
        self.step = step
        self.reason = reason


class StepState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineState(Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


@dataclass(frozen=True)
class PipelineStep:
    name: str
    action: Callable[[], None]


@dataclass
class PipelineRun:
    steps: List[PipelineStep]
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    completed_steps: List[str] = field(default_factory=list)
    failed_steps: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    step_states: Dict[str, StepState] = field(default_factory=dict)
    state: PipelineState = PipelineState.NOT_STARTED
    aborted: bool = False

    @property
    def elapsed_seconds(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def to_dict(self) -> Dict[str, object]:
        elapsed = self.elapsed_seconds
        return {
            "state": self.state.value,
            "completed_steps": list(self.completed_steps),
            "failed_steps": list(self.failed_steps),
            "errors": dict(self.errors),
            "not_attempted": [
                step.name
                for step in self.steps
                if self.step_states.get(step.name) is StepState.PENDING
            ],
            "aborted": self.aborted,
            "elapsed_seconds": round(elapsed, 2) if elapsed is not None else None,
        }


def flush_logs() -> None:
    """Flush logging handlers and stdio so marker lines reach a parent UI immediately."""
    for handler in logging.getLogger().handlers:
        try:
            handler.flush()
        except (OSError, ValueError):
            pass
    for stream in (sys.stderr, sys.stdout):
        try:
            stream.flush()
        except (OSError, ValueError):
            pass


def _error_detail(exc: Exception) -> str:
    return str(exc).strip() or exc.__class__.__name__


class PipelineOrchestrator:
    """Run steps strictly in order, one at a time.

    Args:
        steps: Ordered steps; names must be unique.
        confirm_continue: Asked after a failed step that is not the last one.
            Returning False stops the run; remaining steps stay PENDING.
        clock: Time source for started/finished timestamps.
    """

    def __init__(
        self,
        steps: Sequence[PipelineStep],
        confirm_continue: Confirm,
        clock: Callable[[], float] = time.time,
    ):
        names = [step.name for step in steps]
        if len(set(names)) != len(names):
            raise ValueError("Pipeline step names must be unique")
        self.steps = list(steps)
        self.confirm_continue = confirm_continue
        self.clock = clock

    def run(self) -> PipelineRun:
        run = PipelineRun(steps=list(self.steps))
        run.step_states = {step.name: StepState.PENDING for step in self.steps}
        run.started_at = self.clock()
        run.state = PipelineState.IN_PROGRESS
        total = len(self.steps)

        add_breadcrumb("Pipeline started", category="lifecycle", total_steps=total)

        for idx, step in enumerate(self.steps):
            run.step_states[step.name] = StepState.RUNNING
            logger.info("STEP_START:%d:%s", idx, step.name)
            logger.info("[%d/%d] %s...", idx + 1, total, step.name)
            flush_logs()

            with create_step_span(step.name, idx, total) as span:
                try:
                    step.action()
                except Exception as e:  # noqa: BLE001
                    detail = _error_detail(e)
                    run.step_states[step.name] = StepState.FAILED
                    run.failed_steps.append(step.name)
                    run.errors[step.name] = detail
                    logger.error("STEP_FAIL:%d:%s - %s", idx, step.name, detail)
                    flush_logs()
                    capture_step_exception(
                        e, step.name, {"pipeline": {"step_index": idx, "total_steps": total}}
                    )
                    if span:
                        span.set_tag("status", "error")
                else:
                    run.step_states[step.name] = StepState.COMPLETED
                    run.completed_steps.append(step.name)
                    logger.info("STEP_OK:%d:%s", idx, step.name)
                    flush_logs()
                    if span:
                        span.set_tag("status", "success")

            if run.step_states[step.name] is StepState.FAILED and idx < total - 1:
                prompt = (
                    f"Step '{step.name}' failed: {run.errors[step.name]}. "
                    "Continue with the remaining steps?"
                )
                if not self.confirm_continue(prompt):
                    run.aborted = True
                    logger.info("RUN_STOPPED:user_requested")
                    flush_logs()
                    break

        run.finished_at = self.clock()
        run.state = PipelineState.FINISHED

        add_breadcrumb(
            "Pipeline finished",
            category="lifecycle",
            level="warning" if run.failed_steps else "info",
            completed=len(run.completed_steps),
            failed=len(run.failed_steps),
            aborted=run.aborted,
        )
        return run


def log_run_summary(run: PipelineRun) -> None:
    elapsed = run.elapsed_seconds or 0.0
    minutes, seconds = divmod(int(round(elapsed)), 60)
    logger.info("=" * 60)
    logger.info("All-in-One Optimization %s", "Stopped" if run.aborted else "Complete")
    logger.info("=" * 60)
    logger.info(f"Completed steps: {len(run.completed_steps)}/{len(run.steps)}")
    for name in run.failed_steps:
        logger.info(f"  ✗ {name}: {run.errors.get(name, 'unknown error')}")
    logger.info(f"Time taken: {minutes}m {seconds}s")
    flush_logs()


def prompt_reboot(
    run: PipelineRun, confirm: Confirm, restart: Callable[[], None]
) -> bool:
    """Offer a restart at the end of a run. Returns True if a restart was requested.

    Not offered when the run was aborted or nothing completed.
    """
    if run.state is not PipelineState.FINISHED or run.aborted or not run.completed_steps:
        return False
    if not confirm("A restart is recommended to apply all changes. Restart now?"):
        logger.info("Restart skipped. Please restart manually later.")
        return False
    restart()
    return True


__all__ = [
    "PipelineOrchestrator",
    "PipelineRun",
    "PipelineState",
    "PipelineStep",
    "StepFailedError",
    "StepState",
    "flush_logs",
    "log_run_summary",
    "prompt_reboot",
]
