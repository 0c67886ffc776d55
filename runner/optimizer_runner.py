"""Command-line runner for WinOptimizer.

Runs one or more optimization tasks (or the 8-step "All-in-One" pipeline),
streams progress to stderr for a console or parent UI and prints a final JSON
report to stdout. Windows elevation is requested automatically when needed.

Usage:
  winoptimizer                      # interactive All-in-One run
  winoptimizer --auto --reboot      # unattended, restart at the end
  winoptimizer '{"tasks": [{"type": "startup_cleanup", "mode": "2"}]}'
  winoptimizer tasks.json -o report.json
"""

import sys, os, ctypes, json, argparse, logging, time, platform, getpass
from typing import List, Dict, Any, Callable, Optional, Tuple

from confirm_prompts import Confirm, always, console_choice, console_confirm
from optimizer_config import OptimizerSettings, VERSION, load_settings
from pipeline_orchestrator import (
    PipelineOrchestrator,
    PipelineStep,
    StepFailedError,
    flush_logs,
    log_run_summary,
    prompt_reboot,
)
from removal_planner import Mode
from sentry_config import add_breadcrumb, capture_step_exception, capture_step_failure, init_sentry
from subprocess_utils import run_command

from services.system_restore_service import run_system_restore  # type: ignore
from services.windows_services_service import run_services_optimization  # type: ignore
from services.startup_service import run_startup_cleanup  # type: ignore
from services.memory_service import run_memory_optimization  # type: ignore
from services.privacy_service import run_privacy_shield  # type: ignore
from services.disk_cleanup_service import run_disk_cleanup  # type: ignore
from services.network_service import run_network_optimization  # type: ignore
from services.log_cleanup_service import run_log_cleanup  # type: ignore
from services.bloatware_service import run_bloatware_removal  # type: ignore

_DEFAULT_LOG_FMT = "%(message)s"

Task = Dict[str, Any]
TaskResult = Dict[str, Any]
TaskHandler = Callable[[Task, Optional[Confirm]], TaskResult]

FAILURE_STATUSES = ("failure", "error")

# (step name, task type) in execution order
PIPELINE_STEPS: List[Tuple[str, str]] = [
    ("Creating Restore Point", "system_restore"),
    ("Optimizing Services", "services_optimization"),
    ("Cleaning Startup Items", "startup_cleanup"),
    ("Optimizing RAM", "memory_optimization"),
    ("Applying Privacy Shield", "privacy_shield"),
    ("Cleaning Disk", "disk_cleanup"),
    ("Optimizing Network", "network_optimization"),
    ("Cleaning Logs", "log_cleanup"),
]

REMOVAL_MODE_CHOICES = [
    (Mode.ALL_NON_ESSENTIAL.value, "Remove all non-essential items"),
    (Mode.CATEGORY_A_ONLY.value, "Remove known junk only (recommended)"),
    (Mode.CATEGORY_A_PLUS_CHOSEN_B.value, "Remove junk and choose popular apps one by one"),
    (Mode.INDIVIDUAL.value, "Decide every item individually"),
    (Mode.NONE.value, "Remove nothing"),
]


def configure_logging() -> None:
    """Log bare messages to stderr for live streaming to a console or parent UI."""
    logging.basicConfig(
        level=logging.INFO, stream=sys.stderr, format=_DEFAULT_LOG_FMT, force=True
    )


def add_file_logging(log_path: str) -> bool:
    try:
        dirpath = os.path.dirname(log_path)
        if dirpath:
            os.makedirs(dirpath, exist_ok=True)
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setFormatter(logging.Formatter("[%(asctime)s] %(message)s", "%H:%M:%S"))
        logging.getLogger().addHandler(fh)
        return True
    except OSError as e:
        logging.error("Failed to initialize log file '%s': %s", log_path, e)
        flush_logs()
        return False


def default_log_path(settings: OptimizerSettings) -> str:
    return os.path.join(settings.log_dir, time.strftime("WinOptimizer_%Y%m%d_%H%M%S.log"))


def is_admin() -> bool:
    """Return True if the current process is running with administrator rights.

    On non-Windows platforms, returns False if the check fails.
    """
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
    except (AttributeError, OSError):
        return False


def relaunch_elevated(argv: List[str]) -> int:
    """Attempt to relaunch this executable elevated.

    Returns a Windows-style error code on failure, 0 if the relaunch was
    initiated (this process should then exit).
    """
    try:
        # sys.executable covers both python.exe and a frozen exe
        exe_path = sys.executable
        params = " ".join([f'"{a}"' for a in argv])
        ShellExecuteW = ctypes.windll.shell32.ShellExecuteW  # type: ignore[attr-defined]
        ShellExecuteW.restype = ctypes.c_void_p
        rc = ShellExecuteW(None, "runas", exe_path, params, None, 1)
        # >32 means success; 5 (access denied) is what a refused UAC prompt looks like
        if rc <= 32:
            return int(rc) if rc != 5 else 1223
        return 0
    except (AttributeError, OSError):
        return 1


def restart_computer() -> None:
    logging.info("Restarting in 10 seconds...")
    flush_logs()
    run_command(["shutdown", "/r", "/t", "10"], timeout=30)


def result_reason(result: TaskResult) -> str:
    summary = result.get("summary") or {}
    human = summary.get("human_readable") or {}
    return str(
        human.get("message")
        or human.get("error")
        or summary.get("reason")
        or f"status '{result.get('status')}'"
    )


def emit_progress(completed: int, total: int, last_result: TaskResult, results: List[TaskResult], overall: str):
    progress_obj = {
        "type": "progress",
        "completed": completed,
        "total": total,
        "last_result": last_result,
        "results": results,
        "overall_status": overall,
    }
    logging.info("PROGRESS_JSON:%s", json.dumps(progress_obj, default=str))
    flush_logs()


def prepare_task(task: Task, settings: OptimizerSettings, log_path: Optional[str]) -> Task:
    """Fill settings-derived defaults a handler needs but the caller did not give."""
    prepared = dict(task)
    task_type = prepared.get("type")
    if task_type == "system_restore":
        prepared.setdefault("description", settings.restore_point_description)
    elif task_type == "startup_cleanup":
        prepared.setdefault("min_search_term_length", settings.min_search_term_length)
    elif task_type == "log_cleanup":
        prepared.setdefault("log_dir", settings.log_dir)
        prepared.setdefault("retention_days", settings.log_retention_days)
        if log_path:
            prepared.setdefault("current_log", log_path)
    elif task_type == "run_all":
        options = dict(prepared.get("options") or {})
        for _name, step_type in PIPELINE_STEPS:
            step_task = dict(options.get(step_type) or {})
            step_task["type"] = step_type
            options[step_type] = prepare_task(step_task, settings, log_path)
        prepared["options"] = options
    return prepared


def run_all(task: Task, confirm: Optional[Confirm] = None) -> TaskResult:
    """Run the eight maintenance steps in order as one pipeline.

    Task keys:
      auto: bool - unattended: continue after failures, keep anything that
            needs a choice, no interactive restart question
      reboot: bool - restart at the end without asking
      options: {task_type: {...}} - per-step task overrides
    """
    start_time = time.time()
    auto = bool(task.get("auto", False))
    options = task.get("options") or {}

    if auto or confirm is None:
        continue_confirm: Confirm = always(True)
        item_confirm: Optional[Confirm] = None
    else:
        continue_confirm = confirm
        item_confirm = confirm
    if task.get("reboot"):
        reboot_confirm: Confirm = always(True)
    elif auto or confirm is None:
        reboot_confirm = always(False)
    else:
        reboot_confirm = confirm

    step_results: Dict[str, TaskResult] = {}

    def make_action(name: str, step_type: str) -> Callable[[], None]:
        def _action() -> None:
            step_task = dict(options.get(step_type) or {"type": step_type})
            step_task.setdefault("type", step_type)
            if step_type == "startup_cleanup":
                step_task.setdefault("mode", Mode.CATEGORY_A_ONLY.value)
            result = TASK_HANDLERS[step_type](step_task, item_confirm)
            step_results[name] = result
            status = result.get("status")
            logging.info(f"  {name}: {status} - {result_reason(result)}")
            if status in FAILURE_STATUSES:
                raise StepFailedError(name, result_reason(result))

        return _action

    steps = [PipelineStep(name, make_action(name, step_type)) for name, step_type in PIPELINE_STEPS]

    logging.info("=" * 60)
    logging.info("All-in-One Optimization")
    logging.info("=" * 60)
    flush_logs()

    run = PipelineOrchestrator(steps, continue_confirm).run()
    log_run_summary(run)
    reboot_requested = prompt_reboot(run, reboot_confirm, restart_computer)

    if not run.failed_steps:
        status = "success"
    elif run.completed_steps:
        status = "warning"
    else:
        status = "failure"

    message = f"{len(run.completed_steps)}/{len(steps)} steps completed"
    if run.failed_steps:
        message += f", failed: {', '.join(run.failed_steps)}"
    if run.aborted:
        message += " (stopped by user)"

    results = run.to_dict()
    results["steps"] = step_results
    results["reboot_requested"] = reboot_requested
    return {
        "task_type": "run_all",
        "status": status,
        "summary": {"human_readable": {"message": message}, "results": results},
        "duration_seconds": round(time.time() - start_time, 2),
    }


def _ask_removal_mode(task: Task, what: str) -> Task:
    if "mode" in task:
        return task
    chosen = console_choice(
        f"How should {what} be cleaned up?", REMOVAL_MODE_CHOICES, Mode.CATEGORY_A_ONLY.value
    )
    return {**task, "mode": chosen}


def execute_task(task: Task, idx: int, total: int, confirm: Optional[Confirm]) -> TaskResult:
    """Run one task through its handler, turning exceptions into a failure result."""
    task_type = task.get("type", "")
    handler = TASK_HANDLERS.get(task_type) if task_type else None

    if not handler:
        logging.warning("TASK_SKIP:%d:%s - No handler found for task type", idx, task_type)
        flush_logs()
        add_breadcrumb(
            f"No handler found for task type: {task_type}",
            category="task",
            level="warning",
            task_type=task_type,
        )
        return {
            "task_type": task_type,
            "status": "skipped",
            "summary": {"reason": "No handler implemented for this task type."},
        }

    logging.info("TASK_START:%d:%s", idx, task_type)
    flush_logs()
    add_breadcrumb(f"Starting task: {task_type}", category="task", task_index=idx, total_tasks=total)

    try:
        result = handler(task, confirm)
    except Exception as e:  # noqa: BLE001
        logging.error("TASK_FAIL:%d:%s - Exception: %s", idx, task_type, e)
        flush_logs()
        capture_step_exception(e, task_type, {"task": {"index": idx, "total": total}})
        return {
            "task_type": task_type,
            "status": "failure",
            "summary": {"reason": f"Exception during execution: {e}"},
        }

    status = result.get("status")
    if status in FAILURE_STATUSES:
        logging.error("TASK_FAIL:%d:%s - %s", idx, task_type, result_reason(result))
        capture_step_failure(task_type, result_reason(result), {"task": {"index": idx, "status": status}})
    else:
        logging.info("TASK_OK:%d:%s", idx, task_type)
    flush_logs()
    return result


# --- Task dispatcher ---
TASK_HANDLERS: Dict[str, TaskHandler] = {
    "run_all": run_all,
    "system_restore": run_system_restore,
    "services_optimization": run_services_optimization,
    "startup_cleanup": run_startup_cleanup,
    "memory_optimization": run_memory_optimization,
    "privacy_shield": run_privacy_shield,
    "disk_cleanup": run_disk_cleanup,
    "network_optimization": run_network_optimization,
    "log_cleanup": run_log_cleanup,
    "bloatware_removal": run_bloatware_removal,
}


def parse_tasks(input_data: Any) -> List[Task]:
    """Accept {"tasks": [...]}, a single task dict, or a list of tasks."""
    tasks: List[Task] = []
    if isinstance(input_data, dict):
        if isinstance(input_data.get("tasks"), list):
            tasks = input_data["tasks"]
        elif "type" in input_data:
            tasks = [input_data]
    elif isinstance(input_data, list):
        tasks = input_data
    tasks = [t for t in tasks if isinstance(t, dict)]

    # A restore point must exist before anything changes; keep only the first
    restore = [t for t in tasks if t.get("type") == "system_restore"]
    if restore:
        tasks = [restore[0]] + [t for t in tasks if t.get("type") != "system_restore"]
    return tasks


def load_input(raw_input: Optional[str]) -> Any:
    """Read the task description from a JSON string or file. None means All-in-One."""
    if not raw_input:
        return {"tasks": [{"type": "run_all"}]}
    if os.path.isfile(raw_input):
        logging.info(f"Reading from file: {raw_input}")
        with open(raw_input, "r", encoding="utf-8") as f:
            return json.load(f)
    return json.loads(raw_input)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="winoptimizer", description="WinOptimizer runner")
    parser.add_argument(
        "json_input",
        type=str,
        nargs="?",
        default=None,
        help="A JSON string or a path to a JSON file defining tasks. Defaults to the All-in-One run.",
    )
    parser.add_argument(
        "--auto",
        action="store_true",
        help="Run unattended: never prompt, keep anything that needs a choice.",
    )
    parser.add_argument(
        "--reboot",
        action="store_true",
        help="Restart automatically at the end of an All-in-One run.",
    )
    parser.add_argument(
        "--output-file",
        "-o",
        dest="output_file",
        type=str,
        default=None,
        help="Optional path to write the final JSON report.",
    )
    parser.add_argument(
        "--log-file",
        dest="log_file",
        type=str,
        default=None,
        help="Log file path. Defaults to a timestamped file in the log directory.",
    )
    parser.add_argument(
        "--env-file",
        dest="env_file",
        type=str,
        default=None,
        help="Optional .env file with WINOPTIMIZER_* settings.",
    )
    return parser


def main(argv: Optional[List[str]] = None):
    """Entrypoint: parse input, execute tasks, emit the final JSON report."""
    args = build_parser().parse_args(argv)
    configure_logging()

    settings = load_settings(args.env_file)
    log_path = args.log_file or default_log_path(settings)
    if not add_file_logging(log_path):
        log_path = None
    short_version = ".".join(VERSION.split(".")[:2])
    logging.info(f"=== Optimizer v{short_version} started ===")
    flush_logs()

    # Elevation (Windows only): registry, service and restore point changes need admin rights
    if os.name == "nt" and not is_admin():
        logging.info("Attempting to elevate privileges via UAC prompt...")
        code = relaunch_elevated(sys.argv[0:] if argv is None else [sys.argv[0]] + list(argv))
        if code != 0:
            logging.error("Elevation failed or cancelled (code %s)", code)
            sys.exit(code)
        sys.exit(0)

    if init_sentry(
        settings.sentry_dsn,
        enabled=settings.sentry_enabled,
        send_pii=settings.sentry_send_pii,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        environment=settings.environment,
        release=f"winoptimizer@{settings.version}",
    ):
        add_breadcrumb("Optimizer starting", category="lifecycle", level="info")

    try:
        input_data = load_input(args.json_input)
    except (OSError, ValueError) as e:
        logging.error(f"Failed to read task input: {e}")
        print(json.dumps({"overall_status": "failure", "error": "Invalid JSON input provided.", "results": []}, indent=2))
        sys.exit(1)

    tasks = parse_tasks(input_data)
    logging.info(f"Parsed {len(tasks)} tasks")
    flush_logs()

    confirm: Confirm = always(False) if args.auto else console_confirm

    all_results: List[TaskResult] = []
    overall_success = True
    run_stopped = False

    for idx, task in enumerate(tasks):
        task = prepare_task(task, settings, log_path)
        if task.get("type") == "run_all":
            task.setdefault("auto", args.auto)
            task.setdefault("reboot", args.reboot)
        elif not args.auto and task.get("type") == "startup_cleanup":
            task = _ask_removal_mode(task, "startup items")
        elif not args.auto and task.get("type") == "bloatware_removal":
            task = _ask_removal_mode(task, "preinstalled apps")

        result = execute_task(task, idx, len(tasks), confirm)
        all_results.append(result)
        if result.get("status") in FAILURE_STATUSES:
            overall_success = False
        if result.get("task_type") == "run_all":
            run_results = (result.get("summary") or {}).get("results") or {}
            if run_results.get("failed_steps"):
                overall_success = False
            if run_results.get("aborted"):
                run_stopped = True

        emit_progress(
            len(all_results),
            len(tasks),
            result,
            all_results,
            "success" if overall_success else "completed_with_errors",
        )
        if run_stopped:
            logging.info("RUN_STOPPED:user_requested")
            flush_logs()
            break

    system_metadata = {
        "hostname": platform.node(),
        "username": getpass.getuser(),
        "os_name": platform.system(),
        "os_version": platform.version(),
        "optimizer_version": settings.version,
    }
    if isinstance(input_data, dict) and input_data.get("metadata"):
        system_metadata.update(input_data["metadata"])

    if run_stopped:
        final_status = "stopped"
    elif overall_success:
        final_status = "success"
    else:
        final_status = "completed_with_errors"

    final_report = {
        "overall_status": final_status,
        "results": all_results,
        "metadata": system_metadata,
        "log_file": log_path,
    }

    add_breadcrumb(
        f"Optimizer run completed: {final_status}",
        category="lifecycle",
        level="info" if overall_success else "warning",
        total_tasks=len(tasks),
        completed_tasks=len(all_results),
    )

    # Final JSON report on stdout for a parent process to capture
    report_json = json.dumps(final_report, indent=2, default=str)
    print(report_json)
    logging.info(
        "PROGRESS_JSON_FINAL:%s",
        json.dumps(
            {
                "type": "final",
                "completed": len(all_results),
                "total": len(tasks),
                "results": all_results,
                "overall_status": final_status,
            },
            default=str,
        ),
    )
    flush_logs()

    if args.output_file:
        try:
            dirpath = os.path.dirname(args.output_file)
            if dirpath:
                os.makedirs(dirpath, exist_ok=True)
            with open(args.output_file, "w", encoding="utf-8") as out_f:
                out_f.write(report_json)
            logging.info(f"Final report written to '{args.output_file}'")
        except OSError as e:
            logging.error(f"Failed to write final report to '{args.output_file}': {e}")
        flush_logs()


if __name__ == "__main__":
    main()
