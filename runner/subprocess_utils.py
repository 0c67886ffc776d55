"""Thin wrappers around subprocess for the OS tools the services call.

Windows console tools (sc, schtasks, netsh, ipconfig) and PowerShell are run
without a console window and with their output decoded leniently: some of
them emit UTF-16 with embedded NUL bytes when redirected.
"""

import subprocess
import os
import logging
from typing import List, Optional, Sequence

from sentry_config import add_breadcrumb

logger = logging.getLogger(__name__)

# subprocess.CREATE_NO_WINDOW only exists on Windows builds of Python
_CREATE_NO_WINDOW = getattr(subprocess, "CREATE_NO_WINDOW", 0)


class CommandError(Exception):
    """An external command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, output: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        detail = output.strip().splitlines()[-1] if output.strip() else ""
        message = f"{self.command[0]} exited with code {returncode}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


def decode_output(data: Optional[bytes]) -> str:
    """Decode command output, tolerating UTF-16 NUL padding and bad bytes."""
    if not data:
        return ""
    text = data.decode("utf-8", errors="replace")
    return text.replace("\x00", "")


def run_command(
    command: List[str],
    *,
    timeout: Optional[float] = 120,
    input: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """Run a command and return a CompletedProcess with decoded text output.

    Never raises for a non-zero exit; use ``check_command`` for that.
    ``FileNotFoundError`` and ``subprocess.TimeoutExpired`` propagate.
    """
    logger.debug(f"Running: {' '.join(command)}")
    proc = subprocess.run(
        command,
        input=input.encode("utf-8") if input is not None else None,
        stdin=None if input is not None else subprocess.DEVNULL,
        capture_output=True,
        timeout=timeout,
        check=False,
        creationflags=_CREATE_NO_WINDOW if os.name == "nt" else 0,
    )
    return subprocess.CompletedProcess(
        command,
        proc.returncode,
        decode_output(proc.stdout),
        decode_output(proc.stderr),
    )


def powershell_command(script: str) -> List[str]:
    return [
        "powershell",
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-Command",
        script,
    ]


def run_powershell(script: str, *, timeout: Optional[float] = 120) -> subprocess.CompletedProcess:
    return run_command(powershell_command(script), timeout=timeout)


def check_command(command: List[str], *, timeout: Optional[float] = 120) -> str:
    """Run a command and return its stdout; raise CommandError on failure."""
    proc = run_command(command, timeout=timeout)
    if proc.returncode != 0:
        output = "\n".join(part for part in (proc.stdout, proc.stderr) if part)
        add_breadcrumb(
            f"Command failed: {command[0]}",
            category="subprocess",
            level="warning",
            returncode=proc.returncode,
        )
        raise CommandError(command, proc.returncode, output)
    return proc.stdout


def check_powershell(script: str, *, timeout: Optional[float] = 120) -> str:
    return check_command(powershell_command(script), timeout=timeout)


def ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    return "'" + value.replace("'", "''") + "'"


__all__ = [
    "CommandError",
    "check_command",
    "check_powershell",
    "decode_output",
    "powershell_command",
    "ps_quote",
    "run_command",
    "run_powershell",
]
