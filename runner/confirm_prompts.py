"""Yes/no confirmation callbacks handed to the planner and the pipeline.

The core never reads the console itself; it only calls one of these. Console
prompts are written to stderr so stdout stays reserved for the JSON report.
"""

import logging
import sys
from typing import Callable, Iterable, Sequence, Tuple

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]

_YES = ("y", "yes")
_NO = ("n", "no")


def _say(text: str) -> None:
    sys.stderr.write(text + "\n")
    sys.stderr.flush()


def _ask(prompt: str) -> str:
    sys.stderr.write(prompt)
    sys.stderr.flush()
    return input()


def console_confirm(prompt: str) -> bool:
    """Ask on the console until the user answers Y or N."""
    while True:
        try:
            answer = _ask(f"{prompt} [Y/N]: ").strip().lower()
        except EOFError:
            # stdin closed (piped run): treat as "no"
            return False
        if answer in _YES:
            return True
        if answer in _NO:
            return False
        _say("Please answer Y or N.")


def console_choice(prompt: str, options: Sequence[Tuple[str, str]], default: str) -> str:
    """Show numbered options and return the chosen key.

    Empty input or a closed stdin returns ``default``.
    """
    _say(prompt)
    for number, (_key, text) in enumerate(options, 1):
        _say(f"  [{number}] {text}")
    while True:
        try:
            answer = _ask(f"Choose 1-{len(options)}: ").strip()
        except EOFError:
            return default
        if not answer:
            return default
        if answer.isdigit() and 1 <= int(answer) <= len(options):
            return options[int(answer) - 1][0]
        _say(f"Please enter a number between 1 and {len(options)}.")


def always(answer: bool) -> Confirm:
    """Return a callback that gives the same answer without blocking."""

    def _confirm(prompt: str) -> bool:
        logger.info(f"{prompt} -> {'yes' if answer else 'no'} (automatic)")
        return answer

    return _confirm


def seeded(answers: Iterable[bool], default: bool = False) -> Confirm:
    """Return a callback replaying ``answers`` in order, then ``default``."""
    remaining = iter(list(answers))

    def _confirm(prompt: str) -> bool:
        answer = next(remaining, default)
        logger.info(f"{prompt} -> {'yes' if answer else 'no'} (pre-seeded)")
        return bool(answer)

    return _confirm


__all__ = ["Confirm", "always", "console_choice", "console_confirm", "seeded"]
