"""
Test configuration and fixtures for WinOptimizer tests.

Provides small pattern tables and inventories shaped like real startup
entries, plus helpers for recording actions and confirmation prompts.
"""

import pytest

from classifier import InventoryItem, PatternTables
from pattern_matcher import Bucket, PatternEntry


def entries(category, *pairs):
    return tuple(PatternEntry(pattern, label, category) for pattern, label in pairs)


@pytest.fixture
def protected_table():
    """Fixture providing a safety whitelist."""
    return entries(
        Bucket.PROTECTED,
        ("SecurityHealth*", "Windows Security"),
        ("RtkAud*", "Realtek Audio"),
        ("explorer", "Windows Explorer"),
    )


@pytest.fixture
def junk_table():
    """Fixture providing definite-junk (category A) patterns."""
    return entries(
        Bucket.CATEGORY_A,
        ("Adobe*Updater*", "Adobe Updater"),
        ("Adobe*", "Adobe"),
        ("CCleaner*", "CCleaner"),
    )


@pytest.fixture
def popular_table():
    """Fixture providing popular/optional (category B) patterns."""
    return entries(
        Bucket.CATEGORY_B,
        ("Steam*", "Steam"),
        ("OneDrive*", "Microsoft OneDrive"),
    )


@pytest.fixture
def startup_tables(protected_table, junk_table, popular_table):
    return PatternTables(
        protected=protected_table, category_a=junk_table, category_b=popular_table
    )


@pytest.fixture
def startup_inventory():
    """Fixture providing a mixed inventory of Run-key values."""
    return [
        InventoryItem("SecurityHealth", r"%windir%\system32\SecurityHealthSystray.exe", "HKLM\\Run"),
        InventoryItem("AdobeAAMUpdater-1.0", r"C:\Program Files\Adobe\AAMUpdater.exe", "HKLM\\Run"),
        InventoryItem("Steam", r"C:\Steam\steam.exe -silent", "HKCU\\Run"),
        InventoryItem("MyCustomTool", r"C:\Tools\tool.exe", "HKCU\\Run"),
        InventoryItem("CCleanerMonitor", r"C:\CCleaner\CCleaner64.exe /MONITOR", "HKCU\\Run"),
    ]


class Recorder:
    """Callable that records what it was called with and fails on request."""

    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def __call__(self, item):
        key = getattr(item, "id", item)
        self.calls.append(key)
        if key in self.fail_on:
            raise PermissionError(f"Access is denied: {key}")


@pytest.fixture
def recorder():
    return Recorder


class PromptLog:
    """Confirmation callback that answers from a mapping and records prompts."""

    def __init__(self, answers=None, default=False):
        self.answers = answers or {}
        self.default = default
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        for needle, answer in self.answers.items():
            if needle in prompt:
                return answer
        return self.default


@pytest.fixture
def prompt_log():
    return PromptLog
