"""
Unit tests for confirmation callbacks.
"""

import builtins

import pytest

from confirm_prompts import always, console_choice, console_confirm, seeded


def feed_input(monkeypatch, *answers):
    """Replace input() with one that replays ``answers`` then raises EOFError."""
    remaining = iter(answers)

    def fake_input(prompt=""):
        try:
            return next(remaining)
        except StopIteration:
            raise EOFError

    monkeypatch.setattr(builtins, "input", fake_input)


class TestCallbacks:
    def test_always(self):
        assert always(True)("Continue?") is True
        assert always(False)("Continue?") is False

    def test_seeded_then_default(self):
        confirm = seeded([True, False])
        assert [confirm("q") for _ in range(4)] == [True, False, False, False]

    def test_seeded_custom_default(self):
        confirm = seeded([], default=True)
        assert confirm("q") is True


class TestConsoleConfirm:
    @pytest.mark.parametrize("answer,expected", [("y", True), ("YES", True), (" n ", False), ("No", False)])
    def test_answers(self, monkeypatch, answer, expected):
        feed_input(monkeypatch, answer)
        assert console_confirm("Remove Steam?") is expected

    def test_reasks_until_valid(self, monkeypatch, capsys):
        feed_input(monkeypatch, "maybe", "", "y")
        assert console_confirm("Restart now?") is True
        err = capsys.readouterr().err
        assert err.count("Please answer Y or N.") == 2

    def test_closed_stdin_means_no(self, monkeypatch):
        feed_input(monkeypatch)
        assert console_confirm("Restart now?") is False

    def test_prompt_goes_to_stderr(self, monkeypatch, capsys):
        feed_input(monkeypatch, "y")
        console_confirm("Remove Steam?")
        captured = capsys.readouterr()
        assert "Remove Steam? [Y/N]: " in captured.err
        assert captured.out == ""


class TestConsoleChoice:
    OPTIONS = [("all", "Everything"), ("some", "Only junk"), ("none", "Nothing")]

    def test_numbered_choice(self, monkeypatch):
        feed_input(monkeypatch, "2")
        assert console_choice("Pick", self.OPTIONS, "none") == "some"

    def test_empty_answer_returns_default(self, monkeypatch):
        feed_input(monkeypatch, "")
        assert console_choice("Pick", self.OPTIONS, "none") == "none"

    def test_out_of_range_then_valid(self, monkeypatch, capsys):
        feed_input(monkeypatch, "9", "x", "1")
        assert console_choice("Pick", self.OPTIONS, "none") == "all"
        assert "[3] Nothing" in capsys.readouterr().err

    def test_closed_stdin_returns_default(self, monkeypatch):
        feed_input(monkeypatch)
        assert console_choice("Pick", self.OPTIONS, "some") == "some"
