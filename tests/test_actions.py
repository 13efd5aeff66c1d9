"""Tests for action definitions and summaries."""

from dockerstrator.actions import (
    CLEANUP,
    DISPATCH_ACTIONS,
    MENU,
    START,
    STOP,
    confirm_question,
    format_summary,
)


def test_summary():
    results = {"api": True, "db": False, "web (prod)": True}
    assert format_summary(START, results) == "2/3 services started"
    assert format_summary(CLEANUP, {}) == "0/0 volumes removed"


def test_action_arguments():
    assert DISPATCH_ACTIONS["start"].args == ("up", "-d")
    assert DISPATCH_ACTIONS["stop"].args == ("down",)
    assert DISPATCH_ACTIONS["restart"].args == ("restart",)
    assert DISPATCH_ACTIONS["cleanup"].args == ("down", "-v")


def test_destructive_actions_confirm():
    assert STOP.confirm and CLEANUP.confirm
    assert not START.confirm


def test_confirm_questions():
    assert confirm_question(CLEANUP, ["a", "b"]) == "Remove volumes from 2 service(s)?"
    question = confirm_question(STOP, ["api", "db"])
    assert "  - api\n  - db" in question
    assert question.endswith("Stop 2 service(s)?")


def test_menu_keys_unique():
    keys = [key for key, _, _ in MENU]
    assert len(keys) == len(set(keys))
