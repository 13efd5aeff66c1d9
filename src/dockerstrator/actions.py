"""Actions offered on discovered units."""

from __future__ import annotations

from dataclasses import dataclass

STATUS_ARGS = ("ps", "-q")
LOGS_ARGS = ("logs", "-f")


@dataclass(frozen=True)
class Action:
    """A compose action dispatched to every selected unit."""

    name: str
    args: tuple[str, ...]
    progress: str
    done: str
    confirm: bool = False


START = Action("start", ("up", "-d"), "Starting services...", "services started")
STOP = Action(
    "stop",
    ("down",),
    "Stopping services...",
    "services stopped",
    confirm=True,
)
RESTART = Action("restart", ("restart",), "Restarting services...", "services restarted")
CLEANUP = Action(
    "cleanup",
    ("down", "-v"),
    "Removing volumes...",
    "volumes removed",
    confirm=True,
)

DISPATCH_ACTIONS = {action.name: action for action in (START, STOP, RESTART, CLEANUP)}

# Main menu entries: (key, action name, title)
MENU = [
    ("s", "start", "Start services"),
    ("p", "stop", "Stop services"),
    ("r", "restart", "Restart services"),
    ("t", "status", "Show status"),
    ("l", "logs", "Stream logs"),
    ("c", "cleanup", "Cleanup volumes"),
    ("g", "settings", "Settings"),
    ("f", "rescan", "Rescan directory"),
    ("q", "quit", "Exit"),
]


def count_successes(results: dict[str, bool]) -> int:
    return sum(1 for ok in results.values() if ok)


def format_summary(action: Action, results: dict[str, bool]) -> str:
    """Summary line such as ``2/3 services started``."""
    return f"{count_successes(results)}/{len(results)} {action.done}"


def confirm_question(action: Action, labels: list[str]) -> str:
    """Question asked before a destructive action."""
    if action is CLEANUP:
        return f"Remove volumes from {len(labels)} service(s)?"
    listing = "\n".join(f"  - {label}" for label in labels)
    return f"Services to stop:\n{listing}\n\nStop {len(labels)} service(s)?"
