#!/usr/bin/env python3
"""Main entry point for dockerstrator."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from .actions import DISPATCH_ACTIONS, format_summary
from .config import Config, SessionOverrides, load_config
from .dashboard import Dashboard
from .discovery import Unit, discover_units
from .executor import CommandFactory, Executor, UnitStatus
from .relay import LiveRelay, RelayOutcome
from .terminal import CancelKeys

HEADLESS_ACTIONS = ["start", "stop", "restart", "status", "cleanup", "logs"]

# ANSI colors for different units
COLORS = [
    "\033[36m",  # Cyan
    "\033[33m",  # Yellow
    "\033[35m",  # Magenta
    "\033[32m",  # Green
    "\033[34m",  # Blue
    "\033[91m",  # Light Red
    "\033[96m",  # Light Cyan
    "\033[93m",  # Light Yellow
]
GREEN = "\033[32m"
RED = "\033[31m"
YELLOW = "\033[33m"
RESET = "\033[0m"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dockerstrator",
        description="Discover docker compose projects in a directory tree and manage them",
    )
    parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        type=Path,
        help="Directory to scan (default: current directory)",
    )
    parser.add_argument("--config", type=Path, help="Path to the settings file")
    parser.add_argument("--max-depth", type=int, help="Override the max search depth")
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="NAME",
        help="Directory name to skip (repeatable, added to the configured ones)",
    )
    parser.add_argument(
        "--legacy",
        action="store_true",
        help="Use the docker-compose binary instead of 'docker compose'",
    )
    parser.add_argument("--log-dir", type=Path, help="Write per-service action logs here")
    parser.add_argument(
        "--list", action="store_true", help="List discovered services and exit"
    )
    parser.add_argument(
        "--run",
        choices=HEADLESS_ACTIONS,
        help="Run one action without the dashboard",
    )
    parser.add_argument(
        "--service",
        action="append",
        default=[],
        metavar="LABEL",
        help="Limit --run to this service (repeatable)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def main(argv: Sequence[str] | None = None, command_factory: CommandFactory | None = None) -> int:
    """Main entry point."""
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.verbose)

    root = args.directory.expanduser()
    if not root.is_dir():
        print(f"Error: Cannot access directory {str(root)!r}", file=sys.stderr)
        return 1
    root = root.resolve()

    # Load configuration
    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Command line overrides apply to this session only
    if args.max_depth is not None and args.max_depth < 0:
        print("Error: --max-depth must be non-negative", file=sys.stderr)
        return 1
    overrides = SessionOverrides(
        max_depth=args.max_depth,
        excluded_dirs=tuple(args.exclude),
        legacy_compose=args.legacy,
        log_dir=args.log_dir.expanduser().resolve() if args.log_dir else None,
    )
    settings = overrides.apply(config)

    units = discover_units(
        root, max_depth=settings.max_depth, excluded_names=settings.excluded_dirs
    )
    if not units:
        print(f"{RED}No docker-compose.yml found in this directory structure.{RESET}")
        return 1

    if args.list:
        _print_units(units)
        return 0

    if args.run:
        selected = _select_units(units, args.service)
        if selected is None:
            return 2
        return _run_headless(args.run, selected, settings, command_factory)

    app = Dashboard(root, config, units, command_factory=command_factory, overrides=overrides)
    app.run()
    print(f"{GREEN}Goodbye!{RESET}")
    return 0


def _print_units(units: Sequence[Unit]) -> None:
    width = max(len(unit.display_label()) for unit in units)
    for unit in units:
        files = " ".join(unit.descriptor_files) or "(default)"
        print(f"{unit.display_label():<{width}}  {unit.location}  {files}")


def _select_units(units: Sequence[Unit], labels: Sequence[str]) -> list[Unit] | None:
    """Pick units by label; all of them when no label is given."""
    if not labels:
        return list(units)
    by_label = {unit.display_label(): unit for unit in units}
    unknown = [label for label in labels if label not in by_label]
    if unknown:
        print(f"Error: Unknown service(s): {', '.join(unknown)}", file=sys.stderr)
        print(f"Available: {', '.join(by_label)}", file=sys.stderr)
        return None
    return [by_label[label] for label in dict.fromkeys(labels)]


def _run_headless(
    action_name: str,
    units: list[Unit],
    config: Config,
    command_factory: CommandFactory | None = None,
) -> int:
    """Run one action without the TUI dashboard."""
    # Assign colors to units
    unit_colors = {
        unit.display_label(): COLORS[i % len(COLORS)] for i, unit in enumerate(units)
    }

    def on_output(label: str, line: str) -> None:
        color = unit_colors.get(label, "")
        print(f"{color}[{label}]{RESET} {line}")

    def on_status(label: str, status: UnitStatus) -> None:
        color = unit_colors.get(label, "")
        print(f"{color}[{label}]{RESET} Status: {status.value}")

    if action_name == "logs":
        relay = LiveRelay(config.compose_mode, command_factory=command_factory)
        print(f"{YELLOW}Streaming logs (Esc, q or Ctrl+C to stop)...{RESET}")
        with CancelKeys() as cancel:
            asyncio.run(relay.follow_all(units, cancel))
        outcomes = list(relay.outcomes.values())
        if outcomes and all(o is RelayOutcome.LAUNCH_FAILED for o in outcomes):
            print("\nCould not start log streaming for any service", file=sys.stderr)
            return 1
        return 0

    executor = Executor(
        config.compose_mode,
        on_output=on_output,
        on_status=on_status,
        log_dir=config.log_dir,
        command_factory=command_factory,
    )

    if action_name == "status":
        statuses = asyncio.run(executor.check_statuses(units))
        for unit in units:
            label = unit.display_label()
            state = f"{GREEN}UP{RESET}" if statuses[label] else f"{RED}DOWN{RESET}"
            print(f"  {unit_colors[label]}{label}{RESET}: {state}")
        return 0

    action = DISPATCH_ACTIONS[action_name]
    print(f"{YELLOW}{action.progress}{RESET}")
    results = asyncio.run(executor.run_all(units, action.args))

    print()
    for unit in units:
        label = unit.display_label()
        outcome = f"{GREEN}OK{RESET}" if results[label] else f"{RED}ERROR{RESET}"
        print(f"  {unit_colors[label]}{label}{RESET} ... {outcome}")
    print(f"\n{format_summary(action, results)}")

    # Check final status
    failed = [label for label, ok in results.items() if not ok]
    if failed:
        print(f"\nFailed services: {', '.join(failed)}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
