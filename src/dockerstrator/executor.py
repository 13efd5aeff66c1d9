"""Concurrent compose execution across units."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, Sequence

from .actions import STATUS_ARGS
from .compose import ComposeMode, Invocation, compose_command
from .discovery import Unit

logger = logging.getLogger(__name__)

# asyncio's default 64 KiB line limit is too small for some compose output
STREAM_LIMIT = 1024 * 1024

# Emitted in place of a line longer than the stream limit
OVERSIZED_LINE = "[line too long, dropped]"


class UnitStatus(Enum):
    """Status of a unit's execution."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class UnitState:
    """Runtime state for a unit during one dispatch."""

    unit: Unit
    status: UnitStatus = UnitStatus.PENDING
    output_lines: list[str] = field(default_factory=list)
    error_message: str = ""
    log_file: Path | None = None


# Type aliases for callbacks
OutputCallback = Callable[[str, str], None]  # (label, line) -> None
StatusCallback = Callable[[str, UnitStatus], None]  # (label, status) -> None
CommandFactory = Callable[[Unit, Sequence[str]], Invocation]


def default_command_factory(mode: ComposeMode) -> CommandFactory:
    """Command factory building compose invocations for the given mode."""

    def factory(unit: Unit, args: Sequence[str]) -> Invocation:
        return compose_command(unit, mode, args)

    return factory


def _log_name(label: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", label).strip("_") or "unit"


async def read_lines(stream: asyncio.StreamReader) -> AsyncIterator[str]:
    """Yield decoded lines from a subprocess pipe until EOF.

    asyncio discards a line longer than the stream limit and raises; the
    marker line is yielded instead and reading carries on so the pipe keeps
    draining.
    """
    while True:
        try:
            line = await stream.readline()
        except (ValueError, asyncio.LimitOverrunError) as e:
            logger.debug("Dropping oversized output line: %s", e)
            yield OVERSIZED_LINE
            continue
        if not line:
            break
        yield line.decode("utf-8", errors="replace").rstrip("\n\r")


class Executor:
    """Runs a compose action on many units at once."""

    def __init__(
        self,
        mode: ComposeMode = ComposeMode.PLUGIN,
        on_output: OutputCallback | None = None,
        on_status: StatusCallback | None = None,
        log_dir: Path | None = None,
        command_factory: CommandFactory | None = None,
    ):
        self.mode = mode
        self.on_output = on_output
        self.on_status = on_status
        self.log_dir = log_dir
        self.command_factory = command_factory or default_command_factory(mode)
        self.states: dict[str, UnitState] = {}
        self._run_log_dir: Path | None = None

    def _setup_logging(self, action: str) -> None:
        """Set up a timestamped log directory for this dispatch."""
        self._run_log_dir = None
        if self.log_dir is None:
            return
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        run_dir = Path(self.log_dir) / f"{timestamp}_{_log_name(action)}"
        try:
            run_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create log directory %s: %s", run_dir, e)
            return
        self._run_log_dir = run_dir

    def _emit_output(self, label: str, line: str) -> None:
        """Emit output line for a unit."""
        state = self.states.get(label)
        if state is not None:
            state.output_lines.append(line)

            if state.log_file:
                with open(state.log_file, "a") as f:
                    f.write(line + "\n")

        if self.on_output:
            self.on_output(label, line)

    def _emit_status(self, label: str, status: UnitStatus) -> None:
        """Emit status change for a unit."""
        if label in self.states:
            self.states[label].status = status
        if self.on_status:
            self.on_status(label, status)

    async def run_all(self, units: Sequence[Unit], args: Sequence[str]) -> dict[str, bool]:
        """Run one compose action on all units in parallel.

        Returns a mapping of each unit's display label to whether the action
        succeeded. Every unit appears exactly once; a unit that cannot be
        launched or crashes internally is reported as failed.
        """
        self._setup_logging(" ".join(args) or "run")

        self.states = {}
        for unit in units:
            label = unit.display_label()
            log_file = None
            if self._run_log_dir is not None:
                log_file = self._run_log_dir / f"{_log_name(label)}.log"
            self.states[label] = UnitState(unit=unit, log_file=log_file)

        tasks = [self._run_unit(unit, args) for unit in units]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results: dict[str, bool] = {}
        for unit, outcome in zip(units, outcomes):
            label = unit.display_label()
            if isinstance(outcome, BaseException):
                logger.warning("Unit %s failed internally: %r", label, outcome)
                self.states[label].error_message = f"Internal error: {outcome}"
                self._emit_status(label, UnitStatus.FAILED)
                results[label] = False
            else:
                results[label] = outcome
        return results

    async def _run_unit(self, unit: Unit, args: Sequence[str]) -> bool:
        """Run the action for a single unit."""
        label = unit.display_label()
        state = self.states[label]
        invocation = self.command_factory(unit, args)

        self._emit_status(label, UnitStatus.RUNNING)
        self._emit_output(label, f"$ {invocation}")

        success = await self._run_command(label, invocation)

        if success:
            self._emit_status(label, UnitStatus.SUCCESS)
        else:
            if not state.error_message:
                state.error_message = f"Command failed: {invocation}"
            self._emit_status(label, UnitStatus.FAILED)
        return success

    async def _run_command(self, label: str, invocation: Invocation) -> bool:
        """Run a command and stream its output. Returns True if successful."""
        try:
            proc = await asyncio.create_subprocess_exec(
                *invocation.argv,
                cwd=invocation.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            logger.warning("Cannot launch %s for %s: %s", invocation.program, label, e)
            self.states[label].error_message = f"Launch error: {e}"
            self._emit_output(label, f"ERROR: {e}")
            return False

        # Read stdout and stderr concurrently
        async def read_stream(stream, is_stderr: bool = False):
            prefix = "STDERR: " if is_stderr else ""
            async for text in read_lines(stream):
                self._emit_output(label, f"{prefix}{text}")

        await asyncio.gather(
            read_stream(proc.stdout),
            read_stream(proc.stderr, is_stderr=True),
        )

        exit_status = await proc.wait()
        if exit_status != 0:
            logger.info("%s exited with status %s for %s", invocation.program, exit_status, label)
            self._emit_output(label, f"Command exited with status {exit_status}")
            return False

        return True

    async def check_statuses(self, units: Sequence[Unit]) -> dict[str, bool]:
        """Report whether each unit has running containers."""
        tasks = [self._query_running(unit) for unit in units]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results: dict[str, bool] = {}
        for unit, outcome in zip(units, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Status query for %s failed: %r", unit.display_label(), outcome)
                outcome = False
            results[unit.display_label()] = outcome
        return results

    async def _query_running(self, unit: Unit) -> bool:
        """A unit is running when ``ps -q`` lists at least one container."""
        invocation = self.command_factory(unit, STATUS_ARGS)
        try:
            proc = await asyncio.create_subprocess_exec(
                *invocation.argv,
                cwd=invocation.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.warning("Cannot launch %s for %s: %s", invocation.program, unit.display_label(), e)
            return False

        stdout, _ = await proc.communicate()
        return bool(stdout.strip())
