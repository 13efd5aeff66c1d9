"""Live log streaming with user cancellation."""

from __future__ import annotations

import asyncio
import logging
import sys
from enum import Enum
from typing import Callable, Sequence

from .actions import LOGS_ARGS
from .compose import ComposeMode
from .discovery import Unit
from .executor import STREAM_LIMIT, CommandFactory, default_command_factory, read_lines

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05
# How long a terminated process may take before it is killed
KILL_GRACE = 5.0

LineSink = Callable[[str], None]
CancelCheck = Callable[[], bool]


class RelayOutcome(Enum):
    """How a relay session ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    LAUNCH_FAILED = "launch_failed"


def _write_stdout(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def _write_stderr(line: str) -> None:
    sys.stderr.write(line + "\n")
    sys.stderr.flush()


def _never() -> bool:
    return False


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass


class LiveRelay:
    """Streams ``logs -f`` output for units until it ends or is cancelled."""

    def __init__(
        self,
        mode: ComposeMode = ComposeMode.PLUGIN,
        on_stdout: LineSink | None = None,
        on_stderr: LineSink | None = None,
        poll_interval: float = POLL_INTERVAL,
        command_factory: CommandFactory | None = None,
        args: Sequence[str] = LOGS_ARGS,
    ):
        self.on_stdout = on_stdout or _write_stdout
        self.on_stderr = on_stderr or _write_stderr
        self.poll_interval = poll_interval
        self.command_factory = command_factory or default_command_factory(mode)
        self.args = tuple(args)
        self.process: asyncio.subprocess.Process | None = None
        self.outcomes: dict[str, RelayOutcome] = {}

    async def follow(self, unit: Unit, cancel_requested: CancelCheck = _never) -> RelayOutcome:
        """Stream one unit's output until the process exits or cancellation."""
        invocation = self.command_factory(unit, self.args)
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
            logger.warning("Cannot launch %s for %s: %s", invocation.program, unit.display_label(), e)
            self.on_stderr(f"ERROR: {e}")
            return RelayOutcome.LAUNCH_FAILED

        self.process = proc
        # Both pipes must be drained or a full stderr buffer stalls the process
        readers = asyncio.gather(
            self._pump(proc.stdout, self.on_stdout),
            self._pump(proc.stderr, self.on_stderr),
        )
        waiter = asyncio.ensure_future(proc.wait())

        cancelled = False
        try:
            while not waiter.done():
                if cancel_requested():
                    cancelled = True
                    await self._terminate(proc, waiter)
                    break
                await asyncio.wait({waiter}, timeout=self.poll_interval)

            await waiter
            await readers
        finally:
            self.process = None
            # Still running only if this task was cancelled or a reader failed
            if proc.returncode is None:
                logger.debug("Relay for %s abandoned, killing %s", unit.display_label(), proc.pid)
                _kill(proc)
            for pending in (waiter, readers):
                if not pending.done():
                    pending.cancel()

        if cancelled:
            logger.debug("Relay for %s cancelled", unit.display_label())
            return RelayOutcome.CANCELLED
        return RelayOutcome.COMPLETED

    async def follow_all(
        self, units: Sequence[Unit], cancel_requested: CancelCheck = _never
    ) -> RelayOutcome:
        """Follow each unit in turn; a cancellation ends the whole sequence.

        The outcome of every unit followed is kept in ``outcomes``.
        """
        self.outcomes = {}
        outcome = RelayOutcome.COMPLETED
        for unit in units:
            self.on_stdout(f"==> {unit.display_label()} <==")
            outcome = await self.follow(unit, cancel_requested)
            self.outcomes[unit.display_label()] = outcome
            if outcome is RelayOutcome.CANCELLED:
                break
        return outcome

    async def _terminate(self, proc: asyncio.subprocess.Process, waiter: asyncio.Future) -> None:
        """Send SIGTERM, then SIGKILL if the process does not exit in time."""
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(asyncio.shield(waiter), timeout=KILL_GRACE)
        except asyncio.TimeoutError:
            logger.warning("Process %s ignored SIGTERM, killing it", proc.pid)
            _kill(proc)

    @staticmethod
    async def _pump(stream: asyncio.StreamReader | None, sink: LineSink) -> None:
        """Forward complete lines from a pipe until end of stream."""
        if stream is None:
            return
        async for line in read_lines(stream):
            sink(line)
