"""Tests for live log relaying."""

import asyncio
import time

import pytest

from conftest import make_unit, python_factory
from dockerstrator.compose import Invocation
from dockerstrator.executor import OVERSIZED_LINE
from dockerstrator.relay import LiveRelay, RelayOutcome

FOREVER = (
    "import sys, time\n"
    "print('started', flush=True)\n"
    "while True:\n"
    "    time.sleep(0.05)\n"
)


class Sink:
    def __init__(self):
        self.stdout = []
        self.stderr = []


def _relay(scripts, sink, default="pass"):
    return LiveRelay(
        on_stdout=sink.stdout.append,
        on_stderr=sink.stderr.append,
        command_factory=python_factory(scripts, default=default),
    )


def test_relays_both_streams_in_order(units):
    sink = Sink()
    script = (
        "import sys\n"
        "for i in range(200):\n"
        "    print(f'out {i}')\n"
        "    print(f'err {i}', file=sys.stderr)\n"
    )
    outcome = asyncio.run(_relay({}, sink, default=script).follow(units[0]))
    assert outcome is RelayOutcome.COMPLETED
    assert sink.stdout == [f"out {i}" for i in range(200)]
    assert sink.stderr == [f"err {i}" for i in range(200)]


def test_large_stderr_does_not_stall(units):
    sink = Sink()
    script = "import sys\nfor _ in range(5000):\n    sys.stderr.write('x' * 100 + '\\n')\nprint('end')"
    outcome = asyncio.run(_relay({}, sink, default=script).follow(units[0]))
    assert outcome is RelayOutcome.COMPLETED
    assert len(sink.stderr) == 5000
    assert sink.stdout == ["end"]


def test_passes_follow_arguments(units):
    sink = Sink()
    script = "import sys; print(' '.join(sys.argv[1:]))"
    asyncio.run(_relay({}, sink, default=script).follow(units[0]))
    assert sink.stdout == ["logs -f"]


def test_cancellation_terminates_process(units):
    sink = Sink()
    relay = _relay({}, sink, default=FOREVER)
    seen = {}

    def cancel_requested():
        if sink.stdout and "at" not in seen:
            seen["at"] = time.monotonic()
            seen["process"] = relay.process
        return bool(sink.stdout)

    start = time.monotonic()
    outcome = asyncio.run(relay.follow(units[0], cancel_requested))
    finished = time.monotonic()

    assert outcome is RelayOutcome.CANCELLED
    assert sink.stdout == ["started"]
    assert finished - seen["at"] < 2
    assert finished - start < 10
    assert seen["process"].returncode is not None


def test_sigterm_ignored_falls_back_to_kill(units, monkeypatch):
    monkeypatch.setattr("dockerstrator.relay.KILL_GRACE", 0.5)
    sink = Sink()
    script = (
        "import signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "while True:\n"
        "    time.sleep(0.05)\n"
    )
    relay = _relay({}, sink, default=script)
    start = time.monotonic()
    outcome = asyncio.run(relay.follow(units[0], lambda: bool(sink.stdout)))
    assert outcome is RelayOutcome.CANCELLED
    assert time.monotonic() - start < 10


def test_launch_failure(units):
    sink = Sink()
    relay = LiveRelay(
        on_stdout=sink.stdout.append,
        on_stderr=sink.stderr.append,
        command_factory=lambda unit, args: Invocation(
            "/nonexistent/docker", tuple(args), unit.location
        ),
    )
    assert asyncio.run(relay.follow(units[0])) is RelayOutcome.LAUNCH_FAILED
    assert sink.stderr and sink.stderr[0].startswith("ERROR:")


def test_follow_all_runs_sequentially(tmp_path):
    units = [make_unit(tmp_path, "a"), make_unit(tmp_path, "b")]
    sink = Sink()
    relay = _relay({"a": "print('from a')", "b": "print('from b')"}, sink)
    outcome = asyncio.run(relay.follow_all(units))
    assert outcome is RelayOutcome.COMPLETED
    assert sink.stdout == ["==> a <==", "from a", "==> b <==", "from b"]
    assert relay.outcomes == {"a": RelayOutcome.COMPLETED, "b": RelayOutcome.COMPLETED}


def test_follow_all_stops_on_cancel(tmp_path):
    units = [make_unit(tmp_path, "a"), make_unit(tmp_path, "b")]
    sink = Sink()
    relay = _relay({"a": FOREVER, "b": "print('from b')"}, sink)
    outcome = asyncio.run(relay.follow_all(units, lambda: "started" in sink.stdout))
    assert outcome is RelayOutcome.CANCELLED
    assert "==> b <==" not in sink.stdout
    assert relay.outcomes == {"a": RelayOutcome.CANCELLED}


def test_default_sinks_write_to_terminal_streams(units, capsys):
    relay = LiveRelay(
        command_factory=python_factory(
            {}, default="import sys; print('o'); print('e', file=sys.stderr)"
        )
    )
    asyncio.run(relay.follow(units[0]))
    captured = capsys.readouterr()
    assert captured.out == "o\n"
    assert captured.err == "e\n"


@pytest.mark.parametrize("follow_all", [False, True])
def test_cancelled_task_kills_process(units, follow_all):
    sink = Sink()
    relay = _relay({}, sink, default=FOREVER)

    async def scenario():
        if follow_all:
            task = asyncio.create_task(relay.follow_all(units[:1]))
        else:
            task = asyncio.create_task(relay.follow(units[0]))
        while "started" not in sink.stdout:
            await asyncio.sleep(0.05)
        proc = relay.process
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        for _ in range(100):
            if proc.returncode is not None:
                break
            await asyncio.sleep(0.05)
        return proc

    proc = asyncio.run(asyncio.wait_for(scenario(), timeout=30))
    assert proc.returncode is not None
    assert relay.process is None


def test_oversized_line_is_dropped(units, monkeypatch):
    monkeypatch.setattr("dockerstrator.relay.STREAM_LIMIT", 1024)
    sink = Sink()
    script = "print('x' * 5000); print('after')"
    outcome = asyncio.run(_relay({}, sink, default=script).follow(units[0]))
    assert outcome is RelayOutcome.COMPLETED
    assert OVERSIZED_LINE in sink.stdout
    assert sink.stdout[-1] == "after"
