"""Build docker compose invocations for a unit."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Sequence

from .discovery import Unit


class ComposeMode(Enum):
    """Which compose binary to call."""

    PLUGIN = "docker compose"
    LEGACY = "docker-compose"

    @classmethod
    def from_legacy_flag(cls, legacy: bool) -> ComposeMode:
        return cls.LEGACY if legacy else cls.PLUGIN


@dataclass(frozen=True)
class Invocation:
    """A program, its arguments and the directory to run it from."""

    program: str
    args: tuple[str, ...]
    cwd: Path

    def with_args(self, extra: Sequence[str]) -> Invocation:
        """Return a copy with extra arguments appended."""
        return Invocation(self.program, self.args + tuple(extra), self.cwd)

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


def build_command(unit: Unit, mode: ComposeMode) -> Invocation:
    """Return the base compose invocation targeting a unit."""
    if mode is ComposeMode.LEGACY:
        program, args = "docker-compose", []
    else:
        program, args = "docker", ["compose"]

    for filename in unit.descriptor_files:
        args.extend(["-f", filename])

    return Invocation(program=program, args=tuple(args), cwd=unit.location)


def compose_command(unit: Unit, mode: ComposeMode, extra: Sequence[str] = ()) -> Invocation:
    """Return the compose invocation for a unit with action arguments appended."""
    return build_command(unit, mode).with_args(extra)
