"""Shared pytest fixtures for dockerstrator tests."""

import sys
from pathlib import Path
from typing import Sequence

import pytest

from dockerstrator.compose import Invocation
from dockerstrator.discovery import Unit


def python_factory(scripts: dict[str, str], default: str = "pass"):
    """Command factory running a Python snippet per unit label instead of docker."""

    def factory(unit: Unit, args: Sequence[str]) -> Invocation:
        code = scripts.get(unit.display_label(), default)
        return Invocation(sys.executable, ("-c", code, *args), unit.location)

    return factory


def make_unit(tmp_path: Path, name: str, variant: str | None = None) -> Unit:
    location = tmp_path / name
    location.mkdir(exist_ok=True)
    files = ("compose.yml",) if variant is None else (f"compose.{variant}.yml",)
    return Unit(name=name, location=location, descriptor_files=files, variant=variant)


def write_tree(root: Path, files: Sequence[str]) -> None:
    """Create empty files (and their parent directories) under root."""
    for relative in files:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("services: {}\n")


@pytest.fixture
def units(tmp_path: Path) -> list[Unit]:
    return [
        make_unit(tmp_path, "api"),
        make_unit(tmp_path, "db"),
        make_unit(tmp_path, "web", "prod"),
    ]
