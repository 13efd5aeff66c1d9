"""Tests for compose command building."""

from pathlib import Path

import pytest

from dockerstrator.compose import ComposeMode, Invocation, build_command, compose_command
from dockerstrator.discovery import Unit


@pytest.fixture
def unit():
    return Unit(
        "api",
        Path("/srv/api"),
        descriptor_files=("docker-compose.prod.yml",),
        variant="prod",
    )


def test_plugin_mode(unit):
    invocation = build_command(unit, ComposeMode.PLUGIN)
    assert invocation.program == "docker"
    assert invocation.args == ("compose", "-f", "docker-compose.prod.yml")
    assert invocation.cwd == Path("/srv/api")


def test_legacy_mode(unit):
    invocation = build_command(unit, ComposeMode.LEGACY)
    assert invocation.argv == ["docker-compose", "-f", "docker-compose.prod.yml"]


def test_empty_descriptor_list_omits_file_flags():
    unit = Unit("api", Path("/srv/api"))
    assert build_command(unit, ComposeMode.PLUGIN).argv == ["docker", "compose"]
    assert build_command(unit, ComposeMode.LEGACY).argv == ["docker-compose"]


def test_one_flag_per_file_in_order():
    unit = Unit("api", Path("/srv/api"), descriptor_files=("b.yml", "a.yml"))
    assert build_command(unit, ComposeMode.PLUGIN).args == (
        "compose", "-f", "b.yml", "-f", "a.yml",
    )


def test_action_arguments_are_appended(unit):
    invocation = compose_command(unit, ComposeMode.PLUGIN, ["up", "-d"])
    assert invocation.argv == [
        "docker", "compose", "-f", "docker-compose.prod.yml", "up", "-d",
    ]
    assert str(invocation) == "docker compose -f docker-compose.prod.yml up -d"


def test_with_args_returns_new_invocation():
    base = Invocation("docker", ("compose",), Path("/x"))
    extended = base.with_args(["ps"])
    assert base.args == ("compose",)
    assert extended.args == ("compose", "ps")


def test_mode_from_legacy_flag():
    assert ComposeMode.from_legacy_flag(True) is ComposeMode.LEGACY
    assert ComposeMode.from_legacy_flag(False) is ComposeMode.PLUGIN
