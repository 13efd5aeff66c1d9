"""Tests for the command line entry point."""

import pytest

from conftest import python_factory, write_tree
from dockerstrator.compose import Invocation
from dockerstrator.runner import main


@pytest.fixture
def tree(tmp_path):
    root = tmp_path / "project"
    write_tree(
        root,
        [
            "api/compose.yml",
            "db/docker-compose.yml",
            "db/docker-compose.prod.yml",
            "node_modules/x/compose.yml",
        ],
    )
    return root


@pytest.fixture
def config_args(tmp_path):
    return ["--config", str(tmp_path / "config.yaml")]


def test_list(tree, config_args, capsys):
    assert main([str(tree), "--list", *config_args]) == 0
    out = capsys.readouterr().out
    lines = out.strip().splitlines()
    assert [line.split()[0] for line in lines] == ["api", "db", "db"]
    assert "(prod)" in lines[2]
    assert "(default)" in lines[1]


def test_exclude_flag(tree, config_args, capsys):
    assert main([str(tree), "--list", "--exclude", "db", *config_args]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert [line.split()[0] for line in lines] == ["api"]


def test_missing_directory(tmp_path, config_args, capsys):
    assert main([str(tmp_path / "nope"), *config_args]) == 1
    assert "Cannot access directory" in capsys.readouterr().err


def test_nothing_found(tmp_path, config_args, capsys):
    empty = tmp_path / "empty"
    empty.mkdir()
    assert main([str(empty), "--list", *config_args]) == 1
    assert "No docker-compose.yml found" in capsys.readouterr().out


def test_bad_config(tree, tmp_path, capsys):
    path = tmp_path / "bad.yaml"
    path.write_text("max_depth: -4\n")
    assert main([str(tree), "--list", "--config", str(path)]) == 1
    assert "Configuration error" in capsys.readouterr().err


def test_headless_start(tree, config_args, capsys):
    factory = python_factory({"db (prod)": "import sys; sys.exit(1)"})
    code = main([str(tree), "--run", "start", *config_args], command_factory=factory)
    out = capsys.readouterr().out
    assert code == 1
    assert "Starting services..." in out
    assert "2/3 services started" in out


def test_headless_selected_services(tree, config_args, capsys):
    factory = python_factory({})
    code = main(
        [str(tree), "--run", "restart", "--service", "api", *config_args],
        command_factory=factory,
    )
    assert code == 0
    assert "1/1 services restarted" in capsys.readouterr().out


def test_headless_unknown_service(tree, config_args, capsys):
    code = main([str(tree), "--run", "stop", "--service", "nope", *config_args])
    assert code == 2
    assert "Unknown service(s): nope" in capsys.readouterr().err


def test_headless_status(tree, config_args, capsys):
    factory = python_factory({"api": "print('abc123')"})
    code = main([str(tree), "--run", "status", *config_args], command_factory=factory)
    out = capsys.readouterr().out
    assert code == 0
    assert "api" in out and "UP" in out and "DOWN" in out


def test_headless_logs(tree, config_args, capsys):
    factory = python_factory({}, default="print('log line')")
    code = main(
        [str(tree), "--run", "logs", "--service", "api", *config_args],
        command_factory=factory,
    )
    assert code == 0
    assert "log line" in capsys.readouterr().out


def test_headless_logs_launch_failure(tree, config_args, capsys):
    def factory(unit, args):
        return Invocation("/nonexistent/docker", tuple(args), unit.location)

    code = main([str(tree), "--run", "logs", *config_args], command_factory=factory)
    assert code == 1
    assert "Could not start log streaming" in capsys.readouterr().err


def test_headless_logs_partial_launch_failure(tree, config_args):
    inner = python_factory({})

    def factory(unit, args):
        if unit.name == "api":
            return Invocation("/nonexistent/docker", tuple(args), unit.location)
        return inner(unit, args)

    assert main([str(tree), "--run", "logs", *config_args], command_factory=factory) == 0


def test_headless_log_dir(tree, tmp_path, config_args):
    log_dir = tmp_path / "logs"
    factory = python_factory({})
    main(
        [str(tree), "--run", "start", "--log-dir", str(log_dir), *config_args],
        command_factory=factory,
    )
    (run_dir,) = log_dir.iterdir()
    assert sorted(p.name for p in run_dir.iterdir()) == ["api.log", "db.log", "db_prod.log"]
