"""Configuration loader for dockerstrator."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .compose import ComposeMode

DEFAULT_MAX_DEPTH = 7


def default_config_path() -> Path:
    """Location of the user's settings file."""
    return Path("~/.config/dockerstrator/config.yaml").expanduser()


@dataclass
class Config:
    """User settings for discovery and dispatch."""

    max_depth: int | None = DEFAULT_MAX_DEPTH
    excluded_dirs: list[str] = field(default_factory=list)
    legacy_compose: bool = False
    log_dir: Path | None = None
    source_path: Path | None = None  # Where the settings were loaded from

    @property
    def compose_mode(self) -> ComposeMode:
        return ComposeMode.from_legacy_flag(self.legacy_compose)

    def reset(self) -> None:
        """Restore default values, keeping the source path."""
        defaults = Config()
        self.max_depth = defaults.max_depth
        self.excluded_dirs = defaults.excluded_dirs
        self.legacy_compose = defaults.legacy_compose
        self.log_dir = defaults.log_dir


@dataclass(frozen=True)
class SessionOverrides:
    """Command line settings that last for one session and are never saved."""

    max_depth: int | None = None
    excluded_dirs: tuple[str, ...] = ()
    legacy_compose: bool = False
    log_dir: Path | None = None

    def apply(self, config: Config) -> Config:
        """Return a copy of config with these overrides on top."""
        excluded = list(config.excluded_dirs)
        excluded.extend(name for name in self.excluded_dirs if name not in excluded)
        return replace(
            config,
            max_depth=config.max_depth if self.max_depth is None else self.max_depth,
            excluded_dirs=excluded,
            legacy_compose=config.legacy_compose or self.legacy_compose,
            log_dir=self.log_dir or config.log_dir,
        )


def load_config(config_path: str | Path | None = None) -> Config:
    """Load settings from a YAML file, falling back to defaults if it is missing."""
    config_path = Path(config_path or default_config_path()).expanduser().resolve()

    if not config_path.exists():
        config = Config()
        config.source_path = config_path
        return config

    try:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

    config = _parse_config(raw or {})
    config.source_path = config_path
    return config


def save_config(config: Config, config_path: str | Path | None = None) -> Path:
    """Write settings back to disk. Returns the path written."""
    path = Path(config_path or config.source_path or default_config_path()).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)

    raw: dict[str, Any] = {
        "max_depth": config.max_depth,
        "excluded_dirs": list(config.excluded_dirs),
        "legacy_compose": config.legacy_compose,
    }
    if config.log_dir is not None:
        raw["log_dir"] = str(config.log_dir)

    with open(path, "w") as f:
        yaml.safe_dump(raw, f, default_flow_style=False, sort_keys=False)

    config.source_path = path
    return path


def _parse_config(raw: Any) -> Config:
    """Parse raw YAML data into a Config object."""
    if not isinstance(raw, dict):
        raise ValueError("Configuration must be a mapping")

    defaults = Config()
    max_depth = _parse_max_depth(raw.get("max_depth", defaults.max_depth))

    excluded = raw.get("excluded_dirs", [])
    if excluded is None:
        excluded = []
    if not isinstance(excluded, list) or not all(isinstance(d, str) for d in excluded):
        raise ValueError("'excluded_dirs' must be a list of directory names")

    legacy = raw.get("legacy_compose", defaults.legacy_compose)
    if not isinstance(legacy, bool):
        raise ValueError("'legacy_compose' must be true or false")

    log_dir = raw.get("log_dir")
    if log_dir is not None:
        log_dir = Path(str(log_dir)).expanduser().resolve()

    return Config(
        max_depth=max_depth,
        excluded_dirs=excluded,
        legacy_compose=legacy,
        log_dir=log_dir,
    )


def _parse_max_depth(value: Any) -> int | None:
    """Validate a max depth value; None means unlimited."""
    if value is None:
        return None
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'max_depth' must be a non-negative integer, got {value!r}")
    if value < 0:
        raise ValueError(f"'max_depth' must be a non-negative integer, got {value}")
    return value


def parse_depth_input(text: str) -> int | None:
    """Parse a depth typed by the user; empty input means unlimited."""
    text = text.strip()
    if not text:
        return None
    try:
        return _parse_max_depth(int(text))
    except ValueError:
        raise ValueError(f"Invalid number: {text!r}") from None
