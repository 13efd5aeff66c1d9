"""dockerstrator: discover docker compose projects and manage them together."""

from .compose import ComposeMode, Invocation, build_command
from .config import Config, SessionOverrides, load_config, save_config
from .discovery import Unit, discover_units, group_variants
from .executor import Executor, UnitState, UnitStatus
from .relay import LiveRelay, RelayOutcome

__all__ = [
    "ComposeMode",
    "Invocation",
    "build_command",
    "Config",
    "SessionOverrides",
    "load_config",
    "save_config",
    "Unit",
    "discover_units",
    "group_variants",
    "Executor",
    "UnitState",
    "UnitStatus",
    "LiveRelay",
    "RelayOutcome",
]
