"""Service discovery: find compose files and turn them into addressable units."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

# Longest prefix first so "docker-compose" is not read as "compose"
DESCRIPTOR_PREFIXES = ("docker-compose", "compose")
DESCRIPTOR_EXTENSIONS = (".yml", ".yaml")

# Always skipped, in addition to hidden and user-excluded names
ALWAYS_EXCLUDED = frozenset({"target", "node_modules", "vendor"})

OVERRIDE_TAG = "override"

# Name of the unit found in the scan root itself
ROOT_NAME = "root"


@dataclass(frozen=True)
class Unit:
    """A discovered compose project that can be targeted on its own."""

    name: str
    location: Path
    descriptor_files: tuple[str, ...] = ()
    variant: str | None = None

    def display_label(self) -> str:
        """Label shown to the user and used to match results back to units."""
        if self.variant is None:
            return self.name
        return f"{self.name} ({self.variant})"


def is_descriptor(filename: str) -> bool:
    """Check whether a filename looks like a compose file."""
    return filename.startswith(DESCRIPTOR_PREFIXES) and filename.endswith(
        DESCRIPTOR_EXTENSIONS
    )


def _split_descriptor(filename: str) -> str:
    """Return the part of a descriptor name between its prefix and extension."""
    stem = filename
    for ext in DESCRIPTOR_EXTENSIONS:
        if stem.endswith(ext):
            stem = stem[: -len(ext)]
            break
    for prefix in DESCRIPTOR_PREFIXES:
        if stem.startswith(prefix):
            return stem[len(prefix):]
    return stem


def extract_tag(filename: str) -> str:
    """Extract the variant tag, e.g. ``docker-compose.prod.yml`` -> ``prod``."""
    tag = _split_descriptor(filename).lstrip(".-_")
    return tag or filename


def _classify(filename: str) -> str:
    middle = _split_descriptor(filename)
    if middle == "":
        return "base"
    if middle == f".{OVERRIDE_TAG}":
        return "override"
    return "tagged"


def group_variants(name: str, location: Path, filenames: Iterable[str]) -> list[Unit]:
    """Partition the compose files of one directory into units.

    A base file (``compose.yml``, ``docker-compose.yaml``...) yields a single
    unit with no explicit files so that docker compose applies its own
    base + override merge. Every tagged file becomes its own variant. Override
    files with no base to merge against are promoted to variants as well.
    """
    files = sorted(set(filenames))
    if not files:
        return []

    if len(files) == 1 and _classify(files[0]) != "override":
        return [Unit(name=name, location=location, descriptor_files=(files[0],))]

    kinds = {f: _classify(f) for f in files}
    has_base = any(kind == "base" for kind in kinds.values())

    units: list[Unit] = []
    if has_base:
        units.append(Unit(name=name, location=location))

    explicit = [
        f
        for f in files
        if kinds[f] == "tagged" or (kinds[f] == "override" and not has_base)
    ]

    # Two files with the same tag (prod.yml / prod.yaml) keep their filename
    by_tag: dict[str, list[str]] = defaultdict(list)
    for filename in explicit:
        by_tag[extract_tag(filename)].append(filename)

    for filename in explicit:
        tag = extract_tag(filename)
        variant = tag if len(by_tag[tag]) == 1 else filename
        units.append(
            Unit(
                name=name,
                location=location,
                descriptor_files=(filename,),
                variant=variant,
            )
        )
    return units


def list_descriptors(directory: Path) -> list[str]:
    """List compose files directly inside a directory, sorted."""
    files = []
    try:
        for entry in directory.iterdir():
            if is_descriptor(entry.name) and entry.is_file():
                files.append(entry.name)
    except OSError as e:
        logger.debug("Cannot list %s: %s", directory, e)
        return []
    return sorted(files)


def sort_units(units: Iterable[Unit]) -> list[Unit]:
    """Sort by name then variant, with the unqualified unit first."""
    return sorted(units, key=lambda u: (u.name, u.variant is not None, u.variant or ""))


class ServiceWalker:
    """Walks a directory tree looking for compose projects."""

    def __init__(
        self,
        root: str | Path,
        max_depth: int | None = None,
        excluded_names: Iterable[str] = (),
    ):
        if max_depth is not None and max_depth < 0:
            raise ValueError(f"max_depth must be non-negative, got {max_depth}")
        self.root = Path(root).resolve()
        self.max_depth = max_depth
        self.excluded = ALWAYS_EXCLUDED | set(excluded_names)
        self.visited: set[Path] = set()

    def discover(self) -> list[Unit]:
        """Scan the tree and return every unit found, sorted."""
        self.visited = set()
        units: list[Unit] = []

        units.extend(group_variants(ROOT_NAME, self.root, list_descriptors(self.root)))

        self._scan(self.root, units, depth=0)
        units = _disambiguate(units, self.root)
        logger.debug("Discovered %d unit(s) under %s", len(units), self.root)
        return sort_units(units)

    def _is_excluded(self, name: str) -> bool:
        return name.startswith(".") or name in self.excluded

    def _scan(self, directory: Path, units: list[Unit], depth: int) -> None:
        """Visit the children of a directory, recursing into non-leaf ones."""
        try:
            key = directory.resolve()
        except OSError as e:
            logger.debug("Cannot resolve %s: %s", directory, e)
            return
        if key in self.visited:
            logger.debug("Already visited %s", key)
            return
        self.visited.add(key)

        if self.max_depth is not None and depth >= self.max_depth:
            return

        try:
            children = sorted(directory.iterdir())
        except OSError as e:
            logger.debug("Skipping unreadable directory %s: %s", directory, e)
            return

        for child in children:
            if self._is_excluded(child.name) or not _is_dir(child):
                continue

            descriptors = list_descriptors(child)
            if not descriptors:
                self._scan(child, units, depth + 1)
                continue

            # A directory with compose files is a leaf
            try:
                child_key = child.resolve()
            except OSError:
                continue
            if child_key in self.visited:
                continue
            self.visited.add(child_key)
            units.extend(group_variants(child.name, child, descriptors))


def _is_dir(path: Path) -> bool:
    try:
        return path.is_dir()
    except OSError:
        return False


def _relative_name(location: Path, root: Path) -> str:
    try:
        return location.relative_to(root).as_posix()
    except ValueError:
        return location.as_posix()


def _clashes(units: list[Unit]) -> list[list[int]]:
    """Indices of units sharing a display label, grouped by label."""
    by_label: dict[str, list[int]] = defaultdict(list)
    for i, unit in enumerate(units):
        by_label[unit.display_label()].append(i)
    return [indices for indices in by_label.values() if len(indices) > 1]


def _disambiguate(units: list[Unit], root: Path) -> list[Unit]:
    """Rename units until every display label is unique.

    Units in a directory involved in a clash take the directory's path
    relative to the root as their name. When that is not enough (a
    directory literally called ``api (prod)`` next to ``api`` holding a
    ``prod`` variant), the clashing variants fall back to their
    descriptor filename, and as a last resort a numeric suffix is added.
    """
    renamed = list(units)
    while True:
        clashes = _clashes(renamed)
        if not clashes:
            return renamed

        changed = False
        locations = {renamed[i].location for group in clashes for i in group}
        for i, unit in enumerate(renamed):
            if unit.location not in locations:
                continue
            relative = _relative_name(unit.location, root)
            if unit.name != relative:
                renamed[i] = replace(unit, name=relative)
                changed = True
        if changed:
            continue

        for group in clashes:
            for i in group:
                unit = renamed[i]
                if unit.variant is not None and unit.descriptor_files:
                    filename = unit.descriptor_files[0]
                    if unit.variant != filename:
                        renamed[i] = replace(unit, variant=filename)
                        changed = True
        if changed:
            continue

        taken = {unit.display_label() for unit in renamed}
        for group in clashes:
            for i in group[1:]:
                unit = renamed[i]
                n = 2
                candidate = replace(unit, name=f"{unit.name}#{n}")
                while candidate.display_label() in taken:
                    n += 1
                    candidate = replace(unit, name=f"{unit.name}#{n}")
                renamed[i] = candidate
                taken.add(candidate.display_label())
        return renamed


def discover_units(
    root: str | Path,
    max_depth: int | None = None,
    excluded_names: Iterable[str] = (),
) -> list[Unit]:
    """Find every unit under root."""
    return ServiceWalker(root, max_depth=max_depth, excluded_names=excluded_names).discover()
