"""Merge content trees of build units into the staging content root."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Iterable, List, Sequence, Set
import fnmatch
import shutil

from .core.console import ComposeConsole
from .registry import ContentSource


def _pattern_variants(pattern: str) -> Set[str]:
    variants = {pattern}
    for variant in list(variants):
        if variant.startswith("**/"):
            variants.add(variant[3:])
    for variant in list(variants):
        if variant.endswith("/**"):
            variants.add(variant[:-3])
    return {variant for variant in variants if variant}


def matches_ignore(relative_path: str, patterns: Iterable[str]) -> bool:
    """Return True when the posix *relative_path* or its name matches a pattern."""

    name = relative_path.rsplit("/", 1)[-1]
    for pattern in patterns:
        for variant in _pattern_variants(pattern):
            if fnmatch.fnmatch(name, variant) or fnmatch.fnmatch(relative_path, variant):
                return True
    return False


def _create_ignore_func(root: Path, excludes: Sequence[str]) -> Callable[[str, List[str]], Set[str]]:
    """Create a copytree ignore function that handles path-based excludes."""

    def ignore_func(path: str, names: List[str]) -> Set[str]:
        ignored: Set[str] = set()
        rel_parent = Path(path).relative_to(root)
        for name in names:
            rel_path = (rel_parent / name).as_posix()
            if matches_ignore(rel_path, excludes):
                ignored.add(name)
        return ignored

    return ignore_func


class ContentAggregator:
    """Copies content sources into the staging content root.

    Sources are copied in the order given. When two sources provide the same
    relative path the later one overwrites the file and a warning is logged.
    """

    def __init__(self, console: ComposeConsole) -> None:
        self._console = console

    def aggregate(self, sources: Iterable[ContentSource], target_dir: Path) -> List[Path]:
        written: Dict[Path, str] = {}

        for source in sources:
            directory = Path(source.directory)
            if not directory.is_dir():
                self._console.info(f"Package content directory does not exist: {directory.resolve()}")
                continue

            self._console.info(f"Copying content from: {directory.resolve()}")
            target_dir.mkdir(parents=True, exist_ok=True)
            origin = source.unit.path

            def copy_file(src: str, dst: str, *, _origin: str = origin) -> str:
                relative = Path(dst).relative_to(target_dir)
                previous = written.get(relative)
                if previous is not None:
                    self._console.warn(
                        f"Content file '{relative.as_posix()}' from {_origin} overwrites the one from {previous}"
                    )
                written[relative] = _origin
                return shutil.copy2(src, dst)

            shutil.copytree(
                directory,
                target_dir,
                ignore=_create_ignore_func(directory, list(source.ignores)),
                copy_function=copy_file,
                dirs_exist_ok=True,
            )

        return sorted(target_dir / relative for relative in written)


__all__ = ["ContentAggregator", "matches_ignore"]
