"""Deferred producers of package sources, recorded per build unit."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Sequence

from .units import ArtifactRef, BuildUnit


DEPENDENCY_TASKS: tuple[str, ...] = ("clean", "assemble", "check")
"""Tasks of a referenced unit the orchestrator must run before composing."""


@dataclass(slots=True)
class ContentSource:
    """A content tree of one unit, merged into the staging content root."""

    unit: BuildUnit
    directory: Path
    ignores: Sequence[str] = ()


ContentProducer = Callable[[], ContentSource]
BundleProducer = Callable[[], Iterable[ArtifactRef]]


@dataclass(slots=True)
class _Registration:
    unit: BuildUnit
    producer: Callable[[], object]


@dataclass(slots=True)
class SourceRegistry:
    """Two-phase registry: producers are recorded now and executed later.

    Registering a producer also declares that the referenced unit must be
    cleaned, assembled and checked before the composition runs. The registry
    only records those edges in :attr:`depends_on`; sequencing them is the
    build orchestrator's job.
    """

    _content: List[_Registration] = field(default_factory=list)
    _bundles: List[_Registration] = field(default_factory=list)
    _depends_on: List[str] = field(default_factory=list)

    def register_content(self, unit: BuildUnit, producer: ContentProducer) -> None:
        self._depend_on(unit)
        self._content.append(_Registration(unit, producer))

    def register_bundles(self, unit: BuildUnit, producer: BundleProducer) -> None:
        self._depend_on(unit)
        self._bundles.append(_Registration(unit, producer))

    @property
    def depends_on(self) -> List[str]:
        return list(self._depends_on)

    @property
    def content_units(self) -> List[BuildUnit]:
        return [entry.unit for entry in self._content]

    @property
    def bundle_units(self) -> List[BuildUnit]:
        return [entry.unit for entry in self._bundles]

    def execute_content_producers(self) -> List[ContentSource]:
        """Invoke content producers in registration order."""

        return [entry.producer() for entry in self._content]  # type: ignore[misc]

    def execute_bundle_producers(self) -> List[ArtifactRef]:
        """Invoke bundle producers and return the union sorted by canonical path."""

        collected: set[ArtifactRef] = set()
        for entry in self._bundles:
            collected.update(entry.producer())  # type: ignore[arg-type]
        return sorted(collected)

    def _depend_on(self, unit: BuildUnit) -> None:
        for task in DEPENDENCY_TASKS:
            task_path = unit.task_path(task)
            if task_path not in self._depends_on:
                self._depends_on.append(task_path)


__all__ = [
    "BundleProducer",
    "ContentProducer",
    "ContentSource",
    "DEPENDENCY_TASKS",
    "SourceRegistry",
]
