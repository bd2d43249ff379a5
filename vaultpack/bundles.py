"""Copy binary bundles of build units into the staging bundle directory."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List
import shutil

from .core.console import ComposeConsole
from .units import ArtifactRef


class BundleCollector:
    def __init__(self, console: ComposeConsole) -> None:
        self._console = console

    def collect(self, artifacts: Iterable[ArtifactRef], target_dir: Path) -> List[Path]:
        """Copy *artifacts* into *target_dir* ordered by canonical path.

        Duplicates (same canonical path) are copied once. No directory is
        created when there is nothing to copy.
        """

        bundles = sorted(set(artifacts))
        if not bundles:
            self._console.info("No bundles to copy into package")
            return []

        self._console.info(
            "Copying bundles into package: " + ", ".join(bundle.canonical for bundle in bundles)
        )
        target_dir.mkdir(parents=True, exist_ok=True)

        copied: List[Path] = []
        by_name: Dict[str, ArtifactRef] = {}
        for bundle in bundles:
            source = Path(bundle.canonical)
            if not source.is_file():
                raise FileNotFoundError(f"Bundle '{source}' does not exist")
            previous = by_name.get(bundle.name)
            if previous is not None:
                self._console.warn(
                    f"Bundle '{bundle.canonical}' has the same file name as '{previous.canonical}' and replaces it"
                )
            by_name[bundle.name] = bundle
            destination = target_dir / bundle.name
            shutil.copy2(source, destination)
            if destination not in copied:
                copied.append(destination)
        return copied


__all__ = ["BundleCollector"]
