"""Provision the package control-file directory (``META-INF/vault``)."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, List, Tuple
import shutil

from .core.console import ComposeConsole
from .defaults import iter_default_files


DefaultCatalog = Callable[[], Iterable[Tuple[str, bytes]]]


class VaultMetadataProvisioner:
    """Fills the staging control root from user files, then built-in defaults.

    User files always take precedence: a default is written only where no
    file exists yet, and nothing is ever removed.
    """

    def __init__(self, console: ComposeConsole, *, catalog: DefaultCatalog = iter_default_files) -> None:
        self._console = console
        self._catalog = catalog

    def copy_user_files(self, source_dir: Path | None, vault_dir: Path) -> bool:
        """Copy the user control-file directory into *vault_dir*.

        Returns False when there was no source directory to copy.
        """

        vault_dir.mkdir(parents=True, exist_ok=True)
        if source_dir is None or not source_dir.is_dir():
            self._console.info(
                f"Vault files directory does not exist: {source_dir}. Generated defaults will be used."
            )
            return False

        self._console.info(f"Copying vault files from: {source_dir}")
        shutil.copytree(source_dir, vault_dir, dirs_exist_ok=True)
        return True

    def copy_missing_files(self, vault_dir: Path) -> List[Path]:
        """Write every default control file that is missing from *vault_dir*."""

        created: List[Path] = []
        for relative_path, content in self._catalog():
            target = vault_dir.joinpath(*relative_path.split("/"))
            if target.exists():
                self._console.debug(f"Keeping existing vault file: {relative_path}")
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            created.append(target)
            self._console.debug(f"Generated default vault file: {relative_path}")
        return created


__all__ = ["DefaultCatalog", "VaultMetadataProvisioner"]
