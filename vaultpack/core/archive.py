"""Deterministic zip archive writer for composed packages."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, List
import os
import tempfile
import zipfile

from .console import ComposeConsole


FIXED_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
"""Timestamp stamped on every entry; the earliest date zip can represent."""

_FILE_MODE = 0o644


@dataclass(slots=True)
class ArchiveSource:
    """A directory whose files are stored below ``root`` inside the archive."""

    root: str
    directory: Path
    label: str | None = None

    def describe(self) -> str:
        return self.label or str(self.directory)


@dataclass(slots=True)
class ArchiveResult:
    path: Path
    entries: List[str] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)


class ArchiveBuilder:
    """Write zip archives from an ordered list of :class:`ArchiveSource`.

    Sources are walked in the given order and each directory is walked
    sorted, so identical inputs yield byte-identical archives. When two
    sources provide the same internal path the first one is kept and a
    warning is emitted.
    """

    def __init__(self, console: ComposeConsole) -> None:
        self._console = console

    def build(self, *, sources: Iterable[ArchiveSource], target_path: Path | str) -> ArchiveResult:
        """Create the archive at *target_path*, replacing any previous one.

        The archive is written to a temporary file next to the target and moved
        into place once complete, so a failed build never leaves a partial
        archive at *target_path*.
        """

        target = Path(target_path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(dir=target.parent, suffix=".zip.tmp", delete=False) as handle:
            temp_path = Path(handle.name)

        try:
            result = self._write_zip(temp_path, sources)
            os.replace(temp_path, target)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

        result.path = target
        self._console.info(f"Archive written: {target} ({len(result.entries)} entries)")
        return result

    def _write_zip(self, path: Path, sources: Iterable[ArchiveSource]) -> ArchiveResult:
        result = ArchiveResult(path=path)
        seen: dict[str, str] = {}

        with zipfile.ZipFile(
            path,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=9,
            allowZip64=True,
        ) as archive:
            for source in sources:
                directory = Path(source.directory)
                if not directory.is_dir():
                    self._console.info(f"Archive source does not exist, skipping: {directory}")
                    continue
                for file_path in iter_sorted_files(directory):
                    relative = file_path.relative_to(directory)
                    arcname = _join_archive_path(source.root, relative)
                    if arcname in seen:
                        result.duplicates.append(arcname)
                        self._console.warn(
                            f"Duplicate archive entry '{arcname}' from {source.describe()} ignored; "
                            f"keeping the one from {seen[arcname]}"
                        )
                        continue
                    seen[arcname] = source.describe()
                    archive.writestr(_entry_info(arcname), file_path.read_bytes())
                    result.entries.append(arcname)

        return result


def iter_sorted_files(root: Path) -> Iterable[Path]:
    """Yield every file below *root* in a stable, sorted walk order."""

    for dirpath, dirnames, filenames in os.walk(root, topdown=True):
        dirnames.sort()
        filenames.sort()
        current_dir = Path(dirpath)
        for filename in filenames:
            yield current_dir / filename


def _join_archive_path(root: str, relative: Path) -> str:
    parts = [part for part in PurePosixPath(root.replace("\\", "/")).parts if part not in ("/", "")]
    parts.extend(relative.parts)
    return "/".join(parts)


def _entry_info(arcname: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(arcname, date_time=FIXED_TIMESTAMP)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = (0o100000 | _FILE_MODE) << 16
    info.create_system = 3
    return info


__all__ = [
    "ArchiveBuilder",
    "ArchiveResult",
    "ArchiveSource",
    "FIXED_TIMESTAMP",
    "iter_sorted_files",
]
