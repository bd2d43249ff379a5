"""Build units supplied by the external build orchestrator."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple
import glob
import os

from .core.config_loader import normalize_string_list


ROOT_PATH = ":"
DEFAULT_CONTENT_DIR = "src/main/content"


class UnitNotFoundError(LookupError):
    """Raised when a build unit path cannot be resolved."""


def canonical_path(path: Path | str) -> str:
    """Normalized absolute path used as the ordering and identity key of files."""

    return os.path.realpath(os.path.abspath(os.fspath(path)))


@dataclass(frozen=True, order=True, slots=True)
class ArtifactRef:
    """One binary artifact, identified and ordered by its canonical path."""

    canonical: str
    path: Path = field(compare=False, hash=False)

    @classmethod
    def of(cls, path: Path | str) -> "ArtifactRef":
        return cls(canonical=canonical_path(path), path=Path(path))

    @property
    def name(self) -> str:
        return os.path.basename(self.canonical)


@dataclass(slots=True)
class BuildUnit:
    path: str
    directory: Path
    name: str = ""
    version: str | None = None
    group: str | None = None
    description: str | None = None
    content_dir: Path | None = None
    artifacts: Tuple[Path, ...] = ()
    artifact_patterns: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.path = normalize_unit_path(self.path)
        self.directory = Path(self.directory)
        if not self.name:
            self.name = self.path.rsplit(":", 1)[-1] or self.directory.name

    @property
    def is_root(self) -> bool:
        return self.path == ROOT_PATH

    @property
    def content_root(self) -> Path:
        if self.content_dir is None:
            return self.directory / DEFAULT_CONTENT_DIR
        if self.content_dir.is_absolute():
            return self.content_dir
        return self.directory / self.content_dir

    def collect_artifacts(self) -> List[Path]:
        """Explicit artifacts plus whatever the artifact patterns match right now."""

        found = list(self.artifacts)
        for path in expand_artifact_patterns(self.directory, self.artifact_patterns):
            if path not in found:
                found.append(path)
        return found

    def task_path(self, task: str) -> str:
        if self.is_root:
            return f":{task}"
        return f"{self.path}:{task}"

    def to_mapping(self) -> Dict[str, Any]:
        """View of the unit exposed to template expressions."""

        data: Dict[str, Any] = {
            "path": self.path,
            "name": self.name,
            "dir": str(self.directory),
            "content_dir": str(self.content_root),
        }
        optional = {
            "version": self.version,
            "group": self.group,
            "description": self.description,
        }
        for key, value in optional.items():
            data[key] = value if value is not None else ""
        return data

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, workspace: Path) -> "BuildUnit":
        raw_path = data.get("path")
        if not raw_path or not str(raw_path).strip():
            raise ValueError("units entries require a non-empty 'path'")
        unit_path = normalize_unit_path(str(raw_path))

        raw_dir = data.get("dir")
        if raw_dir:
            directory = Path(str(raw_dir)).expanduser()
        elif unit_path == ROOT_PATH:
            directory = workspace
        else:
            directory = Path(*unit_path.strip(":").split(":"))
        if not directory.is_absolute():
            directory = workspace / directory

        content_dir = data.get("content_dir")
        patterns = normalize_string_list(data.get("artifacts"), field_name="artifacts")

        return cls(
            path=unit_path,
            directory=directory,
            name=str(data.get("name") or ""),
            version=_optional_str(data.get("version")),
            group=_optional_str(data.get("group")),
            description=_optional_str(data.get("description")),
            content_dir=Path(str(content_dir)) if content_dir else None,
            artifact_patterns=tuple(patterns),
        )


def expand_artifact_patterns(directory: Path, patterns: Iterable[str]) -> List[Path]:
    """Expand glob *patterns* relative to *directory* into existing files."""

    found: List[Path] = []
    for pattern in patterns:
        full = pattern if os.path.isabs(pattern) else os.path.join(directory, pattern)
        for match in sorted(glob.glob(full, recursive=True)):
            candidate = Path(match)
            if candidate.is_file() and candidate not in found:
                found.append(candidate)
    return found


def normalize_unit_path(path: str) -> str:
    text = path.strip()
    if not text or text == ROOT_PATH:
        return ROOT_PATH
    if not text.startswith(":"):
        text = f":{text}"
    return text.rstrip(":")


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class UnitGraph:
    """The set of build units known to the orchestrator."""

    def __init__(self, units: Iterable[BuildUnit]) -> None:
        self._units: Dict[str, BuildUnit] = {}
        for unit in units:
            if unit.path in self._units:
                raise ValueError(f"Duplicate build unit path '{unit.path}'")
            self._units[unit.path] = unit
        if ROOT_PATH not in self._units:
            raise ValueError("A root build unit with path ':' is required")

    @property
    def root(self) -> BuildUnit:
        return self._units[ROOT_PATH]

    def __iter__(self):
        return iter(self._units.values())

    def __len__(self) -> int:
        return len(self._units)

    def paths(self) -> List[str]:
        return sorted(self._units)

    def find(self, path: str, *, relative_to: BuildUnit | None = None) -> BuildUnit:
        """Resolve an absolute (``:a:b``) or relative (``b``) unit path."""

        text = path.strip()
        if text.startswith(":") or relative_to is None or relative_to.is_root:
            key = normalize_unit_path(text)
        else:
            key = normalize_unit_path(f"{relative_to.path}:{text}")
        unit = self._units.get(key)
        if unit is None:
            available = ", ".join(self.paths())
            raise UnitNotFoundError(f"Build unit '{key}' not found. Available: {available}")
        return unit

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, workspace: Path) -> "UnitGraph":
        entries = data.get("units")
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise TypeError("'units' must be a list of tables")
        units: List[BuildUnit] = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                raise TypeError("'units' entries must be tables")
            units.append(BuildUnit.from_mapping(entry, workspace=workspace))
        if not any(unit.is_root for unit in units):
            root_section = data.get("root")
            root_data: Dict[str, Any] = dict(root_section) if isinstance(root_section, Mapping) else {}
            root_data.setdefault("path", ROOT_PATH)
            root_data.setdefault("name", workspace.resolve().name)
            units.insert(0, BuildUnit.from_mapping(root_data, workspace=workspace))
        return cls(units)


__all__ = [
    "ArtifactRef",
    "BuildUnit",
    "DEFAULT_CONTENT_DIR",
    "ROOT_PATH",
    "UnitGraph",
    "UnitNotFoundError",
    "canonical_path",
    "expand_artifact_patterns",
    "normalize_unit_path",
]
