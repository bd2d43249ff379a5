"""Configuration loading and validation for package composition."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from .core.config_loader import (
    load_config_files,
    merge_mappings,
    normalize_string_list,
    normalize_string_mapping,
)
from .units import BuildUnit, UnitGraph, normalize_unit_path


DEFAULT_VAULT_FILES_EXPANDED: List[str] = ["*.xml"]

DEFAULT_CONTENT_FILE_IGNORES: List[str] = [
    "**/.gradle",
    "**/.git",
    "**/.git/**",
    "**/.gitattributes",
    "**/.gitignore",
    "**/.gitmodules",
    "**/.vlt",
    "**/node_modules/**",
    "**/.DS_Store",
    "**/vlt.tmp",
    "**/.vlt-sync-config.properties",
    "**/.vlt-sync.log",
]


@dataclass(slots=True)
class ComposeConfig:
    content_path: str | None = None
    vault_files_path: str | None = None
    vault_files_expanded: List[str] = field(default_factory=lambda: list(DEFAULT_VAULT_FILES_EXPANDED))
    vault_expand_properties: Dict[str, str] = field(default_factory=dict)
    content_file_ignores: List[str] = field(default_factory=lambda: list(DEFAULT_CONTENT_FILE_IGNORES))
    vault_copy_missing_files: bool = True
    bundle_path: str | None = None
    vault_common_path: str = "src/main/vault/common"
    vault_profile_path: str = "src/main/vault/profile"
    build_dir: str = "build"
    archive_name: str | None = None
    log_level: str = "info"
    include_projects: List[str] = field(default_factory=list)
    include_content: List[str] = field(default_factory=list)
    include_bundles: List[str] = field(default_factory=list)
    include_vaults: List[str] = field(default_factory=list)
    vault_profiles: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ComposeConfig":
        section: Mapping[str, Any] = data or {}
        if not isinstance(section, Mapping):
            raise TypeError("[compose] section must be a table")
        defaults = cls()

        copy_missing = section.get("vault_copy_missing_files", defaults.vault_copy_missing_files)
        if not isinstance(copy_missing, bool):
            raise TypeError("compose.vault_copy_missing_files must be a boolean")

        expanded = section.get("vault_files_expanded")
        ignores = section.get("content_file_ignores")

        return cls(
            content_path=_optional_str(section.get("content_path")),
            vault_files_path=_optional_str(section.get("vault_files_path")),
            vault_files_expanded=(
                normalize_string_list(expanded, field_name="compose.vault_files_expanded")
                if expanded is not None
                else defaults.vault_files_expanded
            ),
            vault_expand_properties=normalize_string_mapping(
                section.get("vault_expand_properties"), field_name="compose.vault_expand_properties"
            ),
            content_file_ignores=(
                normalize_string_list(ignores, field_name="compose.content_file_ignores")
                if ignores is not None
                else defaults.content_file_ignores
            ),
            vault_copy_missing_files=copy_missing,
            bundle_path=_optional_str(section.get("bundle_path")),
            vault_common_path=str(section.get("vault_common_path", defaults.vault_common_path)),
            vault_profile_path=str(section.get("vault_profile_path", defaults.vault_profile_path)),
            build_dir=str(section.get("build_dir", defaults.build_dir)),
            archive_name=_optional_str(section.get("archive_name")),
            log_level=str(section.get("log_level", defaults.log_level)),
            include_projects=normalize_string_list(
                section.get("include_projects"), field_name="compose.include_projects"
            ),
            include_content=normalize_string_list(
                section.get("include_content"), field_name="compose.include_content"
            ),
            include_bundles=normalize_string_list(
                section.get("include_bundles"), field_name="compose.include_bundles"
            ),
            include_vaults=normalize_string_list(section.get("include_vaults"), field_name="compose.include_vaults"),
            vault_profiles=normalize_string_list(section.get("vault_profiles"), field_name="compose.vault_profiles"),
        )

    def determine_content_path(self, unit: BuildUnit, *, owner: BuildUnit | None = None) -> Path:
        """Content root of *unit*; the override only applies to the composing unit."""

        if self.content_path and (owner is None or owner.path == unit.path):
            path = Path(self.content_path).expanduser()
            return path if path.is_absolute() else unit.directory / path
        return unit.content_root

    def determine_bundle_path(self, root: BuildUnit) -> str:
        if self.bundle_path:
            return self.bundle_path
        return f"/apps/{root.name}/install"

    def determine_archive_name(self, unit: BuildUnit) -> str:
        if self.archive_name:
            return self.archive_name
        if unit.version:
            return f"{unit.name}-{unit.version}.zip"
        return f"{unit.name}.zip"

    def to_mapping(self) -> Dict[str, Any]:
        """View of the configuration exposed to template expressions."""

        return {
            "content_path": self.content_path or "",
            "vault_files_path": self.vault_files_path or "",
            "vault_files_expanded": list(self.vault_files_expanded),
            "vault_expand_properties": dict(self.vault_expand_properties),
            "content_file_ignores": list(self.content_file_ignores),
            "vault_copy_missing_files": self.vault_copy_missing_files,
            "bundle_path": self.bundle_path or "",
            "vault_common_path": self.vault_common_path,
            "vault_profile_path": self.vault_profile_path,
            "build_dir": self.build_dir,
            "archive_name": self.archive_name or "",
        }


@dataclass(slots=True)
class WorkspaceConfig:
    """Merged configuration of a workspace: units plus compose settings."""

    workspace: Path
    units: UnitGraph
    compose: Mapping[str, Any] = field(default_factory=dict)
    unit_overrides: Dict[str, Mapping[str, Any]] = field(default_factory=dict)

    def compose_config(self, unit: BuildUnit | str) -> ComposeConfig:
        """Compose settings for *unit*: shared ``[compose]`` merged with unit overrides."""

        unit_path = unit.path if isinstance(unit, BuildUnit) else normalize_unit_path(unit)
        override = self.unit_overrides.get(unit_path, {})
        return ComposeConfig.from_mapping(merge_mappings(self.compose, override))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, workspace: Path) -> "WorkspaceConfig":
        compose_section = data.get("compose", {})
        if not isinstance(compose_section, Mapping):
            raise TypeError("[compose] section must be a table")
        # Validate the shared section eagerly so errors surface at load time.
        ComposeConfig.from_mapping(compose_section)

        units = UnitGraph.from_mapping(data, workspace=workspace)
        overrides: Dict[str, Mapping[str, Any]] = {}
        for entry in data.get("units") or []:
            unit_compose = entry.get("compose") if isinstance(entry, Mapping) else None
            if unit_compose is None:
                continue
            if not isinstance(unit_compose, Mapping):
                raise TypeError("units.compose must be a table")
            overrides[normalize_unit_path(str(entry.get("path")))] = unit_compose

        return cls(workspace=workspace, units=units, compose=compose_section, unit_overrides=overrides)

    @classmethod
    def load(cls, paths: Iterable[Path], *, workspace: Path) -> "WorkspaceConfig":
        files = list(paths)
        if not files:
            raise ValueError("At least one configuration file is required")
        missing = [str(path) for path in files if not path.is_file()]
        if missing:
            raise FileNotFoundError(f"Configuration file(s) not found: {', '.join(missing)}")
        return cls.from_mapping(load_config_files(files), workspace=workspace)


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = [
    "ComposeConfig",
    "DEFAULT_CONTENT_FILE_IGNORES",
    "DEFAULT_VAULT_FILES_EXPANDED",
    "WorkspaceConfig",
]
