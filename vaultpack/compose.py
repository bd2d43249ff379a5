"""Package composition: configuration-phase API and the ordered build phase."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping

from .bundles import BundleCollector
from .config import ComposeConfig
from .content import ContentAggregator
from .defaults import iter_default_files
from .core.archive import ArchiveBuilder, ArchiveResult, ArchiveSource
from .core.console import ComposeConsole
from .errors import ComposeError
from .expander import TemplateExpander, compose_bindings, format_timestamp
from .registry import ContentSource, SourceRegistry
from .units import ArtifactRef, BuildUnit, UnitGraph
from .vault import DefaultCatalog, VaultMetadataProvisioner


TASK_NAME = "compose"
JCR_ROOT = "jcr_root"
VLT_PATH = "META-INF/vault"


Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ComposeTask:
    """Composes a package for *unit* from content and bundles of build units.

    The owning unit is included on construction. Further units, vault
    directories and profiles are added with the ``include_*`` methods; nothing
    is read from disk until :meth:`compose` runs.
    """

    def __init__(
        self,
        unit: BuildUnit,
        *,
        units: UnitGraph,
        config: ComposeConfig,
        console: ComposeConsole,
        ambient: Mapping[str, str] | None = None,
        clock: Clock = _utc_now,
        catalog: DefaultCatalog = iter_default_files,
    ) -> None:
        self.unit = unit
        self.config = config
        self.registry = SourceRegistry()
        self._units = units
        self._console = console
        self._ambient = dict(ambient or {})
        self._clock = clock
        self._catalog = catalog
        self._vault_includes: List[ArchiveSource] = []

        self.include_project(unit)

    def apply_configured_includes(self) -> None:
        """Register the includes declared in the configuration, in declaration order."""

        for unit_path in self.config.include_projects:
            self.include_project(unit_path)
        for unit_path in self.config.include_content:
            self.include_content(unit_path)
        for unit_path in self.config.include_bundles:
            self.include_bundles(unit_path)
        for profile_name in self.config.vault_profiles:
            self.include_vault_profile(profile_name)
        for vault_path in self.config.include_vaults:
            self.include_vault(vault_path)

    @property
    def staging_dir(self) -> Path:
        return self.unit.directory / self.config.build_dir / TASK_NAME

    @property
    def vault_dir(self) -> Path:
        return self.staging_dir / VLT_PATH

    @property
    def content_dir(self) -> Path:
        return self.staging_dir / JCR_ROOT

    @property
    def bundle_path(self) -> str:
        return self.config.determine_bundle_path(self._units.root)

    @property
    def bundle_dir(self) -> Path:
        return self.content_dir.joinpath(*[part for part in self.bundle_path.split("/") if part])

    @property
    def archive_path(self) -> Path:
        return self.unit.directory / self.config.build_dir / "distributions" / self.config.determine_archive_name(self.unit)

    @property
    def depends_on(self) -> List[str]:
        return self.registry.depends_on

    @property
    def vault_source_dir(self) -> Path:
        if self.config.vault_files_path:
            path = Path(self.config.vault_files_path).expanduser()
            return path if path.is_absolute() else self.unit.directory / path
        return self.config.determine_content_path(self.unit, owner=self.unit) / VLT_PATH

    # Configuration phase

    def _resolve_unit(self, unit: BuildUnit | str) -> BuildUnit:
        if isinstance(unit, BuildUnit):
            return unit
        return self._units.find(unit, relative_to=self.unit)

    def include_project(self, unit: BuildUnit | str) -> None:
        resolved = self._resolve_unit(unit)
        self.include_content(resolved)
        self.include_bundles(resolved)

    def include_content(self, unit: BuildUnit | str) -> None:
        resolved = self._resolve_unit(unit)
        content_root = self.config.determine_content_path(resolved, owner=self.unit)
        ignores = list(self.config.content_file_ignores)

        def produce() -> ContentSource:
            return ContentSource(unit=resolved, directory=content_root / JCR_ROOT, ignores=ignores)

        self.registry.register_content(resolved, produce)

    def include_bundles(self, unit: BuildUnit | str) -> None:
        resolved = self._resolve_unit(unit)

        def produce() -> List[ArtifactRef]:
            return [ArtifactRef.of(path) for path in resolved.collect_artifacts()]

        self.registry.register_bundles(resolved, produce)

    def include_vault(self, path: Path | str) -> None:
        directory = Path(path).expanduser()
        if not directory.is_absolute():
            directory = self.unit.directory / directory
        self._vault_includes.append(ArchiveSource(root=VLT_PATH, directory=directory))

    def include_vault_profile(self, profile_name: str) -> None:
        self.include_vault(self.config.vault_common_path)
        self.include_vault(f"{self.config.vault_profile_path}/{profile_name}")

    # Build phase

    def binding_context(self) -> Dict[str, Any]:
        config_view = self.config.to_mapping()
        config_view["bundle_path"] = self.bundle_path
        return {
            "root_project": self._units.root.to_mapping(),
            "project": self.unit.to_mapping(),
            "config": config_view,
            "created": format_timestamp(self._clock()),
        }

    def compose(self) -> Path:
        """Run every step in order and return the path of the written archive."""

        self._console.info(f"Composing package for {self.unit.path} in {self.staging_dir}")
        self.copy_content_vault_files()
        self.copy_missing_vault_files()
        self.expand_vault_files()
        self.copy_contents()
        self.copy_bundles()
        return self.build_archive().path

    def copy_content_vault_files(self) -> None:
        try:
            VaultMetadataProvisioner(self._console).copy_user_files(self.vault_source_dir, self.vault_dir)
        except OSError as exc:
            raise ComposeError(f"Cannot copy vault files into {self.vault_dir}") from exc

    def copy_missing_vault_files(self) -> None:
        if not self.config.vault_copy_missing_files:
            return
        provisioner = VaultMetadataProvisioner(self._console, catalog=self._catalog)
        try:
            provisioner.copy_missing_files(self.vault_dir)
        except OSError as exc:
            raise ComposeError(f"Cannot provision default vault files into {self.vault_dir}") from exc

    def expand_vault_files(self) -> List[Path]:
        bindings = compose_bindings(self._ambient, self.config.vault_expand_properties)
        expander = TemplateExpander(
            self._console,
            patterns=self.config.vault_files_expanded,
            bindings=bindings,
            context=self.binding_context(),
        )
        try:
            return expander.expand(self.vault_dir)
        except OSError as exc:
            raise ComposeError(f"Cannot expand vault files in {self.vault_dir}") from exc

    def copy_contents(self) -> List[Path]:
        sources = self.registry.execute_content_producers()
        try:
            return ContentAggregator(self._console).aggregate(sources, self.content_dir)
        except OSError as exc:
            raise ComposeError(f"Cannot copy content into {self.content_dir}") from exc

    def copy_bundles(self) -> List[Path]:
        bundles = self.registry.execute_bundle_producers()
        try:
            return BundleCollector(self._console).collect(bundles, self.bundle_dir)
        except OSError as exc:
            raise ComposeError(f"Cannot copy bundles into {self.bundle_dir}") from exc

    def archive_sources(self) -> List[ArchiveSource]:
        return [
            *self._vault_includes,
            ArchiveSource(root=VLT_PATH, directory=self.vault_dir, label="staged vault files"),
            ArchiveSource(root=JCR_ROOT, directory=self.content_dir, label="staged content"),
        ]

    def build_archive(self) -> ArchiveResult:
        try:
            return ArchiveBuilder(self._console).build(
                sources=self.archive_sources(),
                target_path=self.archive_path,
            )
        except OSError as exc:
            raise ComposeError(f"Cannot write package archive {self.archive_path}") from exc


__all__ = ["ComposeTask", "JCR_ROOT", "TASK_NAME", "VLT_PATH"]
