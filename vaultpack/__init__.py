"""Compose deployable vault packages from the content and bundles of build units."""

from .compose import ComposeTask, JCR_ROOT, VLT_PATH
from .config import ComposeConfig, WorkspaceConfig
from .errors import ComposeError
from .units import ArtifactRef, BuildUnit, UnitGraph, UnitNotFoundError

__all__ = [
    "ArtifactRef",
    "BuildUnit",
    "ComposeConfig",
    "ComposeError",
    "ComposeTask",
    "JCR_ROOT",
    "UnitGraph",
    "UnitNotFoundError",
    "VLT_PATH",
    "WorkspaceConfig",
]
