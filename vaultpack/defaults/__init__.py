"""Built-in baseline control files provisioned into every package."""
from __future__ import annotations

from importlib import resources
from typing import Iterator, Tuple


DEFAULT_VAULT_FILES: Tuple[str, ...] = (
    "config.xml",
    "definition/.content.xml",
    "filter.xml",
    "nodetypes.cnd",
    "properties.xml",
    "settings.xml",
)
"""Relative paths, below the control-file root, of every packaged default."""

_RESOURCE_DIR = "vault"


def read_default_file(relative_path: str) -> bytes:
    if relative_path not in DEFAULT_VAULT_FILES:
        raise KeyError(f"No default control file '{relative_path}'")
    resource = resources.files(__name__).joinpath(_RESOURCE_DIR)
    for part in relative_path.split("/"):
        resource = resource.joinpath(part)
    return resource.read_bytes()


def iter_default_files() -> Iterator[Tuple[str, bytes]]:
    """Yield ``(relative_path, content)`` for every default control file."""

    for relative_path in DEFAULT_VAULT_FILES:
        yield relative_path, read_default_file(relative_path)


__all__ = ["DEFAULT_VAULT_FILES", "iter_default_files", "read_default_file"]
