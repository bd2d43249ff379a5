"""Reading workspace configuration files and combining them into one mapping."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Callable, Dict, Iterable, List, Mapping, Sequence

import json
import tomllib

import yaml


@dataclass(frozen=True, slots=True)
class ConfigFormat:
    name: str
    decode: Callable[[IO[Any]], Any]
    binary: bool = False


CONFIG_FORMATS: Dict[str, ConfigFormat] = {
    ".toml": ConfigFormat("TOML", tomllib.load, binary=True),
    ".json": ConfigFormat("JSON", json.load),
    ".yaml": ConfigFormat("YAML", yaml.safe_load),
    ".yml": ConfigFormat("YAML", yaml.safe_load),
}
"""Decoders keyed by lower-case file suffix."""

_DECODE_ERRORS = (tomllib.TOMLDecodeError, json.JSONDecodeError, yaml.YAMLError)


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Decode ``path`` according to its suffix.

    An empty document yields an empty mapping. Syntax errors are reported as
    ``ValueError`` naming the file; a non-table root is a ``TypeError``.
    """

    config_format = CONFIG_FORMATS.get(path.suffix.lower())
    if config_format is None:
        known = ", ".join(sorted(CONFIG_FORMATS))
        raise ValueError(f"Cannot read '{path.name}': unknown configuration format (expected one of {known})")

    if config_format.binary:
        handle = path.open("rb")
    else:
        handle = path.open("r", encoding="utf-8")
    with handle:
        try:
            data = config_format.decode(handle)
        except _DECODE_ERRORS as exc:
            raise ValueError(f"Invalid {config_format.name} in '{path}': {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a table at the top level")
    return data


def load_config_files(paths: Iterable[Path]) -> Dict[str, Any]:
    """Load ``paths`` in order; later files override earlier ones key by key."""

    merged: Dict[str, Any] = {}
    for path in paths:
        merged = merge_mappings(merged, load_config_file(path))
    return merged


def resolve_config_paths(root: Path, entries: Iterable[str | Path]) -> List[Path]:
    """Resolve ``entries`` against ``root``.

    A file named twice keeps only its last position, so it still wins the merge.
    """

    resolved: List[Path] = []
    for entry in entries:
        if not entry:
            continue
        path = Path(entry).expanduser()
        if not path.is_absolute():
            path = root / path
        if path in resolved:
            resolved.remove(path)
        resolved.append(path)
    return resolved


def find_config_file(directory: Path, names: Sequence[str]) -> Path | None:
    """First of ``names`` present as a file in ``directory``."""

    for name in names:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def merge_mappings(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Recursive merge; nested tables combine, any other value is replaced."""

    result: Dict[str, Any] = dict(base)
    for key, value in overlay.items():
        current = result.get(key)
        both_tables = isinstance(current, Mapping) and isinstance(value, Mapping)
        result[key] = merge_mappings(current, value) if both_tables else value
    return result


def _field_label(field_name: str | None) -> str:
    return f"{field_name} " if field_name else ""


def normalize_string_list(value: Any, *, field_name: str | None = None) -> List[str]:
    """Accept a single string or a list of strings; blanks are dropped."""

    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, Sequence):
        raise TypeError(f"{_field_label(field_name)}must be a string or a list of strings")
    if any(not isinstance(item, str) for item in value):
        raise TypeError(f"{_field_label(field_name)}entries must be strings")
    return [item.strip() for item in value if item.strip()]


def normalize_string_mapping(value: Any, *, field_name: str | None = None) -> Dict[str, str]:
    """Accept a table of scalars and stringify its keys and values."""

    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError(f"{_field_label(field_name)}must be a table")
    return {str(key): str(item) for key, item in value.items()}


__all__ = [
    "CONFIG_FORMATS",
    "ConfigFormat",
    "find_config_file",
    "load_config_file",
    "load_config_files",
    "merge_mappings",
    "normalize_string_list",
    "normalize_string_mapping",
    "resolve_config_paths",
]
