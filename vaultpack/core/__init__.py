"""Shared core utilities for archiving, templating, configuration and output."""

from .archive import ArchiveBuilder, ArchiveResult, ArchiveSource, iter_sorted_files
from .console import ComposeConsole, Console, RecordingConsole
from .template import TemplateError, TemplateRenderer, extract_expressions, validate_expression_syntax
from .config_loader import (
    CONFIG_FORMATS,
    ConfigFormat,
    find_config_file,
    load_config_file,
    load_config_files,
    merge_mappings,
    normalize_string_list,
    normalize_string_mapping,
    resolve_config_paths,
)

__all__ = [
    "ArchiveBuilder",
    "ArchiveResult",
    "ArchiveSource",
    "iter_sorted_files",
    "ComposeConsole",
    "Console",
    "RecordingConsole",
    "TemplateError",
    "TemplateRenderer",
    "extract_expressions",
    "validate_expression_syntax",
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
