"""In-place expansion of templated control files."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence
import fnmatch
import re

from .core.archive import iter_sorted_files
from .core.console import ComposeConsole
from .core.template import TemplateRenderer
from .errors import ComposeError


_VARIABLE_PATTERN = re.compile(r"(?P<escape>\$)?\$\{(?P<name>[^${}]+)\}")

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def compose_bindings(ambient: Mapping[str, str], declared: Mapping[str, str]) -> Dict[str, str]:
    """Merge ambient properties with user-declared ones; declared values win."""

    bindings = {str(key): str(value) for key, value in ambient.items()}
    bindings.update({str(key): str(value) for key, value in declared.items()})
    return bindings


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def substitute_variables(text: str, bindings: Mapping[str, str]) -> str:
    """Replace ``${name}`` with bound values.

    Unbound names stay as written, ``$${name}`` yields a literal ``${name}``,
    and bound values are themselves substituted. A reference cycle leaves the
    placeholder that closes the cycle untouched. Never raises.
    """

    def _substitute(value: str, stack: tuple[str, ...]) -> str:
        def replacement(match: re.Match[str]) -> str:
            name = match.group("name")
            if match.group("escape"):
                return "${" + name + "}"
            key = name.strip()
            if key not in bindings or key in stack:
                return match.group(0)
            return _substitute(bindings[key], stack + (key,))

        return _VARIABLE_PATTERN.sub(replacement, value)

    if "${" not in text:
        return text
    return _substitute(text, ())


def matches_any(name: str, patterns: Iterable[str]) -> bool:
    """Case-insensitive glob match of a file name."""

    lowered = name.lower()
    return any(fnmatch.fnmatchcase(lowered, pattern.lower()) for pattern in patterns)


class TemplateExpander:
    """Expand selected files in place: variables first, then ``{{ }}`` expressions."""

    def __init__(
        self,
        console: ComposeConsole,
        *,
        patterns: Sequence[str],
        bindings: Mapping[str, str],
        context: Mapping[str, Any],
    ) -> None:
        self._console = console
        self._patterns = list(patterns)
        self._bindings = dict(bindings)
        self._renderer = TemplateRenderer(context)

    def select(self, directory: Path) -> List[Path]:
        if not directory.is_dir():
            return []
        return [path for path in iter_sorted_files(directory) if matches_any(path.name, self._patterns)]

    def expand_text(self, text: str) -> str:
        return self._renderer.render(substitute_variables(text, self._bindings))

    def expand(self, directory: Path) -> List[Path]:
        files = self.select(directory)
        for path in files:
            try:
                with path.open("r", encoding="utf-8", newline="") as handle:
                    source = handle.read()
            except UnicodeDecodeError as exc:
                raise ComposeError(f"Vault file '{path.name}' is not UTF-8 text and cannot be expanded") from exc
            try:
                content = self.expand_text(source)
            except Exception as exc:
                raise ComposeError(
                    f"Template expansion failed for '{path.name}'. "
                    f"Probably some variables are not bound: {exc}"
                ) from exc
            with path.open("w", encoding="utf-8", newline="") as handle:
                handle.write(content)
            self._console.debug(f"Expanded vault file: {path}")
        return files


__all__ = [
    "TIMESTAMP_FORMAT",
    "TemplateExpander",
    "compose_bindings",
    "format_timestamp",
    "matches_any",
    "substitute_variables",
]
