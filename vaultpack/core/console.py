"""Console output handlers shared by the composition pipeline."""
from __future__ import annotations

from typing import List, Protocol, Tuple, runtime_checkable
import sys


@runtime_checkable
class ComposeConsole(Protocol):
    """Minimal console interface required by the pipeline components."""

    def info(self, message: str) -> None:
        ...

    def warn(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def debug(self, message: str) -> None:
        ...


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < warn < info < debug
    Default: 'info'
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "warn": 2,
        "info": 3,
        "debug": 4,
    }

    def __init__(self, level: str = "info") -> None:
        if level not in self.LEVELS:
            raise ValueError(
                f"Unknown log level '{level}'. Supported: {', '.join(self.LEVELS)}"
            )
        self.level_name = level
        self.level = self.LEVELS[level]

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            print(f"[INFO] {message}")

    def warn(self, message: str) -> None:
        if self.level >= self.LEVELS["warn"]:
            print(f"[WARN] {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            print(f"[ERROR] {message}", file=sys.stderr)

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            print(f"[DEBUG] {message}")


class RecordingConsole:
    """Console that records messages instead of printing them."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def warn(self, message: str) -> None:
        self.messages.append(("warn", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def debug(self, message: str) -> None:
        self.messages.append(("debug", message))

    def of_level(self, level: str) -> List[str]:
        return [message for recorded, message in self.messages if recorded == level]


__all__ = [
    "ComposeConsole",
    "Console",
    "RecordingConsole",
]
