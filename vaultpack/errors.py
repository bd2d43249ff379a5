"""Error raised when package composition cannot complete."""
from __future__ import annotations


class ComposeError(RuntimeError):
    """Fatal composition failure; the original exception is kept as ``__cause__``."""


__all__ = ["ComposeError"]
