"""Exceptions and warnings raised while building a bundle."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class FBundleError(Exception):
    """Base class for fatal errors. ``phase`` names the pipeline step."""

    phase = "run"


class ConfigError(FBundleError):
    phase = "config"


class PatternError(FBundleError):
    """Raised when a glob pattern cannot be compiled."""

    phase = "pattern-compile"

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"Invalid pattern '{pattern}': {reason}")
        self.pattern = pattern
        self.reason = reason


class WalkError(FBundleError):
    phase = "walk"


class BundleIOError(FBundleError):
    """A file could not be read from or written to disk."""

    def __init__(self, path: Path, cause: Exception):
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


class ReadError(BundleIOError):
    phase = "read"

    def __init__(self, path: Path, cause: Exception):
        super().__init__(path, cause)
        self.args = (f"Could not read {path}: {cause}",)


class WriteError(BundleIOError):
    phase = "write"

    def __init__(self, path: Path, cause: Exception):
        super().__init__(path, cause)
        self.args = (f"Could not write {path}: {cause}",)


class RunError(FBundleError):
    """Fatal error surfaced by :func:`fbundle.orchestrator.run`.

    The original exception is kept as ``__cause__``.
    """

    def __init__(self, phase: str, message: str):
        super().__init__(f"{phase}: {message}")
        self.phase = phase
        self.message = message


@dataclass(frozen=True)
class WalkWarning:
    """Non-fatal traversal issue for a single directory entry."""

    path: str
    message: str
    errno: Optional[int] = None

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"
