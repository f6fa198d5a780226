"""
fbundle - bundle files matching glob patterns into a single output file.
"""

from .config import BundleConfig
from .errors import (
    ConfigError,
    FBundleError,
    PatternError,
    ReadError,
    RunError,
    WalkError,
    WalkWarning,
    WriteError,
)
from .orchestrator import RunResult, run
from .patterns import PatternSet, PatternSpec

__version__ = "0.1.0"

__all__ = [
    "BundleConfig",
    "ConfigError",
    "FBundleError",
    "PatternError",
    "PatternSet",
    "PatternSpec",
    "ReadError",
    "RunError",
    "RunResult",
    "WalkError",
    "WalkWarning",
    "WriteError",
    "run",
]
