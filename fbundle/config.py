import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from .errors import ConfigError

DEFAULT_BUNDLE_NAME = "file_bundle"
DEFAULT_DST_EXT = ".txt"


def unescape_separator(sep: str) -> str:
    """Turn a literal backslash-n typed on the command line into a newline."""
    return sep.replace("\\n", "\n")


@dataclass(frozen=True)
class BundleConfig:
    """Immutable settings for one bundling run."""

    file_sep: str
    patterns: Tuple[str, ...]
    bundle_name: str = DEFAULT_BUNDLE_NAME
    src_dir: Path = field(default_factory=lambda: Path("."))
    out_dir: Path = field(default_factory=lambda: Path("."))
    dst_ext: str = DEFAULT_DST_EXT
    case_sensitive: bool = False
    follow_symlinks: bool = False
    respect_gitignore: bool = False
    jobs: Optional[int] = None
    show_progress: bool = False

    def __post_init__(self):
        # A single pattern string is one pattern, not a sequence of characters
        patterns = (self.patterns,) if isinstance(self.patterns, str) else tuple(self.patterns)
        object.__setattr__(self, "patterns", patterns)
        object.__setattr__(self, "src_dir", Path(self.src_dir))
        object.__setattr__(self, "out_dir", Path(self.out_dir))

    @property
    def output_path(self) -> Path:
        return self.out_dir / f"{self.bundle_name}{self.dst_ext}"

    @property
    def workers(self) -> int:
        return self.jobs or os.cpu_count() or 1

    def validate(self) -> "BundleConfig":
        """Check the invariants the pipeline relies on; return self."""
        if not self.file_sep:
            raise ConfigError("A file separator must be supplied.")
        if not self.patterns:
            raise ConfigError("At least one glob pattern must be supplied.")
        if not self.bundle_name or any(
            sep in self.bundle_name for sep in ("/", os.sep)
        ):
            raise ConfigError(
                f"Bundle name '{self.bundle_name}' must be a plain file name."
            )
        if self.jobs is not None and self.jobs < 1:
            raise ConfigError(f"Worker count must be positive, got {self.jobs}.")
        if not self.src_dir.exists():
            raise ConfigError(f"Source directory '{self.src_dir}' does not exist.")
        if not self.src_dir.is_dir():
            raise ConfigError(f"Source path '{self.src_dir}' is not a directory.")
        if not os.access(self.src_dir, os.R_OK | os.X_OK):
            raise ConfigError(f"Source directory '{self.src_dir}' is not readable.")
        if self.out_dir.exists() and not self.out_dir.is_dir():
            raise ConfigError(f"Output path '{self.out_dir}' is not a directory.")
        return self
