"""Run the whole pipeline: patterns, walk, select, read, write."""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List

from .bundler import write_bundle
from .config import BundleConfig
from .errors import FBundleError, RunError, WalkWarning
from .patterns import PatternSet
from .selector import select
from .walker import Walker, load_gitignore

log = logging.getLogger(__name__)


@dataclass
class RunResult:
    bundled_count: int
    output_path: Path
    bytes_written: int = 0
    elapsed: float = 0.0
    warnings: List[WalkWarning] = field(default_factory=list)


@contextmanager
def phase(name: str) -> Iterator[None]:
    """Re-raise fatal errors from one pipeline step as :class:`RunError`.

    Errors that already know their phase (a read failure inside the bundle
    step, say) keep it; anything else is tagged with ``name``.
    """
    try:
        yield
    except RunError:
        raise
    except (FBundleError, OSError) as e:
        tag = e.phase if isinstance(e, FBundleError) else name
        log.debug(f"Phase '{tag}' failed: {e!r}")
        raise RunError(tag, str(e)) from e


def run(config: BundleConfig) -> RunResult:
    """Bundle the files selected by ``config`` into ``config.output_path``."""
    start = time.perf_counter()
    with phase("config"):
        config.validate()
        output_path = config.output_path.resolve()

    with phase("pattern-compile"):
        pattern_set = PatternSet.from_strings(
            config.patterns, case_sensitive=config.case_sensitive
        )
    log.debug(
        f"Include patterns: {[s.raw for s in pattern_set.includes]}; "
        f"exclude patterns: {[s.raw for s in pattern_set.excludes]}"
    )

    with phase("walk"):
        gitignore = load_gitignore(config.src_dir) if config.respect_gitignore else None
        walker = Walker(
            config.src_dir,
            pattern_set=pattern_set,
            follow_symlinks=config.follow_symlinks,
            gitignore=gitignore,
            skip_paths=[output_path],
        )
        candidates = list(walker)
    log.debug(f"Total candidate files: {len(candidates)}")

    with phase("select"):
        selected = select(candidates, pattern_set)
    if not selected:
        log.warning("No files found matching the criteria.")

    with phase("write"):
        result = write_bundle(
            selected,
            output_path,
            config.file_sep,
            jobs=config.workers,
            show_progress=config.show_progress,
        )

    elapsed = time.perf_counter() - start
    if walker.warnings:
        log.warning(f"{len(walker.warnings)} entries skipped during traversal.")
    log.info(f"Bundled {result.file_count} files into {output_path} in {elapsed:.2f}s")
    return RunResult(
        bundled_count=result.file_count,
        output_path=result.output_path,
        bytes_written=result.bytes_written,
        elapsed=elapsed,
        warnings=list(walker.warnings),
    )
