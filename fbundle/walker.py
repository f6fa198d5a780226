"""Lazy traversal of the source tree."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, List, Optional, Tuple

import pathspec

from .errors import WalkError, WalkWarning
from .patterns import PatternSet

log = logging.getLogger(__name__)

# Metadata directories skipped when .gitignore rules are honoured
VCS_DIRS = frozenset({".git", ".hg", ".svn"})


@dataclass(frozen=True)
class CandidateFile:
    relative_path: str
    absolute_path: Path


def load_gitignore(root: Path) -> Optional[pathspec.PathSpec]:
    """Load .gitignore patterns from the source root."""
    gitignore_path = Path(root) / ".gitignore"
    if not gitignore_path.is_file():
        log.debug(f".gitignore not found in {root}")
        return None
    try:
        with open(gitignore_path, "r", encoding="utf-8") as gitignore_file:
            lines = gitignore_file.readlines()
    except (OSError, UnicodeDecodeError) as e:
        log.warning(f"Could not read .gitignore {gitignore_path}: {e}")
        return None
    return pathspec.GitIgnoreSpec.from_lines(lines)


class Walker:
    """Yield every regular file below ``root`` as a :class:`CandidateFile`.

    Directories are visited with an explicit stack. Each pending directory
    carries the real paths of its ancestors, so a followed symlink that leads
    back into an ancestor is reported and skipped instead of looping.

    Problems with individual entries end up in ``warnings``; only a root that
    cannot be listed stops the walk. Iterating again starts a fresh walk.
    """

    def __init__(
        self,
        root: Path,
        pattern_set: Optional[PatternSet] = None,
        follow_symlinks: bool = False,
        gitignore: Optional[pathspec.PathSpec] = None,
        skip_paths: Iterable[Path] = (),
    ):
        self.root = Path(root)
        self.pattern_set = pattern_set
        self.follow_symlinks = follow_symlinks
        self.gitignore = gitignore
        self.skip_paths = tuple(Path(p) for p in skip_paths)
        self.warnings: List[WalkWarning] = []

    def _warn(self, rel: str, message: str, errno: Optional[int] = None) -> None:
        warning = WalkWarning(rel, message, errno)
        log.debug(f"Walk warning: {warning}")
        self.warnings.append(warning)

    def _prune(self, rel: str, name: str) -> bool:
        if self.pattern_set is not None and self.pattern_set.excludes_dir(rel):
            log.debug(f"Excluding directory (and subdirectories): {rel}")
            return True
        if self.gitignore is not None and not self._may_include_below(rel):
            if name in VCS_DIRS or self.gitignore.match_file(rel + "/"):
                log.debug(f"Excluding directory by .gitignore: {rel}")
                return True
        return False

    def _may_include_below(self, rel: str) -> bool:
        return self.pattern_set is not None and self.pattern_set.may_include_below(rel)

    def _gitignored(self, rel: str) -> bool:
        # .gitignore only narrows the walk; it never drops a selected file
        if self.gitignore is None or not self.gitignore.match_file(rel):
            return False
        return self.pattern_set is None or not self.pattern_set.matches(rel)

    def __iter__(self) -> Iterator[CandidateFile]:
        self.warnings = []
        try:
            root = self.root.resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise WalkError(f"Could not resolve source directory '{self.root}': {e}") from e
        if not root.is_dir():
            raise WalkError(f"Source path '{root}' is not a directory")

        skip = {os.path.realpath(p) for p in self.skip_paths}
        skip_names = {p.name for p in self.skip_paths}

        # (path to list, its real path, relative path, real paths of ancestors)
        stack: List[Tuple[str, str, str, FrozenSet[str]]] = [
            (str(root), str(root), "", frozenset([str(root)]))
        ]
        log.debug(f"Scanning folder: {root}")
        while stack:
            dir_path, real_dir, rel_dir, ancestors = stack.pop()
            try:
                with os.scandir(dir_path) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                if not rel_dir:
                    raise WalkError(f"Could not list source directory '{root}': {e}") from e
                self._warn(rel_dir, f"could not list directory: {e.strerror or e}", e.errno)
                continue

            subdirs = []
            for entry in entries:
                rel = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
                try:
                    is_link = entry.is_symlink()
                    if is_link and not self.follow_symlinks:
                        if not os.path.exists(entry.path):
                            self._warn(rel, "dangling symlink")
                        else:
                            log.debug(f"Skipping symlink: {rel}")
                        continue
                    is_dir = entry.is_dir()
                    is_file = not is_dir and entry.is_file()
                except OSError as e:
                    self._warn(rel, f"could not stat entry: {e.strerror or e}", e.errno)
                    continue

                if is_dir:
                    if self._prune(rel, entry.name):
                        continue
                    if is_link:
                        real = os.path.realpath(entry.path)
                        if real in ancestors:
                            self._warn(rel, f"symlink cycle back to {real}")
                            continue
                    else:
                        real = os.path.join(real_dir, entry.name)
                    subdirs.append((entry.path, real, rel, ancestors | {real}))
                elif is_file:
                    if self._gitignored(rel):
                        log.debug(f"Excluding by .gitignore: {rel}")
                        continue
                    if entry.name in skip_names and os.path.realpath(entry.path) in skip:
                        log.debug(f"Skipping output file: {rel}")
                        continue
                    yield CandidateFile(rel, Path(entry.path))
                elif is_link and not os.path.exists(entry.path):
                    self._warn(rel, "dangling symlink")
                else:
                    log.debug(f"Skipping non-regular file: {rel}")

            stack.extend(reversed(subdirs))
