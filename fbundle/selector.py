import logging
import os
from dataclasses import dataclass
from typing import Iterable, List

from .patterns import PatternSet
from .walker import CandidateFile

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectedFile(CandidateFile):
    """A candidate that passed the include/exclude patterns."""

    @property
    def sort_key(self) -> bytes:
        return os.fsencode(self.relative_path)


def select(
    candidates: Iterable[CandidateFile], pattern_set: PatternSet
) -> List[SelectedFile]:
    """Filter candidates and order them byte-wise by relative path."""
    selected = []
    for candidate in candidates:
        if pattern_set.matches(candidate.relative_path):
            log.debug(f"Including file: {candidate.relative_path}")
            selected.append(
                SelectedFile(candidate.relative_path, candidate.absolute_path)
            )
        else:
            log.debug(f"Skipping unmatched file: {candidate.relative_path}")
    selected.sort(key=lambda f: f.sort_key)
    log.info(f"Found {len(selected)} files matching criteria.")
    return selected
