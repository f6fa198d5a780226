"""
Glob pattern compilation.

Patterns are matched against paths relative to the source directory, always
written with ``/``. Supported syntax:

    *        any run of characters inside one path segment
    ?        exactly one character inside one path segment
    [a-z]    character class, ``[!a-z]`` or ``[^a-z]`` negates it
    **       zero or more directories, only as a whole segment
    {a,b}    alternation, may be nested
    \\x       the literal character ``x``

A leading ``!`` turns the pattern into an exclusion. Patterns are anchored at
the source root, so ``*.txt`` does not match ``sub/c.txt``.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from .errors import PatternError

log = logging.getLogger(__name__)

INCLUDE = "include"
EXCLUDE = "exclude"


@dataclass(frozen=True)
class PatternSpec:
    raw: str
    pattern: str
    polarity: str

    @classmethod
    def parse(cls, raw: str) -> "PatternSpec":
        """Split the ``!`` exclusion prefix off a raw pattern string."""
        if raw.startswith("!"):
            return cls(raw, raw[1:], EXCLUDE)
        if raw.startswith("\\!"):
            # Escaped bang: an include pattern for a name starting with '!'
            return cls(raw, raw[1:], INCLUDE)
        return cls(raw, raw, INCLUDE)

    @property
    def is_exclude(self) -> bool:
        return self.polarity == EXCLUDE


def _class_end(pattern: str, start: int) -> int:
    """Index of the ']' closing the class opened at ``start``, or -1."""
    j = start + 1
    if j < len(pattern) and pattern[j] in "!^":
        j += 1
    if j < len(pattern) and pattern[j] == "]":
        j += 1
    while j < len(pattern) and pattern[j] != "]":
        if pattern[j] == "\\":
            j += 1
        j += 1
    return j if j < len(pattern) else -1


def _scan(pattern: str) -> Iterator[Tuple[int, str]]:
    """Yield characters that are neither escaped nor inside a class."""
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\":
            i += 2
            continue
        if c == "[":
            end = _class_end(pattern, i)
            if end < 0:
                raise ValueError("unclosed character class")
            i = end + 1
            continue
        yield i, c
        i += 1


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternations into plain glob patterns.

    >>> expand_braces("src/*.{js,ts}")
    ['src/*.js', 'src/*.ts']
    """
    depth = 0
    open_at = -1
    commas: List[int] = []
    for i, c in _scan(pattern):
        if c == "{":
            if depth == 0:
                open_at = i
                commas = []
            depth += 1
        elif c == "}":
            if depth == 0:
                raise ValueError("unmatched '}'")
            depth -= 1
            if depth == 0:
                head, tail = pattern[:open_at], pattern[i + 1 :]
                bounds = [open_at] + commas + [i]
                expanded: List[str] = []
                for a, b in zip(bounds, bounds[1:]):
                    expanded.extend(expand_braces(head + pattern[a + 1 : b] + tail))
                return list(dict.fromkeys(expanded))
        elif c == "," and depth == 1:
            commas.append(i)
    if depth:
        raise ValueError("unclosed '{'")
    return [pattern]


def _segments(pattern: str) -> List[str]:
    """Normalize a brace-free pattern into its path segments."""
    while pattern.startswith("./"):
        pattern = pattern[2:]
    pattern = pattern.lstrip("/")
    if pattern.endswith("/"):
        pattern += "**"
    segments: List[str] = []
    for seg in pattern.split("/"):
        if not seg or (seg == "**" and segments[-1:] == ["**"]):
            continue
        if "**" in seg and seg != "**":
            raise ValueError("'**' must be a complete path segment")
        segments.append(seg)
    if not segments:
        raise ValueError("empty pattern")
    return segments


def _translate_class(body: str) -> str:
    negate = body[:1] in ("!", "^")
    if negate:
        body = body[1:]
    out = []
    i = 0
    while i < len(body):
        c = body[i]
        if c == "\\" and i + 1 < len(body):
            i += 1
            out.append(re.escape(body[i]))
        elif c == "-" and 0 < i < len(body) - 1:
            out.append("-")
        else:
            out.append(re.escape(c))
        i += 1
    if negate:
        return "[^/" + "".join(out) + "]"
    return "[" + "".join(out) + "]"


def _translate_segment(seg: str) -> str:
    out = []
    i = 0
    while i < len(seg):
        c = seg[i]
        if c == "*":
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = _class_end(seg, i)
            if end < 0:
                raise ValueError("unclosed character class")
            out.append(_translate_class(seg[i + 1 : end]))
            i = end
        elif c == "\\":
            if i + 1 >= len(seg):
                raise ValueError("dangling escape at end of pattern")
            i += 1
            out.append(re.escape(seg[i]))
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


def translate(segments: Sequence[str]) -> str:
    """Translate normalized segments into an unanchored regex body."""
    if list(segments) == ["**"]:
        return ".*"
    out = []
    need_sep = False
    last = len(segments) - 1
    for idx, seg in enumerate(segments):
        if seg == "**":
            if idx == 0:
                out.append("(?:.*/)?")
                need_sep = False
            elif idx == last:
                out.append("/.*")
            else:
                out.append("/(?:.*/)?")
                need_sep = False
            continue
        if need_sep:
            out.append("/")
        out.append(_translate_segment(seg))
        need_sep = True
    return "".join(out)


class _CompiledSpec:
    """Regexes for one pattern spec and all its brace alternatives."""

    def __init__(self, spec: PatternSpec, flags: int):
        self.spec = spec
        self.regexes: List[str] = []
        self.dir_regexes: List[str] = []
        self.segment_paths: List[List[Optional["re.Pattern[str]"]]] = []
        try:
            for alternative in expand_braces(spec.pattern):
                segments = _segments(alternative)
                self.regexes.append(translate(segments))
                # None stands for a "**" segment
                self.segment_paths.append(
                    [
                        None if seg == "**" else re.compile(_translate_segment(seg), flags)
                        for seg in segments
                    ]
                )
                if segments[-1] == "**":
                    prefix = segments[:-1]
                    self.dir_regexes.append(translate(prefix) if prefix else ".*")
            for regex in self.regexes + self.dir_regexes:
                re.compile(regex, flags)
        except (ValueError, re.error) as e:
            raise PatternError(spec.raw, str(e)) from None


def _combine(regexes: List[str], flags: int) -> Optional["re.Pattern[str]"]:
    if not regexes:
        return None
    return re.compile("(?:" + "|".join(f"(?:{r})" for r in regexes) + r")\Z", flags)


class PatternSet:
    """Include/exclude matcher over relative paths.

    A path matches when at least one include pattern matches it and no
    exclude pattern does. Pattern order does not affect the outcome.
    """

    def __init__(self, specs: Iterable[PatternSpec], case_sensitive: bool = False):
        self.specs: Tuple[PatternSpec, ...] = tuple(specs)
        self.case_sensitive = case_sensitive
        flags = re.DOTALL if case_sensitive else re.DOTALL | re.IGNORECASE

        include: List[str] = []
        self._include_paths: List[List[Optional["re.Pattern[str]"]]] = []
        exclude: List[str] = []
        exclude_dirs: List[str] = []
        for spec in self.specs:
            compiled = _CompiledSpec(spec, flags)
            if spec.is_exclude:
                exclude.extend(compiled.regexes)
                exclude_dirs.extend(compiled.dir_regexes)
            else:
                include.extend(compiled.regexes)
                self._include_paths.extend(compiled.segment_paths)

        self._include = _combine(include, flags)
        self._exclude = _combine(exclude, flags)
        self._exclude_dirs = _combine(exclude_dirs, flags)

        if self._include is None:
            log.warning("No include patterns given; nothing will be selected.")
        log.debug(
            f"Compiled {len(include)} include and {len(exclude)} exclude "
            f"expressions from {len(self.specs)} patterns"
        )

    @classmethod
    def from_strings(
        cls, patterns: Iterable[str], case_sensitive: bool = False
    ) -> "PatternSet":
        return cls((PatternSpec.parse(p) for p in patterns), case_sensitive)

    @property
    def includes(self) -> List[PatternSpec]:
        return [s for s in self.specs if not s.is_exclude]

    @property
    def excludes(self) -> List[PatternSpec]:
        return [s for s in self.specs if s.is_exclude]

    def matches(self, relative_path: str) -> bool:
        path = _normalize(relative_path)
        if self._include is None or not self._include.match(path):
            return False
        return not (self._exclude is not None and self._exclude.match(path))

    def excludes_dir(self, relative_dir: str) -> bool:
        """True when every path below ``relative_dir`` is excluded."""
        if self._exclude_dirs is None:
            return False
        return self._exclude_dirs.match(_normalize(relative_dir)) is not None

    def may_include_below(self, relative_dir: str) -> bool:
        """True when some include pattern could match a path below ``relative_dir``."""
        parts = _normalize(relative_dir).split("/")
        return any(_could_contain(segments, parts) for segments in self._include_paths)


def _could_contain(segments: List[Optional["re.Pattern[str]"]], parts: List[str]) -> bool:
    for index, part in enumerate(parts):
        if index < len(segments) and segments[index] is None:
            return True
        # the final segment is reserved for the file itself
        if index >= len(segments) - 1:
            return False
        if not segments[index].fullmatch(part):
            return False
    return True


def _normalize(path: str) -> str:
    if os.sep != "/":
        path = path.replace(os.sep, "/")
    return path
