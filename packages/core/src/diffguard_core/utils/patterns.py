"""Path matching for include and ignore rules.

Each pattern is tried as a glob first. Globs support ``*`` and ``?`` within a
path segment, ``[...]`` character classes, ``{a,b}`` brace groups and ``**``
as a whole segment spanning any number of directories. Wildcards do not match
a leading dot; write the dot explicitly (".github/*.yml"). A pattern that is not
a valid glob (unbalanced brace, unclosed class) is retried as a regular
expression searched in the path. A pattern that is neither contributes no
match.

Patterns are anchored before matching:
  "/src/*.ts"   -> "**/src/*.ts"
  "**/gen/*"    -> unchanged
  "*.md"        -> "**/*.md"
"""

from __future__ import annotations

import logging
import re
from typing import Iterable
from urllib.parse import unquote

logger = logging.getLogger(__name__)

# Wildcards never match a leading dot, as in the shell. Only a segment that
# itself starts with "." can match a dotfile or dot-directory.
_NO_LEADING_DOT = r"(?!\.)"
_GLOBSTAR = r"(?:(?!\.)[^/]*/)*"
_TRAILING_GLOBSTAR = r"(?:(?!\.)[^/]*(?:/(?!\.)[^/]*)*)?"


class InvalidGlobError(ValueError):
    """Raised when a pattern cannot be read as a glob."""


def normalize_path(path: str) -> str:
    """Percent-decode a repository path and give it a leading slash."""
    decoded = unquote(path)
    return decoded if decoded.startswith("/") else "/" + decoded


def anchor_pattern(pattern: str) -> str:
    if pattern.startswith("/"):
        return "**" + pattern
    if pattern.startswith("**"):
        return pattern
    return "**/" + pattern


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` groups (nested groups included) into plain globs.

    A group without a top-level comma, such as ``{a}``, is kept literally.
    """
    depth = 0
    open_at = -1
    commas: list[int] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            i += 2
            continue
        if ch == "{":
            if depth == 0:
                open_at = i
                commas = []
            depth += 1
        elif ch == "," and depth == 1:
            commas.append(i)
        elif ch == "}":
            if depth == 0:
                raise InvalidGlobError(f"unbalanced '}}' in {pattern!r}")
            depth -= 1
            if depth == 0:
                head, tail = pattern[:open_at], pattern[i + 1 :]
                if not commas:
                    inner = expand_braces(pattern[open_at + 1 : i])
                    return [f"{head}{{{body}}}{rest}" for body in inner for rest in expand_braces(tail)]
                bounds = [open_at, *commas, i]
                options = [pattern[a + 1 : b] for a, b in zip(bounds, bounds[1:])]
                return [head + expanded for option in options for expanded in expand_braces(option + tail)]
        i += 1
    if depth:
        raise InvalidGlobError(f"unbalanced '{{' in {pattern!r}")
    return [pattern]


def _translate_segment(segment: str) -> str:
    out: list[str] = []
    i, n = 0, len(segment)
    while i < n:
        ch = segment[i]
        i += 1
        if ch == "*":
            while i < n and segment[i] == "*":
                i += 1
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            j = i
            if j < n and segment[j] in "!^":
                j += 1
            if j < n and segment[j] == "]":
                j += 1
            while j < n and segment[j] != "]":
                j += 1
            if j >= n:
                raise InvalidGlobError(f"unclosed character class in {segment!r}")
            body = segment[i:j].replace("\\", "\\\\").replace("[", "\\[")
            if body[:1] in ("!", "^"):
                body = "^" + body[1:]
            out.append(f"[{body}]")
            i = j + 1
        elif ch == "\\" and i < n:
            out.append(re.escape(segment[i]))
            i += 1
        else:
            out.append(re.escape(ch))
    translated = "".join(out)
    if segment.startswith((".", "\\.")):
        return translated
    return _NO_LEADING_DOT + translated


def translate_glob(glob: str) -> str:
    """Translate one brace-free glob into a regex meant for ``fullmatch``."""
    segments = glob.split("/")
    parts: list[str] = []
    for idx, segment in enumerate(segments):
        last = idx == len(segments) - 1
        if segment == "**":
            parts.append(_TRAILING_GLOBSTAR if last else _GLOBSTAR)
        else:
            parts.append(_translate_segment(segment) + ("" if last else "/"))
    return "".join(parts)


def compile_glob(pattern: str) -> list[re.Pattern]:
    """Compile an anchored glob (after brace expansion) into regexes.

    Raises InvalidGlobError if the pattern is not a valid glob.
    """
    compiled = []
    for glob in expand_braces(pattern):
        try:
            compiled.append(re.compile(translate_glob(glob)))
        except re.error as e:
            raise InvalidGlobError(str(e)) from e
    return compiled


def match_pattern(pattern: str, normalized_path: str) -> bool:
    try:
        globs = compile_glob(anchor_pattern(pattern))
    except InvalidGlobError:
        try:
            return re.search(pattern, normalized_path) is not None
        except re.error:
            logger.debug("Pattern %r is neither a glob nor a regex; ignoring it", pattern)
            return False
    return any(g.fullmatch(normalized_path) for g in globs)


def matches(patterns: Iterable[str], path: str) -> bool:
    """Return True if any pattern matches path. An empty pattern list never matches."""
    normalized = normalize_path(path)
    for pattern in patterns:
        if match_pattern(pattern, normalized):
            logger.debug("%s matched by %r", path, pattern)
            return True
    return False
