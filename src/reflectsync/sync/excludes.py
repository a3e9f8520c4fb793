"""Translation of rsync exclude patterns into regular expressions.

The watcher has to drop the same paths rsync would skip, so each exclude
pattern is converted into an anchored regular expression matched against
root-relative paths (no leading or trailing separator).

Pattern dialect:
- ``/`` prefix anchors the match at the watched root
- ``/`` suffix only matches directories (i.e. paths below them)
- ``*`` matches any run of characters except ``/``
- ``**`` matches any run of characters including ``/``
- ``***`` matches anything; ``dir/***`` matches ``dir`` and everything in it
- ``?`` matches one character except ``/``
- ``[...]`` and ``[!...]`` are character classes

Escaped wildcards (``\\*``) are not supported: a backslash is taken
literally and the wildcard after it keeps its meaning.
"""

from __future__ import annotations

import functools
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Applied in order. Longer wildcard tokens must be replaced before shorter
# ones, and placeholders keep replacements from being substituted again.
SUBSTITUTIONS: tuple[tuple[str, str], ...] = (
    ("\\", "\\\\"),
    (".", "\\."),
    ("+", "\\+"),
    ("(", "\\("),
    (")", "\\)"),
    ("{", "\\{"),
    ("}", "\\}"),
    ("$", "\\$"),
    ("|", "\\|"),
    ("^", "\\^"),
    ("[\\^", "[^"),
    ("[!", "[^"),
    ("/***", "|||TREE|||"),
    ("***", "|||EMPTY|||"),
    ("**", "|||GLOBAL|||"),
    ("*", "|||PATH|||"),
    ("?", "[^/]"),
    ("|||PATH|||", "[^/]*"),
    ("|||GLOBAL|||", ".*"),
    ("|||EMPTY|||", ".*"),
    ("|||TREE|||", "(?:/.*)?"),
)


@dataclass(frozen=True)
class ExcludeMatcher:
    """Compiled form of one exclude pattern.

    Attributes:
        pattern: The original rsync pattern.
        regex: Regular expression matched against root-relative paths.
        anchored: Pattern only matches at the watched root.
        directory_only: Pattern only matches directories.
    """

    pattern: str
    regex: re.Pattern[str]
    anchored: bool = False
    directory_only: bool = False

    def matches(self, path: str) -> bool:
        """Check if a root-relative path is excluded by this pattern."""
        return self.regex.search(path) is not None

    def __call__(self, path: str) -> bool:
        return self.matches(path)


def translate(body: str) -> str:
    """Substitute glob tokens in a pattern body with regex fragments."""
    for token, replacement in SUBSTITUTIONS:
        body = body.replace(token, replacement)
    return body


@functools.lru_cache(maxsize=None)
def compile_exclude(pattern: str) -> ExcludeMatcher:
    """Compile an rsync exclude pattern.

    Any string compiles. A body that is not a valid expression (such as an
    unbalanced ``[``) is retried with its brackets taken literally.

    Args:
        pattern: rsync exclude pattern.

    Returns:
        Matcher for root-relative paths.
    """
    body = pattern
    anchored = body.startswith("/")
    if anchored:
        body = body[1:]

    directory_only = body.endswith("/")
    if directory_only:
        body = body[:-1]

    prefix = "^" if anchored else "(?:^|/)"
    suffix = "/" if directory_only else "(?:/|$)"

    translated = translate(body)
    try:
        regex = re.compile(prefix + translated + suffix)
    except re.error:
        logger.debug("Exclude %r is not a valid class, matching brackets literally", pattern)
        translated = translate(body.replace("[", "\x00").replace("]", "\x01"))
        translated = translated.replace("\x00", "\\[").replace("\x01", "\\]")
        regex = re.compile(prefix + translated + suffix)

    return ExcludeMatcher(
        pattern=pattern,
        regex=regex,
        anchored=anchored,
        directory_only=directory_only,
    )


def compile_excludes(patterns: Iterable[str]) -> list[ExcludeMatcher]:
    """Compile a list of rsync exclude patterns."""
    return [compile_exclude(pattern) for pattern in patterns]


def is_excluded(path: str, matchers: Iterable[ExcludeMatcher]) -> bool:
    """Check if a root-relative path matches any of the matchers."""
    return any(matcher.matches(path) for matcher in matchers)
