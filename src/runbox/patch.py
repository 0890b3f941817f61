"""
Recover the file paths a unified diff would touch.

Used to validate every patch target against the workspace before the patch
is applied. Only ``--- `` and ``+++ `` header lines are considered, so a
patch using another header convention yields no paths and is rejected. A
removed line that itself starts with ``-- `` is misread as a header; this is
a best-effort parser, not a diff grammar.
"""

from __future__ import annotations

from collections.abc import Iterator

_HEADER_PREFIXES = ("--- ", "+++ ")
_GIT_PREFIXES = ("a/", "b/")
_NULL_TARGET = "/dev/null"


def _header_targets(patch_text: str) -> Iterator[str]:
    """Yield the raw target of every header line, skipping /dev/null."""
    for line in patch_text.splitlines():
        if not line.startswith(_HEADER_PREFIXES):
            continue
        # diff -u appends "\t<timestamp>"
        candidate = line[4:].rstrip("\r").split("\t", 1)[0]
        if candidate and candidate != _NULL_TARGET:
            yield candidate


def extract_patch_paths(patch_text: str) -> list[str]:
    """
    Return the distinct paths named by the diff headers, in first-seen order.

    A leading git-style ``a/`` or ``b/`` is removed.

    Example:
        >>> extract_patch_paths("--- a/x.txt\\n+++ b/x.txt\\n@@ -1 +1 @@\\n-a\\n+b\\n")
        ['x.txt']
    """
    paths: list[str] = []
    for candidate in _header_targets(patch_text):
        if candidate.startswith(_GIT_PREFIXES):
            candidate = candidate[2:]
        if candidate and candidate not in paths:
            paths.append(candidate)
    return paths


def strip_level(patch_text: str) -> int:
    """Return 1 if every header path has the ``a/``/``b/`` prefix, else 0."""
    targets = list(_header_targets(patch_text))
    if targets and all(t.startswith(_GIT_PREFIXES) for t in targets):
        return 1
    return 0


__all__ = ["extract_patch_paths", "strip_level"]
