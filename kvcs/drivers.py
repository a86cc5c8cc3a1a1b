"""Merge drivers: per-path content merge functions."""

from __future__ import annotations

from fnmatch import fnmatchcase
from typing import Callable, Mapping

from merge3 import Merge3

from .diff import is_binary
from .errors import Unmergeable
from .markers import render_region

MergeDriver = Callable[[bytes | None, bytes, bytes], bytes]
"""Merge driver: (base, ours, theirs) -> merged content.

``base`` is None when both sides added the path. A driver that cannot
combine the two sides raises ``Unmergeable``, optionally carrying the
content (with marker regions) to leave in the working snapshot.
"""


def _lines(data: bytes | None) -> list[bytes]:
    return data.splitlines(keepends=True) if data else []


def _merge_lines(
    base: bytes | None,
    ours: bytes,
    theirs: bytes,
    on_conflict: Callable[[list[bytes], list[bytes]], bytes],
) -> tuple[bytes, bool]:
    if is_binary(ours) or is_binary(theirs) or (base is not None and is_binary(base)):
        raise Unmergeable("binary content cannot be merged line by line")
    merger = Merge3(_lines(base), _lines(ours), _lines(theirs))
    out: list[bytes] = []
    conflicted = False
    for group in merger.merge_groups():
        if group[0] == "conflict":
            conflicted = True
            _, _base_lines, our_lines, their_lines = group
            out.append(on_conflict(list(our_lines), list(their_lines)))
        else:
            out.extend(group[1])
    return b"".join(out), conflicted


def line_merge(ours_label: str = "ours", theirs_label: str = "theirs") -> MergeDriver:
    """Line-level three-way merge.

    Non-overlapping edits combine cleanly. Overlapping hunks become
    marker regions and the driver raises ``Unmergeable`` carrying the
    marked-up content.
    """

    def merge(base: bytes | None, ours: bytes, theirs: bytes) -> bytes:
        merged, conflicted = _merge_lines(
            base,
            ours,
            theirs,
            lambda a, b: render_region(a, b, ours_label, theirs_label),
        )
        if conflicted:
            raise Unmergeable("overlapping line changes", content=merged)
        return merged

    return merge


def union() -> MergeDriver:
    """Line merge that keeps both sides of every overlapping hunk, ours first."""

    def merge(base: bytes | None, ours: bytes, theirs: bytes) -> bytes:
        merged, _ = _merge_lines(
            base, ours, theirs, lambda a, b: b"".join(a) + b"".join(b)
        )
        return merged

    return merge


def take_ours() -> MergeDriver:
    """Always keep the current side."""
    return lambda base, ours, theirs: ours


def take_theirs() -> MergeDriver:
    """Always take the incoming side."""
    return lambda base, ours, theirs: theirs


def find_driver(
    drivers: Mapping[str, MergeDriver], path: str
) -> MergeDriver | None:
    """First driver whose glob pattern matches ``path``.

    Patterns without a ``/`` match the file name in any directory;
    patterns with one match the full path.
    """
    name = path.rsplit("/", 1)[-1]
    for pattern, driver in drivers.items():
        target = path if "/" in pattern else name
        if fnmatchcase(target, pattern):
            return driver
    return None
