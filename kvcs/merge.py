"""Three-way merge of tree snapshots."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from .diff import build_tree, diff_trees, flatten_tree, is_binary
from .drivers import MergeDriver, find_driver
from .errors import MergeConflict, Unmergeable
from .markers import has_conflict_markers, whole_file_region
from .objects import Blob
from .objectstore import ObjectStore

logger = logging.getLogger(__name__)

CONTENT = "content"
ADD_ADD = "add/add"
MODIFY_DELETE = "modify/delete"
BINARY = "binary"
FILE_DIRECTORY = "file/directory"


@dataclass(frozen=True)
class Conflict:
    """A path the engine could not reconcile.

    ``content`` is what the working snapshot holds for the path: marker
    regions for text conflicts, the surviving side for modify/delete,
    the ours side for binary files.
    """

    path: str
    kind: str
    base: str | None
    ours: str | None
    theirs: str | None
    content: bytes


@dataclass(frozen=True)
class TreeMerge:
    """Outcome of merging two trees against their base.

    Attributes:
        tree: Tree hash of the working snapshot, conflicted files
            included with their marker content.
        entries: The same snapshot as ``path -> blob hash``.
        conflicts: Unreconciled paths.
        auto_merged: Paths both sides changed that a driver combined.
    """

    tree: str
    entries: dict[str, str]
    conflicts: dict[str, Conflict] = field(default_factory=dict)
    auto_merged: tuple[str, ...] = ()

    @property
    def clean(self) -> bool:
        return not self.conflicts


class MergeEngine:
    """Combines two divergent trees using their common ancestor.

    Paths changed on both sides to different content are conflicts
    unless a registered merge driver matches the path. Drivers are
    looked up by glob pattern, in registration order, falling back to
    ``default_driver``.
    """

    def __init__(
        self,
        objects: ObjectStore,
        *,
        drivers: Mapping[str, MergeDriver] | None = None,
        default_driver: MergeDriver | None = None,
    ) -> None:
        self.objects = objects
        self.drivers: dict[str, MergeDriver] = dict(drivers or {})
        self.default_driver = default_driver

    def set_driver(self, pattern: str, driver: MergeDriver) -> None:
        """Register a merge driver for paths matching a glob pattern."""
        self.drivers[pattern] = driver

    def merge_trees(
        self,
        base_tree: str | None,
        ours_tree: str | None,
        theirs_tree: str | None,
        *,
        ours_label: str = "ours",
        theirs_label: str = "theirs",
    ) -> TreeMerge:
        """Three-way merge ``ours_tree`` and ``theirs_tree`` over ``base_tree``."""
        our_diff = diff_trees(self.objects, base_tree, ours_tree)
        their_diff = diff_trees(self.objects, base_tree, theirs_tree)

        base = flatten_tree(self.objects, base_tree)
        ours = flatten_tree(self.objects, ours_tree)
        theirs = flatten_tree(self.objects, theirs_tree)

        # Paths untouched by either side carry over from ours (== base).
        entries = dict(ours)
        conflicts: dict[str, Conflict] = {}
        auto_merged: list[str] = []

        for path in sorted(our_diff.paths | their_diff.paths):
            b, o, t = base.get(path), ours.get(path), theirs.get(path)
            if o == t:
                merged = o
            elif o == b:
                merged = t
            elif t == b:
                merged = o
            elif o is None or t is None:
                conflicts[path] = self._modify_delete(path, b, o, t)
                continue
            else:
                result = self._merge_content(
                    path, b, o, t, ours_label=ours_label, theirs_label=theirs_label
                )
                if isinstance(result, Conflict):
                    conflicts[path] = result
                    continue
                merged = result
                auto_merged.append(path)

            if merged is None:
                entries.pop(path, None)
            else:
                entries[path] = merged

        for path, conflict in conflicts.items():
            entries[path] = self.objects.store_object(Blob(conflict.content))

        for path in _file_directory_clashes(entries):
            conflicts[path] = Conflict(
                path=path,
                kind=FILE_DIRECTORY,
                base=base.get(path),
                ours=ours.get(path),
                theirs=theirs.get(path),
                content=self.objects.load_blob(entries.pop(path)).data,
            )

        tree = build_tree(self.objects, entries)
        if conflicts:
            logger.info(
                "merge of %s into %s left %d conflict(s): %s",
                theirs_label,
                ours_label,
                len(conflicts),
                ", ".join(sorted(conflicts)),
            )
        return TreeMerge(
            tree=tree,
            entries=entries,
            conflicts=conflicts,
            auto_merged=tuple(auto_merged),
        )

    def _modify_delete(
        self, path: str, b: str | None, o: str | None, t: str | None
    ) -> Conflict:
        survivor = o if o is not None else t
        return Conflict(
            path=path,
            kind=MODIFY_DELETE,
            base=b,
            ours=o,
            theirs=t,
            content=self.objects.load_blob(survivor).data,
        )

    def _merge_content(
        self,
        path: str,
        b: str | None,
        o: str,
        t: str,
        *,
        ours_label: str,
        theirs_label: str,
    ) -> str | Conflict:
        """Merged blob hash, or a Conflict."""
        base_data = self.objects.load_blob(b).data if b is not None else None
        ours_data = self.objects.load_blob(o).data
        theirs_data = self.objects.load_blob(t).data
        kind = ADD_ADD if b is None else CONTENT

        marked: bytes | None = None
        driver = find_driver(self.drivers, path) or self.default_driver
        if driver is not None:
            try:
                return self.objects.store_object(
                    Blob(driver(base_data, ours_data, theirs_data))
                )
            except Unmergeable as e:
                marked = e.content
            except Exception:
                logger.exception("merge driver failed for %s", path)

        if is_binary(ours_data) or is_binary(theirs_data):
            return Conflict(path, BINARY, b, o, t, ours_data)
        if marked is None:
            marked = whole_file_region(ours_data, theirs_data, ours_label, theirs_label)
        return Conflict(path, kind, b, o, t, marked)


def _file_directory_clashes(entries: Mapping[str, object]) -> list[str]:
    """File paths that are also a directory prefix of another path."""
    dirs = set()
    for path in entries:
        parts = path.split("/")
        for i in range(1, len(parts)):
            dirs.add("/".join(parts[:i]))
    return sorted(p for p in entries if p in dirs)


def check_layout(entries: Mapping[str, object]) -> None:
    """Refuse a resolved snapshot where a path is both file and directory.

    Raises:
        MergeConflict: Naming the clashing file paths.
    """
    clashes = _file_directory_clashes(entries)
    if clashes:
        raise MergeConflict(set(clashes), reason="file and directory at the same path")


def ensure_resolved(
    conflicts: Mapping[str, Conflict] | set[str] | frozenset[str],
    resolutions: Mapping[str, bytes | None],
) -> None:
    """Refuse to finalize while conflicts remain.

    Every conflicted path needs an entry in ``resolutions`` (None means
    delete it), and no resolved content may still hold marker regions.

    Raises:
        MergeConflict: Naming the blocking paths.
    """
    unresolved = set(conflicts) - set(resolutions)
    if unresolved:
        raise MergeConflict(unresolved)
    marked = {
        path
        for path, content in resolutions.items()
        if content is not None and has_conflict_markers(content)
    }
    if marked:
        raise MergeConflict(marked, reason="conflict markers remain")
