"""Garbage collection: sweep objects no ref can reach."""

import logging
from dataclasses import dataclass
from typing import Iterable

from .errors import NotFound
from .objects import Blob, Commit, Tree
from .objectstore import ObjectStore
from .refs import RefStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GCResult:
    """Result of a garbage collection pass."""

    reachable: int
    removed: tuple[str, ...]

    @property
    def removed_count(self) -> int:
        return len(self.removed)


def reachable_objects(
    objects: ObjectStore, roots: Iterable[str]
) -> set[str]:
    """Every object reachable from ``roots`` (commits, trees or blobs)."""
    marked: set[str] = set()
    stack = list(roots)
    while stack:
        obj_hash = stack.pop()
        if obj_hash in marked:
            continue
        try:
            obj = objects.load(obj_hash)
        except NotFound:
            continue
        marked.add(obj_hash)
        if isinstance(obj, Commit):
            stack.append(obj.tree)
            stack.extend(obj.parents)
        elif isinstance(obj, Tree):
            stack.extend(entry.hash for entry in obj)
        elif not isinstance(obj, Blob):
            raise TypeError(f"unexpected object {type(obj).__name__}")
    return marked


def collect_garbage(
    objects: ObjectStore,
    refs: RefStore,
    *,
    extra_roots: Iterable[str] = (),
) -> GCResult:
    """Mark from every ref plus ``extra_roots``, then delete the rest.

    Objects written by a merge or commit still in progress are not yet
    referenced; pass them (for example a pending merge tree) as
    ``extra_roots``, or run GC while no writer is active.
    """
    roots = list(refs.items().values())
    roots.extend(extra_roots)
    marked = reachable_objects(objects, roots)

    orphans = tuple(sorted(h for h in objects.hashes() if h not in marked))
    if orphans:
        objects.remove_many(*orphans)
    logger.info(
        "gc kept %d object(s), removed %d", len(marked), len(orphans)
    )
    return GCResult(reachable=len(marked), removed=orphans)
