"""Repository: commits, branches and merges over one KV store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, Mapping

from .diff import TreeDiff, build_tree, check_path, diff_trees, flatten_tree
from .drivers import MergeDriver
from .errors import ConcurrentUpdate, NotFound, RefExists, UnknownRef
from .gc import GCResult, collect_garbage
from .graph import CommitGraph
from .kv.base import KVStore
from .kv.memory import Memory
from .merge import Conflict, MergeEngine, TreeMerge, check_layout, ensure_resolved
from .objects import Blob, Commit, Object, Tree
from .objectstore import ObjectStore
from .refs import HEADS, TAGS, RefStore, branch_ref, tag_ref

if TYPE_CHECKING:
    from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingMerge:
    """A merge waiting for its conflicts to be resolved.

    Attributes:
        branch: Branch the merge commit will advance.
        ours: Branch head the merge started from (expected CAS value).
        theirs: Incoming commit, or None when rebasing staged edits
            onto a moved head.
        base: The merge base.
        result: The tree merge, marker content included.
        message: Message for the eventual merge commit.
    """

    branch: str
    ours: str
    theirs: str | None
    base: str
    result: TreeMerge
    message: str

    @property
    def conflicts(self) -> dict[str, Conflict]:
        return self.result.conflicts

    @property
    def parents(self) -> tuple[str, ...]:
        if self.theirs is None:
            return (self.ours,)
        return (self.ours, self.theirs)


@dataclass(frozen=True)
class MergeResult:
    """Result of a merge operation."""

    merged: bool
    commit: str | None
    strategy: str  # "no_op", "fast_forward", "three_way"
    conflicts: frozenset[str] = frozenset()
    auto_merged: tuple[str, ...] = ()
    pending: PendingMerge | None = field(default=None, repr=False)

    def __bool__(self) -> bool:
        return self.merged


class Repository:
    """A version-control repository over a KV store.

    Holds the object store, reference store, commit graph and merge
    engine, and exposes the commit, merge and read operations on top
    of them.

    Opening a repository whose default branch does not exist creates
    it, pointing at an empty root commit.
    """

    def __init__(
        self,
        store: KVStore | None = None,
        *,
        branch: str = "main",
        drivers: Mapping[str, MergeDriver] | None = None,
        default_driver: MergeDriver | None = None,
    ) -> None:
        if store is None:
            store = Memory()
        self.store = store
        self.objects = ObjectStore(store)
        self.refs = RefStore(store, self.objects)
        self.graph = CommitGraph(self.objects)
        self.merger = MergeEngine(
            self.objects, drivers=drivers, default_driver=default_driver
        )
        self.default_branch = branch

        if self.refs.get(branch_ref(branch)) is None:
            root = self.create_commit(self.empty_tree, ())
            try:
                self.refs.create(branch_ref(branch), root)
            except RefExists:
                pass

    @property
    def empty_tree(self) -> str:
        return self.objects.store_object(Tree())

    # -- Objects --

    def create_commit(
        self,
        tree: str,
        parents: Iterable[str],
        *,
        author: str = "",
        message: str = "",
        timestamp: float | None = None,
    ) -> str:
        """Store a commit object. Its tree and parents must already exist."""
        parents = tuple(parents)
        self.objects.load_tree(tree)
        for parent in parents:
            self.objects.load_commit(parent)
        commit = Commit(
            tree=tree,
            parents=parents,
            author=author,
            timestamp=timestamp if timestamp is not None else 0.0,
            message=message,
        )
        return self.objects.store_object(commit)

    def write_snapshot(self, files: Mapping[str, bytes]) -> str:
        """Store a ``path -> content`` snapshot; return its tree hash."""
        paths = [check_path(path) for path in files]
        blobs = self.objects.store_objects(Blob(data) for data in files.values())
        return build_tree(self.objects, dict(zip(paths, blobs)))

    # -- Branches and tags --

    def head(self, branch: str | None = None) -> str:
        """Commit hash a branch points at. Raises UnknownRef."""
        return self.refs.read(branch_ref(branch or self.default_branch))

    def branches(self) -> list[str]:
        return self.refs.branches()

    def tags(self) -> list[str]:
        return self.refs.tags()

    def create_branch(
        self,
        name: str,
        start: str | None = None,
        *,
        orphan: bool = False,
        author: str = "",
        timestamp: float | None = None,
    ) -> str:
        """Create a branch at ``start`` (default: the default branch head).

        With ``orphan=True`` the branch gets a new root commit with an
        empty tree and shares no history with the rest of the repository.
        """
        if orphan:
            commit = self.create_commit(
                self.empty_tree,
                (),
                author=author,
                message=f"Start branch {name}",
                timestamp=timestamp if timestamp is not None else time.time(),
            )
        else:
            commit = self.resolve_commit(start) if start else self.head()
        self.refs.create(branch_ref(name), commit)
        return commit

    def delete_branch(self, name: str, expected: str | None = None) -> None:
        self.refs.delete(branch_ref(name), expected)

    def create_tag(self, name: str, rev: str | None = None) -> str:
        commit = self.resolve_commit(rev) if rev else self.head()
        self.refs.create(tag_ref(name), commit)
        return commit

    def delete_tag(self, name: str) -> None:
        self.refs.delete(tag_ref(name))

    # -- Read --

    def resolve(self, rev: str) -> str:
        """Resolve a branch, tag, full ref, full hash or unique prefix.

        Raises:
            UnknownRef: Nothing matches.
            AmbiguousPrefix: A short hash matches several objects.
        """
        for name in (rev, HEADS + rev, TAGS + rev):
            value = self.refs.get(name)
            if value is not None:
                return value
        try:
            return self.objects.resolve_prefix(rev)
        except NotFound as e:
            raise UnknownRef(f"unknown revision {rev!r}") from e

    def resolve_commit(self, rev: str) -> str:
        commit_hash = self.resolve(rev)
        self.objects.load_commit(commit_hash)
        return commit_hash

    def tree_of(self, rev: str) -> str:
        """Tree hash of a commit, or the hash itself if it names a tree."""
        obj_hash = self.resolve(rev)
        obj = self.objects.load(obj_hash)
        if isinstance(obj, Commit):
            return obj.tree
        if isinstance(obj, Tree):
            return obj_hash
        raise NotFound(f"{rev!r} is a blob, not a commit or tree")

    def read(self, rev: str, path: str | None = None) -> Object:
        """Load the object a revision names, or the one at ``path`` in its tree."""
        obj_hash = self.resolve(rev)
        if path is None:
            return self.objects.load(obj_hash)
        obj: Object = self.objects.load_tree(self.tree_of(obj_hash))
        for segment in check_path(path).split("/"):
            entry = obj.get(segment) if isinstance(obj, Tree) else None
            if entry is None:
                raise NotFound(f"path {path!r} not found in {rev!r}")
            obj = self.objects.load(entry.hash)
        return obj

    def read_file(self, rev: str, path: str) -> bytes:
        obj = self.read(rev, path)
        if not isinstance(obj, Blob):
            raise NotFound(f"{path!r} is a directory in {rev!r}")
        return obj.data

    def read_snapshot(self, rev: str) -> dict[str, bytes]:
        """Every file in a revision as ``path -> content``."""
        return {
            path: self.objects.load_blob(blob).data
            for path, blob in flatten_tree(self.objects, self.tree_of(rev)).items()
        }

    def log(self, rev: str | None = None, *, first_parent: bool = False) -> Iterator[str]:
        """Commit hashes reachable from ``rev``, newest first.

        ``first_parent=True`` walks the mainline one commit at a time;
        the full log reads the whole reachable history up front.
        """
        start = self.resolve_commit(rev) if rev else self.head()
        if first_parent:
            return self.graph.first_parent_chain(start)
        return self.graph.topological_order(start)

    def diff(self, rev_a: str, rev_b: str) -> TreeDiff:
        return diff_trees(self.objects, self.tree_of(rev_a), self.tree_of(rev_b))

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return self.graph.is_ancestor(
            self.resolve_commit(ancestor), self.resolve_commit(descendant)
        )

    def merge_base(self, rev_a: str, rev_b: str) -> str:
        return self.graph.merge_base(self.resolve_commit(rev_a), self.resolve_commit(rev_b))

    # -- Commit --

    def commit(
        self,
        branch: str,
        *,
        author: str,
        message: str,
        updates: Mapping[str, bytes] | None = None,
        removals: Iterable[str] | None = None,
        expected_head: str | None = None,
        timestamp: float | None = None,
        allow_empty: bool = False,
    ) -> str:
        """Commit changes relative to a branch head and advance the branch.

        Args:
            branch: Branch to advance.
            updates: ``path -> content`` to add or overwrite.
            removals: Paths to delete.
            expected_head: Head the changes were made against (default:
                the current head). The branch only moves if it still
                points here.
            allow_empty: Record a commit even when the tree is unchanged.

        Returns:
            The new commit hash, or the head when nothing changed.

        Raises:
            UnknownRef: The branch does not exist.
            NotFound: A removed path is absent, or ``expected_head`` is
                unknown.
            ConcurrentUpdate: The branch moved away from ``expected_head``.
        """
        head = self.head(branch)
        parent = expected_head or head
        parent_tree = self.objects.load_commit(parent).tree

        entries = flatten_tree(self.objects, parent_tree)
        for path in removals or ():
            if path not in entries:
                raise NotFound(f"cannot remove {path!r}: not in {parent[:12]}")
            del entries[path]
        updates = updates or {}
        paths = [check_path(path) for path in updates]
        blobs = self.objects.store_objects(Blob(data) for data in updates.values())
        entries.update(zip(paths, blobs))
        tree = build_tree(self.objects, entries)

        if tree == parent_tree and not allow_empty:
            if parent != head:
                raise ConcurrentUpdate(branch_ref(branch), parent, head)
            logger.debug("nothing to commit on %s", branch)
            return parent
        return self.commit_tree(
            branch,
            tree,
            (parent,),
            author=author,
            message=message,
            timestamp=timestamp,
        )

    def commit_tree(
        self,
        branch: str,
        tree: str,
        parents: tuple[str, ...],
        *,
        author: str,
        message: str,
        timestamp: float | None = None,
    ) -> str:
        """Create a commit of ``tree`` and move ``branch`` from ``parents[0]`` to it."""
        commit = self.create_commit(
            tree,
            parents,
            author=author,
            message=message,
            timestamp=timestamp if timestamp is not None else time.time(),
        )
        self.refs.update(branch_ref(branch), parents[0], commit)
        logger.debug("committed %s on %s", commit[:12], branch)
        return commit

    # -- Merge --

    def merge(
        self,
        target: str,
        source: str,
        *,
        author: str,
        message: str | None = None,
        timestamp: float | None = None,
        fast_forward: bool = True,
    ) -> MergeResult:
        """Merge ``source`` (a branch or any revision) into branch ``target``.

        A conflicting merge creates no commit: the result is falsy and
        carries a ``pending`` merge to pass to ``finalize_merge`` once
        every conflict is resolved.

        Raises:
            Unrelated: The two histories share no commit.
            ConcurrentUpdate: ``target`` moved while merging.
        """
        ours = self.head(target)
        theirs = self.resolve_commit(source)

        if self.graph.is_ancestor(theirs, ours):
            return MergeResult(merged=True, commit=ours, strategy="no_op")

        if fast_forward and self.graph.is_ancestor(ours, theirs):
            self.refs.update(branch_ref(target), ours, theirs)
            logger.info("fast-forwarded %s to %s", target, theirs[:12])
            return MergeResult(merged=True, commit=theirs, strategy="fast_forward")

        base = self.graph.merge_base(ours, theirs)
        result = self.merger.merge_trees(
            self.objects.load_commit(base).tree,
            self.objects.load_commit(ours).tree,
            self.objects.load_commit(theirs).tree,
            ours_label=target,
            theirs_label=source,
        )
        pending = PendingMerge(
            branch=target,
            ours=ours,
            theirs=theirs,
            base=base,
            result=result,
            message=message or f"Merge {source} into {target}",
        )
        if not result.clean:
            return MergeResult(
                merged=False,
                commit=None,
                strategy="three_way",
                conflicts=frozenset(result.conflicts),
                auto_merged=result.auto_merged,
                pending=pending,
            )

        commit = self.commit_tree(
            target,
            result.tree,
            pending.parents,
            author=author,
            message=pending.message,
            timestamp=timestamp,
        )
        logger.info("merged %s into %s as %s", source, target, commit[:12])
        return MergeResult(
            merged=True,
            commit=commit,
            strategy="three_way",
            auto_merged=result.auto_merged,
        )

    def finalize_merge(
        self,
        pending: PendingMerge,
        resolutions: Mapping[str, bytes | None],
        *,
        author: str,
        message: str | None = None,
        timestamp: float | None = None,
    ) -> str:
        """Commit a conflicted merge once the caller has resolved it.

        Args:
            pending: The ``MergeResult.pending`` of the conflicted merge.
            resolutions: Resolved ``path -> content`` (None deletes the
                path). Must cover every conflicted path; may also
                adjust other paths.

        Raises:
            MergeConflict: A conflict is unresolved or still marked up, or
                a path would be both a file and a directory.
            ConcurrentUpdate: The branch moved since the merge started.
        """
        ensure_resolved(pending.conflicts, resolutions)
        entries = dict(pending.result.entries)
        for path, content in resolutions.items():
            if content is None:
                entries.pop(path, None)
            else:
                entries[check_path(path)] = self.objects.store_object(Blob(content))
        check_layout(entries)
        return self.commit_tree(
            pending.branch,
            build_tree(self.objects, entries),
            pending.parents,
            author=author,
            message=message or pending.message,
            timestamp=timestamp,
        )

    # -- Working snapshot / maintenance --

    def checkout(self, branch: str | None = None) -> Workspace:
        """A working snapshot of a branch head."""
        from .workspace import Workspace

        return Workspace(self, branch or self.default_branch)

    def gc(self, extra_roots: Iterable[str] = ()) -> GCResult:
        """Delete objects unreachable from any ref or ``extra_roots``."""
        return collect_garbage(self.objects, self.refs, extra_roots=extra_roots)

