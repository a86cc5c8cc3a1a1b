"""Workspace: a working snapshot with staged edits over a branch head."""

from __future__ import annotations

import logging
from collections.abc import Iterator, MutableMapping
from typing import TYPE_CHECKING

from .diff import Added, Modified, PathChange, Removed, TreeDiff, build_tree, check_path, flatten_tree
from .errors import MergeConflict
from .merge import Conflict, check_layout, ensure_resolved
from .objects import Blob, hash_object

if TYPE_CHECKING:
    from .repository import MergeResult, PendingMerge, Repository

logger = logging.getLogger(__name__)


class Workspace(MutableMapping[str, bytes]):
    """Buffered edits over the head of one branch.

    Reads fall through to the commit the workspace is based on.
    ``set()`` / ``remove()`` are staged in memory and ``commit()``
    records them as one commit, moving the branch only if it still
    points at the base commit.

    A merge with conflicts leaves the marked-up files in the workspace;
    each conflicted path must be edited and then confirmed with
    ``resolve()`` before ``commit()`` will record the merge.
    """

    def __init__(self, repo: Repository, branch: str) -> None:
        self._repo = repo
        self._branch = branch
        self._updates: dict[str, bytes] = {}
        self._removals: set[str] = set()
        self._cache: dict[str, bytes] = {}
        self._pending: PendingMerge | None = None
        self._resolved: set[str] = set()
        self._load(repo.head(branch))

    def _load(self, commit_hash: str) -> None:
        self._base_commit = commit_hash
        tree = self._repo.objects.load_commit(commit_hash).tree
        self._entries: dict[str, str] = flatten_tree(self._repo.objects, tree)
        self._cache.clear()

    @property
    def repo(self) -> Repository:
        return self._repo

    @property
    def branch(self) -> str:
        return self._branch

    @property
    def base_commit(self) -> str:
        """The commit the staged edits apply to."""
        return self._base_commit

    # -- Read operations --

    def get(self, path: str, default: bytes | None = None) -> bytes | None:
        """File content, checking staged edits first."""
        if path in self._removals:
            return default
        if path in self._updates:
            return self._updates[path]
        if path in self._cache:
            return self._cache[path]
        blob = self._entries.get(path)
        if blob is None:
            return default
        data = self._repo.objects.load_blob(blob).data
        self._cache[path] = data
        return data

    def keys(self) -> set[str]:  # type: ignore[override]
        """All paths visible in the workspace (committed + staged)."""
        seen = {path for path in self._entries if path not in self._removals}
        seen.update(self._updates)
        return seen

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str) or path in self._removals:
            return False
        return path in self._updates or path in self._entries

    def __getitem__(self, path: str) -> bytes:
        if path not in self:
            raise KeyError(path)
        return self.get(path)  # type: ignore[return-value]

    def __setitem__(self, path: str, content: bytes) -> None:
        self.set(path, content)

    def __delitem__(self, path: str) -> None:
        if path not in self:
            raise KeyError(path)
        self.remove(path)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.keys()))

    def __len__(self) -> int:
        return len(self.keys())

    def snapshot(self) -> dict[str, bytes]:
        """The whole working snapshot as ``path -> content``."""
        return {path: self[path] for path in self}

    # -- Write operations --

    def set(self, path: str, content: bytes) -> None:
        """Stage new content for a path."""
        if not isinstance(content, bytes):
            raise TypeError(f"Expected bytes, got {type(content).__name__}")
        check_path(path)
        self._removals.discard(path)
        self._updates[path] = content

    def remove(self, path: str) -> None:
        """Stage removal of a path."""
        self._updates.pop(path, None)
        if path in self._entries:
            self._removals.add(path)

    @property
    def has_changes(self) -> bool:
        return bool(self.status())

    def status(self) -> TreeDiff:
        """Staged changes relative to the base commit."""
        changes: list[PathChange] = []
        for path in self._removals:
            changes.append(Removed(path, self._entries[path]))
        for path, content in self._updates.items():
            new = hash_object(Blob(content))
            old = self._entries.get(path)
            if old is None:
                changes.append(Added(path, new))
            elif old != new:
                changes.append(Modified(path, old, new))
        changes.sort(key=lambda c: c.path)
        return TreeDiff(tuple(changes))

    def _write_tree(self) -> str:
        objects = self._repo.objects
        entries = {p: h for p, h in self._entries.items() if p not in self._removals}
        blobs = objects.store_objects(Blob(content) for content in self._updates.values())
        entries.update(zip(self._updates, blobs))
        return build_tree(objects, entries)

    # -- Commit / reset --

    def commit(self, *, author: str, message: str | None = None, timestamp: float | None = None) -> str:
        """Record the workspace as a commit on its branch.

        Returns:
            The new commit hash (the base commit if nothing changed
            and no merge is pending).

        Raises:
            MergeConflict: A merge is pending with unresolved paths, or a
                resolved path is both a file and a directory.
            ValueError: No message was given and none is pending.
            ConcurrentUpdate: The branch moved; ``refresh()`` and retry.
        """
        pending = self._pending
        if pending is None:
            if not self.has_changes:
                return self._base_commit
            if message is None:
                raise ValueError("A commit message is required")
            parents: tuple[str, ...] = (self._base_commit,)
        else:
            ensure_resolved(
                pending.conflicts,
                {path: self.get(path) for path in self._resolved},
            )
            check_layout(dict.fromkeys(self.keys()))
            parents = pending.parents
            message = message or pending.message
            if not message:
                raise ValueError("A commit message is required")

        commit = self._repo.commit_tree(
            self._branch,
            self._write_tree(),
            parents,
            author=author,
            message=message,
            timestamp=timestamp,
        )
        self._clear()
        self._load(commit)
        return commit

    def _clear(self) -> None:
        self._updates.clear()
        self._removals.clear()
        self._cache.clear()
        self._pending = None
        self._resolved.clear()

    def reset(self) -> None:
        """Discard staged edits and any pending merge."""
        self._clear()
        self._load(self._base_commit)

    def refresh(self) -> frozenset[str]:
        """Move onto the current branch head, keeping staged edits.

        Staged edits are merged onto the new head with the merge engine.
        Overlapping edits leave a pending merge (single parent) whose
        conflicted paths are returned; resolve them and commit.
        """
        head = self._repo.head(self._branch)
        if head == self._base_commit:
            return frozenset()
        if self._pending is not None:
            raise MergeConflict(set(self._pending.conflicts), reason="merge in progress")
        if not self.has_changes:
            self._clear()
            self._load(head)
            return frozenset()

        objects = self._repo.objects
        old_base = self._base_commit
        result = self._repo.merger.merge_trees(
            objects.load_commit(old_base).tree,
            self._write_tree(),
            objects.load_commit(head).tree,
            ours_label="workspace",
            theirs_label=self._branch,
        )
        self._clear()
        self._load(head)
        self._stage_entries(result.entries)
        if not result.clean:
            from .repository import PendingMerge

            self._pending = PendingMerge(
                branch=self._branch,
                ours=head,
                theirs=None,
                base=old_base,
                result=result,
                message="",
            )
        logger.debug("workspace on %s refreshed to %s", self._branch, head[:12])
        return frozenset(result.conflicts)

    def _stage_entries(self, entries: dict[str, str]) -> None:
        """Stage whatever differs between the base commit and ``entries``."""
        objects = self._repo.objects
        for path in self._entries.keys() - entries.keys():
            self._removals.add(path)
        for path, blob in entries.items():
            if self._entries.get(path) != blob:
                self._updates[path] = objects.load_blob(blob).data

    # -- Merge --

    def merge(
        self,
        source: str,
        *,
        author: str,
        message: str | None = None,
        timestamp: float | None = None,
        fast_forward: bool = True,
    ) -> MergeResult:
        """Merge ``source`` into this workspace's branch.

        Clean merges are committed straight away and the workspace moves
        to the result. Conflicted merges stage the merged snapshot,
        markers included, and wait for ``resolve()`` + ``commit()``.
        """
        if self.has_changes or self._pending is not None:
            raise ValueError("Commit or reset staged changes before merging")
        result = self._repo.merge(
            self._branch,
            source,
            author=author,
            message=message,
            timestamp=timestamp,
            fast_forward=fast_forward,
        )
        if result.merged:
            self._load(result.commit)  # type: ignore[arg-type]
            return result

        pending = result.pending
        assert pending is not None
        self._load(pending.ours)
        self._stage_entries(pending.result.entries)
        self._pending = pending
        return result

    @property
    def merging(self) -> bool:
        return self._pending is not None

    @property
    def conflicts(self) -> dict[str, Conflict]:
        """Conflicts of the pending merge, including resolved ones."""
        if self._pending is None:
            return {}
        return dict(self._pending.conflicts)

    @property
    def unresolved(self) -> frozenset[str]:
        return frozenset(self.conflicts) - self._resolved

    def resolve(self, path: str, content: bytes | None = None) -> None:
        """Confirm a conflicted path, optionally writing its final content.

        Raises:
            KeyError: ``path`` is not conflicted.
            MergeConflict: The content still holds marker regions.
        """
        if path not in self.conflicts:
            raise KeyError(path)
        if content is not None:
            self.set(path, content)
        ensure_resolved({path}, {path: self.get(path)})
        self._resolved.add(path)

    def abort_merge(self) -> None:
        """Drop a pending merge and everything it staged."""
        if self._pending is None:
            return
        self._clear()
        self._load(self._base_commit)
