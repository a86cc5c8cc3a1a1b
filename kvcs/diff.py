"""Path-level differences between tree snapshots."""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from typing import Iterator, Mapping, Union

from .objects import BLOB, TREE, Tree, TreeEntry
from .objectstore import ObjectStore


@dataclass(frozen=True)
class Added:
    path: str
    hash: str


@dataclass(frozen=True)
class Removed:
    path: str
    hash: str


@dataclass(frozen=True)
class Modified:
    path: str
    old_hash: str
    new_hash: str


PathChange = Union[Added, Removed, Modified]


@dataclass(frozen=True)
class TreeDiff:
    """Changes going from one tree to another, sorted by path."""

    changes: tuple[PathChange, ...] = ()

    def __iter__(self) -> Iterator[PathChange]:
        return iter(self.changes)

    def __len__(self) -> int:
        return len(self.changes)

    def __bool__(self) -> bool:
        return bool(self.changes)

    @property
    def added(self) -> frozenset[str]:
        return frozenset(c.path for c in self.changes if isinstance(c, Added))

    @property
    def removed(self) -> frozenset[str]:
        return frozenset(c.path for c in self.changes if isinstance(c, Removed))

    @property
    def modified(self) -> frozenset[str]:
        return frozenset(c.path for c in self.changes if isinstance(c, Modified))

    @property
    def paths(self) -> frozenset[str]:
        return frozenset(c.path for c in self.changes)


def check_path(path: str) -> str:
    """Validate a snapshot path and return it unchanged."""
    if not isinstance(path, str) or not path:
        raise ValueError("Path must be a non-empty string")
    if path.startswith("/"):
        raise ValueError(f"Path must be relative: {path!r}")
    for segment in path.split("/"):
        if segment in ("", ".", ".."):
            raise ValueError(f"Invalid path {path!r}")
    return path


def diff_trees(objects: ObjectStore, tree_a: str | None, tree_b: str | None) -> TreeDiff:
    """Compute per-path changes from ``tree_a`` to ``tree_b``.

    Either side may be None for an empty tree. Subtrees with identical
    hashes are skipped without being loaded.
    """
    changes: list[PathChange] = []
    _diff(objects, tree_a, tree_b, "", changes)
    changes.sort(key=lambda c: c.path)
    return TreeDiff(tuple(changes))


def _entries(objects: ObjectStore, tree_hash: str | None) -> dict[str, TreeEntry]:
    if tree_hash is None:
        return {}
    return {e.name: e for e in objects.load_tree(tree_hash)}


def _diff(
    objects: ObjectStore,
    tree_a: str | None,
    tree_b: str | None,
    prefix: str,
    out: list[PathChange],
) -> None:
    if tree_a == tree_b:
        return
    entries_a = _entries(objects, tree_a)
    entries_b = _entries(objects, tree_b)
    for name in sorted(entries_a.keys() | entries_b.keys()):
        ea = entries_a.get(name)
        eb = entries_b.get(name)
        path = prefix + name
        if ea is not None and eb is not None and ea.kind == eb.kind:
            if ea.hash == eb.hash:
                continue
            if ea.kind == BLOB:
                out.append(Modified(path, ea.hash, eb.hash))
            else:
                _diff(objects, ea.hash, eb.hash, path + "/", out)
            continue
        if ea is not None:
            if ea.kind == BLOB:
                out.append(Removed(path, ea.hash))
            else:
                for sub, blob in flatten_tree(objects, ea.hash, prefix=path + "/").items():
                    out.append(Removed(sub, blob))
        if eb is not None:
            if eb.kind == BLOB:
                out.append(Added(path, eb.hash))
            else:
                for sub, blob in flatten_tree(objects, eb.hash, prefix=path + "/").items():
                    out.append(Added(sub, blob))


def flatten_tree(
    objects: ObjectStore, tree_hash: str | None, prefix: str = ""
) -> dict[str, str]:
    """Map every file path under a tree to its blob hash."""
    result: dict[str, str] = {}
    if tree_hash is None:
        return result
    for entry in objects.load_tree(tree_hash):
        path = prefix + entry.name
        if entry.kind == TREE:
            result.update(flatten_tree(objects, entry.hash, prefix=path + "/"))
        else:
            result[path] = entry.hash
    return result


def build_tree(objects: ObjectStore, files: Mapping[str, str]) -> str:
    """Store nested trees for a flat ``path -> blob hash`` mapping.

    Raises:
        ValueError: A path is invalid, or names both a file and a
            directory.
    """
    blobs: dict[str, str] = {}
    dirs: dict[str, dict[str, str]] = {}
    for path, blob in files.items():
        head, sep, rest = check_path(path).partition("/")
        if sep:
            dirs.setdefault(head, {})[rest] = blob
        else:
            blobs[head] = blob

    clash = blobs.keys() & dirs.keys()
    if clash:
        raise ValueError(f"Paths used as both file and directory: {sorted(clash)}")

    entries = [TreeEntry(name, BLOB, blob) for name, blob in blobs.items()]
    for name, sub in dirs.items():
        entries.append(TreeEntry(name, TREE, build_tree(objects, sub)))
    return objects.store_object(Tree(tuple(entries)))


def is_binary(data: bytes) -> bool:
    return b"\0" in data


def unified_diff(objects: ObjectStore, change: PathChange, context: int = 3) -> str:
    """Render one change as a unified text diff."""
    if isinstance(change, Added):
        old, new = b"", objects.load_blob(change.hash).data
        from_file, to_file = "/dev/null", f"b/{change.path}"
    elif isinstance(change, Removed):
        old, new = objects.load_blob(change.hash).data, b""
        from_file, to_file = f"a/{change.path}", "/dev/null"
    else:
        old = objects.load_blob(change.old_hash).data
        new = objects.load_blob(change.new_hash).data
        from_file, to_file = f"a/{change.path}", f"b/{change.path}"

    if is_binary(old) or is_binary(new):
        return f"Binary files {from_file} and {to_file} differ\n"

    a = old.decode("utf-8", errors="replace").splitlines(keepends=True)
    b = new.decode("utf-8", errors="replace").splitlines(keepends=True)
    lines = []
    for line in difflib.unified_diff(a, b, fromfile=from_file, tofile=to_file, n=context):
        lines.append(line if line.endswith("\n") else line + "\n")
    return "".join(lines)
