"""Immutable objects: blobs, trees and commits, with canonical encoding."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Union

from .errors import InvalidObject

BLOB = "blob"
TREE = "tree"
COMMIT = "commit"

OBJECT_TYPES = (BLOB, TREE, COMMIT)


def hash_bytes(data: bytes) -> str:
    """Content hash used for every object identity."""
    return hashlib.sha256(data).hexdigest()


def _dumps(value) -> bytes:
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


@dataclass(frozen=True)
class Blob:
    """File contents."""

    data: bytes

    type = BLOB

    def payload(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class TreeEntry:
    """A single named entry of a tree: a file (blob) or a directory (tree)."""

    name: str
    kind: str
    hash: str

    def __post_init__(self) -> None:
        if self.kind not in (BLOB, TREE):
            raise ValueError(f"Tree entry kind must be blob or tree, not {self.kind!r}")
        if not self.name or "/" in self.name or self.name in (".", ".."):
            raise ValueError(f"Invalid tree entry name: {self.name!r}")


@dataclass(frozen=True)
class Tree:
    """A directory snapshot: entries kept sorted by name."""

    entries: tuple[TreeEntry, ...] = ()

    type = TREE

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.entries, key=lambda e: e.name))
        names = [e.name for e in ordered]
        if len(set(names)) != len(names):
            raise ValueError("Tree entry names must be unique")
        object.__setattr__(self, "entries", ordered)

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, name: str) -> TreeEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def payload(self) -> bytes:
        return _dumps([[e.name, e.kind, e.hash] for e in self.entries])


@dataclass(frozen=True)
class Commit:
    """A snapshot of the root tree plus its ancestry and authorship."""

    tree: str
    parents: tuple[str, ...] = ()
    author: str = ""
    timestamp: float = 0.0
    message: str = ""

    type = COMMIT

    def __post_init__(self) -> None:
        object.__setattr__(self, "parents", tuple(self.parents))

    @property
    def is_root(self) -> bool:
        return not self.parents

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    def payload(self) -> bytes:
        return _dumps(
            {
                "tree": self.tree,
                "parents": list(self.parents),
                "author": self.author,
                "timestamp": self.timestamp,
                "message": self.message,
            }
        )


Object = Union[Blob, Tree, Commit]


def encode_object(obj: Object) -> bytes:
    """Serialize an object as ``b"<type> <len>\\0" + payload``."""
    payload = obj.payload()
    return f"{obj.type} {len(payload)}\0".encode() + payload


def hash_object(obj: Object) -> str:
    """Identity of an object, without storing it."""
    return hash_bytes(encode_object(obj))


def decode_object(data: bytes) -> Object:
    """Parse bytes produced by ``encode_object``."""
    null_idx = data.find(b"\0")
    if null_idx == -1:
        raise InvalidObject("invalid object: no null byte in header")
    try:
        obj_type, size = data[:null_idx].decode().split(" ", 1)
        expected = int(size)
    except ValueError as e:
        raise InvalidObject("invalid object header") from e
    payload = data[null_idx + 1 :]
    if len(payload) != expected:
        raise InvalidObject(
            f"invalid object: header says {expected} bytes, found {len(payload)}"
        )

    if obj_type == BLOB:
        return Blob(payload)
    try:
        raw = json.loads(payload.decode("utf-8"))
        if obj_type == TREE:
            return Tree(tuple(TreeEntry(name, kind, h) for name, kind, h in raw))
        if obj_type == COMMIT:
            return Commit(
                tree=raw["tree"],
                parents=tuple(raw["parents"]),
                author=raw["author"],
                timestamp=raw["timestamp"],
                message=raw["message"],
            )
    except (ValueError, KeyError, TypeError) as e:
        raise InvalidObject(f"invalid {obj_type} payload") from e
    raise InvalidObject(f"unknown object type {obj_type!r}")
