"""kvcs: a content-addressed version-control core over a KV store."""

from .diff import Added, Modified, PathChange, Removed, TreeDiff, diff_trees, unified_diff
from .drivers import MergeDriver, line_merge, take_ours, take_theirs, union
from .errors import (
    AmbiguousPrefix,
    ConcurrentUpdate,
    InvalidObject,
    MergeConflict,
    NotFound,
    RefExists,
    Unmergeable,
    Unrelated,
    UnknownRef,
    VersionControlError,
)
from .gc import GCResult
from .graph import CommitGraph
from .kv.base import KVStore
from .merge import Conflict, MergeEngine, TreeMerge
from .objects import Blob, Commit, Tree, TreeEntry
from .objectstore import ObjectStore
from .refs import RefStore
from .repository import MergeResult, PendingMerge, Repository
from .store import repository
from .workspace import Workspace

__all__ = [
    "Added",
    "AmbiguousPrefix",
    "Blob",
    "Commit",
    "CommitGraph",
    "ConcurrentUpdate",
    "Conflict",
    "GCResult",
    "InvalidObject",
    "KVStore",
    "MergeConflict",
    "MergeDriver",
    "MergeEngine",
    "MergeResult",
    "Modified",
    "NotFound",
    "ObjectStore",
    "PathChange",
    "PendingMerge",
    "RefExists",
    "RefStore",
    "Removed",
    "Repository",
    "Tree",
    "TreeDiff",
    "TreeEntry",
    "TreeMerge",
    "UnknownRef",
    "Unmergeable",
    "Unrelated",
    "VersionControlError",
    "Workspace",
    "diff_trees",
    "line_merge",
    "repository",
    "take_ours",
    "take_theirs",
    "unified_diff",
    "union",
]
