"""Mutable named pointers to commits, updated by compare-and-swap."""

import logging
import pickle

from .errors import ConcurrentUpdate, RefExists, UnknownRef
from .kv.base import KVStore
from .objectstore import ObjectStore

logger = logging.getLogger(__name__)

REF_KEY = "__ref__%s"
HEADS = "heads/"
TAGS = "tags/"


def branch_ref(name: str) -> str:
    return name if name.startswith(HEADS) else HEADS + name


def tag_ref(name: str) -> str:
    return name if name.startswith(TAGS) else TAGS + name


def check_ref_name(name: str) -> None:
    """Reject names that cannot be stored or displayed unambiguously."""
    if not isinstance(name, str) or not name:
        raise ValueError("Reference name must be a non-empty string")
    if name.startswith("/") or name.endswith("/") or "//" in name:
        raise ValueError(f"Invalid reference name {name!r}")
    if any(c.isspace() or c in "~^:?*[\\" for c in name):
        raise ValueError(f"Invalid character in reference name {name!r}")
    if ".." in name or name.endswith(".") or name.endswith(".lock"):
        raise ValueError(f"Invalid reference name {name!r}")


class RefStore:
    """Branch and tag references over a KV store.

    All writes go through the backend's atomic ``cas`` / ``cas_delete``,
    so two writers advancing the same ref can never both succeed from
    the same starting value.
    """

    def __init__(self, store: KVStore, objects: ObjectStore | None = None) -> None:
        self.store = store
        self.objects = objects if objects is not None else ObjectStore(store)

    def get(self, name: str) -> str | None:
        """Current value of a ref, or None if absent."""
        raw = self.store.get(REF_KEY % name)
        if raw is None:
            return None
        return pickle.loads(raw)

    def read(self, name: str) -> str:
        """Current value of a ref. Raises UnknownRef."""
        value = self.get(name)
        if value is None:
            raise UnknownRef(f"unknown reference {name!r}")
        return value

    def __contains__(self, name: str) -> bool:
        return (REF_KEY % name) in self.store

    def create(self, name: str, commit_hash: str) -> None:
        """Create a new ref. Raises RefExists if it is already set."""
        check_ref_name(name)
        self.objects.load_commit(commit_hash)
        if not self.store.cas(REF_KEY % name, pickle.dumps(commit_hash), expected=None):
            raise RefExists(f"reference {name!r} already exists")
        logger.debug("created ref %s -> %s", name, commit_hash[:12])

    def update(self, name: str, expected_old: str, new: str) -> None:
        """Move a ref from ``expected_old`` to ``new`` atomically.

        Raises:
            ConcurrentUpdate: The ref no longer points at ``expected_old``.
            UnknownRef: The ref does not exist.
        """
        self.objects.load_commit(new)
        key = REF_KEY % name
        if self.store.cas(key, pickle.dumps(new), expected=pickle.dumps(expected_old)):
            logger.debug("updated ref %s: %s -> %s", name, expected_old[:12], new[:12])
            return
        actual = self.get(name)
        if actual is None:
            raise UnknownRef(f"unknown reference {name!r}")
        logger.warning("lost update race on %s (expected %s)", name, expected_old[:12])
        raise ConcurrentUpdate(name, expected_old, actual)

    def delete(self, name: str, expected: str | None = None) -> None:
        """Remove a ref, optionally only if it still points at ``expected``."""
        current = self.get(name)
        if current is None:
            raise UnknownRef(f"unknown reference {name!r}")
        if expected is not None and current != expected:
            raise ConcurrentUpdate(name, expected, current)
        if not self.store.cas_delete(REF_KEY % name, pickle.dumps(current)):
            raise ConcurrentUpdate(name, current, self.get(name))
        logger.debug("deleted ref %s (was %s)", name, current[:12])

    def names(self, prefix: str = "") -> list[str]:
        """All ref names starting with ``prefix``, sorted."""
        key_prefix = REF_KEY.replace("%s", "")
        result = []
        for key in self.store.keys():
            if isinstance(key, str) and key.startswith(key_prefix):
                name = key[len(key_prefix):]
                if name.startswith(prefix):
                    result.append(name)
        return sorted(result)

    def items(self, prefix: str = "") -> dict[str, str]:
        """Mapping of ref name to commit hash for every matching ref."""
        result = {}
        for name in self.names(prefix):
            value = self.get(name)
            if value is not None:
                result[name] = value
        return result

    def branches(self) -> list[str]:
        return [name[len(HEADS):] for name in self.names(HEADS)]

    def tags(self) -> list[str]:
        return [name[len(TAGS):] for name in self.names(TAGS)]
