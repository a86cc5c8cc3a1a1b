"""Content-addressed, write-once object storage over a KV store."""

import logging
from typing import Iterable

from .errors import AmbiguousPrefix, InvalidObject, NotFound
from .kv.base import KVStore
from .kv.memory import Memory
from .objects import Blob, Commit, Object, Tree, decode_object, encode_object, hash_bytes

logger = logging.getLogger(__name__)

OBJECT_KEY = "__object__%s"
MIN_PREFIX_LEN = 4


class ObjectStore:
    """Immutable objects keyed by the hash of their bytes.

    ``put`` never overwrites: the first write of a hash wins via the
    backend's compare-and-swap with "must not exist", so concurrent
    writers of identical content are harmless.
    """

    def __init__(self, store: KVStore | None = None) -> None:
        if store is None:
            store = Memory()
        self.store = store
        self._cache: dict[str, Object] = {}

    # -- Raw bytes --

    def put(self, data: bytes) -> str:
        """Store bytes if absent; return their hash."""
        if not isinstance(data, bytes):
            raise TypeError(f"Expected bytes, got {type(data).__name__}")
        obj_hash = hash_bytes(data)
        key = OBJECT_KEY % obj_hash
        if key not in self.store:
            if self.store.cas(key, data, expected=None):
                logger.debug("stored object %s (%d bytes)", obj_hash[:12], len(data))
        return obj_hash

    def get(self, obj_hash: str) -> bytes:
        """Return the bytes stored under a hash. Raises NotFound."""
        data = self.store.get(OBJECT_KEY % obj_hash)
        if data is None:
            raise NotFound(f"object {obj_hash} not found")
        return data

    def contains(self, obj_hash: str) -> bool:
        return (OBJECT_KEY % obj_hash) in self.store

    def __contains__(self, obj_hash: str) -> bool:
        return self.contains(obj_hash)

    # -- Typed objects --

    def store_object(self, obj: Object) -> str:
        """Encode and store a blob, tree or commit."""
        obj_hash = self.put(encode_object(obj))
        self._remember(obj_hash, obj)
        return obj_hash

    def store_objects(self, objs: Iterable[Object]) -> list[str]:
        """Encode and store several objects with one backend write.

        Only absent keys are written. A racing writer of the same hash
        writes the same bytes, so the batch keeps objects write-once.
        """
        hashes = []
        pending: dict[str, bytes] = {}
        for obj in objs:
            data = encode_object(obj)
            obj_hash = hash_bytes(data)
            hashes.append(obj_hash)
            key = OBJECT_KEY % obj_hash
            if key not in pending and key not in self.store:
                pending[key] = data
            self._remember(obj_hash, obj)
        if pending:
            self.store.set_many(**pending)
            logger.debug("stored %d object(s) in one batch", len(pending))
        return hashes

    def _remember(self, obj_hash: str, obj: Object) -> None:
        # Blobs carry file contents; only the small structural objects
        # are kept in memory.
        if not isinstance(obj, Blob):
            self._cache.setdefault(obj_hash, obj)

    def load(self, obj_hash: str) -> Object:
        """Load and decode an object. Raises NotFound or InvalidObject."""
        cached = self._cache.get(obj_hash)
        if cached is not None:
            return cached
        data = self.get(obj_hash)
        if hash_bytes(data) != obj_hash:
            raise InvalidObject(f"object {obj_hash} is corrupt")
        obj = decode_object(data)
        self._remember(obj_hash, obj)
        return obj

    def load_blob(self, obj_hash: str) -> Blob:
        return self._load_typed(obj_hash, Blob)

    def load_tree(self, obj_hash: str) -> Tree:
        return self._load_typed(obj_hash, Tree)

    def load_commit(self, obj_hash: str) -> Commit:
        return self._load_typed(obj_hash, Commit)

    def _load_typed(self, obj_hash: str, cls):
        obj = self.load(obj_hash)
        if not isinstance(obj, cls):
            raise InvalidObject(f"object {obj_hash} is a {obj.type}, not a {cls.type}")
        return obj

    # -- Enumeration --

    def hashes(self) -> Iterable[str]:
        """All stored object hashes."""
        prefix = OBJECT_KEY.replace("%s", "")
        for key in self.store.keys():
            if isinstance(key, str) and key.startswith(prefix):
                yield key[len(prefix):]

    def resolve_prefix(self, prefix: str) -> str:
        """Expand a unique short hash. Raises NotFound or AmbiguousPrefix."""
        prefix = prefix.lower()
        if len(prefix) < MIN_PREFIX_LEN or not all(c in "0123456789abcdef" for c in prefix):
            raise NotFound(f"{prefix!r} is not a valid object prefix")
        if self.contains(prefix):
            return prefix
        matches = sorted(h for h in self.hashes() if h.startswith(prefix))
        if not matches:
            raise NotFound(f"no object matches prefix {prefix!r}")
        if len(matches) > 1:
            raise AmbiguousPrefix(f"prefix {prefix!r} is ambiguous: {matches}")
        return matches[0]

    def remove_many(self, *hashes: str) -> None:
        """Delete objects. Only garbage collection should call this."""
        for obj_hash in hashes:
            self._cache.pop(obj_hash, None)
        self.store.remove_many(*(OBJECT_KEY % h for h in hashes))
