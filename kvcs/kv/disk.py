"""Disk-backed KV store using diskcache."""

from typing import Iterable, cast

from .base import KVStore

ONE_GB = 1024 * 1024 * 1024


class Disk(KVStore):
    """KV store backed by diskcache (SQLite + mmap).

    Eviction is disabled: a version-control store must never silently
    drop an object or a reference to stay under ``size_limit``.
    """

    def __init__(self, directory: str, size_limit: int = ONE_GB) -> None:
        from diskcache import Cache as DiskCache

        self.directory = directory
        self.store = DiskCache(
            directory, size_limit=size_limit, eviction_policy="none"
        )

    def get(self, key: str) -> bytes | None:
        return cast(bytes | None, self.store.get(key))

    def set_many(self, **kwargs: bytes) -> None:
        for key, value in kwargs.items():
            if not isinstance(value, bytes):
                raise TypeError(f"Expected bytes for {key}, got {type(value).__name__}")
        with self.store.transact():
            for key, value in kwargs.items():
                self.store[key] = value

    def keys(self) -> Iterable[str]:
        for key in self.store.iterkeys():
            yield str(key)

    def __contains__(self, key: str) -> bool:
        return key in self.store

    def remove_many(self, *keys: str) -> None:
        with self.store.transact():
            for key in keys:
                self.store.delete(key, retry=False)

    def cas(self, key: str, value: bytes, expected: bytes | None) -> bool:
        if not isinstance(value, bytes):
            raise TypeError(f"Expected bytes, got {type(value).__name__}")
        with self.store.transact():
            current = cast(bytes | None, self.store.get(key))
            if current == expected:
                self.store[key] = value
                return True
            return False

    def cas_delete(self, key: str, expected: bytes) -> bool:
        with self.store.transact():
            current = cast(bytes | None, self.store.get(key))
            if current is not None and current == expected:
                del self.store[key]
                return True
            return False

    def close(self) -> None:
        """Close the underlying cache connection."""
        self.store.close()
