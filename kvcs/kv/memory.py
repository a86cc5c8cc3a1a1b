"""In-memory KV store."""

import threading
from typing import Iterable

from .base import KVStore


class Memory(KVStore):
    """A memory-backed KV store."""

    def __init__(self) -> None:
        self.memory: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes | None:
        return self.memory.get(key)

    def set_many(self, **kwargs: bytes) -> None:
        for key, value in kwargs.items():
            if not isinstance(value, bytes):
                raise TypeError(f"Expected bytes for {key}, got {type(value).__name__}")
        with self._lock:
            self.memory.update(kwargs)

    def keys(self) -> Iterable[str]:
        return list(self.memory.keys())

    def __contains__(self, key: str) -> bool:
        return key in self.memory

    def remove_many(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self.memory.pop(key, None)

    def cas(self, key: str, value: bytes, expected: bytes | None) -> bool:
        if not isinstance(value, bytes):
            raise TypeError(f"Expected bytes, got {type(value).__name__}")
        with self._lock:
            current = self.memory.get(key)
            if current == expected:
                self.memory[key] = value
                return True
            return False

    def cas_delete(self, key: str, expected: bytes) -> bool:
        with self._lock:
            if key in self.memory and self.memory[key] == expected:
                del self.memory[key]
                return True
            return False
