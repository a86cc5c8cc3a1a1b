"""Write-behind wrapper for latency masking."""

import logging
import queue
import threading
from typing import Iterable

from .base import KVStore

logger = logging.getLogger(__name__)


class WriteBehind(KVStore):
    """Pushes writes to a background thread.

    Useful for masking the latency of slow storage backends
    by returning control to the caller immediately. Reads, CAS and
    compare-and-delete flush the queue first, so reference updates
    always observe every object written before them.
    """

    def __init__(self, store: KVStore) -> None:
        self.store = store
        self._queue: queue.Queue = queue.Queue()
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                self._queue.task_done()
                break
            func_name, args, kwargs = item
            try:
                getattr(self.store, func_name)(*args, **kwargs)
            except Exception:
                logger.exception("write-behind %s failed", func_name)
            finally:
                self._queue.task_done()

    def get(self, key: str) -> bytes | None:
        self.flush()
        return self.store.get(key)

    def set_many(self, **kwargs: bytes) -> None:
        for key, value in kwargs.items():
            if not isinstance(value, bytes):
                raise TypeError(f"Expected bytes for {key}, got {type(value).__name__}")
        self._queue.put(("set_many", (), kwargs))

    def keys(self) -> Iterable[str]:
        self.flush()
        return self.store.keys()

    def __contains__(self, key: str) -> bool:
        self.flush()
        return key in self.store

    def remove_many(self, *keys: str) -> None:
        self._queue.put(("remove_many", keys, {}))

    def flush(self) -> None:
        """Wait for all pending writes to complete."""
        self._queue.join()

    def cas(self, key: str, value: bytes, expected: bytes | None) -> bool:
        self.flush()
        return self.store.cas(key, value, expected)

    def cas_delete(self, key: str, expected: bytes) -> bool:
        self.flush()
        return self.store.cas_delete(key, expected)

    def close(self) -> None:
        """Flush pending writes and stop the worker thread."""
        self.flush()
        self._queue.put(None)
        self._thread.join()
