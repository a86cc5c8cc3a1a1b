"""Abstract KV store interface."""

from abc import ABC, abstractmethod
from typing import Iterable


class KVStore(ABC):
    """Key-value store operating on bytes only.

    Objects and references are encoded to bytes by the layers above
    (``ObjectStore``, ``RefStore``). The two atomic primitives, ``cas``
    and ``cas_delete``, are all the reference layer relies on.
    """

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Get bytes value for key, or None if not found."""

    @abstractmethod
    def set_many(self, **kwargs: bytes) -> None:
        """Set multiple key-value pairs."""

    @abstractmethod
    def keys(self) -> Iterable[str]:
        """Iterate over all keys."""

    @abstractmethod
    def __contains__(self, key: str) -> bool:
        """Check if key exists in store."""

    @abstractmethod
    def remove_many(self, *keys: str) -> None:
        """Remove multiple keys."""

    @abstractmethod
    def cas(self, key: str, value: bytes, expected: bytes | None) -> bool:
        """Atomic compare-and-swap.

        Set value only if current value equals expected.
        None means "key must not exist".

        Returns True if swap succeeded, False otherwise.
        """

    @abstractmethod
    def cas_delete(self, key: str, expected: bytes) -> bool:
        """Atomic compare-and-delete.

        Remove the key only if its current value equals expected.

        Returns True if the key was removed, False otherwise.
        """
