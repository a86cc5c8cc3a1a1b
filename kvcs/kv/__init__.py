"""KV store backends."""

from .base import KVStore
from .disk import Disk
from .memory import Memory
from .write_behind import WriteBehind

__all__ = ["Disk", "KVStore", "Memory", "WriteBehind"]
