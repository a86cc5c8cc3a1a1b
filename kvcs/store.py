"""Repository factory function."""

from __future__ import annotations

from typing import TYPE_CHECKING, Mapping

if TYPE_CHECKING:
    from .drivers import MergeDriver
    from .repository import Repository


def repository(
    storage: str = "memory",
    *,
    path: str | None = None,
    branch: str = "main",
    write_behind: bool = False,
    size_limit: int | None = None,
    merge_drivers: Mapping[str, MergeDriver] | None = None,
    default_driver: MergeDriver | None = None,
) -> Repository:
    """Create a Repository with sensible defaults.

    Args:
        storage: ``"memory"`` (default) or ``"disk"``.
        path: Required when ``storage="disk"``. Directory path for
            the disk backend.
        branch: Default branch name (created if missing).
        write_behind: Queue writes on a background thread. Reference
            updates still flush the queue first.
        size_limit: Disk backend size limit in bytes (disk only).
        merge_drivers: Glob pattern -> merge driver, for paths changed
            on both sides of a merge.
        default_driver: Driver for paths no pattern matches. Without
            one, such paths are conflicts.

    Returns:
        A ``Repository`` instance.
    """
    if storage == "memory":
        if size_limit is not None:
            raise ValueError("size_limit is only valid for storage='disk'")
        from .kv.memory import Memory

        backend = Memory()
    elif storage == "disk":
        if path is None:
            raise ValueError("path is required when storage='disk'")
        from .kv.disk import ONE_GB, Disk

        backend = Disk(path, size_limit=size_limit or ONE_GB)
    else:
        raise ValueError(f"Unknown storage: {storage!r}")

    if write_behind:
        from .kv.write_behind import WriteBehind

        backend = WriteBehind(backend)

    from .repository import Repository

    return Repository(
        backend,
        branch=branch,
        drivers=merge_drivers,
        default_driver=default_driver,
    )
