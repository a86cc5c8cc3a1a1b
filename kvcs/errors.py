"""kvcs error types."""


class VersionControlError(Exception):
    """Base class for every error raised by kvcs."""


class NotFound(VersionControlError, KeyError):
    """Raised when an object, path, or hash prefix is unknown."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class UnknownRef(NotFound):
    """Raised when a reference name (or revision) does not resolve."""


class AmbiguousPrefix(VersionControlError):
    """Raised when a short hash matches more than one object."""


class InvalidObject(VersionControlError):
    """Raised when stored bytes are corrupt or of an unexpected type."""


class RefExists(VersionControlError):
    """Raised when creating a reference that already exists."""


class ConcurrentUpdate(VersionControlError):
    """Raised when a compare-and-swap on a reference loses a race.

    Another writer moved the reference after the caller read it. The
    caller should re-read the head, redo its work against it, and
    retry.

    Attributes:
        ref: The reference name.
        expected: The value the caller expected.
        actual: The value found (None if the ref vanished).
    """

    def __init__(self, ref: str, expected: str | None, actual: str | None) -> None:
        self.ref = ref
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Reference {ref!r} moved: expected {expected}, found {actual}"
        )


class Unrelated(VersionControlError):
    """Raised when two commits share no common ancestor."""


class MergeConflict(VersionControlError):
    """Raised when a merge cannot be finalized.

    Either conflicted paths have not been resolved, or their resolved
    content still carries conflict marker regions.

    Attributes:
        conflicting_paths: The paths that block the commit.
    """

    def __init__(self, conflicting_paths: set[str], reason: str = "unresolved") -> None:
        self.conflicting_paths = set(conflicting_paths)
        self.reason = reason
        paths_str = ", ".join(sorted(conflicting_paths))
        super().__init__(f"Merge conflict ({reason}) on paths: {paths_str}")


class Unmergeable(VersionControlError):
    """Raised by a merge driver that cannot combine both sides.

    Attributes:
        content: Content to leave in the working snapshot (typically
            with marker regions), or None to let the engine render the
            default whole-file markers.
    """

    def __init__(self, message: str = "", content: bytes | None = None) -> None:
        self.content = content
        super().__init__(message or "content cannot be merged")
