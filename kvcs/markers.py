"""Conflict marker regions."""

import re
from typing import Sequence

START = b"<<<<<<<"
MID = b"======="
END = b">>>>>>>"

_START_RE = re.compile(rb"^<<<<<<<(?: |$)", re.MULTILINE)
_MID_RE = re.compile(rb"^=======\r?$", re.MULTILINE)
_END_RE = re.compile(rb"^>>>>>>>(?: |$)", re.MULTILINE)


def _terminated(lines: Sequence[bytes]) -> list[bytes]:
    out = list(lines)
    if out and not out[-1].endswith(b"\n"):
        out[-1] = out[-1] + b"\n"
    return out


def render_region(
    ours: Sequence[bytes],
    theirs: Sequence[bytes],
    ours_label: str = "ours",
    theirs_label: str = "theirs",
) -> bytes:
    """Render one marker region. The common-ancestor segment is omitted."""
    parts = [START + b" " + ours_label.encode() + b"\n"]
    parts.extend(_terminated(ours))
    parts.append(MID + b"\n")
    parts.extend(_terminated(theirs))
    parts.append(END + b" " + theirs_label.encode() + b"\n")
    return b"".join(parts)


def whole_file_region(
    ours: bytes | None,
    theirs: bytes | None,
    ours_label: str = "ours",
    theirs_label: str = "theirs",
) -> bytes:
    return render_region(
        (ours or b"").splitlines(keepends=True),
        (theirs or b"").splitlines(keepends=True),
        ours_label,
        theirs_label,
    )


def has_conflict_markers(content: bytes) -> bool:
    """True if content still holds a complete marker region."""
    return bool(
        _START_RE.search(content)
        and _MID_RE.search(content)
        and _END_RE.search(content)
    )
