"""Safe tarball member extraction.

Only a single named member is ever pulled out of a downloaded archive and it
is written to a path the caller chooses, so member names never decide where
bytes land. Guards:
- links and device files (only regular files are extracted)
- oversized members (basic cap)
- setuid/setgid bits
"""

from __future__ import annotations

import os
import stat
import tarfile
from pathlib import Path, PurePosixPath

MAX_MEMBER_BYTES = 256 * 1024 * 1024  # 256 MiB; micromamba is ~15 MiB


class ArchiveError(RuntimeError):
    pass


def _normalize(name: str) -> PurePosixPath:
    p = PurePosixPath(name)
    if p.parts and p.parts[0] == ".":
        p = PurePosixPath(*p.parts[1:])
    return p


def _copy_member(tf: tarfile.TarFile, m: tarfile.TarInfo, dest: Path) -> None:
    if not m.isfile():
        raise ArchiveError(f"Member is not a regular file: {m.name}")
    if m.size > MAX_MEMBER_BYTES:
        raise ArchiveError(f"Member too large: {m.name} ({m.size} bytes)")
    src = tf.extractfile(m)
    if src is None:
        raise ArchiveError(f"Cannot read member: {m.name}")
    dest.parent.mkdir(parents=True, exist_ok=True)
    with src, open(dest, "wb") as out:
        for chunk in iter(lambda: src.read(1024 * 1024), b""):
            out.write(chunk)
    mode = stat.S_IMODE(m.mode) & ~stat.S_ISUID & ~stat.S_ISGID
    os.chmod(dest, mode or 0o600)


def extract_member(archive: Path, member: str, dest: Path) -> Path:
    """Extract the regular file *member* of *archive* to *dest* (a file path).

    Raises :class:`ArchiveError` if the archive is unreadable or the member is
    missing or fails a check.
    """
    wanted = _normalize(member)
    try:
        with tarfile.open(archive, mode="r:*") as tf:
            for m in tf:
                if _normalize(m.name) == wanted:
                    _copy_member(tf, m, dest)
                    return dest
    except tarfile.TarError as e:
        raise ArchiveError(f"Cannot read archive {archive.name}: {e}") from e
    raise ArchiveError(f"Member not found in archive: {member}")
