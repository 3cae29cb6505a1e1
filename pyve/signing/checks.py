"""Integrity helpers: SHA-256 compute & verify for downloaded tools."""

from __future__ import annotations

import hashlib
from pathlib import Path


class DigestMismatch(ValueError):
    pass


def sha256(path: Path) -> str:
    """Return the hex SHA-256 of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _normalize_expected(expected: str) -> str:
    exp = expected.strip()
    if exp.startswith("sha256:"):
        exp = exp.split(":", 1)[1]
    # Sidecar files look like "<hex>  <filename>"
    return exp.split()[0].lower() if exp else exp


def verify_sha256(path: Path, expected: str) -> str:
    """Return the digest of *path*; raise :class:`DigestMismatch` if it differs.

    *expected* may be plain hex, ``sha256:<hex>`` or a ``sha256sum`` line.
    """
    got = sha256(path)
    exp = _normalize_expected(expected)
    if got.lower() != exp:
        raise DigestMismatch(f"SHA-256 mismatch: got {got}, expected {exp}")
    return got
