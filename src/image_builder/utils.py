"""Utility functions for image-builder."""

import posixpath
from typing import Iterator


def normalize_path(path: str) -> str:
    """Normalize a repository-relative path to POSIX form without slashes at the ends.

    The repository root normalizes to the empty string.

    Examples:
        "svc/api/" -> "svc/api"
        "./svc//api" -> "svc/api"
        "." -> ""
    """
    if not path:
        return ""
    p = posixpath.normpath(path.replace("\\", "/"))
    if p in (".", "/"):
        return ""
    return p.strip("/")


def ancestor_dirs(path: str) -> Iterator[str]:
    """Yield the directory containing ``path`` and each of its ancestors.

    The repository root is never yielded.

    Examples:
        "a/b/c/file.txt" -> "a/b/c", "a/b", "a"
        "README.md" -> (nothing)
    """
    parent = posixpath.dirname(normalize_path(path))
    while parent:
        yield parent
        parent = posixpath.dirname(parent)


def decode_path(raw: bytes) -> str:
    """Decode a git tree path; undecodable bytes survive a round trip."""
    return raw.decode("utf-8", errors="surrogateescape")


def encode_path(path: str) -> bytes:
    return path.encode("utf-8", errors="surrogateescape")


def humanize_size(size: float) -> str:
    """Convert bytes to human-readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"
