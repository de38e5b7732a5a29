"""Image tags for a build root.

Tags are a pure function of the build root, the branch and the commit id:
one tag follows the branch, one pins the commit.
"""

import re
from typing import List

from .constants import SHORT_HASH_LENGTH

_REF_PREFIXES = ("refs/heads/", "refs/tags/", "refs/remotes/", "refs/")
_INVALID_TAG_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def short_branch_name(ref: str) -> str:
    """Strip the reference namespace and make the name usable as a Docker tag.

    Examples:
        "refs/heads/main" -> "main"
        "refs/heads/feature/login" -> "feature-login"
        "main" -> "main"
    """
    for prefix in _REF_PREFIXES:
        if ref.startswith(prefix):
            ref = ref[len(prefix):]
            break
    return _INVALID_TAG_CHARS.sub("-", ref)


def short_hash(commit_id: str) -> str:
    """First seven hex characters of a commit id, lowercased."""
    if len(commit_id) < SHORT_HASH_LENGTH:
        raise ValueError(
            f"commit id must have at least {SHORT_HASH_LENGTH} characters, got {commit_id!r}"
        )
    return commit_id.lower()[:SHORT_HASH_LENGTH]


def tags_for(build_root: str, branch: str, commit_id: str) -> List[str]:
    """Tags for an image built from ``build_root`` at ``commit_id`` on ``branch``."""
    return [
        f"{build_root}:{short_branch_name(branch)}",
        f"{build_root}:{short_hash(commit_id)}",
    ]
