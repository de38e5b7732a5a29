"""Reduce a changeset to the build roots it affects.

A change nested several directories below a build root still triggers that
build root, so every changed path contributes its directory and all of that
directory's ancestors as candidates. Only candidates holding the marker file
directly survive, however they entered the candidate set.
"""

import logging
from typing import Iterable, List, Optional, Set

from .core import Change, Snapshot
from .repository import SnapshotRepository
from .utils import ancestor_dirs


def candidate_dirs(changes: Iterable[Change]) -> Set[str]:
    """Directories (and their ancestors) touched by any path of any change.

    The repository root is never a candidate. A rename within one directory
    contributes that directory once.
    """
    candidates: Set[str] = set()
    for change in changes:
        for path in change.paths:
            candidates.update(ancestor_dirs(path))
    return candidates


class ChangeSetResolver:
    """Finds the build roots affected by a set of changes."""

    def __init__(self, repository: SnapshotRepository, logger: Optional[logging.Logger] = None):
        self.repository = repository
        self.logger = logger or logging.getLogger(__name__)

    def resolve_build_roots(self, snapshot: Snapshot, changes: Iterable[Change]) -> List[str]:
        """Return the sorted, duplicate-free build roots touched by ``changes``.

        Raises:
            DiffError: If the snapshot tree cannot be read
        """
        candidates = sorted(candidate_dirs(changes))
        self.logger.debug("Found changed dirs: %s", candidates)

        roots = []
        for directory in candidates:
            self.logger.debug("Checking path: %s", directory)
            if self.repository.has_marker_at(snapshot, directory):
                roots.append(directory)
        return roots
