"""In-memory snapshot of a single branch of the source repository.

The branch is fetched into a dulwich MemoryRepo; nothing is checked out and
nothing is written to local disk. All later questions (what changed, is there
a Dockerfile here, which tree is this directory) are answered from that object
store.
"""

import logging
import posixpath
import stat
from pathlib import Path
from typing import Iterable, List, Optional

from dulwich.client import HTTPUnauthorized, SSHGitClient, get_transport_and_path
from dulwich.diff_tree import tree_changes
from dulwich.errors import GitProtocolError, NotGitRepository, NotTreeError, ObjectFormatException
from dulwich.object_store import tree_lookup_path
from dulwich.objects import S_ISGITLINK
from dulwich.repo import MemoryRepo
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from .config import BuilderConfig
from .constants import MARKER_FILE
from .core import Change, Snapshot
from .errors import DiffError, TransportError
from .utils import decode_path, encode_path, normalize_path


# Failures that mean the remote could not be reached, read or authenticated against
_TRANSPORT_ERRORS = (
    GitProtocolError,
    NotGitRepository,
    HTTPUnauthorized,
    Urllib3HTTPError,
    OSError,
)


class SnapshotRepository:
    """Clones the configured branch and answers tree queries about it."""

    def __init__(self, config: BuilderConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    # ============= Clone =============

    def open(self) -> Snapshot:
        """Fetch the configured branch into memory and resolve its head commit.

        Returns:
            Snapshot of the branch head

        Raises:
            TransportError: If the key is unreadable, the remote cannot be
                reached or read, or the branch does not exist there
        """
        url = self.config.git_url
        ref_name = self.config.branch_ref
        self.logger.info("Cloning %s (%s)", url, ref_name)

        client, path = self._client_for(url, self.config.key_path)
        target = MemoryRepo()
        ref = ref_name.encode("utf-8")

        def determine_wants(refs, depth=None):
            # Only the requested branch; an empty list fetches nothing
            sha = refs.get(ref)
            return [sha] if sha else []

        try:
            result = client.fetch(
                path,
                target,
                determine_wants=determine_wants,
                progress=self._progress,
            )
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"Error cloning {url}: {e}") from e

        head = result.refs.get(ref)
        if not head:
            raise TransportError(f"Branch {ref_name} not found in {url}")
        target.refs[ref] = head

        snapshot = Snapshot.from_repo(target, ref_name)
        self.logger.debug("Resolved %s to %s", ref_name, snapshot.commit_id)
        return snapshot

    def _client_for(self, url: str, key_path: Optional[Path]):
        """Build the transport client, wiring the private key for SSH remotes."""
        try:
            client, path = get_transport_and_path(url)
        except ValueError as e:
            raise TransportError(f"Unsupported repository URL {url}: {e}") from e

        if key_path is None:
            return client, path

        try:
            key_path.read_bytes()
        except OSError as e:
            raise TransportError(f"Cannot read {key_path}: {e}") from e

        if not isinstance(client, SSHGitClient):
            self.logger.warning("Ignoring private key %s for non-SSH remote %s", key_path, url)
            return client, path
        return get_transport_and_path(url, key_filename=str(key_path))

    def _progress(self, message: bytes) -> None:
        text = message.decode("utf-8", errors="replace").strip()
        if text:
            self.logger.debug(text)

    # ============= Diffing =============

    def changes_against_parents(self, snapshot: Snapshot) -> List[Change]:
        """Union of the file-level changes between the commit and each parent.

        A root commit is compared with the empty tree, so every file in it is
        reported as an addition.

        Raises:
            DiffError: If a parent commit or tree cannot be read
        """
        store = snapshot.repo.object_store
        changes: List[Change] = []
        try:
            if not snapshot.parent_ids:
                changes.extend(self._diff(store, None, snapshot.tree_id))
            for parent_id in snapshot.parent_ids:
                parent = store[parent_id]
                changes.extend(self._diff(store, parent.tree, snapshot.tree_id))
        except (KeyError, NotTreeError, ObjectFormatException) as e:
            raise DiffError(f"Error diffing {snapshot.commit_id[:7]} against its parents: {e}") from e

        # A path changed against several parents is still one change
        unique = list(dict.fromkeys(changes))
        self.logger.debug(
            "Commit %s has %d parent(s) and %d change(s)",
            snapshot.commit_id[:7], len(snapshot.parent_ids), len(unique),
        )
        return unique

    @staticmethod
    def _diff(store, old_tree: Optional[bytes], new_tree: bytes) -> Iterable[Change]:
        for tc in tree_changes(store, old_tree, new_tree):
            yield Change(
                from_path=_entry_path(tc.old),
                to_path=_entry_path(tc.new),
            )

    # ============= Tree lookups =============

    def has_marker_at(self, snapshot: Snapshot, dir_path: str) -> bool:
        """Check whether ``dir_path`` directly contains the marker file.

        Raises:
            DiffError: If the tree objects are corrupt
        """
        path = posixpath.join(normalize_path(dir_path), MARKER_FILE)
        try:
            mode, _ = tree_lookup_path(snapshot.repo.object_store.__getitem__, snapshot.tree_id, encode_path(path))
        except (KeyError, NotTreeError):
            self.logger.debug("No %s found at path: %s", MARKER_FILE, dir_path)
            return False
        except ObjectFormatException as e:
            raise DiffError(f"Error reading tree for {path}: {e}") from e

        found = not stat.S_ISDIR(mode) and not S_ISGITLINK(mode)
        if found:
            self.logger.debug("Found %s at path: %s", MARKER_FILE, dir_path)
        return found

    def read_subtree(self, snapshot: Snapshot, dir_path: str) -> bytes:
        """Resolve the tree id of a directory in the snapshot.

        The repository root is addressed as ``""`` or ``"."``.

        Raises:
            DiffError: If the path does not exist or is not a directory
        """
        path = normalize_path(dir_path)
        if not path:
            return snapshot.tree_id
        try:
            mode, sha = tree_lookup_path(snapshot.repo.object_store.__getitem__, snapshot.tree_id, encode_path(path))
        except (KeyError, NotTreeError) as e:
            raise DiffError(f"{path} does not exist in {snapshot.commit_id[:7]}") from e
        except ObjectFormatException as e:
            raise DiffError(f"Error reading tree for {path}: {e}") from e
        if not stat.S_ISDIR(mode):
            raise DiffError(f"{path} is not a directory in {snapshot.commit_id[:7]}")
        return sha


def _entry_path(entry) -> Optional[str]:
    # Absent sides are None or an entry whose path is None, depending on dulwich version
    if entry is None or entry.path is None:
        return None
    return decode_path(entry.path)
