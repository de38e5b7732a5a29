"""Tar archives of snapshot subtrees, used as Docker build contexts.

Archives are built straight from the object store. Entry order is the
object store's tree walk order, every entry gets the commit time as mtime and
root ownership, so the same snapshot always produces the same bytes.
"""

import io
import logging
import stat
import tarfile
import tempfile
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Optional

from dulwich.errors import ObjectFormatException
from dulwich.object_store import iter_tree_contents
from dulwich.objects import S_ISGITLINK

from .constants import ARCHIVE_SPOOL_SIZE
from .core import Snapshot
from .errors import ArchiveError, DiffError
from .repository import SnapshotRepository
from .utils import decode_path, humanize_size, normalize_path


class SnapshotArchiver:
    """Builds a tar archive of one directory of a snapshot."""

    def __init__(
        self,
        repository: SnapshotRepository,
        logger: Optional[logging.Logger] = None,
        spool_size: int = ARCHIVE_SPOOL_SIZE,
    ):
        self.repository = repository
        self.logger = logger or logging.getLogger(__name__)
        self.spool_size = spool_size

    @contextmanager
    def archive(self, snapshot: Snapshot, build_root: str) -> Iterator[BinaryIO]:
        """Yield a rewound file object holding the complete archive of ``build_root``.

        The archive lives in memory up to ``spool_size`` bytes and in an
        anonymous temp file beyond that; it is closed when the block exits.

        Raises:
            ArchiveError: If the subtree cannot be resolved, a blob cannot be
                read or an entry cannot be written
        """
        root = normalize_path(build_root)
        try:
            tree_id = self.repository.read_subtree(snapshot, root)
        except DiffError as e:
            raise ArchiveError(root, str(e)) from e

        spool = tempfile.SpooledTemporaryFile(max_size=self.spool_size)
        try:
            try:
                count = self._write(spool, snapshot, tree_id)
            except (KeyError, ObjectFormatException, tarfile.TarError, OSError) as e:
                raise ArchiveError(root, str(e) or type(e).__name__) from e

            size = spool.tell()
            spool.seek(0)
            self.logger.debug(
                "Tar archive for %s is %s (%d files)", root or ".", humanize_size(size), count
            )
            yield spool
        finally:
            spool.close()

    def _write(self, fileobj: BinaryIO, snapshot: Snapshot, tree_id: bytes) -> int:
        """Write every file below ``tree_id`` and the archive trailer. Returns the entry count."""
        store = snapshot.repo.object_store
        count = 0
        with tarfile.open(fileobj=fileobj, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for entry in iter_tree_contents(store, tree_id):
                if S_ISGITLINK(entry.mode):
                    self.logger.debug("Skipping submodule %s", decode_path(entry.path))
                    continue
                self._add_entry(tar, store, entry, snapshot.commit_time)
                count += 1
        return count

    def _add_entry(self, tar: tarfile.TarFile, store, entry, mtime: int) -> None:
        name = decode_path(entry.path)
        self.logger.debug("Adding %s to tar archive", name)
        data = store[entry.sha].as_raw_string()

        info = tarfile.TarInfo(name)
        info.mtime = mtime
        if stat.S_ISLNK(entry.mode):
            info.type = tarfile.SYMTYPE
            info.linkname = decode_path(data)
            info.mode = 0o777
            tar.addfile(info)
            return

        info.size = len(data)
        info.mode = stat.S_IMODE(entry.mode)
        tar.addfile(info, io.BytesIO(data))
