"""Core data models for image-builder.

A run works on one Snapshot: the commit at the head of the configured branch,
held in an in-memory object store. Changes between that commit and each of
its parents are reduced to build roots, and every build root goes through its
own BuildPublishPipeline whose progress is tracked as a PipelineState.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from dulwich.objects import Commit
from dulwich.repo import BaseRepo
from pydantic import BaseModel, ConfigDict, Field

from .errors import TransportError


# ============= Snapshot =============

@dataclass(frozen=True)
class Snapshot:
    """Read-only view of the repository at one commit."""

    repo: BaseRepo
    ref_name: str
    commit: Commit

    @classmethod
    def from_repo(cls, repo: BaseRepo, ref_name: str) -> "Snapshot":
        """Resolve ``ref_name`` in an already populated repository."""
        try:
            sha = repo.refs[ref_name.encode("utf-8")]
            commit = repo[sha]
        except KeyError:
            raise TransportError(f"Reference {ref_name} not found in repository")
        if not isinstance(commit, Commit):
            raise TransportError(f"Reference {ref_name} does not point to a commit")
        return cls(repo=repo, ref_name=ref_name, commit=commit)

    @property
    def commit_id(self) -> str:
        return self.commit.id.decode("ascii")

    @property
    def tree_id(self) -> bytes:
        return self.commit.tree

    @property
    def parent_ids(self) -> List[bytes]:
        return list(self.commit.parents)

    @property
    def commit_time(self) -> int:
        return self.commit.commit_time


# ============= Change Detection =============

class Change(BaseModel):
    """A file-level delta between the snapshot tree and one parent tree.

    Both paths set is a modification or rename, only ``to_path`` an addition,
    only ``from_path`` a deletion. Paths are repository-relative POSIX strings.
    """

    model_config = ConfigDict(frozen=True)

    from_path: Optional[str] = None
    to_path: Optional[str] = None

    @property
    def paths(self) -> Tuple[str, ...]:
        """The paths present on this change."""
        return tuple(p for p in (self.from_path, self.to_path) if p)


# ============= Status Streams =============

class BuildStatus(BaseModel):
    """One decoded line of the build status stream."""

    model_config = ConfigDict(extra="ignore")

    stream: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return bool(self.error)


class PushStatus(BaseModel):
    """One decoded line of the push status stream."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[str] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return bool(self.error)


# ============= Pipeline =============

class PipelineState(str, Enum):
    """Progress of one build root through build and push."""

    IDLE = "idle"
    BUILDING = "building"
    BUILT = "built"
    PUSHING = "pushing"
    DONE = "done"
    FAILED = "failed"


class RootResult(BaseModel):
    """Outcome for a single build root."""

    build_root: str
    tags: List[str] = Field(default_factory=list)
    state: PipelineState = PipelineState.IDLE


class RunReport(BaseModel):
    """Everything a run resolved and did."""

    commit_id: str
    ref_name: str
    build_roots: List[str] = Field(default_factory=list)
    results: List[RootResult] = Field(default_factory=list)
    dry_run: bool = False
