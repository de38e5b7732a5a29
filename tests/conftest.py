"""Shared test fixtures and utilities."""

from unittest.mock import Mock

import pytest

from image_builder.config import BuilderConfig
from image_builder.core import Snapshot
from image_builder.docker_client import DockerAdapter
from image_builder.repository import SnapshotRepository
from tests.fixtures.sample_repo import BASE_FILES, RepoBuilder


@pytest.fixture
def builder():
    """Builder over a fresh in-memory repository."""
    return RepoBuilder()


@pytest.fixture
def config():
    """Config pointing at a remote that tests never contact."""
    return BuilderConfig(git_url="https://git.example.com/monorepo.git", git_branch="master")


@pytest.fixture
def repository(config):
    return SnapshotRepository(config)


@pytest.fixture
def snapshot_of(builder):
    """Factory fixture: snapshot of a branch of the builder's repository."""
    def _snapshot(branch: str = "master") -> Snapshot:
        return Snapshot.from_repo(builder.repo, f"refs/heads/{branch}")
    return _snapshot


@pytest.fixture
def base_commit(builder):
    """Root commit holding BASE_FILES."""
    return builder.commit(BASE_FILES, message="initial")


@pytest.fixture
def docker():
    """Docker adapter double; build and push return empty streams by default."""
    adapter = Mock(spec=DockerAdapter)
    adapter.build.return_value = iter([])
    adapter.push.return_value = iter([])
    return adapter
