"""End-to-end tests for a run, with the clone and the engine replaced."""

import base64
import json
import tarfile
from unittest.mock import Mock

import pytest

from image_builder.config import BuilderConfig
from image_builder.core import PipelineState
from image_builder.errors import RemoteError
from image_builder.ops import resolve, run
from image_builder.repository import SnapshotRepository
from tests.fixtures.sample_repo import BASE_FILES


@pytest.fixture
def two_root_change(builder, snapshot_of):
    """Head commit touching svc/api, tools/lint and docs on top of BASE_FILES."""
    c0 = builder.commit(BASE_FILES)
    files = dict(BASE_FILES)
    files["svc/api/main.go"] = "package main // v2\n"
    files["tools/lint/config.yaml"] = "rules: [strict]\n"
    files["docs/readme.md"] = "docs v2\n"
    builder.commit(files, parents=[c0])
    return snapshot_of()


@pytest.fixture
def source(config, two_root_change):
    """SnapshotRepository whose clone returns the prepared snapshot."""
    repository = SnapshotRepository(config)
    repository.open = Mock(return_value=two_root_change)
    return repository


class TestResolve:

    def test_returns_touched_roots(self, config, source, two_root_change):
        snapshot, roots = resolve(config, repository=source)

        assert snapshot is two_root_change
        assert roots == ["svc/api", "tools"]


class TestRun:

    def test_builds_and_pushes_each_root_in_order(self, config, source, docker, two_root_change):
        contexts = []

        def capture_build(fileobj, tag):
            with tarfile.open(fileobj=fileobj) as tar:
                contexts.append((tag, sorted(tar.getnames())))
            return [json.dumps({"stream": "Successfully built"}).encode() + b"\n"]

        docker.build.side_effect = capture_build

        report = run(config, repository=source, docker=docker)

        short = two_root_change.commit_id[:7]
        assert report.build_roots == ["svc/api", "tools"]
        assert [r.state for r in report.results] == [PipelineState.DONE, PipelineState.DONE]
        assert report.results[1].tags == ["tools:master", f"tools:{short}"]
        assert contexts == [
            ("svc/api:master", ["Dockerfile", "internal/handlers/users.go", "main.go"]),
            ("tools:master", ["Dockerfile", "lint/config.yaml"]),
        ]
        assert [c.args[0] for c in docker.push.call_args_list] == ["svc/api", "tools"]

    def test_registry_auth_is_passed_to_push(self, source, docker, two_root_change):
        auth = {"username": "ci", "password": "secret"}
        token = base64.urlsafe_b64encode(json.dumps(auth).encode()).decode()
        config = BuilderConfig(git_url="https://git.example.com/monorepo.git", registry_auth=token)

        run(config, repository=source, docker=docker)

        assert all(c.args[1] == auth for c in docker.push.call_args_list)

    def test_first_failure_stops_the_run(self, config, source, docker):
        docker.build.side_effect = [
            [b'{"stream":"ok"}\n'],
            [b'{"error":"build failed"}\n'],
        ]

        with pytest.raises(RemoteError) as exc:
            run(config, repository=source, docker=docker)

        assert exc.value.build_root == "tools"
        # svc/api was already pushed and stays pushed
        assert [c.args[0] for c in docker.push.call_args_list] == ["svc/api"]

    def test_dry_run_touches_no_engine(self, source, two_root_change):
        config = BuilderConfig(git_url="https://git.example.com/monorepo.git", dry_run=True)
        docker = Mock()

        report = run(config, repository=source, docker=docker)

        assert report.dry_run
        assert [r.build_root for r in report.results] == ["svc/api", "tools"]
        assert all(r.state is PipelineState.IDLE for r in report.results)
        assert docker.mock_calls == []

    def test_nothing_to_build(self, builder, config, docker, snapshot_of):
        c0 = builder.commit(BASE_FILES)
        builder.commit(dict(BASE_FILES, **{"README.md": "# changed\n"}), parents=[c0])
        repository = SnapshotRepository(config)
        repository.open = Mock(return_value=snapshot_of())

        report = run(config, repository=repository, docker=docker)

        assert report.build_roots == []
        assert report.results == []
        docker.build.assert_not_called()
