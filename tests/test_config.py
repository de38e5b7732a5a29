"""Tests for configuration loading."""

import base64
import json
from pathlib import Path

import pytest

from image_builder.config import BuilderConfig, decode_registry_auth, load_config
from image_builder.constants import DEFAULT_BRANCH, DEFAULT_DOCKER_HOST
from image_builder.errors import ConfigError


def token(data) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).decode()


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Keep ~/.image-builder.yaml of the machine out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    return home


class TestBuilderConfig:

    def test_defaults(self):
        config = BuilderConfig(git_url="git@github.com:org/repo.git")

        assert config.git_branch == DEFAULT_BRANCH
        assert config.branch_ref == "refs/heads/master"
        assert config.docker_host == DEFAULT_DOCKER_HOST
        assert config.key_path is None
        assert config.registry_auth_config() is None

    def test_full_ref_is_kept(self):
        config = BuilderConfig(git_url="x", git_branch="refs/heads/release")

        assert config.branch_ref == "refs/heads/release"

    def test_registry_auth_decodes(self):
        auth = {"username": "ci", "password": "s3cret", "serveraddress": "registry.example.com"}

        config = BuilderConfig(git_url="x", registry_auth=token(auth))

        assert config.registry_auth_config() == auth

    def test_unpadded_standard_base64_is_accepted(self):
        raw = base64.b64encode(json.dumps({"identitytoken": "t"}).encode()).decode().rstrip("=")

        assert decode_registry_auth(raw) == {"identitytoken": "t"}

    @pytest.mark.parametrize("bad", ["not base64!!", token(["a", "list"])])
    def test_invalid_registry_auth(self, bad):
        with pytest.raises(ValueError):
            BuilderConfig(git_url="x", registry_auth=bad)


class TestLoadConfig:

    def test_file_env_and_overrides(self, isolated_home, tmp_path):
        cfg = tmp_path / "builder.yaml"
        cfg.write_text(
            "git-url: https://git.example.com/from-file.git\n"
            "git-branch: develop\n"
            "docker-host: tcp://file:2375\n"
        )
        environ = {"IB_GIT_BRANCH": "from-env", "IB_DEBUG": "true", "OTHER": "ignored"}

        config = load_config(cfg, overrides={"docker_host": "tcp://cli:2375", "git_url": None}, environ=environ)

        assert config.git_url == "https://git.example.com/from-file.git"
        assert config.git_branch == "from-env"
        assert config.docker_host == "tcp://cli:2375"
        assert config.debug is True

    def test_default_file_in_home(self, isolated_home):
        (isolated_home / ".image-builder.yaml").write_text("git_url: https://git.example.com/home.git\n")

        config = load_config(environ={})

        assert config.git_url == "https://git.example.com/home.git"

    def test_default_file_is_optional(self, isolated_home):
        config = load_config(overrides={"git_url": "https://git.example.com/x.git"}, environ={})

        assert config.git_url == "https://git.example.com/x.git"

    def test_missing_explicit_file(self, isolated_home, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yaml", environ={})

    def test_invalid_yaml(self, isolated_home, tmp_path):
        cfg = tmp_path / "bad.yaml"
        cfg.write_text("git-url: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(cfg, environ={})

    def test_git_url_required(self, isolated_home):
        with pytest.raises(ConfigError, match="git_url"):
            load_config(environ={})

    def test_unknown_key_rejected(self, isolated_home, tmp_path):
        cfg = tmp_path / "extra.yaml"
        cfg.write_text("git-url: x\ncolour: blue\n")

        with pytest.raises(ConfigError, match="colour"):
            load_config(cfg, environ={})

    def test_bad_registry_auth_is_config_error(self, isolated_home):
        with pytest.raises(ConfigError, match="registry_auth"):
            load_config(overrides={"git_url": "x", "registry_auth": "%%%"}, environ={})
