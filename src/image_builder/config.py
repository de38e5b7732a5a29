"""Builder configuration.

Values come from, lowest to highest precedence: a YAML file, ``IB_*``
environment variables, and explicit overrides (the CLI options). The result
is one BuilderConfig value that is passed to every component that needs it.
"""

import base64
import binascii
import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .constants import (
    BRANCH_REF_PREFIX,
    CONFIG_FILE,
    DEFAULT_BRANCH,
    DEFAULT_DOCKER_API_VERSION,
    DEFAULT_DOCKER_HOST,
    DEFAULT_DOCKER_TIMEOUT,
    ENV_PREFIX,
)
from .errors import ConfigError


class BuilderConfig(BaseModel):
    """Validated configuration for one run."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    git_url: str = Field(..., min_length=1)
    git_branch: str = DEFAULT_BRANCH
    key_path: Optional[Path] = None

    docker_host: str = DEFAULT_DOCKER_HOST
    docker_api_version: str = DEFAULT_DOCKER_API_VERSION
    docker_timeout: int = Field(DEFAULT_DOCKER_TIMEOUT, gt=0)
    # base64url encoded JSON, the format of the X-Registry-Auth header
    registry_auth: Optional[str] = None

    debug: bool = False
    json_logs: bool = False
    dry_run: bool = False

    @field_validator("git_branch")
    @classmethod
    def _strip_branch(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("git_branch must not be empty")
        return v

    @field_validator("registry_auth")
    @classmethod
    def _check_registry_auth(cls, v: Optional[str]) -> Optional[str]:
        if v:
            decode_registry_auth(v)
        return v or None

    @property
    def branch_ref(self) -> str:
        """Full reference name of the configured branch."""
        if self.git_branch.startswith("refs/"):
            return self.git_branch
        return f"{BRANCH_REF_PREFIX}{self.git_branch}"

    def registry_auth_config(self) -> Optional[Dict[str, Any]]:
        """Registry credentials as the mapping the Docker SDK expects."""
        if not self.registry_auth:
            return None
        return decode_registry_auth(self.registry_auth)


def decode_registry_auth(token: str) -> Dict[str, Any]:
    """Decode a base64 (url-safe or standard) JSON registry credential."""
    padded = token.strip() + "=" * (-len(token.strip()) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.replace("+", "-").replace("/", "_"))
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise ValueError(f"registry auth is not base64 encoded JSON: {e}")
    if not isinstance(data, dict):
        raise ValueError("registry auth must decode to a JSON object")
    return data


def default_config_path() -> Path:
    return Path.home() / CONFIG_FILE


def _normalize_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(k).replace("-", "_").lower(): v for k, v in data.items()}


def read_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """Read raw values from a YAML config file.

    An explicit path must exist; the default ``~/.image-builder.yaml`` is
    optional.
    """
    explicit = path is not None
    cfg_path = path if explicit else default_config_path()
    if not cfg_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {cfg_path}")
        return {}

    try:
        data = yaml.safe_load(cfg_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"{cfg_path} must contain a mapping")
    return _normalize_keys(data)


def read_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect ``IB_*`` variables that name a config field."""
    environ = os.environ if environ is None else environ
    fields = set(BuilderConfig.model_fields)
    values = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        key = name[len(ENV_PREFIX):].lower()
        if key in fields:
            values[key] = value
    return values


def load_config(
    path: Optional[Path] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BuilderConfig:
    """Merge file, environment and overrides into a BuilderConfig.

    Args:
        path: Explicit config file; defaults to ``~/.image-builder.yaml``
        overrides: Highest precedence values; ``None`` entries are ignored
        environ: Environment to read (defaults to ``os.environ``)

    Raises:
        ConfigError: If a source is unreadable or the merged values are invalid
    """
    values = read_config_file(path)
    values.update(read_env(environ))
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        return BuilderConfig.model_validate(values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}")
