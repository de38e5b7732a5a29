"""Docker engine adapter for build, tag and push operations."""

import logging
from typing import Any, BinaryIO, Dict, Iterator, Optional

import docker
import requests
from docker.errors import APIError, DockerException
from docker.utils import parse_repository_tag

from .config import BuilderConfig
from .constants import USER_AGENT
from .errors import RemoteError


class DockerAdapter:
    """Thin wrapper over the Docker SDK low-level API client.

    ``build`` and ``push`` return the raw chunks of the engine's status
    stream; decoding them is up to the caller.

    The streams are the SDK's generators, which do not expose the HTTP
    response behind them. Closing one ends the generator and drops its
    reference to the response, so the connection goes back to the pool when
    the response is collected rather than at ``close()`` itself. An HTTP
    error status from the engine is raised as ``APIError`` on the first read
    of the stream, not by ``build`` or ``push``.
    """

    def __init__(
        self,
        base_url: str,
        version: str,
        timeout: int,
        client: Optional[docker.APIClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.base_url = base_url
        self.logger = logger or logging.getLogger(__name__)
        if client is not None:
            self.client = client
            return
        try:
            self.client = docker.APIClient(
                base_url=base_url,
                version=version,
                timeout=timeout,
                user_agent=USER_AGENT,
            )
        except (DockerException, requests.exceptions.RequestException) as e:
            raise RemoteError(base_url, f"Could not connect to Docker daemon: {e}") from e

    @classmethod
    def from_config(cls, config: BuilderConfig, logger: Optional[logging.Logger] = None) -> "DockerAdapter":
        return cls(
            base_url=config.docker_host,
            version=config.docker_api_version,
            timeout=config.docker_timeout,
            logger=logger,
        )

    def build(self, fileobj: BinaryIO, tag: str) -> Iterator[bytes]:
        """Submit a tar build context; returns the build status stream."""
        self.logger.debug("Submitting build context for %s to %s", tag, self.base_url)
        return self.client.build(
            fileobj=fileobj,
            custom_context=True,
            tag=tag,
            rm=True,
            decode=False,
        )

    def tag(self, source: str, target: str) -> None:
        """Point ``target`` (``repo:tag``) at the image ``source``."""
        repository, tag = parse_repository_tag(target)
        self.logger.debug("Tagging %s as %s", source, target)
        self.client.tag(source, repository, tag=tag, force=True)

    def push(self, repository: str, auth_config: Optional[Dict[str, Any]] = None) -> Iterator[bytes]:
        """Push every tag of ``repository``; returns the push status stream."""
        self.logger.debug("Pushing all tags of %s", repository)
        return self.client.push(
            repository,
            stream=True,
            auth_config=auth_config,
            decode=False,
        )


# Raised when a request cannot be submitted or the engine answers with an HTTP error
SUBMIT_ERRORS = (APIError, DockerException, requests.exceptions.RequestException)
