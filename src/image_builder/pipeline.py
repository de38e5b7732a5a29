"""Build and push pipeline for a single build root.

States: IDLE -> BUILDING -> BUILT -> PUSHING -> DONE, with FAILED reachable
from BUILDING and PUSHING. Push is refused unless the build finished
cleanly. Every status stream is closed on the way out, including when a
decoded line reports an error and decoding stops early.
"""

import logging
from contextlib import contextmanager
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, Optional, Type

import requests
from docker.errors import APIError
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from .core import BuildStatus, PipelineState, PushStatus, RootResult
from .docker_client import SUBMIT_ERRORS, DockerAdapter
from .errors import PipelineError, PipelineStateError, ProtocolError, RemoteError
from .status import StatusDecodeError, decode_status, iter_lines

# Failures while reading an already opened status stream
_STREAM_ERRORS = (requests.exceptions.RequestException, Urllib3HTTPError, OSError)


@contextmanager
def _scoped(stream) -> Iterator[Any]:
    """Close a status stream on exit if it can be closed."""
    try:
        yield stream
    finally:
        close = getattr(stream, "close", None)
        if close is not None:
            close()


class BuildPublishPipeline:
    """Builds the image for one build root and pushes all of its tags."""

    def __init__(
        self,
        docker: DockerAdapter,
        build_root: str,
        tags: List[str],
        logger: Optional[logging.Logger] = None,
    ):
        if not tags:
            raise ValueError(f"No tags given for {build_root}")
        self.docker = docker
        self.build_root = build_root
        self.tags = list(tags)
        self.logger = logger or logging.getLogger(__name__)
        self.state = PipelineState.IDLE

    @property
    def repository(self) -> str:
        """Repository coordinate all tags live under."""
        return self.build_root

    def run(self, archive: BinaryIO, auth_config: Optional[Dict[str, Any]] = None) -> RootResult:
        """Build, then push. Stops at the first failure."""
        self.build(archive)
        self.push(auth_config)
        return self.result()

    def result(self) -> RootResult:
        return RootResult(build_root=self.build_root, tags=self.tags, state=self.state)

    # ============= Build =============

    def build(self, archive: BinaryIO) -> None:
        """Send the archive to the engine and follow the build to its end.

        Raises:
            RemoteError: The engine rejected the request or reported an error
            ProtocolError: The status stream was undecodable or broke off
            PipelineStateError: The pipeline is not idle
        """
        if self.state is not PipelineState.IDLE:
            raise PipelineStateError(self.build_root, f"cannot build from state '{self.state.value}'")

        primary = self.tags[0]
        self.state = PipelineState.BUILDING
        self.logger.info("Building %s as %s", self.build_root, ", ".join(self.tags))
        try:
            stream = self._submit(lambda: self.docker.build(archive, primary), primary)
            self._follow(stream, BuildStatus, self._log_build, primary)
            # The build call takes a single tag; the rest point at the same image
            for tag in self.tags[1:]:
                self._submit(lambda: self.docker.tag(primary, tag), tag)
        except PipelineError:
            self.state = PipelineState.FAILED
            raise
        self.state = PipelineState.BUILT
        self.logger.info("Built %s", self.build_root)

    def _log_build(self, event: BuildStatus) -> None:
        text = (event.stream or event.status or "").rstrip("\n")
        if text:
            self.logger.debug(text)

    # ============= Push =============

    def push(self, auth_config: Optional[Dict[str, Any]] = None) -> None:
        """Push every tag of the build root's repository in one call.

        Raises:
            PipelineStateError: The build has not completed successfully
            RemoteError: The engine rejected the request or reported an error
            ProtocolError: The status stream was undecodable or broke off
        """
        if self.state is not PipelineState.BUILT:
            raise PipelineStateError(
                self.build_root,
                f"cannot push from state '{self.state.value}', the build must succeed first",
            )

        self.state = PipelineState.PUSHING
        self.logger.info("Pushing %s", self.repository)
        try:
            stream = self._submit(lambda: self.docker.push(self.repository, auth_config), None)
            self._follow(stream, PushStatus, self._log_push, None)
        except PipelineError:
            self.state = PipelineState.FAILED
            raise
        self.state = PipelineState.DONE
        self.logger.info("Pushed %s", ", ".join(self.tags))

    def _log_push(self, event: PushStatus) -> None:
        if event.status:
            self.logger.debug(event.status, extra={"layer": event.id} if event.id else None)

    # ============= Streams =============

    def _submit(self, call: Callable[[], Any], tag: Optional[str]) -> Any:
        try:
            return call()
        except SUBMIT_ERRORS as e:
            raise RemoteError(self.build_root, f"request rejected: {e}", tag) from e

    def _follow(self, stream, model: Type, on_event: Callable[[Any], None], tag: Optional[str]) -> None:
        """Decode ``stream`` line by line until it ends or reports an error."""
        with _scoped(stream):
            try:
                for line in iter_lines(stream):
                    try:
                        event = decode_status(line, model)
                    except StatusDecodeError as e:
                        raise ProtocolError(self.build_root, str(e), tag) from e
                    if event.failed:
                        raise RemoteError(self.build_root, event.error, tag)
                    on_event(event)
            except APIError as e:
                # The engine answers an HTTP error once the stream is first read
                raise RemoteError(self.build_root, f"request rejected: {e}", tag) from e
            except _STREAM_ERRORS as e:
                raise ProtocolError(self.build_root, f"Failed to read logs: {e}", tag) from e
