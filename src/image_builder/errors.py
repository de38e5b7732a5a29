"""Custom exceptions for image-builder.

Every failure the core can report derives from ImageBuilderError so the CLI
can turn it into a one-line message and a non-zero exit status. None of these
are recovered locally and nothing is retried.
"""

from typing import Optional


class ImageBuilderError(RuntimeError):
    """Base class for all image-builder errors."""
    pass


# Source repository errors
class TransportError(ImageBuilderError):
    """Cloning or authenticating against the source repository failed."""
    pass


class DiffError(ImageBuilderError):
    """Computing or reading tree differences failed."""
    pass


# Archive errors
class ArchiveError(ImageBuilderError):
    """Reading a blob or writing an archive entry failed."""

    def __init__(self, build_root: str, reason: str):
        self.build_root = build_root
        self.reason = reason
        super().__init__(f"Cannot archive '{build_root}': {reason}")


# Build / push errors
class PipelineError(ImageBuilderError):
    """Base class for build and push failures of one build root."""

    def __init__(self, build_root: str, message: str, tag: Optional[str] = None):
        self.build_root = build_root
        self.tag = tag
        self.message = message
        target = f"{build_root} ({tag})" if tag else build_root
        super().__init__(f"{target}: {message}")


class ProtocolError(PipelineError):
    """Status stream was malformed or terminated before its natural end."""
    pass


class RemoteError(PipelineError):
    """The engine reported an error, in the status stream or on submission."""
    pass


class PipelineStateError(PipelineError):
    """An operation was requested from a state that does not allow it."""
    pass


# Configuration errors
class ConfigError(ImageBuilderError):
    """Configuration could not be loaded or is invalid."""
    pass
