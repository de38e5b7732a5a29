"""Build and push Docker images for the sub-projects touched by the latest commit."""

from .constants import BUILDER_VERSION as __version__

__all__ = ["__version__"]
