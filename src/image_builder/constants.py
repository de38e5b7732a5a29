"""Constants for image-builder."""

# A directory is a build root when it holds this file directly
MARKER_FILE = "Dockerfile"

# Git
DEFAULT_BRANCH = "master"
BRANCH_REF_PREFIX = "refs/heads/"
SHORT_HASH_LENGTH = 7

# Docker engine
DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"
DEFAULT_DOCKER_API_VERSION = "1.24"
DEFAULT_DOCKER_TIMEOUT = 600
USER_AGENT = "image-builder"

# Archives stay in memory up to this size, then spill to a temp file
ARCHIVE_SPOOL_SIZE = 32 * 1024 * 1024

# Configuration
CONFIG_FILE = ".image-builder.yaml"
ENV_PREFIX = "IB_"

# Version
BUILDER_VERSION = "0.1.0"
