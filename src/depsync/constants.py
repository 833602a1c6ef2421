"""Constants used in the project."""

from enum import Enum


class StepKind(Enum):
    """Kinds of build steps a plan can contain.

    Args:
        Enum (string): Step kind names as written in logs and summaries.
    """

    INSTALL = "install"
    UPDATE = "update"
    REMOVE = "remove"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOCKFILE_NAME = "rv.lock"
    LOCKFILE_VERSION = 1
    CONFIG_ENV_VAR = "DEPSYNC_CONFIG"
    CONFIG_FILE_NAMES = ["depsync.yml", "depsync.yaml"]
    USER_CONFIG_DIR = "~/.config/depsync"
    DEFAULT_CACHE_DIR = "~/.cache/depsync"
    ROOT_REQUIRER = "<root>"  # not a valid package name
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_LEVEL_ENV_VAR = "DEPSYNC_LOG_LEVEL"

    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    HTTP_CACHE_TTL_SEC = 300

    DEFAULT_MAX_WORKERS = 4
    DEFAULT_FETCH_WORKERS = 8

    SOURCE_INDEX_PATH = "src/contrib/PACKAGES"
    DEPENDENCY_FIELDS = ["Depends", "Imports", "LinkingTo"]
    # Packages shipped with the toolchain itself; never resolved from a repository.
    BASE_PACKAGES = frozenset([
        "R", "base", "compiler", "datasets", "grDevices", "graphics", "grid",
        "methods", "parallel", "splines", "stats", "stats4", "tcltk", "tools",
        "utils",
    ])
    CONTENT_HASH_FIELD = "ContentHash"
