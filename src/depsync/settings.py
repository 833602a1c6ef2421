"""Runtime settings loaded from YAML with environment overrides.

Lookup order for the settings file: an explicit path, ``$DEPSYNC_CONFIG``,
``./depsync.yml`` (or ``.yaml``), then ``~/.config/depsync/depsync.yml``.
``DEPSYNC_*`` environment variables win over the file. Values that do not
have the expected type are logged and ignored.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from depsync.constants import Constants

logger = logging.getLogger(__name__)

# Environment variable -> settings field
_ENV_OVERRIDES = {
    "DEPSYNC_LOCKFILE": "lockfile_name",
    "DEPSYNC_CACHE_DIR": "cache_dir",
    "DEPSYNC_MAX_WORKERS": "max_workers",
    "DEPSYNC_FETCH_WORKERS": "fetch_workers",
    "DEPSYNC_HTTP_TIMEOUT": "http_timeout",
    "DEPSYNC_HTTP_RETRIES": "http_retries",
    Constants.LOG_LEVEL_ENV_VAR: "log_level",
}


@dataclass
class Settings:
    """Tunables for resolution, plan execution and HTTP access."""
    lockfile_name: str = Constants.LOCKFILE_NAME
    cache_dir: str = Constants.DEFAULT_CACHE_DIR
    max_workers: int = Constants.DEFAULT_MAX_WORKERS
    fetch_workers: int = Constants.DEFAULT_FETCH_WORKERS
    http_timeout: float = float(Constants.REQUEST_TIMEOUT)
    http_retries: int = Constants.HTTP_RETRY_MAX
    log_level: str = "INFO"
    source: Optional[str] = None

    @property
    def cache_path(self) -> Path:
        return Path(os.path.expanduser(self.cache_dir))

    def lockfile_path(self, project_dir: Union[str, Path]) -> Path:
        """Location of the lockfile for the project in ``project_dir``."""
        return Path(project_dir) / self.lockfile_name

    def http_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``common.http_client`` requests."""
        return {"timeout": self.http_timeout, "retries": self.http_retries}

    def apply(self, values: Dict[str, Any], origin: str) -> None:
        """Set known fields from ``values``; unknown keys and bad values are skipped."""
        known = {f.name: f for f in fields(self) if f.name != "source"}
        for key, raw in values.items():
            if key not in known:
                logger.warning("Ignoring unknown setting %r from %s", key, origin)
                continue
            current = getattr(self, key)
            try:
                value = _coerce(raw, type(current))
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid value %r for %s from %s", raw, key, origin)
                continue
            setattr(self, key, value)


def _coerce(raw: Any, target: type) -> Any:
    if target is int:
        if isinstance(raw, bool):
            raise TypeError("bool is not an int")
        value = int(raw)
        if value < 1:
            raise ValueError("must be positive")
        return value
    if target is float:
        if isinstance(raw, bool):
            raise TypeError("bool is not a number")
        value = float(raw)
        if value <= 0:
            raise ValueError("must be positive")
        return value
    if raw is None or isinstance(raw, (dict, list)):
        raise TypeError("expected a scalar")
    text = str(raw).strip()
    if not text:
        raise ValueError("must not be empty")
    return text


def _candidate_paths() -> List[Path]:
    paths: List[Path] = []
    env_path = os.environ.get(Constants.CONFIG_ENV_VAR)
    if env_path:
        paths.append(Path(env_path))
    paths.extend(Path.cwd() / name for name in Constants.CONFIG_FILE_NAMES)
    user_dir = Path(os.path.expanduser(Constants.USER_CONFIG_DIR))
    paths.extend(user_dir / name for name in Constants.CONFIG_FILE_NAMES)
    return paths


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("Settings file %s does not contain a mapping; ignoring it", path)
        return {}
    return data


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Load settings from the first settings file found, then the environment.

    Args:
        path: Explicit settings file. A missing explicit file is logged and
            the defaults are used.

    Returns:
        Settings: Populated settings.
    """
    settings = Settings()
    candidates = [Path(path)] if path else _candidate_paths()
    for candidate in candidates:
        if not candidate.is_file():
            if path:
                logger.warning("Settings file not found: %s", candidate)
            continue
        try:
            data = _read_yaml(candidate)
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to load settings from %s: %s", candidate, e)
            break
        # Settings may be nested under a top-level "depsync" key.
        section = data.get("depsync", data)
        if isinstance(section, dict):
            settings.apply(section, str(candidate))
        settings.source = str(candidate)
        logger.debug("Loaded settings from %s", candidate)
        break

    env_values = {
        field_name: os.environ[var]
        for var, field_name in _ENV_OVERRIDES.items()
        if os.environ.get(var)
    }
    if env_values:
        settings.apply(env_values, "environment")
    return settings
