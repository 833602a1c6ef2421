"""Load a repository database from a remote PACKAGES index."""

from __future__ import annotations

import logging
from typing import Optional

from depsync.common.http_client import get_text
from depsync.common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from depsync.constants import Constants
from depsync.errors import TransportError
from depsync.package import Repository
from depsync.settings import Settings
from depsync.versioning.models import Platform
from .database import InMemoryRepositoryDatabase
from .packages_index import candidates_from_index

logger = logging.getLogger(__name__)


def source_index_url(repo_url: str) -> str:
    """URL of the source package index of a repository."""
    return f"{repo_url.rstrip('/')}/{Constants.SOURCE_INDEX_PATH}"


def fetch_repository_database(
    repository: Repository,
    *,
    binary_index_url: Optional[str] = None,
    platform: Optional[Platform] = None,
    settings: Optional[Settings] = None,
) -> InMemoryRepositoryDatabase:
    """Download the index(es) of ``repository`` and build an in-memory database.

    The binary index is optional; when given, ``platform`` tells which platform
    its binaries were built for. Raises TransportError when the source index
    cannot be fetched. A failing binary index only logs a warning. HTTP
    timeout and retry count come from ``settings`` when given.
    """
    http_options = settings.http_options() if settings is not None else {}
    with Timer() as t:
        text = get_text(source_index_url(repository.url), **http_options)
        candidates = candidates_from_index(repository.name, repository.url, text)

        if binary_index_url and platform is not None:
            try:
                binary_text = get_text(binary_index_url, **http_options)
            except TransportError as exc:
                logger.warning(
                    "Binary index for %s unavailable (%s), using source packages only",
                    repository.name,
                    exc,
                )
            else:
                candidates.extend(
                    candidates_from_index(repository.name, repository.url, binary_text, built_for=platform)
                )

    if is_debug_enabled(logger):
        logger.debug(
            "Repository index loaded",
            extra=extra_context(
                event="index_loaded",
                component="repository",
                action="fetch_index",
                outcome="success",
                target=safe_url(repository.url),
                duration_ms=t.duration_ms(),
                candidates=len(candidates),
            ),
        )
    return InMemoryRepositoryDatabase(repository.name, repository.url, candidates)
