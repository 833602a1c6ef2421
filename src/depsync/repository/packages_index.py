"""Build repository candidates from a CRAN-style ``PACKAGES`` index.

Each record of the index describes one published package version. The
dependency fields (Depends, Imports, LinkingTo) are merged; packages that ship
with the toolchain itself are skipped since they are never installed from a
repository.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from depsync.cache import hash_string
from depsync.constants import Constants
from depsync.dcf import parse_dcf
from depsync.errors import InvalidRequirementError, InvalidVersionError
from depsync.package import Candidate, RepositorySource
from depsync.versioning.models import Platform, Version, VersionRequirement
from depsync.versioning.parser import parse_dependency_field

logger = logging.getLogger(__name__)


def _merge_dependencies(record: Dict[str, str]) -> Tuple[Tuple[str, VersionRequirement], ...]:
    """Collect dependency requirements from every dependency field of ``record``."""
    merged: List[Tuple[str, VersionRequirement]] = []
    for field_name in Constants.DEPENDENCY_FIELDS:
        for name, requirement in parse_dependency_field(record.get(field_name)):
            if name in Constants.BASE_PACKAGES:
                continue
            merged.append((name, requirement))
    # Same name listed twice (e.g. Depends and LinkingTo) keeps both constraints.
    return tuple(sorted(merged, key=lambda item: (item[0], str(item[1]))))


def record_content_hash(repo_url: str, record: Dict[str, str]) -> str:
    """Stable content hash for an index record.

    Uses the published checksum when the index carries one so that a re-upload
    of the same version produces a different hash.
    """
    checksum = record.get("SHA256") or record.get("MD5sum") or ""
    return hash_string(
        "|".join([repo_url.rstrip("/"), record.get("Package", ""), record.get("Version", ""), checksum])
    )


def candidates_from_index(
    repo_name: str,
    repo_url: str,
    text: str,
    built_for: Optional[Platform] = None,
) -> List[Candidate]:
    """Parse PACKAGES ``text`` into candidates for repository ``repo_name``.

    Args:
        repo_name: Configured repository name, recorded in each source.
        repo_url: Repository base URL, part of the content hash.
        text: Raw PACKAGES index content.
        built_for: Platform of a binary index; None for a source index.

    Returns:
        Candidates in index order. Invalid records are logged and skipped.
    """
    candidates: List[Candidate] = []
    for record in parse_dcf(text):
        name = record.get("Package")
        if not name:
            logger.warning("Index record without Package field skipped in %s", repo_name)
            continue
        try:
            version = Version(record.get("Version", ""))
            dependencies = _merge_dependencies(record)
        except (InvalidVersionError, InvalidRequirementError) as exc:
            logger.warning("Skipping %s from %s: %s", name, repo_name, exc)
            continue
        candidates.append(
            Candidate(
                name=name,
                version=version,
                source=RepositorySource(repo_name, version),
                content_hash=record_content_hash(repo_url, record),
                dependencies=dependencies,
                is_binary=built_for is not None,
                built_for=built_for,
            )
        )
    return candidates
