"""Find packages used by R scripts through ``library()``/``require()`` calls."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import List, Set, Union

logger = logging.getLogger(__name__)

_USAGE_RE = re.compile(r"""(?:library|require)\(\s*["']?([A-Za-z0-9_.]+)["']?\s*\)""")
# Library folders managed by the tool itself.
_EXCLUDED_DIRS = frozenset(["rv"])


def _skip_dir(name: str) -> bool:
    return (name.startswith(".") and len(name) > 1) or name in _EXCLUDED_DIRS


def packages_in_text(text: str) -> Set[str]:
    """Names passed to library()/require() in ``text``, ignoring comment lines."""
    found: Set[str] = set()
    for line in text.splitlines():
        if line.lstrip().startswith("#"):
            continue
        found.update(match.group(1) for match in _USAGE_RE.finditer(line))
    return found


def scan_r_files_for_packages(directory: Union[str, Path]) -> List[str]:
    """Walk ``directory`` for ``*.R`` files and return the sorted package names used.

    Hidden directories and ``rv`` library folders are not descended into.
    Raises OSError when a matching file cannot be read.
    """
    packages: Set[str] = set()
    scanned = 0
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames[:] = sorted(d for d in dirnames if not _skip_dir(d))
        for filename in sorted(filenames):
            if _skip_dir(filename) or not filename.lower().endswith(".r"):
                continue
            path = Path(dirpath) / filename
            packages.update(packages_in_text(path.read_text(encoding="utf-8", errors="replace")))
            scanned += 1
    logger.debug("Scanned %d R files under %s, found %d packages", scanned, directory, len(packages))
    return sorted(packages)
