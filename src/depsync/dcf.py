"""Reader for Debian-control-format text (R DESCRIPTION files, PACKAGES indexes)."""

from __future__ import annotations

import logging
from typing import Dict, List

logger = logging.getLogger(__name__)


def parse_dcf(text: str) -> List[Dict[str, str]]:
    """Parse DCF ``text`` into one dict per record.

    Records are separated by blank lines. Lines starting with whitespace
    continue the previous field; their content is joined with a single space.
    Malformed lines are logged and skipped.
    """
    records: List[Dict[str, str]] = []
    current: Dict[str, str] = {}
    last_key = None

    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            if current:
                records.append(current)
            current = {}
            last_key = None
            continue
        if line[0] in " \t":
            if last_key is None:
                logger.debug("Continuation line %d without a field, skipped", lineno)
                continue
            current[last_key] = f"{current[last_key]} {line.strip()}".strip()
            continue
        key, sep, value = line.partition(":")
        if not sep or not key.strip():
            logger.debug("Malformed DCF line %d skipped: %r", lineno, line)
            continue
        last_key = key.strip()
        current[last_key] = value.strip()

    if current:
        records.append(current)
    return records


def parse_dcf_record(text: str) -> Dict[str, str]:
    """Parse a single-record DCF document such as a DESCRIPTION file."""
    records = parse_dcf(text)
    return records[0] if records else {}
