"""Pattern document loading from disk.

Each dialect ships as one JSON file in the patterns directory. A file that
cannot be read or parsed is logged and skipped so the remaining dialects stay
usable.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

LOGGER = logging.getLogger(__name__)


def _dialect_name(path: str, document: dict[str, Any]) -> str:
    name = document.get("dialect")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return os.path.splitext(os.path.basename(path))[0].capitalize()


def load_pattern_file(path: str) -> tuple[str, dict[str, Any]]:
    """Read one pattern document and return ``(dialect, document)``."""

    with open(path, "r", encoding="utf-8") as handle:
        document = json.load(handle)
    if not isinstance(document, dict):
        raise ValueError(f"Pattern file {path} must contain a JSON object")
    return _dialect_name(path, document), document


def load_pattern_documents(directory: str) -> dict[str, dict[str, Any]]:
    """Load every ``*.json`` pattern document found in ``directory``."""

    if not os.path.isdir(directory):
        LOGGER.warning("Pattern directory not found: %s", directory)
        return {}

    documents: dict[str, dict[str, Any]] = {}
    for filename in sorted(os.listdir(directory)):
        if not filename.endswith(".json"):
            continue
        path = os.path.join(directory, filename)
        try:
            dialect, document = load_pattern_file(path)
        except (OSError, ValueError) as exc:
            # json.JSONDecodeError is a ValueError.
            LOGGER.warning("Skipping pattern file %s: %s", path, exc)
            continue
        if dialect in documents:
            LOGGER.warning("Duplicate dialect %s in %s, keeping the first file", dialect, path)
            continue
        documents[dialect] = document
        LOGGER.debug("Loaded %s patterns from %s", dialect, path)
    return documents
