"""Recorded line feed adapter.

Replays a captured feed into the coordinator. Two formats are accepted:
plain text (one raw line per row, all from one origin) and JSON lines where
each row is ``{"origin": ..., "line": ...}`` and ``line`` may be a rich-text
component tree.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedLine:
    origin_id: str
    raw: Any
    line_number: int


def parse_feed_row(row: str, default_origin: str, line_number: int) -> Optional[FeedLine]:
    """Turn one row of a feed file into a ``FeedLine``; blank rows yield None."""

    stripped = row.rstrip("\r\n")
    if not stripped.strip():
        return None
    if stripped.lstrip().startswith("{"):
        try:
            record = json.loads(stripped)
        except json.JSONDecodeError:
            LOGGER.debug("Row %s is not JSON, treating as plain text", line_number)
        else:
            if isinstance(record, dict) and "line" in record:
                origin = str(record.get("origin") or default_origin)
                return FeedLine(origin_id=origin, raw=record["line"], line_number=line_number)
    return FeedLine(origin_id=default_origin, raw=stripped, line_number=line_number)


class ReplayFeed:
    """Iterate over a recorded feed file."""

    def __init__(self, path: str, default_origin: str) -> None:
        self._path = path
        self._default_origin = default_origin

    def __iter__(self) -> Iterator[FeedLine]:
        with open(self._path, "r", encoding="utf-8") as handle:
            for number, row in enumerate(handle, start=1):
                line = parse_feed_row(row, self._default_origin, number)
                if line is not None:
                    yield line

    def read_all(self) -> List[FeedLine]:
        return list(self)

    async def drive(self, coordinator, delay: float = 0.0) -> int:
        """Feed every line through ``coordinator.handle`` and return the count.

        ``delay`` spaces lines out so command listeners see them arrive over
        time, like a live connection.
        """

        count = 0
        for line in self:
            await coordinator.handle(line.raw, line.origin_id)
            count += 1
            if delay:
                await asyncio.sleep(delay)
            else:
                await asyncio.sleep(0)
        LOGGER.info("Replayed %s lines from %s", count, self._path)
        return count
