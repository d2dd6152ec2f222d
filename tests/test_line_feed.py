from __future__ import annotations

import asyncio
import json

from adapters.line_feed import ReplayFeed, parse_feed_row


class FakeCoordinator:
    def __init__(self) -> None:
        self.handled: list[tuple[object, str]] = []

    async def handle(self, raw, origin_id: str) -> None:
        self.handled.append((raw, origin_id))


def test_plain_rows_use_default_origin() -> None:
    line = parse_feed_row("Guild > Steve: gg\n", "main", 1)

    assert line.origin_id == "main"
    assert line.raw == "Guild > Steve: gg"


def test_json_rows_carry_origin_and_tree() -> None:
    row = json.dumps({"origin": "alt", "line": {"text": "Guild > ", "extra": ["Steve: gg"]}})

    line = parse_feed_row(row, "main", 3)

    assert line.origin_id == "alt"
    assert line.raw == {"text": "Guild > ", "extra": ["Steve: gg"]}
    assert line.line_number == 3


def test_brace_prefixed_text_stays_plain() -> None:
    line = parse_feed_row("{not json} hello", "main", 1)

    assert line.raw == "{not json} hello"


def test_blank_rows_are_skipped() -> None:
    assert parse_feed_row("   \n", "main", 1) is None


def test_drive_feeds_every_line(tmp_path) -> None:
    path = tmp_path / "feed.txt"
    path.write_text(
        "Guild > Steve: gg\n\n" + json.dumps({"origin": "alt", "line": "Alice joined the guild!"}) + "\n",
        encoding="utf-8",
    )
    coordinator = FakeCoordinator()

    count = asyncio.run(ReplayFeed(str(path), "main").drive(coordinator))

    assert count == 2
    assert coordinator.handled == [
        ("Guild > Steve: gg", "main"),
        ("Alice joined the guild!", "alt"),
    ]
