from __future__ import annotations

import asyncio
import io
from datetime import datetime, timezone

from rich.console import Console

from adapters.console_sink import ConsoleSink
from core.config import OriginConfig
from core.models import GuildChat, LeaveEvent

ORIGINS = {"main": OriginConfig(origin_id="main", name="Main", dialect="Hypixel")}


def _sink() -> tuple[ConsoleSink, io.StringIO]:
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, color_system=None)
    return ConsoleSink(ORIGINS, console=console), buffer


def test_prints_messages() -> None:
    sink, buffer = _sink()
    message = GuildChat(
        raw_text="Guild > Steve: gg",
        origin_id="main",
        rule_index=0,
        username="Steve",
        body="gg",
        rank=None,
        secondary_rank=None,
    )

    asyncio.run(sink.send_message(message, ORIGINS["main"]))

    assert "Guild > Steve: gg" in buffer.getvalue()
    assert sink.messages_sent == 1


def test_prints_events() -> None:
    sink, buffer = _sink()
    event = LeaveEvent(
        origin_id="main",
        raw_text="Alice left the guild!",
        subject_username="Alice",
        rule_index=0,
        is_custom_rule=False,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        reason=None,
    )

    asyncio.run(sink.send_event(event, ORIGINS["main"]))

    output = buffer.getvalue()
    assert "leave" in output
    assert "Alice left the guild" in output
    assert sink.events_sent == 1
