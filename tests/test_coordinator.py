from __future__ import annotations

import asyncio
import os
from typing import Any, Optional

from adapters.pattern_files import load_pattern_documents
from core.channels import Channel
from core.chat_classifier import ChatClassifier
from core.config import CooldownConfig, DedupConfig, OriginConfig, RelayGuardConfig
from core.coordinator import MessageCoordinator
from core.event_classifier import EventClassifier
from core.models import Category, GuildChat, JoinEvent, UnrecognizedLine
from core.normalizer import TextNormalizer
from core.patterns import PatternCatalog
from core.relay_guard import RelayLoopGuard

PATTERNS_DIR = os.path.join(os.path.dirname(__file__), "..", "patterns")
ORIGINS = {"main": OriginConfig(origin_id="main", name="Main", dialect="Hypixel", bot_username="BridgeBot")}


class FakeSink:
    def __init__(self, fail: bool = False) -> None:
        self.messages: list[Any] = []
        self.events: list[Any] = []
        self._fail = fail

    async def send_message(self, message, origin: Optional[OriginConfig]) -> None:
        if self._fail:
            raise RuntimeError("sink down")
        self.messages.append((message, origin))

    async def send_event(self, event, origin: Optional[OriginConfig]) -> None:
        if self._fail:
            raise RuntimeError("sink down")
        self.events.append((event, origin))


class ExplodingChat:
    def classify(self, line: str, dialect: str, origin_id: str = ""):
        raise RuntimeError("broken classifier")


def _coordinator(
    sink: Optional[FakeSink] = None,
    chat: Any = None,
    lines: Optional[Channel] = None,
    events: Optional[Channel] = None,
) -> MessageCoordinator:
    catalog = PatternCatalog(load_pattern_documents(PATTERNS_DIR), default_dialect="Vanilla")
    normalizer = TextNormalizer()
    return MessageCoordinator(
        catalog=catalog,
        normalizer=normalizer,
        chat_classifier=chat or ChatClassifier(catalog, normalizer),
        event_classifier=EventClassifier(catalog, CooldownConfig(window_seconds=5)),
        relay_guard=RelayLoopGuard(RelayGuardConfig(), DedupConfig(mode="per_origin")),
        origins=ORIGINS,
        lines=lines,
        events=events,
        message_sink=sink,
        event_sink=sink,
    )


def test_guild_chat_becomes_message() -> None:
    result = _coordinator().process("§2Guild > §fSteve: gg", "main")

    assert result.category is Category.MESSAGE
    assert isinstance(result.data, GuildChat)
    assert result.data.username == "Steve"
    assert result.is_relayable


def test_event_lines_win_and_respect_cooldown() -> None:
    coordinator = _coordinator()

    first = coordinator.process("Alice joined the guild!", "main")
    second = coordinator.process("Alice joined the guild!", "main")

    assert first.category is Category.EVENT
    assert isinstance(first.data, JoinEvent)
    assert second.category is Category.IGNORED
    assert second.reason == "event_cooldown"


def test_ignore_only_lines_are_ignored() -> None:
    result = _coordinator().process("------------------------------", "main")

    assert result.category is Category.IGNORED
    assert result.reason == "filtered_content"
    assert not result.is_relayable


def test_non_guild_kinds_keep_their_category() -> None:
    coordinator = _coordinator()

    assert coordinator.process("From Alice: hi", "main").category is Category.PRIVATE
    assert coordinator.process("Party > Alice: hi", "main").category is Category.PARTY
    assert coordinator.process("Unknown command.", "main").category is Category.SYSTEM
    assert coordinator.process("who knows", "main").category is Category.UNRECOGNIZED


def test_bot_echo_is_suppressed() -> None:
    result = _coordinator().process("Guild > BridgeBot: Discord > Carol: hi", "main")

    assert result.category is Category.IGNORED
    assert result.reason == "own_bot_message"


def test_classification_errors_become_unrecognized() -> None:
    result = _coordinator(chat=ExplodingChat()).process("Guild > Steve: gg", "main")

    assert result.category is Category.UNRECOGNIZED
    assert isinstance(result.data, UnrecognizedLine)
    assert result.data.raw_text == "Guild > Steve: gg"


def test_unknown_origin_uses_default_dialect() -> None:
    result = _coordinator().process("<Steve> hi", "elsewhere")

    assert result.category is Category.MESSAGE
    assert result.data.origin_id == "elsewhere"


def test_handle_delivers_to_sinks_and_channels() -> None:
    sink = FakeSink()
    lines: Channel[Any] = Channel("lines")
    events: Channel[Any] = Channel("events")
    coordinator = _coordinator(sink=sink, lines=lines, events=events)
    raw_seen: list[Any] = []
    events_seen: list[Any] = []
    lines.subscribe("main", raw_seen.append)
    events.subscribe("main", events_seen.append)

    asyncio.run(coordinator.handle("Guild > Steve: gg", "main"))
    asyncio.run(coordinator.handle("Alice joined the guild!", "main"))
    asyncio.run(coordinator.handle("From Alice: hi", "main"))

    assert raw_seen == ["Guild > Steve: gg", "Alice joined the guild!", "From Alice: hi"]
    assert [event.subject_username for event in events_seen] == ["Alice"]
    assert [message.username for message, _ in sink.messages] == ["Steve"]
    assert [event.subject_username for event, _ in sink.events] == ["Alice"]
    assert sink.messages[0][1] is ORIGINS["main"]


def test_sink_failure_does_not_stop_the_stream() -> None:
    coordinator = _coordinator(sink=FakeSink(fail=True))

    first = asyncio.run(coordinator.handle("Guild > Steve: gg", "main"))
    second = asyncio.run(coordinator.handle("Bob joined the guild!", "main"))

    assert first.category is Category.MESSAGE
    assert second.category is Category.EVENT


def test_is_relevant_has_no_side_effects() -> None:
    coordinator = _coordinator()

    assert coordinator.is_relevant("Alice joined the guild!", "main")
    assert coordinator.is_relevant("Alice joined the guild!", "main")
    assert coordinator.is_relevant("Guild > Steve: gg", "main")
    assert not coordinator.is_relevant("From Alice: hi", "main")
    assert coordinator.process("Alice joined the guild!", "main").category is Category.EVENT
