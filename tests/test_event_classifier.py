from __future__ import annotations

import os
from typing import Optional

from adapters.pattern_files import load_pattern_documents
from core.config import CooldownConfig
from core.event_classifier import EventClassifier, parse_roster
from core.models import (
    EventType,
    InviteEvent,
    JoinEvent,
    KickEvent,
    LevelEvent,
    MiscEvent,
    OnlineEvent,
    PromoteEvent,
)
from core.patterns import PatternCatalog

PATTERNS_DIR = os.path.join(os.path.dirname(__file__), "..", "patterns")


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _classifier(clock: Optional[FakeClock] = None, window: float = 5.0) -> EventClassifier:
    catalog = PatternCatalog(load_pattern_documents(PATTERNS_DIR), default_dialect="Vanilla")
    return EventClassifier(catalog, CooldownConfig(window_seconds=window), clock=clock or FakeClock())


def test_promote_event_fields() -> None:
    event = _classifier().classify("Alice was promoted from Member to Officer", "Hypixel", "main")

    assert isinstance(event, PromoteEvent)
    assert event.type is EventType.PROMOTE
    assert event.subject_username == "Alice"
    assert event.from_rank == "Member"
    assert event.to_rank == "Officer"
    assert event.actor == "Unknown"
    assert event.origin_id == "main"
    assert event.timestamp.tzinfo is not None


def test_join_with_hypixel_rank_prefix() -> None:
    event = _classifier().classify("[VIP+] Dave joined the guild!", "Hypixel", "main")

    assert isinstance(event, JoinEvent)
    assert event.subject_username == "Dave"


def test_kick_records_actor() -> None:
    event = _classifier().classify("Alice was kicked from the guild by [MVP] Bob!", "Hypixel", "main")

    assert isinstance(event, KickEvent)
    assert event.subject_username == "Alice"
    assert event.kicked_by == "Bob"


def test_kick_without_actor_defaults_to_unknown() -> None:
    event = _classifier().classify("Alice was kicked from the guild!", "Hypixel", "main")

    assert isinstance(event, KickEvent)
    assert event.kicked_by == "Unknown"


def test_online_roster_is_split() -> None:
    event = _classifier().classify("Online Members: [MVP] Alice, [VIP] Bob ● Carol", "Hypixel", "main")

    assert isinstance(event, OnlineEvent)
    assert event.members == ("Alice", "Bob", "Carol")
    assert event.count == 3
    assert event.subject_username is None


def test_numeric_roster_is_a_count() -> None:
    assert parse_roster("12") == ((), 12)
    assert parse_roster("§a[MVP] Alice • Bob") == (("Alice", "Bob"), 2)


def test_level_event_previous_level() -> None:
    classifier = _classifier()

    event = classifier.classify("The Guild has reached Level 5!", "Hypixel", "main")
    first = classifier.classify("The Guild has reached Level 1!", "Hypixel", "other")

    assert isinstance(event, LevelEvent)
    assert (event.level, event.previous_level) == (5, 4)
    assert (first.level, first.previous_level) == (1, 1)


def test_invite_subject_is_invited_player() -> None:
    classifier = _classifier()

    sent = classifier.classify(
        "Alice invited Bob to your guild. They have 5 minutes to accept.", "Hypixel", "main"
    )
    accepted = classifier.classify("Carol accepted the guild invite!", "Hypixel", "main")

    assert isinstance(sent, InviteEvent)
    assert (sent.inviter, sent.invited, sent.subject_username) == ("Alice", "Bob", "Bob")
    assert not sent.accepted
    assert isinstance(accepted, InviteEvent)
    assert accepted.accepted
    assert accepted.subject_username == "Carol"


def test_misc_change_type() -> None:
    classifier = _classifier()

    tag = classifier.classify("[MVP] Alice changed the guild tag to [ABC]!", "Hypixel", "main")
    settings_change = classifier.classify("Alice changed the guild settings", "Hypixel", "main")

    assert isinstance(tag, MiscEvent)
    assert tag.change_type == "tag_change"
    assert tag.new_tag == "ABC"
    assert settings_change.change_type == "settings_change"


def test_non_event_line_returns_none() -> None:
    assert _classifier().classify("Guild > Steve: gg", "Hypixel", "main") is None


def test_same_line_twice_within_cooldown_emits_once() -> None:
    clock = FakeClock()
    classifier = _classifier(clock)
    line = "Alice joined the guild!"

    assert classifier.classify(line, "Hypixel", "main") is not None
    clock.now += 1
    assert classifier.classify(line, "Hypixel", "main") is None

    clock.now += 5
    assert classifier.classify(line, "Hypixel", "main") is not None


def test_cooldown_is_keyed_by_origin_and_subject() -> None:
    classifier = _classifier()

    assert classifier.classify("Alice joined the guild!", "Hypixel", "main") is not None
    assert classifier.classify("Bob joined the guild!", "Hypixel", "main") is not None
    assert classifier.classify("Alice joined the guild!", "Hypixel", "alt") is not None
    assert classifier.classify("Alice left the guild!", "Hypixel", "main") is not None


def test_match_does_not_consume_cooldown() -> None:
    classifier = _classifier()

    assert classifier.match("Alice joined the guild!", "Hypixel", "main") is not None
    assert classifier.match("Alice joined the guild!", "Hypixel", "main") is not None
    assert classifier.classify("Alice joined the guild!", "Hypixel", "main") is not None


def test_evict_expired_bounds_cooldown_entries() -> None:
    clock = FakeClock()
    classifier = _classifier(clock)
    classifier.classify("Alice joined the guild!", "Hypixel", "main")
    classifier.classify("Bob joined the guild!", "Hypixel", "main")

    clock.now += 10

    assert classifier.evict_expired() == 2


def test_unknown_event_type_is_skipped() -> None:
    catalog = PatternCatalog(
        {
            "Test": {
                "events": {
                    "bogus": [{"pattern": "^(\\w+) joined$", "groups": ["username"]}],
                    "join": [{"pattern": "^(\\w+) joined$", "groups": ["username"]}],
                }
            }
        },
        default_dialect="Test",
    )

    event = EventClassifier(catalog).classify("Alice joined", "Test", "main")

    assert isinstance(event, JoinEvent)
