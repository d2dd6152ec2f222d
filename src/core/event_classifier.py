"""Guild lifecycle event classification (core domain).

Matching and emission are separate steps: ``match`` is a pure function of the
line, while ``admit`` applies the per-(origin, type, subject) cooldown so a
burst of identical lines produces one event. ``classify`` combines both.
"""

from __future__ import annotations

import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from core.config import CooldownConfig
from core.dedup import TimeWindowCache
from core.models import (
    ClassifiedEvent,
    DemoteEvent,
    EventType,
    InviteEvent,
    JoinEvent,
    KickEvent,
    LeaveEvent,
    LevelEvent,
    MiscEvent,
    MotdEvent,
    OnlineEvent,
    PatternRule,
    PromoteEvent,
)
from core.normalizer import strip_format_codes
from core.patterns import PatternCatalog

LOGGER = logging.getLogger(__name__)

UNKNOWN = "Unknown"

_RANK_TAG = re.compile(r"\[[^\]]*\]")
_ROSTER_SEPARATORS = re.compile(r"\s*[,●•]\s*")
_SUBJECT_GROUPS = ("username", "player", "target", "member")


def parse_roster(value: str) -> tuple[tuple[str, ...], int]:
    """Split an online roster into member names.

    A purely numeric roster is a member count with no names.
    """

    cleaned = strip_format_codes(value).strip()
    if cleaned.isdigit():
        return (), int(cleaned)
    cleaned = _RANK_TAG.sub("", cleaned)
    members = tuple(name.strip() for name in _ROSTER_SEPARATORS.split(cleaned) if name.strip())
    return members, len(members)


def _change_type(fields: dict[str, str], text: str) -> str:
    if fields.get("new_tag") or fields.get("tag"):
        return "tag_change"
    if fields.get("new_name") or fields.get("name"):
        return "name_change"
    lowered = text.lower()
    if "description" in lowered:
        return "description_change"
    if "setting" in lowered:
        return "settings_change"
    return "unknown_change"


def _subject(fields: dict[str, str]) -> Optional[str]:
    for name in _SUBJECT_GROUPS:
        value = fields.get(name)
        if value:
            return value
    return None


class EventClassifier:
    """Match lines against a dialect's event rules and build typed events."""

    def __init__(
        self,
        catalog: PatternCatalog,
        cooldown: Optional[CooldownConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._catalog = catalog
        self._cooldown_config = cooldown or CooldownConfig()
        self._cooldown = TimeWindowCache(
            self._cooldown_config.window_seconds,
            max_entries=self._cooldown_config.max_entries,
            clock=clock,
        )
        self._builders: Dict[EventType, Callable[..., ClassifiedEvent]] = {
            EventType.JOIN: self._build_join,
            EventType.LEAVE: self._build_leave,
            EventType.KICK: self._build_kick,
            EventType.PROMOTE: self._build_rank_change,
            EventType.DEMOTE: self._build_rank_change,
            EventType.INVITE: self._build_invite,
            EventType.ONLINE: self._build_online,
            EventType.LEVEL: self._build_level,
            EventType.MOTD: self._build_motd,
            EventType.MISC: self._build_misc,
        }

    def classify(self, line: str, dialect: str, origin_id: str) -> Optional[ClassifiedEvent]:
        event = self.match(line, dialect, origin_id)
        if event is None or not self.admit(event):
            return None
        return event

    def match(self, line: str, dialect: str, origin_id: str) -> Optional[ClassifiedEvent]:
        """Return the event for the first matching rule, ignoring cooldown."""

        for name in self._catalog.subcategories(dialect, "events"):
            try:
                event_type = EventType(name)
            except ValueError:
                LOGGER.debug("Skipping unknown event type %s for %s", name, dialect)
                continue
            for rule in self._catalog.get_rules(dialect, "events", name):
                match = rule.pattern.search(line)
                if match:
                    return self._build(event_type, rule, match, line, origin_id)
        return None

    def admit(self, event: ClassifiedEvent) -> bool:
        """Record the event's cooldown key; False when it fired within the window."""

        key = self.cooldown_key(event)
        if self._cooldown.check_and_record(key):
            LOGGER.debug("Event %s suppressed by cooldown", key)
            return False
        return True

    @staticmethod
    def cooldown_key(event: ClassifiedEvent) -> str:
        subject = (event.subject_username or "system").lower()
        return f"{event.origin_id}:{event.type.value}:{subject}"

    def evict_expired(self) -> int:
        return self._cooldown.evict_expired()

    def _build(
        self,
        event_type: EventType,
        rule: PatternRule,
        match: re.Match,
        line: str,
        origin_id: str,
    ) -> ClassifiedEvent:
        fields = rule.map_groups(match)
        common = {
            "origin_id": origin_id,
            "raw_text": line,
            "rule_index": rule.index,
            "is_custom_rule": rule.is_custom,
            "timestamp": datetime.now(timezone.utc),
        }
        return self._builders[event_type](event_type, fields, line, common)

    # Per-type post-processing

    @staticmethod
    def _build_join(event_type, fields, line, common) -> ClassifiedEvent:
        return JoinEvent(subject_username=_subject(fields), rank=fields.get("rank"), **common)

    @staticmethod
    def _build_leave(event_type, fields, line, common) -> ClassifiedEvent:
        return LeaveEvent(subject_username=_subject(fields), reason=fields.get("reason"), **common)

    @staticmethod
    def _build_kick(event_type, fields, line, common) -> ClassifiedEvent:
        return KickEvent(
            subject_username=_subject(fields),
            kicked_by=fields.get("kicked_by") or fields.get("actor") or UNKNOWN,
            reason=fields.get("reason"),
            **common,
        )

    @staticmethod
    def _build_rank_change(event_type, fields, line, common) -> ClassifiedEvent:
        event_cls = PromoteEvent if event_type is EventType.PROMOTE else DemoteEvent
        return event_cls(
            subject_username=_subject(fields),
            from_rank=fields.get("from_rank") or UNKNOWN,
            to_rank=fields.get("to_rank") or UNKNOWN,
            actor=fields.get("actor") or UNKNOWN,
            **common,
        )

    @staticmethod
    def _build_invite(event_type, fields, line, common) -> ClassifiedEvent:
        invited = fields.get("invited") or _subject(fields)
        return InviteEvent(
            subject_username=invited,
            inviter=fields.get("inviter"),
            invited=invited,
            accepted="accepted" in line.lower(),
            **common,
        )

    @staticmethod
    def _build_online(event_type, fields, line, common) -> ClassifiedEvent:
        members_list = fields.get("members") or fields.get("count") or ""
        members, count = parse_roster(members_list)
        return OnlineEvent(
            subject_username=None,
            members=members,
            members_list=members_list,
            count=count,
            **common,
        )

    @staticmethod
    def _build_level(event_type, fields, line, common) -> ClassifiedEvent:
        try:
            level = int(fields.get("level") or 0)
        except ValueError:
            level = 0
        return LevelEvent(subject_username=None, level=level, previous_level=max(1, level - 1), **common)

    @staticmethod
    def _build_motd(event_type, fields, line, common) -> ClassifiedEvent:
        changer = fields.get("changer") or _subject(fields)
        return MotdEvent(subject_username=changer, changer=changer, motd=fields.get("motd"), **common)

    @staticmethod
    def _build_misc(event_type, fields, line, common) -> ClassifiedEvent:
        changer = fields.get("changer") or _subject(fields)
        return MiscEvent(
            subject_username=changer,
            changer=changer,
            new_tag=fields.get("new_tag") or fields.get("tag"),
            new_name=fields.get("new_name") or fields.get("name"),
            change_type=_change_type(fields, line),
            **common,
        )
