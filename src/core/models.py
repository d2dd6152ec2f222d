"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any gateway-specific types. Messages and events are tagged
unions: one frozen dataclass per kind, each carrying only its own fields.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Mapping, Optional, Tuple, Union


class MessageKind(str, Enum):
    GUILD_CHAT = "guild_chat"
    OFFICER_CHAT = "officer_chat"
    PRIVATE = "private"
    PARTY = "party"
    SYSTEM = "system"
    IGNORED = "ignored"
    UNRECOGNIZED = "unrecognized"


class EventType(str, Enum):
    JOIN = "join"
    LEAVE = "leave"
    KICK = "kick"
    PROMOTE = "promote"
    DEMOTE = "demote"
    INVITE = "invite"
    ONLINE = "online"
    LEVEL = "level"
    MOTD = "motd"
    MISC = "misc"


class Category(str, Enum):
    """Coordinator output categories."""

    EVENT = "event"
    MESSAGE = "message"
    IGNORED = "ignored"
    PRIVATE = "private"
    PARTY = "party"
    SYSTEM = "system"
    UNRECOGNIZED = "unrecognized"


class Outcome(str, Enum):
    SUCCESS = "success"
    COMMAND_ERROR = "command_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    SYSTEM_ERROR = "system_error"


@dataclass(frozen=True)
class PatternRule:
    """Compiled classification rule, immutable once loaded."""

    dialect: str
    category: str
    subcategory: Optional[str]
    index: int
    pattern: re.Pattern
    source: str
    groups: Tuple[str, ...]
    description: str
    is_custom: bool = False
    direction: Optional[str] = None
    flags: str = ""

    @property
    def key(self) -> Tuple[str, str, Optional[str], int]:
        return (self.dialect, self.category, self.subcategory, self.index)

    def map_groups(self, match: re.Match) -> dict[str, str]:
        """Map positional capture groups onto the rule's group names."""

        values: dict[str, str] = {}
        for position, name in enumerate(self.groups, start=1):
            if position > self.pattern.groups:
                break
            value = match.group(position)
            if value is not None:
                values[name] = value
        return values


# ---------------------------------------------------------------------------
# Chat messages


@dataclass(frozen=True)
class _MessageBase:
    raw_text: str
    origin_id: str
    rule_index: Optional[int]


@dataclass(frozen=True)
class GuildChat(_MessageBase):
    kind: ClassVar[MessageKind] = MessageKind.GUILD_CHAT

    username: str
    body: str
    rank: Optional[str]
    secondary_rank: Optional[str]


@dataclass(frozen=True)
class OfficerChat(_MessageBase):
    kind: ClassVar[MessageKind] = MessageKind.OFFICER_CHAT

    username: str
    body: str
    rank: Optional[str]
    secondary_rank: Optional[str]


@dataclass(frozen=True)
class PrivateMessage(_MessageBase):
    kind: ClassVar[MessageKind] = MessageKind.PRIVATE

    username: str
    body: str
    direction: str


@dataclass(frozen=True)
class PartyMessage(_MessageBase):
    kind: ClassVar[MessageKind] = MessageKind.PARTY

    username: str
    body: str


@dataclass(frozen=True)
class SystemNotice(_MessageBase):
    kind: ClassVar[MessageKind] = MessageKind.SYSTEM

    system_type: str
    fields: Mapping[str, str]


@dataclass(frozen=True)
class IgnoredLine(_MessageBase):
    kind: ClassVar[MessageKind] = MessageKind.IGNORED

    reason: str


@dataclass(frozen=True)
class UnrecognizedLine(_MessageBase):
    kind: ClassVar[MessageKind] = MessageKind.UNRECOGNIZED


ClassifiedMessage = Union[
    GuildChat,
    OfficerChat,
    PrivateMessage,
    PartyMessage,
    SystemNotice,
    IgnoredLine,
    UnrecognizedLine,
]

GuildMessage = Union[GuildChat, OfficerChat]


# ---------------------------------------------------------------------------
# Guild lifecycle events


@dataclass(frozen=True)
class _EventBase:
    origin_id: str
    raw_text: str
    subject_username: Optional[str]
    rule_index: int
    is_custom_rule: bool
    timestamp: datetime


@dataclass(frozen=True)
class JoinEvent(_EventBase):
    type: ClassVar[EventType] = EventType.JOIN

    rank: Optional[str]


@dataclass(frozen=True)
class LeaveEvent(_EventBase):
    type: ClassVar[EventType] = EventType.LEAVE

    reason: Optional[str]


@dataclass(frozen=True)
class KickEvent(_EventBase):
    type: ClassVar[EventType] = EventType.KICK

    kicked_by: str
    reason: Optional[str]


@dataclass(frozen=True)
class PromoteEvent(_EventBase):
    type: ClassVar[EventType] = EventType.PROMOTE

    from_rank: str
    to_rank: str
    actor: str


@dataclass(frozen=True)
class DemoteEvent(_EventBase):
    type: ClassVar[EventType] = EventType.DEMOTE

    from_rank: str
    to_rank: str
    actor: str


@dataclass(frozen=True)
class InviteEvent(_EventBase):
    type: ClassVar[EventType] = EventType.INVITE

    inviter: Optional[str]
    invited: Optional[str]
    accepted: bool


@dataclass(frozen=True)
class OnlineEvent(_EventBase):
    type: ClassVar[EventType] = EventType.ONLINE

    members: Tuple[str, ...]
    members_list: str
    count: int


@dataclass(frozen=True)
class LevelEvent(_EventBase):
    type: ClassVar[EventType] = EventType.LEVEL

    level: int
    previous_level: int


@dataclass(frozen=True)
class MotdEvent(_EventBase):
    type: ClassVar[EventType] = EventType.MOTD

    changer: Optional[str]
    motd: Optional[str]


@dataclass(frozen=True)
class MiscEvent(_EventBase):
    type: ClassVar[EventType] = EventType.MISC

    changer: Optional[str]
    new_tag: Optional[str]
    new_name: Optional[str]
    change_type: str


ClassifiedEvent = Union[
    JoinEvent,
    LeaveEvent,
    KickEvent,
    PromoteEvent,
    DemoteEvent,
    InviteEvent,
    OnlineEvent,
    LevelEvent,
    MotdEvent,
    MiscEvent,
]


# ---------------------------------------------------------------------------
# Pipeline and correlation results


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of running one line through the coordinator."""

    category: Category
    data: Union[ClassifiedMessage, ClassifiedEvent, None]
    reason: Optional[str] = None

    @property
    def is_relayable(self) -> bool:
        return self.category in (Category.EVENT, Category.MESSAGE)


@dataclass(frozen=True)
class CorrelationResult:
    """Terminal outcome of one command listener."""

    listener_id: str
    origin_id: str
    command_type: str
    target_subject: str
    outcome: Outcome
    duration_ms: int
    text: Optional[str] = None
    groups: Tuple[Optional[str], ...] = ()
    event: Optional[Any] = None
    extracted: Mapping[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS
