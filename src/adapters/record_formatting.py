"""Shared formatting helpers for classified records.

Keeping formatting here prevents drift between sinks and the CLI, so a
message or event reads the same regardless of where it is printed.
"""

from __future__ import annotations

from typing import Mapping, Optional

from core.config import OriginConfig
from core.models import (
    Category,
    ClassifiedEvent,
    CorrelationResult,
    EventType,
    GuildMessage,
    OfficerChat,
    ProcessResult,
)


def format_origin_label(origin_id: str, origins: Mapping[str, OriginConfig]) -> str:
    """Return a human-friendly origin label, using configured names and tags."""

    origin = origins.get(origin_id)
    if origin is None:
        return origin_id or "-"
    label = origin.name or origin.origin_id
    if origin.tag:
        label = f"{label} [{origin.tag}]"
    if label == origin_id:
        return label
    return f"{label} ({origin_id})"


def describe_event(event: ClassifiedEvent) -> str:
    """One-line summary of an event, without origin or timestamp."""

    subject = event.subject_username or "Someone"
    if event.type is EventType.JOIN:
        return f"{subject} joined the guild"
    if event.type is EventType.LEAVE:
        suffix = f" ({event.reason})" if event.reason else ""
        return f"{subject} left the guild{suffix}"
    if event.type is EventType.KICK:
        return f"{subject} was kicked by {event.kicked_by}"
    if event.type in (EventType.PROMOTE, EventType.DEMOTE):
        verb = "promoted" if event.type is EventType.PROMOTE else "demoted"
        text = f"{subject} was {verb} from {event.from_rank} to {event.to_rank}"
        if event.actor and event.actor != "Unknown":
            text += f" by {event.actor}"
        return text
    if event.type is EventType.INVITE:
        if event.accepted:
            return f"{event.invited or subject} accepted a guild invite"
        return f"{event.inviter or 'Someone'} invited {event.invited or 'someone'}"
    if event.type is EventType.ONLINE:
        if event.members:
            return f"{event.count} online: {', '.join(event.members)}"
        return f"{event.count} members online"
    if event.type is EventType.LEVEL:
        return f"Guild reached level {event.level}"
    if event.type is EventType.MOTD:
        return f"{subject} changed the MOTD: {event.motd or ''}".rstrip()
    return f"{subject}: {event.change_type.replace('_', ' ')}"


def describe_message(message: GuildMessage) -> str:
    prefix = "Officer" if isinstance(message, OfficerChat) else "Guild"
    rank = f" [{message.rank}]" if message.rank else ""
    return f"{prefix} > {message.username}{rank}: {message.body}"


def _escape_md(value: str) -> str:
    for ch in r"*_[`":
        value = value.replace(ch, f"\\{ch}")
    return value


def format_event(
    event: ClassifiedEvent,
    origins: Mapping[str, OriginConfig],
    mode: str = "plain",
) -> str:
    """Return the event formatted for the requested mode."""

    timestamp = event.timestamp.astimezone().strftime("%H:%M:%S")
    origin = format_origin_label(event.origin_id, origins)
    summary = describe_event(event)
    if mode == "plain":
        return f"[{timestamp}] {origin} {event.type.value}: {summary}"
    if mode == "markdown":
        return f"[{timestamp}] **{_escape_md(origin)}** `{event.type.value}` {_escape_md(summary)}"
    raise ValueError(f"Unsupported format mode: {mode}")


def format_message(
    message: GuildMessage,
    origins: Mapping[str, OriginConfig],
    mode: str = "plain",
) -> str:
    """Return the chat message formatted for the requested mode."""

    origin = format_origin_label(message.origin_id, origins)
    if mode == "plain":
        return f"{origin} {describe_message(message)}"
    if mode == "markdown":
        return f"**{_escape_md(origin)}** {_escape_md(describe_message(message))}"
    raise ValueError(f"Unsupported format mode: {mode}")


def format_result(result: ProcessResult) -> str:
    """Compact single-line rendering of a coordinator result."""

    data = result.data
    if result.category is Category.EVENT:
        detail = describe_event(data)
    elif result.category is Category.MESSAGE:
        detail = describe_message(data)
    else:
        detail = getattr(data, "raw_text", "") or ""
    if result.reason:
        return f"{result.category.value} ({result.reason}): {detail}"
    return f"{result.category.value}: {detail}"


def format_correlation(result: CorrelationResult, origin: Optional[OriginConfig] = None) -> str:
    where = origin.name if origin else result.origin_id
    text = f"{result.command_type} {result.target_subject} on {where}: {result.outcome.value} in {result.duration_ms}ms"
    if result.text:
        text += f" ({result.text})"
    return text
