from __future__ import annotations

from datetime import datetime, timezone

import pytest

from adapters.record_formatting import (
    describe_event,
    format_event,
    format_message,
    format_origin_label,
    format_result,
)
from core.config import OriginConfig
from core.models import Category, GuildChat, IgnoredLine, OnlineEvent, ProcessResult, PromoteEvent

ORIGINS = {"main": OriginConfig(origin_id="main", name="Main Guild", dialect="Hypixel", tag="MAIN")}


def _promote() -> PromoteEvent:
    return PromoteEvent(
        origin_id="main",
        raw_text="Alice was promoted from Member to Officer",
        subject_username="Alice",
        rule_index=0,
        is_custom_rule=False,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        from_rank="Member",
        to_rank="Officer",
        actor="Unknown",
    )


def _chat() -> GuildChat:
    return GuildChat(
        raw_text="Guild > Steve: *gg*",
        origin_id="main",
        rule_index=0,
        username="Steve",
        body="*gg*",
        rank="Member",
        secondary_rank=None,
    )


def test_format_origin_label() -> None:
    assert format_origin_label("main", ORIGINS) == "Main Guild [MAIN] (main)"
    assert format_origin_label("other", ORIGINS) == "other"


def test_describe_promote_omits_unknown_actor() -> None:
    assert describe_event(_promote()) == "Alice was promoted from Member to Officer"


def test_describe_online_count() -> None:
    event = OnlineEvent(
        origin_id="main",
        raw_text="Online Members: 12",
        subject_username=None,
        rule_index=0,
        is_custom_rule=False,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        members=(),
        members_list="12",
        count=12,
    )

    assert describe_event(event) == "12 members online"


def test_format_event_plain() -> None:
    text = format_event(_promote(), ORIGINS)

    assert "Main Guild [MAIN] (main) promote: Alice was promoted" in text


def test_format_message_markdown_escapes() -> None:
    text = format_message(_chat(), ORIGINS, mode="markdown")

    assert "\\*gg\\*" in text
    assert "\\[Member]" in text


def test_format_result_includes_reason() -> None:
    ignored = IgnoredLine(raw_text="-----", origin_id="main", rule_index=0, reason="filtered_content")

    assert format_result(ProcessResult(Category.IGNORED, ignored, "filtered_content")) == (
        "ignored (filtered_content): -----"
    )
    assert format_result(ProcessResult(Category.MESSAGE, _chat())) == "message: Guild > Steve [Member]: *gg*"


def test_unknown_mode_raises() -> None:
    with pytest.raises(ValueError):
        format_event(_promote(), ORIGINS, mode="html")
