"""Chat line classification (core domain).

Every normalized line maps to exactly one message kind. Rules are tried in a
fixed category order and the first match wins; lines that match nothing are
returned as ``UnrecognizedLine`` rather than dropped so callers can log them.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from core.models import (
    ClassifiedMessage,
    GuildChat,
    IgnoredLine,
    OfficerChat,
    PartyMessage,
    PatternRule,
    PrivateMessage,
    SystemNotice,
    UnrecognizedLine,
)
from core.normalizer import TextNormalizer
from core.patterns import PatternCatalog

LOGGER = logging.getLogger(__name__)

_CHAT_ORDER = ("guild", "officer", "private", "party")
_USERNAME_SHAPE = re.compile(r"^\w{3,16}$")
_BODY_GROUPS = ("message", "body")
_USERNAME_GROUPS = ("username", "player", "sender")


def _first_group(fields: dict[str, str], names: Tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = fields.get(name)
        if value:
            return value
    return None


def _guess_username(match: re.Match) -> Optional[str]:
    for value in match.groups():
        if value and _USERNAME_SHAPE.match(value):
            return value
    return None


def _guess_body(match: re.Match) -> Optional[str]:
    for value in reversed(match.groups()):
        if value and value.strip():
            return value
    return None


class ChatClassifier:
    """Classify normalized lines into chat kinds using a ``PatternCatalog``."""

    def __init__(self, catalog: PatternCatalog, normalizer: Optional[TextNormalizer] = None) -> None:
        self._catalog = catalog
        self._normalizer = normalizer

    def classify(self, line: str, dialect: str, origin_id: str = "") -> ClassifiedMessage:
        """Return the first matching kind in precedence order.

        Guild, officer, private and party chat are checked first, then system
        notices, then ignore rules. Anything left over is unrecognized.
        """

        for subcategory in _CHAT_ORDER:
            for rule in self._catalog.get_rules(dialect, "messages", subcategory):
                match = rule.pattern.search(line)
                if match:
                    return self._build_chat(subcategory, rule, match, line, origin_id)

        for rule in self._catalog.get_rules(dialect, "system"):
            match = rule.pattern.search(line)
            if match:
                return SystemNotice(
                    raw_text=line,
                    origin_id=origin_id,
                    rule_index=rule.index,
                    system_type=rule.subcategory or "system",
                    fields=rule.map_groups(match),
                )

        for rule in self._catalog.get_rules(dialect, "ignore"):
            if rule.pattern.search(line):
                LOGGER.debug("Ignored line from %s: %s", origin_id or "-", rule.description)
                return IgnoredLine(
                    raw_text=line,
                    origin_id=origin_id,
                    rule_index=rule.index,
                    reason="filtered_content",
                )

        LOGGER.debug("Unrecognized line from %s: %s", origin_id or "-", line)
        return UnrecognizedLine(raw_text=line, origin_id=origin_id, rule_index=None)

    def explain(self, line: str, dialect: str) -> List[PatternRule]:
        """Return every rule that matches ``line`` across chat categories.

        Used to debug overlapping rules; ``classify`` only reports the first.
        """

        hits: List[PatternRule] = []
        for category in ("messages", "system", "ignore"):
            for rule in self._catalog.get_rules(dialect, category):
                if rule.pattern.search(line):
                    hits.append(rule)
        return hits

    def _build_chat(
        self,
        subcategory: str,
        rule: PatternRule,
        match: re.Match,
        line: str,
        origin_id: str,
    ) -> ClassifiedMessage:
        fields = rule.map_groups(match)
        username = _first_group(fields, _USERNAME_GROUPS)
        body = _first_group(fields, _BODY_GROUPS)

        if subcategory in ("guild", "officer"):
            username = username or _guess_username(match) or "Unknown"
            if body is None:
                body = _guess_body(match) or ""
            message_cls = GuildChat if subcategory == "guild" else OfficerChat
            return message_cls(
                raw_text=line,
                origin_id=origin_id,
                rule_index=rule.index,
                username=username,
                body=self._clean(body),
                rank=fields.get("rank") or fields.get("rank1"),
                secondary_rank=fields.get("rank2"),
            )

        if subcategory == "private":
            direction = rule.direction
            if direction is None:
                direction = "from" if match.group(0).lower().startswith("from") else "to"
            return PrivateMessage(
                raw_text=line,
                origin_id=origin_id,
                rule_index=rule.index,
                username=username or "Unknown",
                body=self._clean(body or ""),
                direction=direction,
            )

        return PartyMessage(
            raw_text=line,
            origin_id=origin_id,
            rule_index=rule.index,
            username=username or "Unknown",
            body=self._clean(body or ""),
        )

    def _clean(self, body: str) -> str:
        if self._normalizer is None:
            return body.strip()
        return self._normalizer.clean_content(body)
