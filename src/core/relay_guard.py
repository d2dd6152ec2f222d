"""Relay loop suppression (core domain).

A bridge posts platform messages back into guild chat as ``name: text``.
Without a guard those lines would be read again and relayed forever, by this
bridge or by another bridge in the same guild. The heuristics below recognize
the shapes relayed text takes. Each one can be switched off in config because
ordinary chat containing colons will occasionally look relayed.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Optional

from core.config import DedupConfig, RelayGuardConfig
from core.dedup import TimeWindowCache, compute_fingerprint, normalize_for_fingerprint
from core.models import ClassifiedMessage, GuildChat, OfficerChat

LOGGER = logging.getLogger(__name__)

_RELAY_PREFIX = re.compile(r"^(\w+):\s*(.+)$", re.DOTALL)
_REPEATED_NAME = re.compile(r"^(\w+):\s*\1:\s*(.+)$", re.DOTALL | re.IGNORECASE)
_GUILD_TAG_PATTERNS = (
    re.compile(r"^\[[^\]]+\]\s*\w{1,16}:\s*\S"),
    re.compile(r"^\[[^\]]+\]\s*\w{1,16}\s*\[[^\]]+\]:\s*\S"),
    re.compile(r"^\[[^\]]+\]\s*\[officer\]\s*\w{1,16}:\s*\S", re.IGNORECASE),
)
_OFFICER_PATTERNS = (
    re.compile(r"^(?:\[(?:officer|admin|staff|mod)\]\s*)+\w{1,16}:\s*\S", re.IGNORECASE),
    re.compile(r"^(?:officer|admin|staff)\s*>\s*\w{1,16}:\s*\S", re.IGNORECASE),
)


def _same(left: Optional[str], right: Optional[str]) -> bool:
    return bool(left) and bool(right) and left.lower() == right.lower()


class RelayLoopGuard:
    """Decide whether a guild or officer chat message is relayed text.

    ``check`` returns the suppression reason or None. Only messages that pass
    every heuristic are recorded in the duplicate window.
    """

    def __init__(
        self,
        config: Optional[RelayGuardConfig] = None,
        dedup: Optional[DedupConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or RelayGuardConfig()
        self._dedup_config = dedup or DedupConfig()
        window = self._dedup_config.window_seconds if self._dedup_config.mode != "off" else 0
        self._recent = TimeWindowCache(window, max_entries=self._dedup_config.max_entries, clock=clock)
        depth = self._config.min_chain_depth
        if depth < 2:
            LOGGER.warning("min_chain_depth %s is below 2, using 2", depth)
            depth = 2
        self._multi_hop = re.compile(rf"^(?:\w+:\s*){{{depth},}}\S", re.DOTALL)

    def check(self, message: ClassifiedMessage, identity: Optional[str]) -> Optional[str]:
        if not isinstance(message, (GuildChat, OfficerChat)):
            return None

        reason = self._heuristic_reason(message, identity)
        if reason is None:
            reason = self._duplicate_reason(message)
        if reason is not None:
            LOGGER.debug(
                "Suppressed %s from %s on %s: %s",
                message.kind.value,
                message.username,
                message.origin_id or "-",
                reason,
            )
        return reason

    def evict_expired(self) -> int:
        return self._recent.evict_expired()

    def _heuristic_reason(self, message, identity: Optional[str]) -> Optional[str]:
        config = self._config
        body = message.body.strip()
        username = message.username

        if config.detect_self_echo and _same(username, identity):
            return "own_bot_message"

        if config.detect_relay_chain and identity:
            prefix = _RELAY_PREFIX.match(body)
            if prefix and (_same(prefix.group(1), identity) or _same(username, identity)):
                return "relay_chain"

        if config.detect_repeated_name and _REPEATED_NAME.match(body):
            return "repeated_name_chain"

        if config.detect_multi_hop and self._multi_hop.match(body):
            return "multi_hop_chain"

        if config.detect_guild_tag and any(pattern.match(body) for pattern in _GUILD_TAG_PATTERNS):
            return "guild_tag_relay"

        if config.detect_self_mention and identity and _same(username, identity):
            if re.search(rf"\b{re.escape(identity)}\b", body, re.IGNORECASE):
                return "self_mention"

        if (
            config.detect_officer_relay
            and isinstance(message, OfficerChat)
            and any(pattern.match(body) for pattern in _OFFICER_PATTERNS)
        ):
            return "officer_relay"

        return None

    def _duplicate_reason(self, message) -> Optional[str]:
        if not self._recent.enabled:
            return None
        normalized = normalize_for_fingerprint(f"{message.username}\n{message.body}")
        fingerprint = compute_fingerprint(message.origin_id, normalized, self._dedup_config.mode)
        if fingerprint and self._recent.check_and_record(fingerprint):
            return "duplicate"
        return None
