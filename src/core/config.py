"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OriginConfig:
    """One upstream game connection (one guild, one bot account)."""

    origin_id: str
    name: str
    dialect: str
    bot_username: Optional[str] = None
    tag: Optional[str] = None


@dataclass(frozen=True)
class NormalizerConfig:
    """Text normalization settings applied to every incoming line."""

    max_length: int = 256
    normalize_whitespace: bool = True
    strip_urls: bool = False


@dataclass(frozen=True)
class CooldownConfig:
    """Per-(origin, event type, subject) suppression window for events."""

    window_seconds: float = 5.0
    max_entries: int = 1000


@dataclass(frozen=True)
class DedupConfig:
    """Deduplication settings for relayed chat messages."""

    mode: str = "per_origin"
    window_seconds: float = 2.0
    max_entries: int = 1000


@dataclass(frozen=True)
class RelayGuardConfig:
    """Switches for the relay-loop heuristics.

    Every heuristic trades false negatives for false positives on chat that
    legitimately contains colons, so each one can be turned off on its own.

    ``min_chain_depth`` counts leading ``name:`` prefixes for the multi-hop
    check. Values below 2 are raised to 2 with a warning.
    """

    detect_self_echo: bool = True
    detect_relay_chain: bool = True
    detect_repeated_name: bool = True
    detect_multi_hop: bool = True
    detect_guild_tag: bool = True
    detect_self_mention: bool = True
    detect_officer_relay: bool = False
    min_chain_depth: int = 3


@dataclass(frozen=True)
class CorrelatorConfig:
    """Command response correlation settings."""

    default_timeout_seconds: float = 10.0
