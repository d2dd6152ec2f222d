"""Static configuration for guildbridge.

All user-editable settings (origins, dialects, windows, relay heuristics)
live in a single JSON file for quick edits without touching Python.
"""

import json
import os

from dotenv import load_dotenv

from core.config import (
    CooldownConfig,
    CorrelatorConfig,
    DedupConfig,
    NormalizerConfig,
    OriginConfig,
    RelayGuardConfig,
)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# .env may point BRIDGE_CONFIG at another file (per-environment configs).
load_dotenv()
CONFIG_PATH = os.getenv("BRIDGE_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")
if not os.path.isabs(CONFIG_PATH):
    CONFIG_PATH = os.path.join(PROJECT_ROOT, CONFIG_PATH)


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _normalize_origins(raw_origins: list[dict], default_dialect: str) -> dict[str, OriginConfig]:
    """Build enabled origins keyed by id. Entries without an id are skipped."""

    origins: dict[str, OriginConfig] = {}
    for entry in raw_origins:
        origin_id = entry.get("id")
        if not origin_id:
            continue
        if not entry.get("enabled", True):
            continue
        origins[origin_id] = OriginConfig(
            origin_id=origin_id,
            name=entry.get("name") or origin_id,
            dialect=entry.get("dialect") or default_dialect,
            bot_username=entry.get("bot_username") or None,
            tag=entry.get("tag") or None,
        )
    return origins


def _relay_guard_config(raw: dict) -> RelayGuardConfig:
    defaults = RelayGuardConfig()
    values = {}
    for name in RelayGuardConfig.__dataclass_fields__:
        if name in raw:
            values[name] = type(getattr(defaults, name))(raw[name])
    return RelayGuardConfig(**values)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

_bridge = _CONFIG.get("bridge", {})
DEFAULT_DIALECT = _bridge.get("default_dialect", "Vanilla")
PATTERNS_DIR = _bridge.get("patterns_dir", "patterns")
if not os.path.isabs(PATTERNS_DIR):
    PATTERNS_DIR = os.path.join(PROJECT_ROOT, PATTERNS_DIR)

# Disabled origins are dropped here so the core never sees them.
ORIGINS = _normalize_origins(_CONFIG.get("origins", []), DEFAULT_DIALECT)

_normalizer = _CONFIG.get("normalizer", {})
NORMALIZER = NormalizerConfig(
    max_length=int(_normalizer.get("max_length", 256)),
    normalize_whitespace=bool(_normalizer.get("normalize_whitespace", True)),
    strip_urls=bool(_normalizer.get("strip_urls", False)),
)

# Event cooldown: one event per (origin, type, subject) per window.
_events = _CONFIG.get("events", {})
EVENT_COOLDOWN = CooldownConfig(
    window_seconds=float(_events.get("cooldown_seconds", 5)),
    max_entries=int(_events.get("max_entries", 1000)),
)

# Deduplication of relayed chat.
# - mode: "off", "per_origin", or "global"
# - window_seconds: how long an identical message stays suppressed
_dedup = _CONFIG.get("dedup", {})
DEDUP = DedupConfig(
    mode=_dedup.get("mode", "per_origin"),
    window_seconds=float(_dedup.get("window_seconds", 2)),
    max_entries=int(_dedup.get("max_entries", 1000)),
)

RELAY_GUARD = _relay_guard_config(_CONFIG.get("relay_guard", {}))

_commands = _CONFIG.get("commands", {})
CORRELATOR = CorrelatorConfig(
    default_timeout_seconds=float(_commands.get("default_timeout_seconds", 10)),
)

# Runtime rules appended to the catalog after the pattern files load.
CUSTOM_PATTERNS = _CONFIG.get("custom_patterns", [])

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
