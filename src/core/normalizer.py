"""Text normalization for raw chat lines (core domain).

Lines arrive either as plain strings or as rich-text component trees
(``{"text": ..., "extra": [...]}``). Everything downstream works on the
canonical string produced here.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Optional

from core.config import NormalizerConfig

LOGGER = logging.getLogger(__name__)

_FORMAT_CODES = re.compile(r"§[0-9a-fk-orA-FK-OR]|&[0-9a-fk-or]")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE = re.compile(r"\s+")
_URLS = re.compile(r"https?://\S+", re.IGNORECASE)
_INVITES = re.compile(r"discord\.gg/\S+", re.IGNORECASE)
_IP_ADDRESSES = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}(?::\d+)?\b")
_JSON_TEXT = re.compile(r'"text"\s*:\s*"((?:[^"\\]|\\.)*)"')

_CHARACTER_MAP = str.maketrans(
    {
        "\u201c": '"',
        "\u201d": '"',
        "\u2018": "'",
        "\u2019": "'",
        "\u2013": "-",
        "\u2014": "-",
        "\u00a0": " ",
        "\u3000": " ",
    }
)

_FALLBACK_CHARS = 100


def strip_format_codes(text: str) -> str:
    """Remove ``§x`` and ``&x`` color/formatting codes."""

    return _FORMAT_CODES.sub("", text)


def flatten_rich_text(component: Any) -> Optional[str]:
    """Concatenate ``text`` and ``extra`` children of a rich-text tree.

    Returns None when the value does not look like a component tree.
    """

    if isinstance(component, str):
        return component
    if isinstance(component, (list, tuple)):
        parts = [flatten_rich_text(child) for child in component]
        if all(part is None for part in parts):
            return None
        return "".join(part or "" for part in parts)
    if not isinstance(component, Mapping):
        return None
    if "text" not in component and "extra" not in component:
        return None

    text = component.get("text")
    pieces = [text if isinstance(text, str) else ""]
    for child in component.get("extra") or []:
        pieces.append(flatten_rich_text(child) or "")
    return "".join(pieces)


def _stringify_object(raw: Any) -> Optional[str]:
    for name in ("to_string", "toString"):
        method = getattr(raw, name, None)
        if callable(method):
            value = method()
            if isinstance(value, str):
                return value
    if type(raw).__str__ is not object.__str__:
        return str(raw)
    return None


def _extract_from_json(raw: Any) -> str:
    dumped = json.dumps(raw, default=str, ensure_ascii=False)
    texts = [json.loads(f'"{value}"') for value in _JSON_TEXT.findall(dumped)]
    if texts:
        return "".join(texts)
    return dumped


def _safe_fallback(raw: Any) -> str:
    try:
        return str(raw)[:_FALLBACK_CHARS]
    except Exception:
        return repr(raw)[:_FALLBACK_CHARS]


class TextNormalizer:
    """Convert raw lines into canonical, comparable strings.

    ``normalize`` is total: it never raises, falling back to a truncated
    stringification of the input when anything goes wrong.
    """

    def __init__(self, config: Optional[NormalizerConfig] = None) -> None:
        self._config = config or NormalizerConfig()

    @property
    def config(self) -> NormalizerConfig:
        return self._config

    def normalize(self, raw: Any) -> str:
        try:
            text = self.extract_text(raw)
            text = strip_format_codes(text)
            text = _CONTROL_CHARS.sub("", text)
            text = text.translate(_CHARACTER_MAP)
            if self._config.strip_urls:
                text = self._replace_urls(text)
            if self._config.normalize_whitespace:
                text = _WHITESPACE.sub(" ", text)
            return self.truncate(text).strip()
        except Exception:
            LOGGER.exception("Failed to normalize line, using raw fallback")
            return _safe_fallback(raw)

    def clean_content(self, content: Optional[str]) -> str:
        """Clean an already-extracted message body."""

        if not content:
            return ""
        text = strip_format_codes(content).translate(_CHARACTER_MAP)
        if self._config.strip_urls:
            text = self._replace_urls(text)
        if self._config.normalize_whitespace:
            text = _WHITESPACE.sub(" ", text)
        return text.strip()

    def extract_text(self, raw: Any) -> str:
        """Pull text out of the supported raw shapes, in priority order."""

        if raw is None:
            return ""
        if isinstance(raw, str):
            return raw
        if isinstance(raw, bytes):
            return raw.decode("utf-8", errors="replace")

        flattened = flatten_rich_text(raw)
        if flattened is not None:
            return flattened

        if not isinstance(raw, (Mapping, list, tuple)):
            stringified = _stringify_object(raw)
            if stringified is not None:
                return stringified

        return _extract_from_json(raw)

    def truncate(self, text: str) -> str:
        limit = self._config.max_length
        if limit <= 0 or len(text) <= limit:
            return text

        truncated = text[: max(limit - 3, 0)]
        last_space = truncated.rfind(" ")
        # Break on a word boundary only when it keeps most of the text.
        if last_space > limit * 0.8:
            return truncated[:last_space] + "..."
        return truncated + "..."

    @staticmethod
    def _replace_urls(text: str) -> str:
        text = _URLS.sub("[URL]", text)
        text = _INVITES.sub("[DISCORD]", text)
        return _IP_ADDRESSES.sub("[IP]", text)
