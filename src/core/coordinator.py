"""Core line processing pipeline.

This module is integration-agnostic. It turns one raw line from one origin
into a ``ProcessResult`` and, in ``handle``, fans the result out to channels
and sinks. Gateways and platforms only meet it through ports.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from core.channels import Channel
from core.chat_classifier import ChatClassifier
from core.config import OriginConfig
from core.event_classifier import EventClassifier
from core.models import (
    Category,
    ClassifiedEvent,
    GuildChat,
    IgnoredLine,
    OfficerChat,
    ProcessResult,
    UnrecognizedLine,
)
from core.normalizer import TextNormalizer
from core.patterns import PatternCatalog
from core.ports import EventSinkPort, MessageSinkPort
from core.relay_guard import RelayLoopGuard

LOGGER = logging.getLogger(__name__)


class MessageCoordinator:
    """Orchestrates normalization, classification, relay suppression and delivery."""

    def __init__(
        self,
        catalog: PatternCatalog,
        normalizer: TextNormalizer,
        chat_classifier: ChatClassifier,
        event_classifier: EventClassifier,
        relay_guard: RelayLoopGuard,
        origins: Mapping[str, OriginConfig],
        lines: Optional[Channel[Any]] = None,
        events: Optional[Channel[ClassifiedEvent]] = None,
        message_sink: Optional[MessageSinkPort] = None,
        event_sink: Optional[EventSinkPort] = None,
    ) -> None:
        self._catalog = catalog
        self._normalizer = normalizer
        self._chat = chat_classifier
        self._events = event_classifier
        self._guard = relay_guard
        self._origins = dict(origins)
        self._line_channel = lines
        self._event_channel = events
        self._message_sink = message_sink
        self._event_sink = event_sink

        for origin_id in self._origins:
            for channel in (lines, events):
                if channel is not None:
                    channel.register(origin_id)

    def process(self, raw: Any, origin_id: str) -> ProcessResult:
        """Classify one raw line. Never raises."""

        origin = self._origins.get(origin_id)
        dialect, identity = self._origin_context(origin)
        text = ""
        try:
            text = self._normalizer.normalize(raw)

            # Events win over chat: a guild event line never reaches the chat rules.
            event = self._events.match(text, dialect, origin_id)
            if event is not None:
                if not self._events.admit(event):
                    return ProcessResult(Category.IGNORED, event, "event_cooldown")
                LOGGER.debug("Event %s for %s on %s", event.type.value, event.subject_username, origin_id)
                return ProcessResult(Category.EVENT, event)

            message = self._chat.classify(text, dialect, origin_id)
            if isinstance(message, IgnoredLine):
                return ProcessResult(Category.IGNORED, message, message.reason)
            if isinstance(message, (GuildChat, OfficerChat)):
                reason = self._guard.check(message, identity)
                if reason is not None:
                    return ProcessResult(Category.IGNORED, message, reason)
                return ProcessResult(Category.MESSAGE, message)
            return ProcessResult(Category(message.kind.value), message)
        except Exception:
            LOGGER.exception("Failed to classify line from %s", origin_id)
            fallback = UnrecognizedLine(raw_text=text, origin_id=origin_id, rule_index=None)
            return ProcessResult(Category.UNRECOGNIZED, fallback)

    async def handle(self, raw: Any, origin_id: str) -> ProcessResult:
        """Process one line and deliver it to listeners and sinks."""

        if self._line_channel is not None and self._line_channel.is_registered(origin_id):
            self._line_channel.publish(origin_id, raw)

        result = self.process(raw, origin_id)
        origin = self._origins.get(origin_id)

        if result.category is Category.EVENT:
            if self._event_channel is not None and self._event_channel.is_registered(origin_id):
                self._event_channel.publish(origin_id, result.data)
            if self._event_sink is not None:
                try:
                    await self._event_sink.send_event(result.data, origin)
                except Exception:
                    LOGGER.exception("Event sink failed for %s", origin_id)
        elif result.category is Category.MESSAGE and self._message_sink is not None:
            try:
                await self._message_sink.send_message(result.data, origin)
            except Exception:
                LOGGER.exception("Message sink failed for %s", origin_id)

        return result

    def is_relevant(self, raw: Any, origin_id: str) -> bool:
        """True when the line is an event or guild/officer chat.

        Unlike ``process`` this does not touch the cooldown or duplicate windows.
        """

        dialect, _ = self._origin_context(self._origins.get(origin_id))
        try:
            text = self._normalizer.normalize(raw)
            if self._events.match(text, dialect, origin_id) is not None:
                return True
            message = self._chat.classify(text, dialect, origin_id)
        except Exception:
            LOGGER.exception("Failed to check relevance for %s", origin_id)
            return False
        return isinstance(message, (GuildChat, OfficerChat))

    def evict_expired(self) -> int:
        return self._events.evict_expired() + self._guard.evict_expired()

    def _origin_context(self, origin: Optional[OriginConfig]) -> tuple[str, Optional[str]]:
        if origin is None:
            return self._catalog.default_dialect, None
        return self._catalog.resolve_dialect(origin.dialect), origin.bot_username
