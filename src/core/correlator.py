"""Command response correlation (core domain).

Guild commands are fire-and-forget: the game never tags a reply with a
request id, the reply may arrive late, interleaved with unrelated chat, or
not at all. A listener watches one origin's raw lines and classified events
for text or events that answer one command, and resolves exactly once with a
``CorrelationResult``.

Resolution can race between the line subscription, the event subscription,
the deadline timer and ``cancel``. The first caller to flip ``resolved``
under the lock wins; everyone else is a no-op.
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from core.channels import Channel, Subscription
from core.config import CorrelatorConfig, OriginConfig
from core.models import ClassifiedEvent, CorrelationResult, EventType, Outcome, PatternRule
from core.normalizer import TextNormalizer
from core.patterns import PatternCatalog

LOGGER = logging.getLogger(__name__)

GLOBAL_TARGETS = frozenset({"everyone", "all"})
SUBJECT_GROUPS = ("target", "username", "player")

# Structured events that prove a command succeeded for its target.
EVENT_SUCCESS: Mapping[str, FrozenSet[EventType]] = {
    "kick": frozenset({EventType.KICK}),
    "invite": frozenset({EventType.JOIN}),
    "promote": frozenset({EventType.PROMOTE}),
    "demote": frozenset({EventType.DEMOTE}),
    "setrank": frozenset({EventType.PROMOTE, EventType.DEMOTE}),
}


@dataclass
class Listener:
    """One in-flight command awaiting its response."""

    id: str
    origin_id: str
    command_type: str
    target_subject: str
    command_text: Optional[str]
    created_at: float
    deadline: float
    loop: asyncio.AbstractEventLoop
    future: asyncio.Future
    resolved: bool = False
    subscriptions: List[Subscription] = field(default_factory=list)
    timer: Optional[asyncio.TimerHandle] = None

    @property
    def is_global(self) -> bool:
        return self.target_subject in GLOBAL_TARGETS


class ListenerHandle:
    """Caller-side view of a listener: await it for the result."""

    def __init__(self, listener: Listener, correlator: "CommandCorrelator") -> None:
        self._listener = listener
        self._correlator = correlator

    @property
    def id(self) -> str:
        return self._listener.id

    @property
    def done(self) -> bool:
        return self._listener.future.done()

    async def result(self) -> CorrelationResult:
        return await asyncio.shield(self._listener.future)

    def cancel(self) -> bool:
        return self._correlator.cancel(self._listener.id)

    def __await__(self):
        return self.result().__await__()


class CommandCorrelator:
    """Create and resolve command listeners over per-origin channels."""

    def __init__(
        self,
        catalog: PatternCatalog,
        normalizer: TextNormalizer,
        lines: Channel[Any],
        events: Channel[ClassifiedEvent],
        origins: Mapping[str, OriginConfig],
        config: Optional[CorrelatorConfig] = None,
    ) -> None:
        self._catalog = catalog
        self._normalizer = normalizer
        self._lines = lines
        self._events = events
        self._origins = dict(origins)
        self._config = config or CorrelatorConfig()
        self._listeners: Dict[str, Listener] = {}
        self._lock = threading.Lock()
        self._stats: Dict[str, int] = {"created": 0, **{outcome.value: 0 for outcome in Outcome}}

    def create(
        self,
        origin_id: str,
        command_type: str,
        target_subject: str,
        deadline_ms: Optional[int] = None,
        command_text: Optional[str] = None,
    ) -> ListenerHandle:
        """Start listening for the response to one command.

        Must be called from a running event loop; the deadline is scheduled
        on it. A listener that cannot attach resolves as ``system_error``.
        """

        loop = asyncio.get_running_loop()
        timeout = (
            deadline_ms / 1000.0 if deadline_ms is not None else self._config.default_timeout_seconds
        )
        now = loop.time()
        listener = Listener(
            id=uuid.uuid4().hex,
            origin_id=origin_id,
            command_type=command_type.lower(),
            target_subject=target_subject.strip().lower(),
            command_text=command_text,
            created_at=now,
            deadline=now + timeout,
            loop=loop,
            future=loop.create_future(),
        )
        with self._lock:
            self._listeners[listener.id] = listener
            self._stats["created"] += 1

        dialect = self._dialect(origin_id)
        if not (
            self._catalog.command_rules(dialect, listener.command_type, "success")
            or self._catalog.command_rules(dialect, listener.command_type, "error")
        ):
            LOGGER.warning(
                "No response patterns for %s on %s, relying on events or the deadline",
                listener.command_type,
                dialect,
            )

        listener.timer = loop.call_later(timeout, self._on_deadline, listener)
        try:
            listener.subscriptions.append(
                self._lines.subscribe(origin_id, lambda raw: self._on_line(listener, raw))
            )
            listener.subscriptions.append(
                self._events.subscribe(origin_id, lambda event: self._on_event(listener, event))
            )
        except Exception as exc:
            LOGGER.exception("Failed to attach listener %s to %s", listener.id, origin_id)
            self._resolve(listener, Outcome.SYSTEM_ERROR, text=str(exc))
            return ListenerHandle(listener, self)

        LOGGER.debug(
            "Listener %s waiting for %s %s on %s (%.1fs)",
            listener.id,
            listener.command_type,
            listener.target_subject,
            origin_id,
            timeout,
        )
        return ListenerHandle(listener, self)

    def cancel(self, listener_id: str) -> bool:
        with self._lock:
            listener = self._listeners.get(listener_id)
        if listener is None:
            return False
        return self._resolve(listener, Outcome.CANCELLED)

    async def wait(self, listener_id: str) -> CorrelationResult:
        """Await an active listener by id; raises KeyError once it is gone."""

        with self._lock:
            listener = self._listeners.get(listener_id)
        if listener is None:
            raise KeyError(listener_id)
        return await asyncio.shield(listener.future)

    def active_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def statistics(self) -> Dict[str, int]:
        with self._lock:
            return {**self._stats, "active": len(self._listeners)}

    def shutdown(self) -> int:
        """Cancel every active listener and return how many were cancelled."""

        with self._lock:
            pending = list(self._listeners.values())
        cancelled = sum(1 for listener in pending if self._resolve(listener, Outcome.CANCELLED))
        if cancelled:
            LOGGER.info("Cancelled %s pending command listeners", cancelled)
        return cancelled

    def _dialect(self, origin_id: str) -> str:
        origin = self._origins.get(origin_id)
        if origin is None:
            return self._catalog.default_dialect
        return self._catalog.resolve_dialect(origin.dialect)

    def _on_deadline(self, listener: Listener) -> None:
        listener.timer = None
        self._resolve(listener, Outcome.TIMEOUT)

    def _on_line(self, listener: Listener, raw: Any) -> None:
        if listener.resolved:
            return

        text = self._normalizer.normalize(raw)
        dialect = self._dialect(listener.origin_id)

        for rule in self._catalog.command_rules(dialect, listener.command_type, "success"):
            match = rule.pattern.search(text)
            if not match:
                continue
            if self._validate(listener, rule, match, text, dialect):
                self._resolve(
                    listener,
                    Outcome.SUCCESS,
                    text=text,
                    groups=match.groups(),
                    extracted=rule.map_groups(match),
                )
                return
            LOGGER.debug("Listener %s: %r matched but failed validation", listener.id, text)

        for rule in self._catalog.command_rules(dialect, listener.command_type, "error"):
            match = rule.pattern.search(text)
            if match:
                self._resolve(
                    listener,
                    Outcome.COMMAND_ERROR,
                    text=text,
                    groups=match.groups(),
                    extracted=rule.map_groups(match),
                )
                return

    def _on_event(self, listener: Listener, event: ClassifiedEvent) -> None:
        if listener.resolved or event.origin_id != listener.origin_id:
            return
        expected = EVENT_SUCCESS.get(listener.command_type)
        if not expected or event.type not in expected:
            return
        if (event.subject_username or "").lower() != listener.target_subject:
            return
        self._resolve(listener, Outcome.SUCCESS, text=event.raw_text, event=event)

    def _validate(
        self,
        listener: Listener,
        rule: PatternRule,
        match: re.Match,
        text: str,
        dialect: str,
    ) -> bool:
        if listener.is_global:
            marker = self._catalog.scope_marker(dialect, listener.command_type)
            return marker.search(match.group(0)) is not None

        # A rule without a subject group cannot confirm a per-player command.
        extracted = rule.map_groups(match)
        for name in SUBJECT_GROUPS:
            if name in extracted:
                return extracted[name].lower() == listener.target_subject
        return False

    def _resolve(
        self,
        listener: Listener,
        outcome: Outcome,
        *,
        text: Optional[str] = None,
        groups: tuple = (),
        event: Optional[ClassifiedEvent] = None,
        extracted: Optional[Mapping[str, str]] = None,
    ) -> bool:
        with self._lock:
            if listener.resolved:
                return False
            listener.resolved = True
            self._listeners.pop(listener.id, None)
            self._stats[outcome.value] += 1

        if listener.timer is not None:
            self._in_loop(listener, listener.timer.cancel)
            listener.timer = None
        for subscription in listener.subscriptions:
            subscription.unsubscribe()

        result = CorrelationResult(
            listener_id=listener.id,
            origin_id=listener.origin_id,
            command_type=listener.command_type,
            target_subject=listener.target_subject,
            outcome=outcome,
            duration_ms=int(max(0.0, listener.loop.time() - listener.created_at) * 1000),
            text=text,
            groups=tuple(groups),
            event=event,
            extracted=dict(extracted or {}),
        )
        LOGGER.info(
            "Command %s %s on %s resolved: %s (%sms)",
            listener.command_type,
            listener.target_subject,
            listener.origin_id,
            outcome.value,
            result.duration_ms,
        )
        self._in_loop(listener, _set_result, listener.future, result)
        return True

    @staticmethod
    def _in_loop(listener: Listener, callback, *args) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is listener.loop:
            callback(*args)
        elif not listener.loop.is_closed():
            listener.loop.call_soon_threadsafe(callback, *args)


def _set_result(future: asyncio.Future, result: CorrelationResult) -> None:
    if not future.done():
        future.set_result(result)
