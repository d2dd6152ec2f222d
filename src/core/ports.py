"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for outbound delivery so that the core can
be reused with different chat platforms.
"""

from __future__ import annotations

from typing import Optional, Protocol

from core.config import OriginConfig
from core.models import ClassifiedEvent, GuildMessage


class MessageSinkPort(Protocol):
    """Receives guild and officer chat that passed the relay guard."""

    async def send_message(self, message: GuildMessage, origin: Optional[OriginConfig]) -> None:
        ...


class EventSinkPort(Protocol):
    """Receives admitted guild events."""

    async def send_event(self, event: ClassifiedEvent, origin: Optional[OriginConfig]) -> None:
        ...
