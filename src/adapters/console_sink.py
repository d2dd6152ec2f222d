"""Console sink adapter.

Prints relayed chat and guild events with ``rich`` instead of posting them to
a chat platform. Used by the CLI replay command and handy while tuning
pattern files.
"""

from __future__ import annotations

from typing import Mapping, Optional

from rich.console import Console
from rich.text import Text

from adapters.record_formatting import describe_event, describe_message, format_origin_label
from core.config import OriginConfig
from core.models import ClassifiedEvent, GuildMessage, OfficerChat


class ConsoleSink:
    """Message and event sink that writes to a ``rich`` console."""

    def __init__(self, origins: Mapping[str, OriginConfig], console: Optional[Console] = None) -> None:
        self._origins = origins
        self._console = console or Console()
        self.messages_sent = 0
        self.events_sent = 0

    async def send_message(self, message: GuildMessage, origin: Optional[OriginConfig]) -> None:
        style = "magenta" if isinstance(message, OfficerChat) else "green"
        line = Text()
        line.append(format_origin_label(message.origin_id, self._origins), style="dim")
        line.append(" ")
        line.append(describe_message(message), style=style)
        self._console.print(line)
        self.messages_sent += 1

    async def send_event(self, event: ClassifiedEvent, origin: Optional[OriginConfig]) -> None:
        line = Text()
        line.append(format_origin_label(event.origin_id, self._origins), style="dim")
        line.append(f" {event.type.value} ", style="bold cyan")
        line.append(describe_event(event))
        self._console.print(line)
        self.events_sent += 1
