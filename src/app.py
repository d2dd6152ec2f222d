"""Application entry point for guildbridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
from dataclasses import asdict, dataclass, is_dataclass
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from art import tprint
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

import settings
from adapters.console_sink import ConsoleSink
from adapters.line_feed import ReplayFeed
from adapters.pattern_files import load_pattern_documents
from adapters.record_formatting import format_correlation, format_result
from core.channels import Channel
from core.chat_classifier import ChatClassifier
from core.coordinator import MessageCoordinator
from core.correlator import CommandCorrelator
from core.event_classifier import EventClassifier
from core.normalizer import TextNormalizer
from core.patterns import InvalidPatternError, PatternCatalog
from core.relay_guard import RelayLoopGuard

NAME = "GUILDBRIDGE"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Mask configured secret values in every formatted record."""

    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        values = sorted({secret for secret in secrets if secret}, key=len, reverse=True)
        # Longest first: a secret containing another is masked whole.
        self._mask = re.compile("|".join(map(re.escape, values))) if values else None

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if self._mask is None:
            return message
        return self._mask.sub("***", message)


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = (config or {}).get("redact") or {}
    if not redact_cfg.get("enabled", False):
        return []
    names = redact_cfg.get("patterns", [])
    return [value for value in (os.getenv(name) for name in names) if value]


def _log_file_path(file_cfg: dict) -> str:
    path = file_cfg.get("path") or os.path.join("logs", "guildbridge.log")
    if not os.path.isabs(path):
        path = os.path.join(settings.PROJECT_ROOT, path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return path


def _build_log_handlers(config: dict, formatter: logging.Formatter) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())

    file_cfg = config.get("file") or {}
    if file_cfg.get("enabled", False):
        handlers.append(
            RotatingFileHandler(
                _log_file_path(file_cfg),
                maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
                backupCount=int(file_cfg.get("backup_count", 5)),
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def _configure_logging(level_override: Optional[str] = None) -> None:
    """Route logs to the console and/or a rotating file.

    Logging stays off unless ``logging.enabled`` is set or ``--log-level``
    is given. An unknown level name falls back to INFO with a warning.
    """

    config = settings.LOGGING or {}
    if level_override is None and not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(level_override or config.get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    known_level = isinstance(level, int)
    if not known_level:
        level = logging.INFO

    formatter = _RedactingFormatter(
        _collect_redaction_values(config),
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers = _build_log_handlers(config, formatter)
    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    if not known_level:
        LOGGER.warning("Unknown log level %r, using INFO", level_name)


@dataclass
class Bridge:
    """Components wired once at startup and passed down explicitly."""

    catalog: PatternCatalog
    normalizer: TextNormalizer
    coordinator: MessageCoordinator
    correlator: CommandCorrelator
    sink: ConsoleSink


def _apply_custom_patterns(catalog: PatternCatalog, entries: list[dict]) -> None:
    for entry in entries:
        try:
            catalog.add_custom_rule(
                entry.get("dialect") or catalog.default_dialect,
                entry["category"],
                entry.get("subcategory"),
                entry["pattern"],
                groups=entry.get("groups") or (),
                flags=entry.get("flags"),
                description=entry.get("description"),
                direction=entry.get("direction"),
            )
        except (KeyError, InvalidPatternError) as exc:
            LOGGER.warning("Skipping custom pattern %s: %s", entry, exc)


def build_bridge(console: Optional[Console] = None) -> Bridge:
    documents = load_pattern_documents(settings.PATTERNS_DIR)
    catalog = PatternCatalog(documents, default_dialect=settings.DEFAULT_DIALECT)
    _apply_custom_patterns(catalog, settings.CUSTOM_PATTERNS)

    normalizer = TextNormalizer(settings.NORMALIZER)
    lines: Channel[Any] = Channel("lines")
    events: Channel[Any] = Channel("events")
    sink = ConsoleSink(settings.ORIGINS, console=console)

    coordinator = MessageCoordinator(
        catalog=catalog,
        normalizer=normalizer,
        chat_classifier=ChatClassifier(catalog, normalizer),
        event_classifier=EventClassifier(catalog, settings.EVENT_COOLDOWN),
        relay_guard=RelayLoopGuard(settings.RELAY_GUARD, settings.DEDUP),
        origins=settings.ORIGINS,
        lines=lines,
        events=events,
        message_sink=sink,
        event_sink=sink,
    )
    correlator = CommandCorrelator(
        catalog=catalog,
        normalizer=normalizer,
        lines=lines,
        events=events,
        origins=settings.ORIGINS,
        config=settings.CORRELATOR,
    )
    LOGGER.info("Bridge ready with %s origins", len(settings.ORIGINS))
    return Bridge(catalog, normalizer, coordinator, correlator, sink)


def _default_origin() -> str:
    return next(iter(settings.ORIGINS), "default")


def _parse_expectation(value: str) -> tuple[str, str]:
    command, sep, target = value.partition(":")
    if not sep or not command or not target:
        raise argparse.ArgumentTypeError("expected TYPE:TARGET, e.g. kick:Alice")
    return command, target


async def _replay(
    bridge: Bridge,
    path: str,
    origin_id: str,
    expectation: Optional[tuple[str, str]],
    timeout: Optional[float],
    delay: float,
    console: Console,
) -> None:
    handle = None
    if expectation:
        command, target = expectation
        deadline_ms = int(timeout * 1000) if timeout is not None else None
        handle = bridge.correlator.create(origin_id, command, target, deadline_ms=deadline_ms)

    count = await ReplayFeed(path, origin_id).drive(bridge.coordinator, delay=delay)
    console.print(
        f"[dim]{count} lines replayed, {bridge.sink.messages_sent} messages and "
        f"{bridge.sink.events_sent} events relayed[/dim]"
    )

    if handle is not None:
        result = await handle
        style = "green" if result.succeeded else "red"
        console.print(f"[{style}]{format_correlation(result, settings.ORIGINS.get(origin_id))}[/{style}]")
    bridge.correlator.shutdown()


def _classify(bridge: Bridge, line: str, origin_id: str, console: Console) -> None:
    result = bridge.coordinator.process(line, origin_id)
    table = Table(title=format_result(result), show_header=True)
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("category", result.category.value)
    if result.reason:
        table.add_row("reason", result.reason)
    data = result.data
    if data is not None:
        kind = getattr(data, "kind", None) or getattr(data, "type", None)
        if kind is not None:
            table.add_row("kind", kind.value)
        if is_dataclass(data):
            for name, value in asdict(data).items():
                if name == "raw_text" or value in (None, "", (), {}):
                    continue
                table.add_row(name, str(value))
    console.print(table)


def _patterns(bridge: Bridge, dialect: Optional[str], console: Console) -> None:
    dialects = [dialect] if dialect else bridge.catalog.dialects()
    for name in dialects:
        resolved = bridge.catalog.resolve_dialect(name)
        table = Table(title=f"{resolved} patterns")
        table.add_column("Category")
        table.add_column("Rules", justify="right")
        table.add_column("Custom", justify="right")
        for category, counts in bridge.catalog.statistics(resolved).items():
            table.add_row(category, str(counts["total"]), str(counts["custom"]))
        console.print(table)
        commands = bridge.catalog.command_types(resolved)
        if commands:
            console.print(f"Commands: {', '.join(commands)}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="guildbridge")
    parser.add_argument("--log-level", help="Override the configured log level")
    subparsers = parser.add_subparsers(dest="command")

    replay = subparsers.add_parser("replay", help="Replay a recorded feed through the bridge")
    replay.add_argument("file", help="Plain text or JSON lines feed")
    replay.add_argument("--origin", default=None, help="Origin id for plain text rows")
    replay.add_argument("--expect", type=_parse_expectation, help="Await a command, e.g. kick:Alice")
    replay.add_argument("--timeout", type=float, default=None, help="Command deadline in seconds")
    replay.add_argument("--delay", type=float, default=0.0, help="Seconds between replayed lines")

    classify = subparsers.add_parser("classify", help="Classify one line")
    classify.add_argument("line")
    classify.add_argument("--origin", default=None)

    patterns = subparsers.add_parser("patterns", help="Show pattern catalog statistics")
    patterns.add_argument("--dialect", default=None)

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    console = Console()
    if args.command == "replay":
        _print_banner()
    _configure_logging(args.log_level)
    bridge = build_bridge(console)

    if args.command == "replay":
        origin_id = args.origin or _default_origin()
        asyncio.run(
            _replay(bridge, args.file, origin_id, args.expect, args.timeout, args.delay, console)
        )
    elif args.command == "classify":
        _classify(bridge, args.line, args.origin or _default_origin(), console)
    elif args.command == "patterns":
        _patterns(bridge, args.dialect, console)


if __name__ == "__main__":
    main()
