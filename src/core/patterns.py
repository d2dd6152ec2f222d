"""Pattern catalog: rule compilation and per-dialect lookup (core domain)."""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from core.models import PatternRule

LOGGER = logging.getLogger(__name__)

DEFAULT_SCOPE_MARKER = r"guild(?:'s)?\s+chat"

_FLAG_BITS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
# Letters that only make sense for JavaScript-style global/sticky matching.
_IGNORED_FLAGS = frozenset("guy")
_DEFAULT_FLAGS = {"commands": "i"}
_COMMAND_OUTCOMES = ("success", "error")

CacheKey = Tuple[str, str, Optional[str]]


class InvalidPatternError(ValueError):
    """Raised when a rule entry cannot be compiled."""


def parse_flags(flags: Optional[str]) -> int:
    """Translate a flag string like ``"i"`` into ``re`` flag bits."""

    if not flags or flags == "none":
        return 0
    bits = 0
    for letter in flags:
        if letter in _IGNORED_FLAGS:
            continue
        if letter not in _FLAG_BITS:
            raise InvalidPatternError(f"Unsupported pattern flag: {letter!r}")
        bits |= _FLAG_BITS[letter]
    return bits


def compile_rule(
    entry: Mapping[str, Any],
    *,
    dialect: str,
    category: str,
    subcategory: Optional[str],
    index: int,
    is_custom: bool = False,
) -> PatternRule:
    """Compile one rule entry, enforcing the group-count invariant."""

    if not isinstance(entry, Mapping):
        raise InvalidPatternError(f"Rule entry must be an object, got {type(entry).__name__}")

    source = entry.get("pattern")
    if not isinstance(source, str) or not source:
        raise InvalidPatternError("Rule entry is missing its pattern")

    flags = entry.get("flags")
    if flags is None:
        flags = _DEFAULT_FLAGS.get(category, "")
    if flags == "none":
        flags = ""

    try:
        compiled = re.compile(source, parse_flags(flags))
    except re.error as exc:
        raise InvalidPatternError(f"Failed to compile pattern {source!r}: {exc}") from exc

    groups = entry.get("groups") or []
    if not isinstance(groups, (list, tuple)) or not all(isinstance(name, str) for name in groups):
        raise InvalidPatternError(f"Groups for {source!r} must be a list of names")
    if len(groups) > compiled.groups:
        raise InvalidPatternError(
            f"Pattern {source!r} names {len(groups)} groups but captures {compiled.groups}"
        )

    return PatternRule(
        dialect=dialect,
        category=category,
        subcategory=subcategory,
        index=index,
        pattern=compiled,
        source=source,
        groups=tuple(groups),
        description=entry.get("description") or "No description",
        is_custom=is_custom,
        direction=entry.get("direction"),
        flags=flags,
    )


def _iter_sections(document: Mapping[str, Any], category: str) -> Iterator[Tuple[Optional[str], list]]:
    """Yield ``(subcategory, entries)`` pairs for a category in document order.

    Command responses nest one level deeper; their subcategories are
    flattened to ``"<command>.<outcome>"``.
    """

    section = document.get(category)
    if isinstance(section, list):
        yield None, section
        return
    if not isinstance(section, Mapping):
        return
    for name, value in section.items():
        if isinstance(value, list):
            yield name, value
        elif isinstance(value, Mapping):
            for outcome in _COMMAND_OUTCOMES:
                entries = value.get(outcome)
                if isinstance(entries, list):
                    yield f"{name}.{outcome}", entries


class PatternCatalog:
    """Per-dialect classification rules, compiled once and cached.

    Malformed entries are logged and skipped so one bad rule never takes the
    whole catalog down.
    """

    def __init__(self, documents: Mapping[str, Mapping[str, Any]], default_dialect: str = "Vanilla") -> None:
        self._documents: Dict[str, Mapping[str, Any]] = dict(documents)
        self._default_dialect = default_dialect
        self._custom: Dict[CacheKey, List[PatternRule]] = {}
        self._cache: Dict[CacheKey, Tuple[PatternRule, ...]] = {}
        self._markers: Dict[Tuple[str, str], re.Pattern] = {}
        self._warned: set[str] = set()
        self._lock = threading.RLock()

        if default_dialect not in self._documents:
            LOGGER.warning("Default dialect %s has no pattern document", default_dialect)

        # Compile everything up front so malformed entries surface at load time.
        for dialect in self._documents:
            for category in ("messages", "system", "ignore", "events", "commands"):
                self.get_rules(dialect, category)
        LOGGER.info("Pattern catalog loaded for dialects: %s", ", ".join(self.dialects()) or "none")

    @property
    def default_dialect(self) -> str:
        return self._default_dialect

    def dialects(self) -> List[str]:
        return list(self._documents)

    def has_dialect(self, dialect: str) -> bool:
        return dialect in self._documents

    def resolve_dialect(self, dialect: Optional[str]) -> str:
        """Return ``dialect`` if known, otherwise the default dialect."""

        if dialect and dialect in self._documents:
            return dialect
        name = dialect or ""
        with self._lock:
            if name not in self._warned:
                self._warned.add(name)
                LOGGER.warning(
                    "Unknown dialect %r, falling back to %s patterns", dialect, self._default_dialect
                )
        return self._default_dialect

    def get_rules(self, dialect: str, category: str, subcategory: Optional[str] = None) -> Tuple[PatternRule, ...]:
        """Return the ordered rules for a dialect/category/subcategory."""

        resolved = self.resolve_dialect(dialect)
        key: CacheKey = (resolved, category, subcategory)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            document = self._documents.get(resolved, {})
            if subcategory is None and not isinstance(document.get(category), list):
                rules: List[PatternRule] = []
                for name in self._section_names(resolved, category):
                    rules.extend(self.get_rules(resolved, category, name))
                rules.extend(self._custom.get(key, []))
            else:
                rules = self._compile_section(resolved, category, subcategory)

            result = tuple(rules)
            self._cache[key] = result
            LOGGER.debug(
                "Loaded %s patterns for %s/%s%s",
                len(result),
                resolved,
                category,
                f"/{subcategory}" if subcategory else "",
            )
            return result

    def subcategories(self, dialect: str, category: str) -> List[str]:
        """Return subcategory names (e.g. event types) in document order."""

        with self._lock:
            return self._section_names(self.resolve_dialect(dialect), category)

    def command_types(self, dialect: str) -> List[str]:
        commands = self._documents.get(self.resolve_dialect(dialect), {}).get("commands")
        if not isinstance(commands, Mapping):
            return []
        return list(commands)

    def command_rules(self, dialect: str, command_type: str, outcome: str) -> Tuple[PatternRule, ...]:
        """Return the success or error response rules for a command type."""

        if outcome not in _COMMAND_OUTCOMES:
            raise ValueError(f"Unsupported command outcome: {outcome}")
        return self.get_rules(dialect, "commands", f"{command_type.lower()}.{outcome}")

    def scope_marker(self, dialect: str, command_type: str) -> re.Pattern:
        """Return the marker regex proving a command applied guild-wide."""

        resolved = self.resolve_dialect(dialect)
        key = (resolved, command_type.lower())
        with self._lock:
            marker = self._markers.get(key)
            if marker is not None:
                return marker

            commands = self._documents.get(resolved, {}).get("commands") or {}
            command = commands.get(key[1]) if isinstance(commands, Mapping) else None
            source = DEFAULT_SCOPE_MARKER
            if isinstance(command, Mapping) and command.get("scope_marker"):
                source = command["scope_marker"]
            try:
                marker = re.compile(source, re.IGNORECASE)
            except re.error:
                LOGGER.warning("Invalid scope marker for %s/%s, using default", resolved, key[1])
                marker = re.compile(DEFAULT_SCOPE_MARKER, re.IGNORECASE)
            self._markers[key] = marker
            return marker

    def defaults(self, dialect: str, name: str) -> Any:
        defaults = self._documents.get(self.resolve_dialect(dialect), {}).get("defaults") or {}
        return defaults.get(name)

    def add_custom_rule(
        self,
        dialect: str,
        category: str,
        subcategory: Optional[str],
        pattern: str,
        groups: Iterable[str] = (),
        flags: Optional[str] = None,
        description: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> PatternRule:
        """Append a runtime rule; invalid patterns raise ``InvalidPatternError``."""

        entry = {
            "pattern": pattern,
            "groups": list(groups),
            "flags": flags,
            "description": description or f"Runtime custom {subcategory or category} pattern",
            "direction": direction,
        }
        with self._lock:
            if dialect not in self._documents:
                self._documents[dialect] = {}
            key: CacheKey = (dialect, category, subcategory)
            existing = len(self.get_rules(dialect, category, subcategory))
            rule = compile_rule(
                entry,
                dialect=dialect,
                category=category,
                subcategory=subcategory,
                index=existing,
                is_custom=True,
            )
            self._custom.setdefault(key, []).append(rule)
            self._cache.pop(key, None)
            self._cache.pop((dialect, category, None), None)

        LOGGER.debug("Added custom pattern for %s/%s/%s: %s", dialect, category, subcategory, pattern)
        return rule

    def statistics(self, dialect: str) -> Dict[str, Dict[str, int]]:
        """Return total and custom rule counts per category."""

        stats: Dict[str, Dict[str, int]] = {}
        for category in ("messages", "system", "ignore", "events", "commands"):
            rules = self.get_rules(dialect, category)
            stats[category] = {
                "total": len(rules),
                "custom": sum(1 for rule in rules if rule.is_custom),
            }
        return stats

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._markers.clear()
        LOGGER.debug("Pattern cache cleared")

    def _section_names(self, dialect: str, category: str) -> List[str]:
        document = self._documents.get(dialect, {})
        names = [name for name, _ in _iter_sections(document, category) if name is not None]
        for custom_dialect, custom_category, custom_sub in self._custom:
            if (
                custom_dialect == dialect
                and custom_category == category
                and custom_sub is not None
                and custom_sub not in names
            ):
                names.append(custom_sub)
        return names

    def _compile_section(self, dialect: str, category: str, subcategory: Optional[str]) -> List[PatternRule]:
        document = self._documents.get(dialect, {})
        entries: list = []
        for name, section in _iter_sections(document, category):
            if name == subcategory:
                entries = section
                break

        rules: List[PatternRule] = []
        for entry in entries:
            try:
                rules.append(
                    compile_rule(
                        entry,
                        dialect=dialect,
                        category=category,
                        subcategory=subcategory,
                        index=len(rules),
                    )
                )
            except InvalidPatternError as exc:
                LOGGER.warning(
                    "Skipping malformed pattern in %s/%s/%s: %s", dialect, category, subcategory, exc
                )
        rules.extend(self._custom.get((dialect, category, subcategory), []))
        return rules
