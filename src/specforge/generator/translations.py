"""Model translation tables: value -> human-facing label lookups.

API definitions may attach translation tables to model fields::

    [models.user.status]
    translations = [["Active", "😄"], ["Inactive", "😴"]]

    [models.user.updated_at]
    translations = [
        ["$span:24h", "Updated within 1 day"],
        ["$span:7d", "Updated within 1 week"],
    ]

A matcher is either a literal (compared with the stringified field value)
or a *span* ``$span:<duration>`` that matches when the field value, read as
a timestamp, is at most ``duration`` older than an as-of instant. Rules are
scanned in declaration order and the first match wins; when nothing matches
the lookup returns ``None``.

:class:`TranslationTable` is an explicitly passed, read-only context object.
Build it once per run with :meth:`TranslationTable.from_models` and hand it
to whatever needs it.
"""

from __future__ import annotations

import datetime
import json
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Union

from specforge.models import ModelTranslation
from specforge.parser.extractor import stringify_value

SPAN_PREFIX = "$span:"

_DURATION_TOKEN_RE = re.compile(r"\s*(\d+(?:\.\d+)?)\s*([A-Za-z]+)")

_UNIT_SECONDS: dict[str, float] = {
    "ms": 0.001, "msec": 0.001, "millis": 0.001,
    "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hrs": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
    "w": 604800, "week": 604800, "weeks": 604800,
    "M": 2_630_016, "month": 2_630_016, "months": 2_630_016,
    "y": 31_557_600, "year": 31_557_600, "years": 31_557_600,
}


def parse_duration(text: str) -> datetime.timedelta:
    """Parse a human-readable duration such as ``24h``, ``7d`` or ``1h 30m``.

    Units are case-sensitive only where it matters (``m`` is minutes, ``M``
    is months of 30.44 days); long names like ``hours`` or ``days`` work too.

    Raises:
        ValueError: If the text is empty, has leftover characters, or uses
            an unknown unit.
    """
    remaining = text.strip()
    if not remaining:
        raise ValueError("empty duration")

    total = 0.0
    pos = 0
    while pos < len(remaining):
        match = _DURATION_TOKEN_RE.match(remaining, pos)
        if match is None:
            raise ValueError(f"invalid duration '{text}'")
        amount, unit = match.groups()
        if unit not in _UNIT_SECONDS:
            raise ValueError(f"unknown duration unit '{unit}' in '{text}'")
        total += float(amount) * _UNIT_SECONDS[unit]
        pos = match.end()
    return datetime.timedelta(seconds=total)


def to_timestamp(value: Any) -> Optional[datetime.datetime]:
    """Interpret a field value as an aware UTC timestamp, or return ``None``.

    Accepts :class:`~datetime.datetime` (naive values are taken as UTC),
    :class:`~datetime.date`, ISO-8601 strings (a trailing ``Z`` is allowed)
    and epoch seconds.
    """
    if isinstance(value, datetime.datetime):
        ts = value
    elif isinstance(value, datetime.date):
        ts = datetime.datetime.combine(value, datetime.time())
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            ts = datetime.datetime.fromisoformat(text)
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.datetime.fromtimestamp(value, tz=datetime.timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        return None

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=datetime.timezone.utc)
    return ts


@dataclass(frozen=True)
class LiteralMatcher:
    """Matches when the stringified value equals ``value``."""

    value: str

    def matches(self, value: Any, as_of: datetime.datetime) -> bool:
        if value is None:
            return False
        return stringify_value(value) == self.value

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SpanMatcher:
    """Matches timestamps no older than ``duration`` relative to ``as_of``."""

    text: str
    duration: datetime.timedelta

    def matches(self, value: Any, as_of: datetime.datetime) -> bool:
        ts = to_timestamp(value)
        if ts is None:
            return False
        return as_of - ts <= self.duration

    def __str__(self) -> str:
        return f"{SPAN_PREFIX}{self.text}"


Matcher = Union[LiteralMatcher, SpanMatcher]


def compile_matcher(matcher: str) -> Matcher:
    """Turn a raw matcher string into a :data:`Matcher`.

    Raises:
        ValueError: If a span matcher's duration cannot be parsed.
    """
    if matcher.startswith(SPAN_PREFIX):
        text = matcher[len(SPAN_PREFIX):]
        return SpanMatcher(text=text, duration=parse_duration(text))
    return LiteralMatcher(matcher)


class TranslationTable:
    """Ordered ``(matcher, label)`` rules per model and field.

    Example::

        table = TranslationTable.from_models(api.models)
        table.translate("user", "status", "Active")          # "😄"
        table.translate("user", "updated_at", "2024-05-01T10:00:00Z",
                        as_of=datetime.datetime(2024, 5, 1, 12, tzinfo=UTC))
    """

    def __init__(self, entries: dict[tuple[str, str], list[tuple[Matcher, str]]]) -> None:
        self._entries = {key: tuple(rules) for key, rules in entries.items()}

    @classmethod
    def from_models(cls, models: Iterable[ModelTranslation]) -> TranslationTable:
        """Compile translation tables from the IR.

        Raises:
            ValueError: If a span duration is invalid. Normalized IR never
                triggers this because the normalizer checks durations.
        """
        entries: dict[tuple[str, str], list[tuple[Matcher, str]]] = {}
        for translation in models:
            rules = entries.setdefault((translation.model, translation.field), [])
            rules.extend((compile_matcher(rule.matcher), rule.label) for rule in translation.rules)
        return cls(entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def models(self) -> list[str]:
        """Model names in declaration order."""
        return list(dict.fromkeys(model for model, _ in self._entries))

    def fields(self, model: str) -> list[str]:
        """Field names with translations for *model*, in declaration order."""
        return [field for m, field in self._entries if m == model]

    def rules(self, model: str, field: str) -> tuple[tuple[Matcher, str], ...]:
        """The ordered rules for one field (empty when none are declared)."""
        return self._entries.get((model, field), ())

    def translate(
        self,
        model: str,
        field: str,
        value: Any,
        as_of: Optional[datetime.datetime] = None,
    ) -> Optional[str]:
        """Return the label of the first rule matching *value*, or ``None``.

        Args:
            model: Model name, e.g. ``"user"``.
            field: Field name, e.g. ``"updated_at"``.
            value: The field value. Span rules read it as a timestamp.
            as_of: Reference instant for span rules; defaults to now (UTC).
                Naive datetimes are taken as UTC.
        """
        rules = self._entries.get((model, field))
        if not rules:
            return None
        if as_of is None:
            as_of = datetime.datetime.now(datetime.timezone.utc)
        elif as_of.tzinfo is None:
            as_of = as_of.replace(tzinfo=datetime.timezone.utc)

        for matcher, label in rules:
            if matcher.matches(value, as_of):
                return label
        return None

    def to_document(self) -> dict[str, dict[str, list[list[str]]]]:
        """Nested ``{model: {field: [[matcher, label], ...]}}`` for serialisation."""
        document: dict[str, dict[str, list[list[str]]]] = {}
        for (model, field), rules in self._entries.items():
            document.setdefault(model, {})[field] = [[str(m), label] for m, label in rules]
        return document


def render_translations(table: TranslationTable) -> str:
    """Serialise a table as stable, human-readable JSON with a trailing newline."""
    return json.dumps(table.to_document(), indent=2, ensure_ascii=False) + "\n"
