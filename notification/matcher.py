#!/usr/bin/env python3
"""
Matcher Evaluation Engine - decides which targets receive a notification.

Per matcher, every configured predicate (match-field, match-severity,
match-calendar) is evaluated into one flat list of booleans, combined with
the matcher's mode and optionally inverted:

- ``all``: every predicate must hold (no predicates: fires)
- ``any``: at least one must hold (no predicates: never fires)
- ``invert-match``: flips the combined result

Targets of firing matchers are collected in stored matcher order with
duplicates removed (first occurrence wins). Target names are passed through
unresolved; dispatch skips names with no endpoint.

Usage:
    event = Notification(severity="error", fields={"host": "pve1"})
    targets = resolve_targets(config.list_matchers(), event)
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Dict, FrozenSet, Iterable, List, Optional, Pattern, Tuple, Union

from notification.calendar import DailyDuration, Timestamp, to_wall_clock
from notification.schema import FieldPredicate, Matcher, Severity, parse_severities

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """A notification event as seen by the matchers."""
    severity: Union[Severity, str]
    fields: Dict[str, str] = field(default_factory=dict)
    timestamp: Timestamp = field(default_factory=lambda: datetime.now(timezone.utc))
    title: str = ""
    body: str = ""

    def __post_init__(self):
        self.severity = Severity(self.severity)


@dataclass(frozen=True)
class CompiledMatcher:
    """A matcher with its predicates parsed once, ready for evaluation."""
    name: str
    exact_fields: Tuple[Tuple[str, str], ...]
    regex_fields: Tuple[Tuple[str, Pattern], ...]
    severities: Tuple[FrozenSet[Severity], ...]
    calendars: Tuple[DailyDuration, ...]
    mode: str
    inverted: bool
    targets: Tuple[str, ...]

    @classmethod
    def build(cls, matcher: Matcher) -> "CompiledMatcher":
        # Stored matchers were validated on add/update, parsing cannot fail here
        exact_fields = []
        regex_fields = []
        for entry in matcher.match_field or []:
            predicate = FieldPredicate.parse(entry)
            if predicate.mode == "exact":
                exact_fields.append((predicate.field, predicate.value))
            else:
                regex_fields.append((predicate.field, re.compile(predicate.value)))

        return cls(
            name=matcher.name,
            exact_fields=tuple(exact_fields),
            regex_fields=tuple(regex_fields),
            severities=tuple(parse_severities(e) for e in matcher.match_severity or []),
            calendars=tuple(DailyDuration.parse(e) for e in matcher.match_calendar or []),
            mode=matcher.effective_mode,
            inverted=matcher.inverted,
            targets=tuple(matcher.targets),
        )

    def predicate_results(self, event: Notification, tz: Optional[tzinfo] = None) -> List[bool]:
        results: List[bool] = []
        for key, expected in self.exact_fields:
            value = event.fields.get(key)
            results.append(value is not None and value == expected)
        for key, pattern in self.regex_fields:
            value = event.fields.get(key)
            results.append(value is not None and pattern.search(value) is not None)
        for allowed in self.severities:
            results.append(event.severity in allowed)
        if self.calendars:
            moment = to_wall_clock(event.timestamp, tz)
            for window in self.calendars:
                results.append(window.contains(moment))
        return results

    def fires(self, event: Notification, tz: Optional[tzinfo] = None) -> bool:
        results = self.predicate_results(event, tz)
        if self.mode == "any":
            matched = any(results)
        else:
            matched = all(results)
        return matched != self.inverted


def compile_matchers(matchers: Iterable[Matcher]) -> List[CompiledMatcher]:
    return [CompiledMatcher.build(m) for m in matchers]


def matcher_fires(matcher: Matcher, event: Notification, tz: Optional[tzinfo] = None) -> bool:
    """Evaluate a single matcher against an event."""
    return CompiledMatcher.build(matcher).fires(event, tz)


def resolve_targets(
    matchers: Iterable[Union[Matcher, CompiledMatcher]],
    event: Notification,
    tz: Optional[tzinfo] = None,
) -> List[str]:
    """Return the deduplicated, ordered target names for an event."""
    targets: List[str] = []
    seen = set()
    for matcher in matchers:
        compiled = matcher if isinstance(matcher, CompiledMatcher) else CompiledMatcher.build(matcher)
        if not compiled.fires(event, tz):
            continue
        logger.debug(f"Matcher '{compiled.name}' fired for {event.severity.value} notification")
        for target in compiled.targets:
            if target not in seen:
                seen.add(target)
                targets.append(target)
    return targets
