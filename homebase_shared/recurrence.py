# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
"""
Recurrence rules: parsing, building, describing and window expansion.

Rules are a subset of RFC 5545 RRULE text. Anything outside the supported
grammar is treated as "does not repeat" rather than raising, since rule text
can be entered by hand.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from enum import StrEnum
from typing import Callable, Iterator, Optional, Sequence

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

_SUPPORTED_KEYS = {"FREQ", "INTERVAL", "BYDAY", "BYMONTHDAY", "COUNT", "UNTIL", "WKST"}
_UNTIL_PATTERN = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})Z?)?$")


class Frequency(StrEnum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


@dataclass(frozen=True)
class RecurrenceRule:
    freq: Frequency
    interval: int = 1
    # Weekday indexes, 0=Monday .. 6=Sunday, sorted and unique.
    by_day: tuple[int, ...] = ()
    by_month_day: Optional[int] = None
    count: Optional[int] = None
    until: Optional[datetime] = None

    def to_rrule(self) -> str:
        parts = [f"FREQ={self.freq.value}"]
        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.by_day:
            parts.append("BYDAY=" + ",".join(WEEKDAY_CODES[d] for d in self.by_day))
        if self.by_month_day is not None:
            parts.append(f"BYMONTHDAY={self.by_month_day}")
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        if self.until is not None:
            until = self.until.astimezone(timezone.utc)
            parts.append(f"UNTIL={until.strftime('%Y%m%dT%H%M%SZ')}")
        return ";".join(parts)


@dataclass(frozen=True)
class Occurrence:
    """One concrete instance of a (possibly recurring) entity.

    `instance_date` is the series position the occurrence was generated from;
    exception records key on it. For all-day occurrences `start` is midnight
    of the day and `end` is midnight after the last day.
    """

    start: datetime
    end: Optional[datetime]
    all_day: bool = False
    instance_date: Optional[datetime] = None


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; aware datetimes are returned unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_rrule(text: Optional[str]) -> Optional[RecurrenceRule]:
    """Parse rule text into a RecurrenceRule, or None for "does not repeat"."""
    if not text or not text.strip():
        return None

    body = _rule_body(text)
    fields: dict[str, str] = {}
    for part in body.split(";"):
        part = part.strip()
        if not part:
            continue
        key, sep, value = part.partition("=")
        key = key.strip().upper()
        value = value.strip().upper()
        if not sep or not key or not value or key in fields:
            return _unrecognized(text)
        fields[key] = value

    try:
        return _build_rule(fields)
    except ValueError:
        return _unrecognized(text)


def is_recurring(text: Optional[str]) -> bool:
    return parse_rrule(text) is not None


def build_rrule(
    freq: str,
    interval: int = 1,
    by_weekday: Optional[Sequence[int]] = None,
    until: Optional[datetime] = None,
    count: Optional[int] = None,
    by_month_day: Optional[int] = None,
) -> str:
    """Build rule text for the common presets (weekdays are 0=Monday..6=Sunday)."""
    if interval < 1:
        raise ValueError("interval must be positive")
    by_day = tuple(sorted(set(by_weekday or ())))
    if any(day < 0 or day > 6 for day in by_day):
        raise ValueError("weekday must be between 0 and 6")
    rule = RecurrenceRule(
        freq=Frequency(freq.upper()),
        interval=interval,
        by_day=by_day,
        by_month_day=by_month_day,
        count=count,
        until=as_utc(until) if until else None,
    )
    return rule.to_rrule()


def continue_rrule(
    text: Optional[str], anchor: datetime, split_at: datetime
) -> Optional[str]:
    """Rule text for the same series restarted at `split_at`.

    COUNT is positional, so the restarted rule only keeps the occurrences that
    were still left after `split_at`.
    """
    rule = parse_rrule(text)
    if rule is None or rule.count is None:
        return text
    anchor = as_utc(anchor)
    split_at = as_utc(split_at)
    used = sum(
        1 for start in _iter_starts(rule, anchor, anchor, split_at) if start < split_at
    )
    return build_rrule(
        rule.freq.value,
        rule.interval,
        by_weekday=rule.by_day,
        until=rule.until,
        count=max(rule.count - used, 1),
        by_month_day=rule.by_month_day,
    )


def describe_rrule(text: Optional[str]) -> str:
    """Human-readable summary, e.g. "Every week on Monday and Wednesday"."""
    if not text or not text.strip():
        return "Does not repeat"
    rule = parse_rrule(text)
    if rule is None:
        return "Custom recurrence"

    unit = {
        Frequency.DAILY: "day",
        Frequency.WEEKLY: "week",
        Frequency.MONTHLY: "month",
        Frequency.YEARLY: "year",
    }[rule.freq]
    if rule.interval == 1:
        description = f"Every {unit}"
    else:
        description = f"Every {rule.interval} {unit}s"

    if rule.by_day == (0, 1, 2, 3, 4) and rule.interval == 1:
        description = "Every weekday"
    elif rule.by_day:
        description += " on " + _join_words([WEEKDAY_NAMES[d] for d in rule.by_day])
    if rule.by_month_day is not None:
        description += f" on day {rule.by_month_day}"
    if rule.count is not None:
        description += f" for {rule.count} times"
    if rule.until is not None:
        description += f" until {rule.until.strftime('%B')} {rule.until.day}, {rule.until.year}"
    return description


class Expansion:
    """Restartable, lazily evaluated occurrences of one entity inside a window.

    Every iteration starts from scratch, and iteration stops at the window end
    (or the series end, whichever comes first) even for unbounded rules.
    """

    def __init__(
        self,
        rule: Optional[RecurrenceRule],
        start: datetime,
        end: Optional[datetime],
        window_start: datetime,
        window_end: datetime,
        *,
        all_day: bool = False,
        until: Optional[datetime] = None,
    ):
        self.rule = rule
        self.start = as_utc(start)
        self.end = as_utc(end) if end is not None else None
        if self.end is not None and self.end < self.start:
            self.end = self.start
        self.window_start = as_utc(window_start)
        self.window_end = as_utc(window_end)
        self.all_day = all_day
        self.until = as_utc(until) if until is not None else None

    def __iter__(self) -> Iterator[Occurrence]:
        return self._generate()

    def _generate(self) -> Iterator[Occurrence]:
        if self.window_end < self.window_start:
            return

        if self.rule is None:
            if self.until is not None and self.start > self.until:
                return
            occurrence = self._materialize(self.start)
            if self._intersects(occurrence):
                yield occurrence
            return

        horizon = self.window_end
        if self.all_day:
            horizon += timedelta(days=1)
        if self.until is not None and self.until < horizon:
            horizon = self.until

        # Occurrences starting this far before the window can still overlap it.
        reach = self._span()
        for candidate in _iter_starts(
            self.rule, self.start, self.window_start - reach, horizon
        ):
            occurrence = self._materialize(candidate)
            if occurrence.start > self.window_end:
                return
            if self._intersects(occurrence):
                yield occurrence

    def _span(self) -> timedelta:
        if self.all_day:
            days = (self.end.date() - self.start.date()).days if self.end else 0
            return timedelta(days=max(days, 0) + 1)
        if self.end is None:
            return timedelta(0)
        return self.end - self.start

    def _materialize(self, candidate: datetime) -> Occurrence:
        if self.all_day:
            day_start = datetime.combine(candidate.date(), time.min, tzinfo=candidate.tzinfo)
            return Occurrence(
                start=day_start,
                end=day_start + self._span(),
                all_day=True,
                instance_date=candidate,
            )
        end = candidate + self._span() if self.end is not None else None
        return Occurrence(start=candidate, end=end, instance_date=candidate)

    def _intersects(self, occurrence: Occurrence) -> bool:
        end = occurrence.end if occurrence.end is not None else occurrence.start
        return occurrence.start <= self.window_end and end >= self.window_start


def expand(
    rule: "RecurrenceRule | str | None",
    start: datetime,
    end: Optional[datetime],
    window_start: datetime,
    window_end: datetime,
    *,
    all_day: bool = False,
    until: Optional[datetime] = None,
) -> Expansion:
    if isinstance(rule, str):
        rule = parse_rrule(rule)
    return Expansion(
        rule,
        start,
        end,
        window_start,
        window_end,
        all_day=all_day,
        until=until,
    )


def next_occurrence(
    text: Optional[str], anchor: datetime, after: datetime
) -> Optional[datetime]:
    """First occurrence start strictly after `after`, or None."""
    anchor = as_utc(anchor)
    after = as_utc(after)
    rule = parse_rrule(text)
    if rule is None:
        return anchor if anchor > after else None

    horizon = after + relativedelta(years=rule.interval + 1)
    for candidate in _iter_starts(rule, anchor, after, horizon):
        if candidate > after:
            return candidate
    return None


def _rule_body(text: str) -> str:
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    for line in lines:
        if line.upper().startswith("RRULE:"):
            return line[len("RRULE:"):]
    if len(lines) == 1 and ":" not in lines[0]:
        return lines[0]
    return ""


def _unrecognized(text: str) -> None:
    logger.debug("Treating unrecognized recurrence rule as non-repeating: %r", text)
    return None


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise ValueError(f"expected a positive integer, got {value!r}")
    return number


def _parse_until(value: str) -> datetime:
    match = _UNTIL_PATTERN.match(value)
    if not match:
        raise ValueError(f"bad UNTIL value {value!r}")
    year, month, day, hour, minute, second = match.groups()
    if hour is None:
        # A date-only UNTIL includes the whole day.
        return datetime(int(year), int(month), int(day), 23, 59, 59, tzinfo=timezone.utc)
    return datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second),
        tzinfo=timezone.utc,
    )


def _build_rule(fields: dict[str, str]) -> RecurrenceRule:
    unknown = set(fields) - _SUPPORTED_KEYS
    if unknown:
        raise ValueError(f"unsupported rule parts: {sorted(unknown)}")

    freq = Frequency(fields.get("FREQ", ""))
    interval = _positive_int(fields.get("INTERVAL", "1"))

    by_day: tuple[int, ...] = ()
    if "BYDAY" in fields:
        if freq not in (Frequency.DAILY, Frequency.WEEKLY):
            raise ValueError("BYDAY is only supported for DAILY and WEEKLY rules")
        codes = [code.strip() for code in fields["BYDAY"].split(",") if code.strip()]
        if not codes:
            raise ValueError("empty BYDAY")
        by_day = tuple(sorted({WEEKDAY_CODES.index(code) for code in codes}))

    by_month_day = None
    if "BYMONTHDAY" in fields:
        if freq != Frequency.MONTHLY:
            raise ValueError("BYMONTHDAY is only supported for MONTHLY rules")
        by_month_day = int(fields["BYMONTHDAY"])
        if not 1 <= by_month_day <= 31:
            raise ValueError(f"BYMONTHDAY out of range: {by_month_day}")

    count = _positive_int(fields["COUNT"]) if "COUNT" in fields else None
    until = _parse_until(fields["UNTIL"]) if "UNTIL" in fields else None

    return RecurrenceRule(
        freq=freq,
        interval=interval,
        by_day=by_day,
        by_month_day=by_month_day,
        count=count,
        until=until,
    )


def _join_words(words: list[str]) -> str:
    if len(words) == 1:
        return words[0]
    return ", ".join(words[:-1]) + " and " + words[-1]


def _daily(
    rule: RecurrenceRule, anchor: datetime, not_before: datetime, horizon: datetime
) -> Iterator[datetime]:
    step = timedelta(days=rule.interval)
    k = 0
    if not_before > anchor:
        k = max(0, (not_before - anchor) // step - 1)
    while True:
        candidate = anchor + k * step
        if candidate > horizon:
            return
        k += 1
        if rule.by_day and candidate.weekday() not in rule.by_day:
            continue
        yield candidate


def _weekly(
    rule: RecurrenceRule, anchor: datetime, not_before: datetime, horizon: datetime
) -> Iterator[datetime]:
    days = rule.by_day or (anchor.weekday(),)
    step = timedelta(weeks=rule.interval)
    week_start = anchor - timedelta(days=anchor.weekday())
    period = 0
    if not_before > anchor:
        period = max(0, (not_before - week_start) // step - 1)
    while True:
        base = week_start + period * step
        if base > horizon:
            return
        for day in days:
            candidate = base + timedelta(days=day)
            if candidate < anchor:
                continue
            if candidate > horizon:
                return
            yield candidate
        period += 1


def _months_between(earlier: datetime, later: datetime) -> int:
    return (later.year - earlier.year) * 12 + later.month - earlier.month


def _monthly(
    rule: RecurrenceRule, anchor: datetime, not_before: datetime, horizon: datetime
) -> Iterator[datetime]:
    day = rule.by_month_day or anchor.day
    period = 0
    if not_before > anchor:
        period = max(0, _months_between(anchor, not_before) // rule.interval - 1)
    while True:
        # relativedelta clamps `day` to the length of the target month.
        candidate = anchor + relativedelta(months=period * rule.interval, day=day)
        period += 1
        if candidate > horizon:
            return
        if candidate < anchor:
            continue
        yield candidate


def _yearly(
    rule: RecurrenceRule, anchor: datetime, not_before: datetime, horizon: datetime
) -> Iterator[datetime]:
    period = 0
    if not_before > anchor:
        period = max(0, (not_before.year - anchor.year) // rule.interval - 1)
    while True:
        # Feb 29 anchors land on Feb 28 in common years.
        candidate = anchor + relativedelta(years=period * rule.interval)
        if candidate > horizon:
            return
        period += 1
        yield candidate


_CADENCES: dict[
    Frequency,
    Callable[[RecurrenceRule, datetime, datetime, datetime], Iterator[datetime]],
] = {
    Frequency.DAILY: _daily,
    Frequency.WEEKLY: _weekly,
    Frequency.MONTHLY: _monthly,
    Frequency.YEARLY: _yearly,
}


def _iter_starts(
    rule: RecurrenceRule, anchor: datetime, not_before: datetime, horizon: datetime
) -> Iterator[datetime]:
    """Occurrence starts in ascending order, up to `horizon` inclusive."""
    # COUNT is positional from the anchor, so counted rules cannot skip ahead.
    if rule.count is not None:
        not_before = anchor
    emitted = 0
    for candidate in _CADENCES[rule.freq](rule, anchor, not_before, horizon):
        if rule.until is not None and candidate > rule.until:
            return
        yield candidate
        emitted += 1
        if rule.count is not None and emitted >= rule.count:
            return
