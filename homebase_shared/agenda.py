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
Agenda aggregation: one time-ordered list built from every household source.

Each source expands its own occurrences for the window; the streams are
combined with a k-way merge on (timestamp, type priority, source id), so the
output is deterministic for identical inputs.
"""

import heapq
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Iterator, Optional, Protocol

from homebase_shared.dates import next_bill_due_date, start_of_day
from homebase_shared.recurrence import (
    Frequency,
    Occurrence,
    RecurrenceRule,
    expand,
    next_occurrence,
    parse_rrule,
)
from homebase_shared.series import is_excepted
from homebase_shared.types import AGENDA_TYPE_PRIORITY, AgendaItemType, TaskStatus

YEARLY = RecurrenceRule(freq=Frequency.YEARLY)


@dataclass(frozen=True)
class AgendaItem:
    id: str
    type: AgendaItemType
    title: str
    timestamp: datetime
    end: Optional[datetime]
    all_day: bool
    source_id: str
    detail: dict = field(default_factory=dict, compare=False, hash=False)

    @property
    def sort_key(self) -> tuple[datetime, int, str]:
        return (self.timestamp, AGENDA_TYPE_PRIORITY[self.type], self.source_id)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "timestamp": self.timestamp.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "all_day": self.all_day,
            "source_id": self.source_id,
            "detail": self.detail,
        }


def sort_key(item: AgendaItem) -> tuple[datetime, int, str]:
    return item.sort_key


class AgendaSource(Protocol):
    """Anything that can list its agenda items inside a window, in key order."""

    def occurrences(
        self, window_start: datetime, window_end: datetime
    ) -> Iterator[AgendaItem]:
        ...


def _to_item(
    item_type: AgendaItemType,
    source_id: str,
    title: str,
    occurrence: Occurrence,
    detail: dict,
) -> AgendaItem:
    timestamp = occurrence.start.astimezone(timezone.utc)
    end = occurrence.end.astimezone(timezone.utc) if occurrence.end else None
    return AgendaItem(
        id=f"{item_type.value}:{source_id}:{timestamp.isoformat()}",
        type=item_type,
        title=title,
        timestamp=timestamp,
        end=end,
        all_day=occurrence.all_day,
        source_id=source_id,
        detail=detail,
    )


@dataclass
class EventSource:
    event_id: str
    title: str
    start_at: datetime
    end_at: Optional[datetime] = None
    all_day: bool = False
    rrule: Optional[str] = None
    series_until: Optional[datetime] = None
    exception_dates: tuple[datetime, ...] = ()
    category: str = "other"
    color: Optional[str] = None
    location: Optional[str] = None

    def occurrences(
        self, window_start: datetime, window_end: datetime
    ) -> Iterator[AgendaItem]:
        rule = parse_rrule(self.rrule)
        expansion = expand(
            rule,
            self.start_at,
            self.end_at,
            window_start,
            window_end,
            all_day=self.all_day,
            until=self.series_until,
        )
        for occurrence in expansion:
            if is_excepted(occurrence, self.exception_dates):
                continue
            yield _to_item(
                AgendaItemType.EVENT,
                self.event_id,
                self.title,
                occurrence,
                {
                    "category": self.category,
                    "color": self.color,
                    "location": self.location,
                    "is_recurring_instance": rule is not None,
                    "instance_date": occurrence.instance_date.isoformat()
                    if occurrence.instance_date
                    else None,
                },
            )


@dataclass
class BillSource:
    bill_id: str
    name: str
    due_day: int
    rrule: Optional[str]
    created_on: date
    amount: str = "0"
    currency: str = "USD"
    auto_pay: bool = False
    paid_dates: frozenset[date] = frozenset()

    def _rule(self) -> Optional[RecurrenceRule]:
        rule = parse_rrule(self.rrule)
        if (
            rule is not None
            and rule.freq == Frequency.MONTHLY
            and rule.by_month_day is None
        ):
            # Keep the intended due day; the anchor itself may already be clamped.
            rule = replace(rule, by_month_day=self.due_day)
        return rule

    def _anchor(self) -> datetime:
        return start_of_day(next_bill_due_date(self.due_day, self.created_on))

    def next_due(self, today: date) -> Optional[date]:
        """First due date on or after `today`, or None once the schedule has ended."""
        rule = self._rule()
        anchor = self._anchor()
        if rule is None:
            return anchor.date() if anchor.date() >= today else None
        found = next_occurrence(
            rule.to_rrule(), anchor, start_of_day(today) - timedelta(seconds=1)
        )
        return found.date() if found else None

    def occurrences(
        self, window_start: datetime, window_end: datetime
    ) -> Iterator[AgendaItem]:
        for occurrence in expand(
            self._rule(), self._anchor(), None, window_start, window_end, all_day=True
        ):
            due_date = occurrence.start.date()
            yield _to_item(
                AgendaItemType.BILL,
                self.bill_id,
                self.name,
                occurrence,
                {
                    "amount": self.amount,
                    "currency": self.currency,
                    "auto_pay": self.auto_pay,
                    "due_date": due_date.isoformat(),
                    "paid": due_date in self.paid_dates,
                },
            )


@dataclass
class TaskSource:
    task_id: str
    title: str
    due_at: Optional[datetime]
    rrule: Optional[str] = None
    status: str = TaskStatus.TODO.value
    priority: str = "medium"

    def occurrences(
        self, window_start: datetime, window_end: datetime
    ) -> Iterator[AgendaItem]:
        if self.due_at is None:
            return
        if self.status in (TaskStatus.DONE.value, TaskStatus.CANCELLED.value):
            return
        for occurrence in expand(self.rrule, self.due_at, None, window_start, window_end):
            yield _to_item(
                AgendaItemType.TASK,
                self.task_id,
                self.title,
                occurrence,
                {"status": self.status, "priority": self.priority},
            )


@dataclass
class BirthdaySource:
    """Yearly birthday or anniversary of a contact."""

    contact_id: str
    name: str
    day: date
    kind: AgendaItemType = AgendaItemType.BIRTHDAY

    def occurrences(
        self, window_start: datetime, window_end: datetime
    ) -> Iterator[AgendaItem]:
        label = "anniversary" if self.kind == AgendaItemType.ANNIVERSARY else "birthday"
        for occurrence in expand(
            YEARLY, start_of_day(self.day), None, window_start, window_end, all_day=True
        ):
            yield _to_item(
                self.kind,
                self.contact_id,
                f"{self.name}'s {label}",
                occurrence,
                {"original_date": self.day.isoformat()},
            )


def aggregate(
    sources: Iterable[AgendaSource], window_start: datetime, window_end: datetime
) -> Iterator[AgendaItem]:
    """Lazily merge every source's occurrences into one ordered stream."""
    streams = [source.occurrences(window_start, window_end) for source in sources]
    return heapq.merge(*streams, key=sort_key)


def build_agenda(
    window_start: datetime,
    window_end: datetime,
    *,
    events: Iterable[EventSource] = (),
    bills: Iterable[BillSource] = (),
    tasks: Iterable[TaskSource] = (),
    birthdays: Iterable[BirthdaySource] = (),
    include_bills: bool = True,
    include_tasks: bool = True,
    include_birthdays: bool = True,
) -> list[AgendaItem]:
    sources: list[AgendaSource] = list(events)
    if include_bills:
        sources.extend(bills)
    if include_tasks:
        sources.extend(tasks)
    if include_birthdays:
        sources.extend(birthdays)
    return list(aggregate(sources, window_start, window_end))
