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
Partial deletion and editing of recurring event series.

A series is ACTIVE until one instance is removed (EXCEPTION_DELETED), its
tail is cut off (TRUNCATED), or it is removed entirely (DELETED, terminal).
The functions here only decide what to record; storage applies the plan.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from homebase_shared.recurrence import Occurrence, as_utc, is_recurring
from homebase_shared.types import SeriesMode, SeriesState

# A truncated series ends just before the instance it was cut at.
TRUNCATION_GAP = timedelta(seconds=1)


class SeriesError(ValueError):
    """Raised when a series operation is missing the instance it targets."""


@dataclass(frozen=True)
class DeletePlan:
    state: SeriesState
    exception_date: Optional[datetime] = None
    series_until: Optional[datetime] = None


@dataclass(frozen=True)
class UpdatePlan:
    mode: SeriesMode
    exception_date: Optional[datetime] = None
    series_until: Optional[datetime] = None
    split_at: Optional[datetime] = None


def _require_instance(mode: SeriesMode, instance_date: Optional[datetime]) -> datetime:
    if instance_date is None:
        raise SeriesError(f"instance_date is required for mode '{mode.value}'")
    return as_utc(instance_date)


def plan_delete(
    rrule: Optional[str],
    series_start: datetime,
    mode: "SeriesMode | str",
    instance_date: Optional[datetime] = None,
    series_until: Optional[datetime] = None,
) -> DeletePlan:
    mode = SeriesMode(mode)
    if mode == SeriesMode.ALL or not is_recurring(rrule):
        return DeletePlan(state=SeriesState.DELETED)

    instance_date = _require_instance(mode, instance_date)
    if mode == SeriesMode.THIS:
        return DeletePlan(
            state=SeriesState.EXCEPTION_DELETED, exception_date=instance_date
        )

    if instance_date <= as_utc(series_start):
        return DeletePlan(state=SeriesState.DELETED)
    new_until = instance_date - TRUNCATION_GAP
    # Truncation only ever shortens a series.
    if series_until is not None and as_utc(series_until) < new_until:
        new_until = as_utc(series_until)
    return DeletePlan(state=SeriesState.TRUNCATED, series_until=new_until)


def plan_update(
    rrule: Optional[str],
    series_start: datetime,
    mode: "SeriesMode | str",
    instance_date: Optional[datetime] = None,
) -> UpdatePlan:
    mode = SeriesMode(mode)
    if mode == SeriesMode.ALL or not is_recurring(rrule):
        return UpdatePlan(mode=SeriesMode.ALL)

    instance_date = _require_instance(mode, instance_date)
    if mode == SeriesMode.THIS:
        return UpdatePlan(
            mode=SeriesMode.THIS, exception_date=instance_date, split_at=instance_date
        )

    if instance_date <= as_utc(series_start):
        return UpdatePlan(mode=SeriesMode.ALL)
    return UpdatePlan(
        mode=SeriesMode.THIS_AND_FUTURE,
        series_until=instance_date - TRUNCATION_GAP,
        split_at=instance_date,
    )


def series_state(
    rrule: Optional[str],
    series_until: Optional[datetime],
    exception_dates: Iterable[datetime],
    deleted: bool = False,
) -> SeriesState:
    if deleted:
        return SeriesState.DELETED
    if series_until is not None and is_recurring(rrule):
        return SeriesState.TRUNCATED
    if any(True for _ in exception_dates):
        return SeriesState.EXCEPTION_DELETED
    return SeriesState.ACTIVE


def matches_instance(occurrence: Occurrence, instance_date: datetime) -> bool:
    instance_date = as_utc(instance_date)
    generated = occurrence.instance_date or occurrence.start
    if occurrence.all_day:
        return generated.date() == instance_date.date()
    return generated == instance_date


def is_excepted(occurrence: Occurrence, exception_dates: Iterable[datetime]) -> bool:
    return any(matches_instance(occurrence, d) for d in exception_dates)
