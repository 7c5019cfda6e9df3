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

import calendar
from datetime import date, datetime, time, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta


def clamp_day(year: int, month: int, day: int) -> date:
    """The given day of the month, or the month's last day if it is shorter."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def next_birthday(birthday: Optional[date], today: date) -> Optional[date]:
    """Next anniversary of `birthday` on or after `today`."""
    if birthday is None:
        return None
    this_year = birthday + relativedelta(years=today.year - birthday.year)
    if this_year >= today:
        return this_year
    return birthday + relativedelta(years=today.year + 1 - birthday.year)


def days_until_birthday(birthday: Optional[date], today: date) -> Optional[int]:
    upcoming = next_birthday(birthday, today)
    if upcoming is None:
        return None
    return (upcoming - today).days


def next_bill_due_date(due_day: int, today: date) -> date:
    current = clamp_day(today.year, today.month, due_day)
    if current >= today:
        return current
    following = today + relativedelta(months=1)
    return clamp_day(following.year, following.month, due_day)
