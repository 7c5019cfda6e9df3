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

import unittest
from datetime import datetime, timedelta, timezone

from homebase_shared.recurrence import Occurrence
from homebase_shared.series import (
    SeriesError,
    is_excepted,
    matches_instance,
    plan_delete,
    plan_update,
    series_state,
)
from homebase_shared.types import SeriesMode, SeriesState

WEEKLY = "FREQ=WEEKLY;BYDAY=MO"
START = datetime(2025, 1, 6, 9, tzinfo=timezone.utc)
INSTANCE = datetime(2025, 1, 20, 9, tzinfo=timezone.utc)


class PlanDeleteTest(unittest.TestCase):

    def test_all_deletes_series(self):
        plan = plan_delete(WEEKLY, START, "all")
        self.assertEqual(plan.state, SeriesState.DELETED)

    def test_non_recurring_event_is_always_deleted(self):
        for mode in SeriesMode:
            with self.subTest(mode=mode):
                self.assertEqual(plan_delete(None, START, mode).state, SeriesState.DELETED)

    def test_this_records_exception(self):
        plan = plan_delete(WEEKLY, START, SeriesMode.THIS, INSTANCE)
        self.assertEqual(plan.state, SeriesState.EXCEPTION_DELETED)
        self.assertEqual(plan.exception_date, INSTANCE)
        self.assertIsNone(plan.series_until)

    def test_instance_required_for_partial_modes(self):
        for mode in (SeriesMode.THIS, SeriesMode.THIS_AND_FUTURE):
            with self.subTest(mode=mode):
                with self.assertRaises(SeriesError):
                    plan_delete(WEEKLY, START, mode)

    def test_this_and_future_truncates_before_instance(self):
        plan = plan_delete(WEEKLY, START, "this_and_future", INSTANCE)
        self.assertEqual(plan.state, SeriesState.TRUNCATED)
        self.assertEqual(plan.series_until, INSTANCE - timedelta(seconds=1))

    def test_truncating_at_first_instance_deletes(self):
        plan = plan_delete(WEEKLY, START, "this_and_future", START)
        self.assertEqual(plan.state, SeriesState.DELETED)

    def test_truncation_never_extends_series(self):
        earlier = datetime(2025, 1, 10, tzinfo=timezone.utc)
        plan = plan_delete(WEEKLY, START, "this_and_future", INSTANCE, series_until=earlier)
        self.assertEqual(plan.series_until, earlier)

    def test_unknown_mode_is_rejected(self):
        with self.assertRaises(ValueError):
            plan_delete(WEEKLY, START, "some")


class PlanUpdateTest(unittest.TestCase):

    def test_all_and_non_recurring_edit_in_place(self):
        self.assertEqual(plan_update(WEEKLY, START, "all").mode, SeriesMode.ALL)
        self.assertEqual(plan_update(None, START, "this").mode, SeriesMode.ALL)

    def test_this_splits_one_instance(self):
        plan = plan_update(WEEKLY, START, "this", INSTANCE)
        self.assertEqual(plan.mode, SeriesMode.THIS)
        self.assertEqual(plan.exception_date, INSTANCE)
        self.assertEqual(plan.split_at, INSTANCE)

    def test_this_and_future_splits_series(self):
        plan = plan_update(WEEKLY, START, "this_and_future", INSTANCE)
        self.assertEqual(plan.mode, SeriesMode.THIS_AND_FUTURE)
        self.assertEqual(plan.series_until, INSTANCE - timedelta(seconds=1))
        self.assertEqual(plan.split_at, INSTANCE)

    def test_this_and_future_from_start_edits_everything(self):
        self.assertEqual(
            plan_update(WEEKLY, START, "this_and_future", START).mode, SeriesMode.ALL
        )

    def test_missing_instance(self):
        with self.assertRaises(SeriesError):
            plan_update(WEEKLY, START, "this")


class SeriesStateTest(unittest.TestCase):

    def test_states(self):
        self.assertEqual(series_state(WEEKLY, None, []), SeriesState.ACTIVE)
        self.assertEqual(series_state(WEEKLY, None, [INSTANCE]), SeriesState.EXCEPTION_DELETED)
        self.assertEqual(series_state(WEEKLY, INSTANCE, [INSTANCE]), SeriesState.TRUNCATED)
        self.assertEqual(series_state(WEEKLY, None, [], deleted=True), SeriesState.DELETED)
        self.assertEqual(series_state(None, INSTANCE, []), SeriesState.ACTIVE)


class MatchesInstanceTest(unittest.TestCase):

    def test_timed_occurrence_matches_exact_instant(self):
        occurrence = Occurrence(start=INSTANCE, end=None, instance_date=INSTANCE)
        self.assertTrue(matches_instance(occurrence, INSTANCE))
        self.assertFalse(matches_instance(occurrence, INSTANCE + timedelta(minutes=1)))

    def test_all_day_occurrence_matches_by_date(self):
        day = datetime(2025, 1, 20, tzinfo=timezone.utc)
        occurrence = Occurrence(
            start=day, end=day + timedelta(days=1), all_day=True, instance_date=day
        )
        self.assertTrue(matches_instance(occurrence, datetime(2025, 1, 20, 15)))
        self.assertFalse(matches_instance(occurrence, datetime(2025, 1, 21)))

    def test_is_excepted(self):
        occurrence = Occurrence(start=INSTANCE, end=None, instance_date=INSTANCE)
        self.assertTrue(is_excepted(occurrence, [START, INSTANCE]))
        self.assertFalse(is_excepted(occurrence, [START]))
        self.assertFalse(is_excepted(occurrence, []))


if __name__ == "__main__":
    unittest.main()
