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

from homebase_shared.recurrence import (
    Frequency,
    build_rrule,
    continue_rrule,
    describe_rrule,
    expand,
    is_recurring,
    next_occurrence,
    parse_rrule,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def starts(expansion) -> list[datetime]:
    return [o.start for o in expansion]


class ParseRruleTest(unittest.TestCase):

    def test_weekly_byday_is_order_insensitive(self):
        rule = parse_rrule("RRULE:FREQ=WEEKLY;BYDAY=WE,MO,WE")
        self.assertEqual(rule.freq, Frequency.WEEKLY)
        self.assertEqual(rule.by_day, (0, 2))
        self.assertEqual(rule.interval, 1)

    def test_keys_are_case_insensitive(self):
        rule = parse_rrule("freq=daily;interval=3")
        self.assertEqual(rule.freq, Frequency.DAILY)
        self.assertEqual(rule.interval, 3)

    def test_multiline_text_uses_rrule_line(self):
        rule = parse_rrule("DTSTART:20250101T090000Z\nRRULE:FREQ=DAILY;COUNT=3")
        self.assertEqual(rule.freq, Frequency.DAILY)
        self.assertEqual(rule.count, 3)

    def test_date_only_until_covers_whole_day(self):
        rule = parse_rrule("FREQ=DAILY;UNTIL=20250103")
        self.assertEqual(rule.until, utc(2025, 1, 3, 23, 59, 59))

    def test_unusable_text_does_not_repeat(self):
        for text in (
            None,
            "",
            "   ",
            "garbage",
            "FREQ=HOURLY",
            "FREQ=MONTHLY;BYSETPOS=1",
            "FREQ=DAILY;INTERVAL=0",
            "FREQ=DAILY;INTERVAL=two",
            "FREQ=MONTHLY;BYDAY=MO",
            "FREQ=MONTHLY;BYMONTHDAY=32",
            "FREQ=WEEKLY;BYDAY=XX",
            "INTERVAL=2",
        ):
            with self.subTest(text=text):
                self.assertIsNone(parse_rrule(text))
                self.assertFalse(is_recurring(text))

    def test_to_rrule_is_canonical(self):
        rule = parse_rrule("BYDAY=FR,MO;FREQ=WEEKLY;INTERVAL=2;WKST=SU")
        self.assertEqual(rule.to_rrule(), "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,FR")


class BuildAndDescribeTest(unittest.TestCase):

    def test_build_rrule(self):
        self.assertEqual(build_rrule("weekly", by_weekday=[2, 0]), "FREQ=WEEKLY;BYDAY=MO,WE")
        self.assertEqual(
            build_rrule("DAILY", interval=2, count=5), "FREQ=DAILY;INTERVAL=2;COUNT=5"
        )
        self.assertEqual(
            build_rrule("MONTHLY", until=utc(2025, 6, 30, 12, 0, 0)),
            "FREQ=MONTHLY;UNTIL=20250630T120000Z",
        )

        self.assertEqual(
            build_rrule("MONTHLY", by_month_day=31, count=3),
            "FREQ=MONTHLY;BYMONTHDAY=31;COUNT=3",
        )

    def test_build_rrule_rejects_bad_input(self):
        with self.assertRaises(ValueError):
            build_rrule("DAILY", interval=0)
        with self.assertRaises(ValueError):
            build_rrule("WEEKLY", by_weekday=[7])
        with self.assertRaises(ValueError):
            build_rrule("HOURLY")

    def test_continue_rrule_keeps_remaining_count(self):
        anchor = utc(2025, 1, 6, 9)
        self.assertEqual(
            continue_rrule("FREQ=WEEKLY;BYDAY=MO;COUNT=4", anchor, utc(2025, 1, 20, 9)),
            "FREQ=WEEKLY;BYDAY=MO;COUNT=2",
        )
        self.assertEqual(
            continue_rrule("FREQ=WEEKLY;BYDAY=MO;COUNT=4", anchor, anchor),
            "FREQ=WEEKLY;BYDAY=MO;COUNT=4",
        )
        self.assertEqual(
            continue_rrule("FREQ=MONTHLY;BYMONTHDAY=31;COUNT=3", utc(2025, 1, 31), utc(2025, 2, 28)),
            "FREQ=MONTHLY;BYMONTHDAY=31;COUNT=2",
        )

    def test_continue_rrule_without_count_is_unchanged(self):
        anchor = utc(2025, 1, 6, 9)
        self.assertEqual(
            continue_rrule("FREQ=WEEKLY;BYDAY=MO", anchor, utc(2025, 1, 20, 9)),
            "FREQ=WEEKLY;BYDAY=MO",
        )
        self.assertIsNone(continue_rrule(None, anchor, utc(2025, 1, 20, 9)))

    def test_describe_rrule(self):
        self.assertEqual(describe_rrule(None), "Does not repeat")
        self.assertEqual(describe_rrule("nonsense"), "Custom recurrence")
        self.assertEqual(describe_rrule("FREQ=DAILY"), "Every day")
        self.assertEqual(
            describe_rrule("FREQ=WEEKLY;BYDAY=MO,WE"),
            "Every week on Monday and Wednesday",
        )
        self.assertEqual(
            describe_rrule("FREQ=WEEKLY;BYDAY=MO,TU,WE,TH,FR"), "Every weekday"
        )
        self.assertEqual(
            describe_rrule("FREQ=MONTHLY;INTERVAL=2;COUNT=5"),
            "Every 2 months for 5 times",
        )
        self.assertEqual(
            describe_rrule("FREQ=MONTHLY;BYMONTHDAY=1;UNTIL=20250301"),
            "Every month on day 1 until March 1, 2025",
        )


class ExpandTest(unittest.TestCase):

    def test_single_event_inside_and_outside_window(self):
        start = utc(2025, 1, 10, 9)
        end = utc(2025, 1, 10, 10)
        inside = list(expand(None, start, end, utc(2025, 1, 1), utc(2025, 1, 31)))
        self.assertEqual(len(inside), 1)
        self.assertEqual(inside[0].start, start)
        self.assertEqual(inside[0].end, end)
        self.assertEqual(list(expand(None, start, end, utc(2025, 2, 1), utc(2025, 2, 28))), [])

    def test_unrecognized_rule_yields_only_the_anchor(self):
        start = utc(2025, 1, 10, 9)
        result = starts(expand("FREQ=SOMETIMES", start, None, utc(2025, 1, 1), utc(2025, 12, 31)))
        self.assertEqual(result, [start])

    def test_daily_interval(self):
        result = starts(
            expand(
                "FREQ=DAILY;INTERVAL=2",
                utc(2025, 1, 1, 9),
                None,
                utc(2025, 1, 1),
                utc(2025, 1, 7, 23, 59),
            )
        )
        self.assertEqual(
            result,
            [utc(2025, 1, 1, 9), utc(2025, 1, 3, 9), utc(2025, 1, 5, 9), utc(2025, 1, 7, 9)],
        )

    def test_weekly_byday(self):
        # 2025-01-01 is a Wednesday.
        result = starts(
            expand(
                "FREQ=WEEKLY;BYDAY=MO,WE",
                utc(2025, 1, 1, 9),
                utc(2025, 1, 1, 10),
                utc(2025, 1, 1),
                utc(2025, 1, 14, 23, 59),
            )
        )
        self.assertEqual(
            result,
            [utc(2025, 1, 1, 9), utc(2025, 1, 6, 9), utc(2025, 1, 8, 9), utc(2025, 1, 13, 9)],
        )

    def test_weekly_interval_without_byday_uses_anchor_weekday(self):
        result = starts(
            expand(
                "FREQ=WEEKLY;INTERVAL=2",
                utc(2025, 1, 6, 18),
                None,
                utc(2025, 1, 1),
                utc(2025, 2, 2),
            )
        )
        self.assertEqual(result, [utc(2025, 1, 6, 18), utc(2025, 1, 20, 18)])

    def test_monthly_day_31_clamps_to_month_end(self):
        anchor = utc(2025, 1, 31, 10)
        april = starts(expand("FREQ=MONTHLY", anchor, None, utc(2025, 4, 1), utc(2025, 4, 30, 23, 59)))
        self.assertEqual(april, [utc(2025, 4, 30, 10)])

        first_half = starts(expand("FREQ=MONTHLY", anchor, None, utc(2025, 1, 1), utc(2025, 5, 31, 23, 59)))
        self.assertEqual(
            first_half,
            [
                utc(2025, 1, 31, 10),
                utc(2025, 2, 28, 10),
                utc(2025, 3, 31, 10),
                utc(2025, 4, 30, 10),
                utc(2025, 5, 31, 10),
            ],
        )

    def test_yearly_feb_29(self):
        anchor = utc(2024, 2, 29, 8)
        self.assertEqual(
            starts(expand("FREQ=YEARLY", anchor, None, utc(2025, 1, 1), utc(2025, 12, 31))),
            [utc(2025, 2, 28, 8)],
        )
        self.assertEqual(
            starts(expand("FREQ=YEARLY", anchor, None, utc(2028, 1, 1), utc(2028, 12, 31))),
            [utc(2028, 2, 29, 8)],
        )

    def test_duration_is_preserved(self):
        result = list(
            expand(
                "FREQ=DAILY",
                utc(2025, 3, 1, 9),
                utc(2025, 3, 1, 10, 30),
                utc(2025, 3, 1),
                utc(2025, 3, 3, 23),
            )
        )
        self.assertEqual(len(result), 3)
        for occurrence in result:
            self.assertEqual(occurrence.end - occurrence.start, timedelta(hours=1, minutes=30))

    def test_occurrence_overlapping_window_start_is_included(self):
        result = starts(
            expand(
                "FREQ=DAILY",
                utc(2025, 1, 1, 23),
                utc(2025, 1, 2, 1),
                utc(2025, 1, 3, 0, 30),
                utc(2025, 1, 3, 12),
            )
        )
        self.assertEqual(result, [utc(2025, 1, 2, 23)])

    def test_every_occurrence_intersects_window(self):
        window_start = utc(2030, 1, 1)
        window_end = utc(2030, 3, 1)
        for text in (
            "FREQ=DAILY",
            "FREQ=DAILY;INTERVAL=3",
            "FREQ=WEEKLY;BYDAY=TU,SA",
            "FREQ=WEEKLY;INTERVAL=3",
            "FREQ=MONTHLY",
            "FREQ=MONTHLY;BYMONTHDAY=30",
            "FREQ=YEARLY",
        ):
            with self.subTest(rule=text):
                result = list(
                    expand(
                        text,
                        utc(2020, 1, 31, 22),
                        utc(2020, 2, 1, 2),
                        window_start,
                        window_end,
                    )
                )
                for occurrence in result:
                    self.assertLessEqual(occurrence.start, window_end)
                    self.assertGreaterEqual(occurrence.end, window_start)
                self.assertEqual(
                    [o.start for o in result], sorted(o.start for o in result)
                )

    def test_far_future_window_uses_natural_cadence(self):
        result = starts(
            expand(
                "FREQ=DAILY",
                utc(2020, 1, 1, 9),
                None,
                utc(2030, 1, 1),
                utc(2030, 1, 3, 23, 59, 59),
            )
        )
        self.assertEqual(result, [utc(2030, 1, 1, 9), utc(2030, 1, 2, 9), utc(2030, 1, 3, 9)])

    def test_count_is_counted_from_the_anchor(self):
        result = starts(
            expand("FREQ=DAILY;COUNT=3", utc(2025, 1, 1, 9), None, utc(2025, 1, 2), utc(2025, 1, 10))
        )
        self.assertEqual(result, [utc(2025, 1, 2, 9), utc(2025, 1, 3, 9)])

    def test_until_is_inclusive(self):
        result = starts(
            expand("FREQ=DAILY;UNTIL=20250103", utc(2025, 1, 1, 9), None, utc(2025, 1, 1), utc(2025, 1, 10))
        )
        self.assertEqual(result, [utc(2025, 1, 1, 9), utc(2025, 1, 2, 9), utc(2025, 1, 3, 9)])

    def test_series_until_narrows_the_rule(self):
        result = starts(
            expand(
                "FREQ=DAILY;UNTIL=20250110",
                utc(2025, 1, 1, 9),
                None,
                utc(2025, 1, 1),
                utc(2025, 1, 31),
                until=utc(2025, 1, 2, 23, 59),
            )
        )
        self.assertEqual(result, [utc(2025, 1, 1, 9), utc(2025, 1, 2, 9)])

    def test_all_day_occurrence_on_window_first_day(self):
        result = list(
            expand(
                "FREQ=DAILY",
                utc(2025, 1, 1),
                None,
                utc(2025, 1, 3, 12),
                utc(2025, 1, 3, 13),
                all_day=True,
            )
        )
        self.assertEqual(len(result), 1)
        self.assertTrue(result[0].all_day)
        self.assertEqual(result[0].start, utc(2025, 1, 3))
        self.assertEqual(result[0].end, utc(2025, 1, 4))

    def test_expansion_is_restartable(self):
        expansion = expand("FREQ=WEEKLY;BYDAY=MO,FR", utc(2025, 1, 6, 7), None, utc(2025, 1, 1), utc(2025, 3, 1))
        first = list(expansion)
        self.assertEqual(first, list(expansion))
        self.assertEqual(len(first), 16)

    def test_naive_datetimes_are_utc(self):
        result = starts(
            expand("FREQ=DAILY", datetime(2025, 1, 1, 9), None, datetime(2025, 1, 2), datetime(2025, 1, 2, 23))
        )
        self.assertEqual(result, [utc(2025, 1, 2, 9)])

    def test_reversed_window_is_empty(self):
        self.assertEqual(
            list(expand("FREQ=DAILY", utc(2025, 1, 1), None, utc(2025, 2, 1), utc(2025, 1, 1))),
            [],
        )


class NextOccurrenceTest(unittest.TestCase):

    def test_next_occurrence_is_strictly_after(self):
        anchor = utc(2025, 1, 31, 9)
        self.assertEqual(
            next_occurrence("FREQ=MONTHLY", anchor, utc(2025, 2, 1)), utc(2025, 2, 28, 9)
        )
        self.assertEqual(
            next_occurrence("FREQ=MONTHLY", anchor, utc(2025, 2, 28, 9)), utc(2025, 3, 31, 9)
        )

    def test_finished_series_has_no_next(self):
        self.assertIsNone(
            next_occurrence("FREQ=DAILY;COUNT=2", utc(2025, 1, 1), utc(2025, 1, 5))
        )

    def test_non_recurring(self):
        anchor = utc(2025, 1, 1)
        self.assertEqual(next_occurrence(None, anchor, utc(2024, 12, 31)), anchor)
        self.assertIsNone(next_occurrence(None, anchor, utc(2025, 1, 1)))


if __name__ == "__main__":
    unittest.main()
