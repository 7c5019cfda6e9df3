import unittest
from datetime import date, datetime, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient

from homebase.app import create_app
from homebase.db import (
    BillRecord,
    ExternalEventRecord,
    InMemoryDbClient,
    MemberRecord,
    NotificationRecord,
)
from homebase.dependencies import Resources
from homebase.integrations import (
    AuthUser,
    InMemoryAuthProvider,
    InMemoryCalendarProvider,
    InMemoryFinancialProvider,
)

HOUSEHOLD = "house-1"
USER = "user-1"


def _dt(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class HomebaseApiTestCase(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.auth = InMemoryAuthProvider()
        self.resources = Resources(
            db=self.db,
            auth=self.auth,
            calendars={
                "google": InMemoryCalendarProvider(),
                "microsoft": InMemoryCalendarProvider(),
            },
            financial=InMemoryFinancialProvider(),
        )
        self.client = TestClient(create_app(self.resources))
        self.auth.tokens["tok"] = AuthUser(id=USER, email="ann@example.com")
        self.db.add_member(MemberRecord(household_id=HOUSEHOLD, user_id=USER, role="admin"))
        self.headers = {"Authorization": "Bearer tok", "x-household-id": HOUSEHOLD}

    def get(self, path, **params):
        return self.client.get(f"/api{path}", params=params, headers=self.headers)

    def post(self, path, json=None):
        return self.client.post(f"/api{path}", json=json, headers=self.headers)

    def patch(self, path, json):
        return self.client.patch(f"/api{path}", json=json, headers=self.headers)


class RequestContextTests(HomebaseApiTestCase):
    def test_requires_authentication(self):
        response = self.client.get("/api/tasks", headers={"x-household-id": HOUSEHOLD})
        self.assertEqual(response.status_code, 401)

        response = self.client.get(
            "/api/tasks",
            headers={"Authorization": "Bearer nope", "x-household-id": HOUSEHOLD},
        )
        self.assertEqual(response.status_code, 401)

    def test_requires_household(self):
        response = self.client.get("/api/tasks", headers={"Authorization": "Bearer tok"})
        self.assertEqual(response.status_code, 400)

    def test_requires_membership(self):
        response = self.client.get(
            "/api/tasks",
            headers={"Authorization": "Bearer tok", "x-household-id": "house-2"},
        )
        self.assertEqual(response.status_code, 403)

    def test_household_cookie_and_profile_creation(self):
        self.client.cookies.set("household-id", HOUSEHOLD)
        response = self.client.get("/api/tasks", headers={"Authorization": "Bearer tok"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.db.get_profile(USER).email, "ann@example.com")


class EventRouteTests(HomebaseApiTestCase):
    def setUp(self):
        super().setUp()
        response = self.post(
            "/events",
            {
                "title": "Swim class",
                "category": "sports",
                "start_at": "2025-01-06T09:00:00Z",
                "end_at": "2025-01-06T10:00:00Z",
                "rrule": "FREQ=WEEKLY;BYDAY=MO",
            },
        )
        self.assertEqual(response.status_code, 201)
        self.event = response.json()

    def _instances(self):
        response = self.get(
            "/events", start_date="2025-01-01T00:00:00Z", end_date="2025-02-01T00:00:00Z"
        )
        self.assertEqual(response.status_code, 200)
        return response.json()

    def _starts(self):
        return [_dt(i["start_at"]) for i in self._instances()]

    def test_create_describes_series(self):
        self.assertEqual(self.event["recurrence_description"], "Every week on Monday")
        self.assertEqual(self.event["series_state"], "ACTIVE")
        self.assertEqual(self.event["created_by"], USER)

    def test_end_before_start_is_rejected(self):
        response = self.post(
            "/events",
            {
                "title": "Backwards",
                "start_at": "2025-01-06T10:00:00Z",
                "end_at": "2025-01-06T09:00:00Z",
            },
        )
        self.assertEqual(response.status_code, 422)

    def test_window_must_be_ordered(self):
        response = self.get(
            "/events", start_date="2025-02-01T00:00:00Z", end_date="2025-01-01T00:00:00Z"
        )
        self.assertEqual(response.status_code, 400)

    def test_list_expands_series(self):
        instances = self._instances()
        self.assertEqual(
            [_dt(i["start_at"]) for i in instances],
            [_utc(2025, 1, 6, 9), _utc(2025, 1, 13, 9), _utc(2025, 1, 20, 9), _utc(2025, 1, 27, 9)],
        )
        self.assertTrue(all(i["event_id"] == self.event["id"] for i in instances))
        self.assertEqual(_dt(instances[0]["end_at"]), _utc(2025, 1, 6, 10))

    def test_category_filter(self):
        response = self.get(
            "/events",
            start_date="2025-01-01T00:00:00Z",
            end_date="2025-02-01T00:00:00Z",
            categories="school",
        )
        self.assertEqual(response.json(), [])

    def test_search(self):
        response = self.get("/events/search", query="swim")
        self.assertEqual([e["id"] for e in response.json()], [self.event["id"]])
        self.assertEqual(self.get("/events/search", query="").status_code, 422)

    def test_delete_this_instance(self):
        response = self.client.delete(
            f"/api/events/{self.event['id']}",
            params={"delete_mode": "this", "instance_date": "2025-01-20T09:00:00Z"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "state": "EXCEPTION_DELETED"})
        self.assertEqual(
            self._starts(), [_utc(2025, 1, 6, 9), _utc(2025, 1, 13, 9), _utc(2025, 1, 27, 9)]
        )

        detail = self.get(f"/events/{self.event['id']}").json()
        self.assertEqual(detail["series_state"], "EXCEPTION_DELETED")

    def test_delete_this_and_future(self):
        response = self.client.delete(
            f"/api/events/{self.event['id']}",
            params={"delete_mode": "this_and_future", "instance_date": "2025-01-20T09:00:00Z"},
            headers=self.headers,
        )
        self.assertEqual(response.json()["state"], "TRUNCATED")
        self.assertEqual(self._starts(), [_utc(2025, 1, 6, 9), _utc(2025, 1, 13, 9)])

    def test_delete_all(self):
        response = self.client.delete(
            f"/api/events/{self.event['id']}",
            params={"delete_mode": "all"},
            headers=self.headers,
        )
        self.assertEqual(response.json()["state"], "DELETED")
        self.assertEqual(self.get(f"/events/{self.event['id']}").status_code, 404)
        self.assertEqual(self._instances(), [])

    def test_partial_delete_needs_instance(self):
        response = self.client.delete(
            f"/api/events/{self.event['id']}",
            params={"delete_mode": "this"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)

    def test_update_single_instance(self):
        response = self.patch(
            f"/events/{self.event['id']}",
            {
                "update_mode": "this",
                "instance_date": "2025-01-13T09:00:00Z",
                "data": {"title": "Swim gala", "start_at": "2025-01-14T10:00:00Z"},
            },
        )
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["mode"], "this")
        self.assertEqual(payload["event"]["parent_event_id"], self.event["id"])
        self.assertIsNone(payload["event"]["rrule"])
        self.assertEqual(_dt(payload["event"]["end_at"]), _utc(2025, 1, 14, 11))
        self.assertEqual(
            [_dt(d) for d in payload["series"]["exception_dates"]], [_utc(2025, 1, 13, 9)]
        )

        titles = [(i["title"], _dt(i["start_at"])) for i in self._instances()]
        self.assertEqual(
            titles,
            [
                ("Swim class", _utc(2025, 1, 6, 9)),
                ("Swim gala", _utc(2025, 1, 14, 10)),
                ("Swim class", _utc(2025, 1, 20, 9)),
                ("Swim class", _utc(2025, 1, 27, 9)),
            ],
        )

    def test_update_this_and_future_splits_series(self):
        response = self.patch(
            f"/events/{self.event['id']}",
            {
                "update_mode": "this_and_future",
                "instance_date": "2025-01-20T09:00:00Z",
                "data": {"title": "Swim squad"},
            },
        )
        payload = response.json()
        self.assertEqual(payload["mode"], "this_and_future")
        self.assertEqual(payload["series"]["series_state"], "TRUNCATED")
        self.assertEqual(payload["event"]["rrule"], "FREQ=WEEKLY;BYDAY=MO")

        titles = [(i["title"], _dt(i["start_at"])) for i in self._instances()]
        self.assertEqual(
            titles,
            [
                ("Swim class", _utc(2025, 1, 6, 9)),
                ("Swim class", _utc(2025, 1, 13, 9)),
                ("Swim squad", _utc(2025, 1, 20, 9)),
                ("Swim squad", _utc(2025, 1, 27, 9)),
            ],
        )

    def test_update_all_edits_in_place(self):
        response = self.patch(
            f"/events/{self.event['id']}",
            {"update_mode": "all", "data": {"location": "Leisure centre", "title": None}},
        )
        payload = response.json()
        self.assertEqual(payload["mode"], "all")
        self.assertEqual(payload["event"]["id"], self.event["id"])
        self.assertEqual(payload["event"]["title"], "Swim class")
        self.assertEqual(payload["event"]["location"], "Leisure centre")

    def test_update_end_before_start_is_rejected(self):
        response = self.patch(
            f"/events/{self.event['id']}",
            {
                "update_mode": "all",
                "data": {
                    "start_at": "2025-01-06T10:00:00Z",
                    "end_at": "2025-01-06T09:00:00Z",
                },
            },
        )
        self.assertEqual(response.status_code, 422)

        response = self.patch(
            f"/events/{self.event['id']}",
            {"update_mode": "all", "data": {"end_at": "2025-01-06T08:00:00Z"}},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(
            _dt(self.get(f"/events/{self.event['id']}").json()["end_at"]),
            _utc(2025, 1, 6, 10),
        )

    def test_this_and_future_keeps_remaining_count(self):
        created = self.post(
            "/events",
            {
                "title": "Lessons",
                "start_at": "2025-01-06T16:00:00Z",
                "end_at": "2025-01-06T17:00:00Z",
                "rrule": "FREQ=WEEKLY;BYDAY=MO;COUNT=4",
            },
        ).json()
        response = self.patch(
            f"/events/{created['id']}",
            {
                "update_mode": "this_and_future",
                "instance_date": "2025-01-20T16:00:00Z",
                "data": {"title": "Lessons (new room)"},
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json()["event"]["rrule"], "FREQ=WEEKLY;BYDAY=MO;COUNT=2"
        )

        instances = self.get(
            "/events", start_date="2025-01-01T00:00:00Z", end_date="2025-03-01T00:00:00Z"
        ).json()
        lessons = [
            (i["title"], _dt(i["start_at"]))
            for i in instances
            if i["title"].startswith("Lessons")
        ]
        self.assertEqual(
            lessons,
            [
                ("Lessons", _utc(2025, 1, 6, 16)),
                ("Lessons", _utc(2025, 1, 13, 16)),
                ("Lessons (new room)", _utc(2025, 1, 20, 16)),
                ("Lessons (new room)", _utc(2025, 1, 27, 16)),
            ],
        )

    def test_unknown_event(self):
        self.assertEqual(self.get("/events/missing").status_code, 404)


class AgendaRouteTests(HomebaseApiTestCase):
    def setUp(self):
        super().setUp()
        self.bill = self.db.create_bill(
            BillRecord(
                household_id=HOUSEHOLD,
                created_by=USER,
                name="Car loan",
                category="transportation",
                amount="250.00",
                due_day=31,
                rrule="FREQ=MONTHLY",
                created_at=_utc(2025, 1, 1),
            )
        )
        self.post(
            "/events",
            {"title": "Dentist", "start_at": "2025-01-15T09:00:00Z", "category": "medical"},
        )
        self.post("/tasks", {"title": "Pay school trip", "due_at": "2025-01-15T12:00:00Z"})
        self.post(
            "/contacts",
            {"first_name": "Ann", "relationship_type": "friend", "birthday": "1990-01-15"},
        )

    def _agenda(self, **flags):
        response = self.get(
            "/agenda",
            start_date="2025-01-01T00:00:00Z",
            end_date="2025-01-31T23:59:59Z",
            **flags,
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["items"]

    def test_merges_all_sources_in_order(self):
        items = self._agenda()
        self.assertEqual(
            [item["type"] for item in items], ["birthday", "event", "task", "bill"]
        )
        self.assertEqual(items[0]["title"], "Ann's birthday")
        self.assertEqual(items[3]["detail"]["due_date"], "2025-01-31")
        self.assertFalse(items[3]["detail"]["paid"])

    def test_flags_exclude_sources(self):
        items = self._agenda(include_bills=False, include_tasks=False, include_birthdays=False)
        self.assertEqual([item["type"] for item in items], ["event"])

    def test_paid_bills_are_flagged(self):
        response = self.post(
            f"/bills/{self.bill.id}/payments", {"amount": "250.00", "due_date": "2025-01-31"}
        )
        self.assertEqual(response.status_code, 201)
        bill_item = [item for item in self._agenda() if item["type"] == "bill"][0]
        self.assertTrue(bill_item["detail"]["paid"])


class OffsetlessTimestampTests(HomebaseApiTestCase):
    WINDOW = {"start_date": "2025-03-01T00:00:00Z", "end_date": "2025-03-31T00:00:00Z"}

    def test_event_times_without_offset_are_utc(self):
        response = self.post(
            "/events",
            {
                "title": "Parents evening",
                "start_at": "2025-03-03T10:00:00",
                "end_at": "2025-03-03T11:00:00",
            },
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(_dt(response.json()["start_at"]), _utc(2025, 3, 3, 10))

        response = self.get("/events", **self.WINDOW)
        self.assertEqual(response.status_code, 200)
        (instance,) = response.json()
        self.assertEqual(_dt(instance["start_at"]), _utc(2025, 3, 3, 10))
        self.assertEqual(_dt(instance["end_at"]), _utc(2025, 3, 3, 11))

        response = self.get("/agenda", **self.WINDOW)
        self.assertEqual(response.status_code, 200)
        self.assertEqual([i["title"] for i in response.json()["items"]], ["Parents evening"])

    def test_mixed_offsets_are_compared_in_utc(self):
        response = self.post(
            "/events",
            {
                "title": "Backwards",
                "start_at": "2025-03-03T10:00:00Z",
                "end_at": "2025-03-03T09:00:00",
            },
        )
        self.assertEqual(response.status_code, 422)

        response = self.post(
            "/events",
            {
                "title": "Call with Berlin",
                "start_at": "2025-03-03T10:00:00+02:00",
                "end_at": "2025-03-03T09:00:00",
            },
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(_dt(response.json()["start_at"]), _utc(2025, 3, 3, 8))
        self.assertEqual(_dt(response.json()["end_at"]), _utc(2025, 3, 3, 9))

    def test_task_and_payment_times_without_offset(self):
        bill = self.db.create_bill(
            BillRecord(
                household_id=HOUSEHOLD,
                created_by=USER,
                name="Water",
                category="utilities",
                amount="40.00",
                due_day=20,
                rrule="FREQ=MONTHLY",
                created_at=datetime(2025, 1, 1),
            )
        )
        response = self.post(
            f"/bills/{bill.id}/payments",
            {"amount": "40.00", "paid_at": "2025-03-02T08:00:00"},
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(_dt(response.json()["paid_at"]), _utc(2025, 3, 2, 8))

        response = self.post("/tasks", {"title": "Renew passport", "due_at": "2025-03-05T12:00:00"})
        self.assertEqual(response.status_code, 201)

        response = self.get("/agenda", **self.WINDOW)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            [(i["type"], i["title"]) for i in response.json()["items"]],
            [("task", "Renew passport"), ("bill", "Water")],
        )


class ExternalEventRouteTests(HomebaseApiTestCase):
    def setUp(self):
        super().setUp()
        for user_id, external_id, title, start in [
            (USER, "g-2", "School play", _utc(2025, 1, 10, 18)),
            (USER, "g-1", "Football", _utc(2025, 1, 5, 10)),
            ("user-2", "g-3", "Not mine", _utc(2025, 1, 7, 9)),
            (USER, "g-4", "Next month", _utc(2025, 2, 10, 9)),
        ]:
            self.db.upsert_external_event(
                ExternalEventRecord(
                    connected_account_id=f"account-{user_id}",
                    user_id=user_id,
                    external_id=external_id,
                    title=title,
                    start_at=start,
                )
            )

    def test_lists_callers_events_in_window(self):
        response = self.client.get(
            "/api/external-events",
            params={"start_date": "2025-01-01T00:00:00Z", "end_date": "2025-01-31T00:00:00Z"},
            headers={"Authorization": "Bearer tok"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual([e["title"] for e in response.json()], ["Football", "School play"])
        self.assertEqual(response.json()[0]["status"], "confirmed")

    def test_requires_authentication(self):
        response = self.client.get(
            "/api/external-events",
            params={"start_date": "2025-01-01T00:00:00Z", "end_date": "2025-01-31T00:00:00Z"},
        )
        self.assertEqual(response.status_code, 401)

    def test_window_must_be_ordered(self):
        response = self.get(
            "/external-events",
            start_date="2025-02-01T00:00:00Z",
            end_date="2025-01-01T00:00:00Z",
        )
        self.assertEqual(response.status_code, 400)


class HouseholdRouteTests(HomebaseApiTestCase):
    def test_bills(self):
        response = self.post(
            "/bills",
            {
                "name": "Rent",
                "category": "housing",
                "amount": "1200",
                "due_day": 1,
                "rrule": "FREQ=MONTHLY",
            },
        )
        self.assertEqual(response.status_code, 201)
        bill = response.json()
        self.assertEqual(date.fromisoformat(bill["next_due_date"]).day, 1)
        self.assertEqual(bill["recurrence_description"], "Every month")

        self.assertEqual([b["id"] for b in self.get("/bills").json()], [bill["id"]])

        payment = self.post(
            f"/bills/{bill['id']}/payments",
            {"amount": "1200.00", "paid_at": "2025-03-02T08:00:00Z"},
        ).json()
        self.assertEqual(payment["due_date"], "2025-03-01")
        self.assertEqual(payment["paid_by"], USER)

        self.assertEqual(
            self.post("/bills/missing/payments", {"amount": "1.00"}).status_code, 404
        )

    def test_bill_amount_validation(self):
        response = self.post(
            "/bills",
            {
                "name": "Rent",
                "category": "housing",
                "amount": "12.345",
                "due_day": 1,
                "rrule": "FREQ=MONTHLY",
            },
        )
        self.assertEqual(response.status_code, 422)

    def test_task_status(self):
        task = self.post("/tasks", {"title": "Book MOT", "priority": "high"}).json()
        self.assertEqual(task["status"], "todo")

        done = self.patch(f"/tasks/{task['id']}/status", {"status": "done"}).json()
        self.assertEqual(done["status"], "done")
        self.assertIsNotNone(done["completed_at"])

        self.assertEqual(self.get("/tasks", status="todo").json(), [])
        self.assertEqual(len(self.get("/tasks", status="done").json()), 1)

        reopened = self.patch(f"/tasks/{task['id']}/status", {"status": "todo"}).json()
        self.assertIsNone(reopened["completed_at"])

    @patch("homebase.routes._today", return_value=date(2025, 1, 10))
    def test_upcoming_birthdays(self, _today):
        self.post(
            "/contacts",
            {"first_name": "Ann", "last_name": "Lee", "relationship_type": "friend", "birthday": "1990-01-15"},
        )
        self.post(
            "/contacts",
            {"first_name": "Bo", "relationship_type": "sibling", "birthday": "1985-06-01"},
        )
        upcoming = self.get("/contacts/upcoming-birthdays").json()
        self.assertEqual([c["display_name"] for c in upcoming], ["Ann Lee"])
        self.assertEqual(upcoming[0]["days_until_birthday"], 5)

        everyone = self.get("/contacts").json()
        self.assertEqual([c["display_name"] for c in everyone], ["Ann Lee", "Bo"])

    def test_contact_email_validation(self):
        response = self.post(
            "/contacts",
            {"first_name": "Ann", "relationship_type": "friend", "email": "not-an-email"},
        )
        self.assertEqual(response.status_code, 422)

    def test_shopping_list(self):
        shopping_list = self.post("/shopping-lists", {"name": "Groceries"}).json()
        list_id = shopping_list["id"]
        milk = self.post(f"/shopping-lists/{list_id}/items", {"name": "Milk"}).json()
        self.post(f"/shopping-lists/{list_id}/items", {"name": "Bread", "quantity": "2"})

        checked = self.patch(f"/shopping-items/{milk['id']}/check", {"checked": True}).json()
        self.assertTrue(checked["checked"])
        self.assertEqual(checked["checked_by"], USER)

        items = self.get(f"/shopping-lists/{list_id}/items").json()
        self.assertEqual([i["name"] for i in items], ["Bread", "Milk"])

        unchecked = self.patch(f"/shopping-items/{milk['id']}/check", {"checked": False}).json()
        self.assertIsNone(unchecked["checked_at"])

        self.assertEqual(self.get("/shopping-lists/missing/items").status_code, 404)

    def test_notifications(self):
        mine = NotificationRecord(
            user_id=USER, household_id=HOUSEHOLD, type="system", title="Welcome"
        )
        theirs = NotificationRecord(
            user_id="user-2", household_id=HOUSEHOLD, type="system", title="Hi"
        )
        self.db.create_notification(mine)
        self.db.create_notification(theirs)

        listed = self.get("/notifications").json()
        self.assertEqual([n["id"] for n in listed], [mine.id])

        self.assertEqual(self.post(f"/notifications/{mine.id}/read").json(), {"success": True})
        self.assertEqual(self.get("/notifications", unread_only=True).json(), [])
        self.assertEqual(self.post(f"/notifications/{theirs.id}/read").status_code, 404)


if __name__ == "__main__":
    unittest.main()
