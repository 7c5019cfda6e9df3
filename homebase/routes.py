"""
Household-scoped HTTP routes: calendar, agenda, bills, tasks, contacts,
shopping lists and notifications.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, replace
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from homebase.db import (
    BillPaymentRecord,
    BillRecord,
    ContactRecord,
    DbClient,
    EventRecord,
    ProfileRecord,
    ShoppingItemRecord,
    ShoppingListRecord,
    TaskRecord,
    new_id,
    to_utc,
)
from homebase.dependencies import (
    RequestContext,
    get_db_client,
    require_household,
    require_user,
)
from homebase.schemas import (
    AgendaItemResponse,
    AgendaResponse,
    BillCreate,
    BillPaymentResponse,
    BillResponse,
    CheckShoppingItemRequest,
    ContactCreate,
    ContactResponse,
    DeleteResponse,
    EventCreate,
    EventInstance,
    EventResponse,
    EventUpdateRequest,
    EventUpdateResponse,
    ExternalEventResponse,
    MarkBillPaidRequest,
    NotificationResponse,
    ShoppingItemCreate,
    ShoppingItemResponse,
    ShoppingListCreate,
    ShoppingListResponse,
    TaskCreate,
    TaskResponse,
    TaskStatusUpdate,
)
from homebase_shared.agenda import (
    BillSource,
    BirthdaySource,
    EventSource,
    TaskSource,
    build_agenda,
)
from homebase_shared.dates import clamp_day, days_until_birthday, next_birthday
from homebase_shared.recurrence import continue_rrule, describe_rrule
from homebase_shared.series import SeriesError, plan_delete, plan_update, series_state
from homebase_shared.types import AgendaItemType, SeriesMode, SeriesState, TaskStatus

logger = logging.getLogger(__name__)

router = APIRouter()

NON_NULLABLE_EVENT_FIELDS = {
    "title",
    "category",
    "start_at",
    "all_day",
    "attendee_ids",
    "reminder_minutes",
}


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _check_window(start_date: datetime, end_date: datetime) -> tuple[datetime, datetime]:
    start_date, end_date = to_utc(start_date), to_utc(end_date)
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")
    return start_date, end_date


def _ids(values: Optional[Iterable]) -> list[str]:
    return [str(v) for v in values or []]


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


def _event_response(event: EventRecord) -> EventResponse:
    return EventResponse(
        **asdict(event),
        recurrence_description=describe_rrule(event.rrule),
        series_state=series_state(
            event.rrule, event.series_until, event.exception_dates
        ).value,
    )


def _event_source(event: EventRecord) -> EventSource:
    return EventSource(
        event_id=event.id,
        title=event.title,
        start_at=event.start_at,
        end_at=event.end_at,
        all_day=event.all_day,
        rrule=event.rrule,
        series_until=event.series_until,
        exception_dates=tuple(event.exception_dates),
        category=event.category,
        color=event.color,
        location=event.location,
    )


def _check_event_span(start_at: datetime, end_at: Optional[datetime]) -> None:
    if end_at is not None and end_at < start_at:
        raise HTTPException(status_code=422, detail="end_at must not be before start_at")


def _get_event_or_404(db: DbClient, household_id: str, event_id: str) -> EventRecord:
    event = db.get_event(household_id, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.post("/events", response_model=EventResponse, status_code=201)
def create_event(
    payload: EventCreate,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    event = db.create_event(
        EventRecord(
            household_id=ctx.household_id,
            created_by=ctx.user.id,
            title=payload.title,
            description=payload.description,
            location=payload.location,
            category=payload.category.value,
            start_at=payload.start_at,
            end_at=payload.end_at,
            all_day=payload.all_day,
            rrule=payload.rrule or None,
            color=payload.color,
            reminder_minutes=list(payload.reminder_minutes),
            attendee_ids=_ids(payload.attendee_ids),
        )
    )
    logger.info("Created event %s in household %s", event.id, ctx.household_id)
    return _event_response(event)


@router.get("/events", response_model=list[EventInstance])
def list_events(
    start_date: datetime,
    end_date: datetime,
    categories: Optional[list[str]] = Query(default=None),
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    """Every event instance intersecting the window, recurring series expanded."""
    start_date, end_date = _check_window(start_date, end_date)
    events = db.list_events(ctx.household_id, starting_before=end_date)
    if categories:
        events = [e for e in events if e.category in categories]
    items = build_agenda(
        start_date,
        end_date,
        events=[_event_source(e) for e in events],
        include_bills=False,
        include_tasks=False,
        include_birthdays=False,
    )
    return [
        EventInstance(
            id=item.id,
            event_id=item.source_id,
            title=item.title,
            start_at=item.timestamp,
            end_at=item.end,
            all_day=item.all_day,
            category=item.detail["category"],
            color=item.detail["color"],
            location=item.detail["location"],
            is_recurring_instance=item.detail["is_recurring_instance"],
            instance_date=item.detail["instance_date"],
        )
        for item in items
    ]


@router.get("/events/search", response_model=list[EventResponse])
def search_events(
    query: str = Query(..., min_length=1, max_length=200),
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    return [_event_response(e) for e in db.search_events(ctx.household_id, query)]


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(
    event_id: str,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    return _event_response(_get_event_or_404(db, ctx.household_id, event_id))


@router.patch("/events/{event_id}", response_model=EventUpdateResponse)
def update_event(
    event_id: str,
    payload: EventUpdateRequest,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    existing = _get_event_or_404(db, ctx.household_id, event_id)
    try:
        plan = plan_update(
            existing.rrule, existing.start_at, payload.update_mode, payload.instance_date
        )
    except SeriesError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    changes = {
        key: value
        for key, value in payload.data.model_dump(exclude_unset=True).items()
        if value is not None or key not in NON_NULLABLE_EVENT_FIELDS
    }
    if "category" in changes and changes["category"] is not None:
        changes["category"] = changes["category"].value
    if "attendee_ids" in changes:
        changes["attendee_ids"] = _ids(changes["attendee_ids"])
    if changes.get("rrule") == "":
        changes["rrule"] = None

    if plan.mode == SeriesMode.ALL:
        _check_event_span(
            changes.get("start_at", existing.start_at),
            changes.get("end_at", existing.end_at),
        )
        updated = db.update_event(existing.id, changes)
        return EventUpdateResponse(mode=plan.mode.value, event=_event_response(updated))

    duration = existing.end_at - existing.start_at if existing.end_at else None
    start_at = changes.pop("start_at", None) or plan.split_at
    end_at = changes.pop("end_at", None)
    if end_at is None and duration is not None:
        end_at = start_at + duration
    _check_event_span(start_at, end_at)
    base = replace(
        existing,
        **changes,
        id=new_id(),
        start_at=start_at,
        end_at=end_at,
        parent_event_id=existing.id,
        created_by=ctx.user.id,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )

    if plan.mode == SeriesMode.THIS:
        db.add_event_exception(existing.id, plan.exception_date)
        created = db.create_event(
            replace(base, rrule=None, series_until=None, exception_dates=[])
        )
    else:
        series_until = plan.series_until
        if existing.series_until is not None and existing.series_until < series_until:
            series_until = existing.series_until
        db.update_event(existing.id, {"series_until": series_until})
        created = db.create_event(
            replace(
                base,
                rrule=(
                    changes["rrule"]
                    if "rrule" in changes
                    else continue_rrule(existing.rrule, existing.start_at, plan.split_at)
                ),
                series_until=existing.series_until,
                exception_dates=[
                    d for d in existing.exception_dates if d >= plan.split_at
                ],
            )
        )

    series = db.get_event(ctx.household_id, existing.id)
    logger.info(
        "Split event %s (%s) into %s", existing.id, plan.mode.value, created.id
    )
    return EventUpdateResponse(
        mode=plan.mode.value,
        event=_event_response(created),
        series=_event_response(series),
    )


@router.delete("/events/{event_id}", response_model=DeleteResponse)
def delete_event(
    event_id: str,
    delete_mode: SeriesMode = SeriesMode.THIS,
    instance_date: Optional[datetime] = None,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    existing = _get_event_or_404(db, ctx.household_id, event_id)
    try:
        plan = plan_delete(
            existing.rrule,
            existing.start_at,
            delete_mode,
            instance_date,
            existing.series_until,
        )
    except SeriesError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    if plan.state == SeriesState.DELETED:
        for event in db.list_events(ctx.household_id):
            if event.parent_event_id == existing.id:
                db.delete_event(event.id)
        db.delete_event(existing.id)
    elif plan.state == SeriesState.EXCEPTION_DELETED:
        db.add_event_exception(existing.id, plan.exception_date)
    else:
        db.update_event(existing.id, {"series_until": plan.series_until})
    logger.info("Event %s delete (%s) -> %s", existing.id, delete_mode, plan.state)
    return DeleteResponse(state=plan.state.value)


@router.get("/agenda", response_model=AgendaResponse)
def get_agenda(
    start_date: datetime,
    end_date: datetime,
    include_bills: bool = True,
    include_tasks: bool = True,
    include_birthdays: bool = True,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    start_date, end_date = _check_window(start_date, end_date)
    household_id = ctx.household_id

    events = [
        _event_source(e)
        for e in db.list_events(household_id, starting_before=end_date)
    ]

    bills: list[BillSource] = []
    if include_bills:
        bill_records = db.list_bills(household_id)
        paid: dict[str, set[date]] = {}
        for payment in db.list_bill_payments(b.id for b in bill_records):
            paid.setdefault(payment.bill_id, set()).add(payment.due_date)
        bills = [_bill_source(b, paid.get(b.id, ())) for b in bill_records]

    tasks: list[TaskSource] = []
    if include_tasks:
        tasks = [
            TaskSource(
                task_id=t.id,
                title=t.title,
                due_at=t.due_at,
                rrule=t.rrule,
                status=t.status,
                priority=t.priority,
            )
            for t in db.list_tasks(household_id)
        ]

    birthdays: list[BirthdaySource] = []
    if include_birthdays:
        for contact in db.list_contacts(household_id):
            if contact.birthday:
                birthdays.append(
                    BirthdaySource(contact.id, contact.display_name, contact.birthday)
                )
            if contact.anniversary:
                birthdays.append(
                    BirthdaySource(
                        contact.id,
                        contact.display_name,
                        contact.anniversary,
                        kind=AgendaItemType.ANNIVERSARY,
                    )
                )

    items = build_agenda(
        start_date,
        end_date,
        events=events,
        bills=bills,
        tasks=tasks,
        birthdays=birthdays,
        include_bills=include_bills,
        include_tasks=include_tasks,
        include_birthdays=include_birthdays,
    )
    return AgendaResponse(
        start_date=start_date,
        end_date=end_date,
        items=[AgendaItemResponse(**item.as_dict()) for item in items],
    )


# ---------------------------------------------------------------------------
# Finances
# ---------------------------------------------------------------------------


def _bill_source(bill: BillRecord, paid_dates: Iterable[date] = ()) -> BillSource:
    return BillSource(
        bill_id=bill.id,
        name=bill.name,
        due_day=bill.due_day,
        rrule=bill.rrule,
        created_on=bill.created_at.date(),
        amount=bill.amount,
        currency=bill.currency,
        auto_pay=bill.auto_pay,
        paid_dates=frozenset(paid_dates),
    )


def _bill_response(bill: BillRecord) -> BillResponse:
    return BillResponse(
        **asdict(bill),
        next_due_date=_bill_source(bill).next_due(_today()),
        recurrence_description=describe_rrule(bill.rrule),
    )


@router.post("/bills", response_model=BillResponse, status_code=201)
def create_bill(
    payload: BillCreate,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    bill = db.create_bill(
        BillRecord(
            household_id=ctx.household_id,
            created_by=ctx.user.id,
            name=payload.name,
            category=payload.category.value,
            amount=payload.amount,
            currency=payload.currency.upper(),
            due_day=payload.due_day,
            rrule=payload.rrule,
            auto_pay=payload.auto_pay,
            notes=payload.notes,
            url=payload.url,
            assigned_to=str(payload.assigned_to) if payload.assigned_to else None,
        )
    )
    return _bill_response(bill)


@router.get("/bills", response_model=list[BillResponse])
def list_bills(
    include_inactive: bool = False,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    bills = db.list_bills(ctx.household_id, active_only=not include_inactive)
    return [_bill_response(b) for b in sorted(bills, key=lambda b: (b.due_day, b.name))]


@router.post(
    "/bills/{bill_id}/payments", response_model=BillPaymentResponse, status_code=201
)
def mark_bill_paid(
    bill_id: str,
    payload: MarkBillPaidRequest,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    bill = db.get_bill(ctx.household_id, bill_id)
    if not bill:
        raise HTTPException(status_code=404, detail="Bill not found")
    paid_at = to_utc(payload.paid_at) if payload.paid_at else datetime.now(timezone.utc)
    due_date = payload.due_date or clamp_day(paid_at.year, paid_at.month, bill.due_day)
    payment = db.save_bill_payment(
        BillPaymentRecord(
            bill_id=bill.id,
            paid_by=ctx.user.id,
            amount=payload.amount,
            paid_at=paid_at,
            due_date=due_date,
            notes=payload.notes,
            receipt_url=payload.receipt_url,
        )
    )
    return BillPaymentResponse(**asdict(payment))


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


def _task_response(task: TaskRecord) -> TaskResponse:
    return TaskResponse(**asdict(task))


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(
    payload: TaskCreate,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    now = datetime.now(timezone.utc)
    task = db.create_task(
        TaskRecord(
            household_id=ctx.household_id,
            created_by=ctx.user.id,
            title=payload.title,
            description=payload.description,
            status=payload.status.value,
            priority=payload.priority.value,
            due_at=payload.due_at,
            completed_at=now if payload.status == TaskStatus.DONE else None,
            rrule=payload.rrule or None,
            tags=list(payload.tags),
            assignee_ids=_ids(payload.assignee_ids),
            parent_task_id=str(payload.parent_task_id) if payload.parent_task_id else None,
        )
    )
    return _task_response(task)


@router.get("/tasks", response_model=list[TaskResponse])
def list_tasks(
    status: Optional[list[TaskStatus]] = Query(default=None),
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    statuses = [s.value for s in status] if status else None
    return [_task_response(t) for t in db.list_tasks(ctx.household_id, statuses)]


@router.patch("/tasks/{task_id}/status", response_model=TaskResponse)
def update_task_status(
    task_id: str,
    payload: TaskStatusUpdate,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    if not db.get_task(ctx.household_id, task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    completed_at = (
        datetime.now(timezone.utc) if payload.status == TaskStatus.DONE else None
    )
    task = db.update_task(
        task_id, {"status": payload.status.value, "completed_at": completed_at}
    )
    return _task_response(task)


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


def _contact_response(contact: ContactRecord, today: date) -> ContactResponse:
    return ContactResponse(
        **asdict(contact),
        display_name=contact.display_name,
        days_until_birthday=days_until_birthday(contact.birthday, today),
    )


@router.post("/contacts", response_model=ContactResponse, status_code=201)
def create_contact(
    payload: ContactCreate,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    contact = db.create_contact(
        ContactRecord(
            household_id=ctx.household_id,
            created_by=ctx.user.id,
            first_name=payload.first_name,
            last_name=payload.last_name,
            relationship_type=payload.relationship_type.value,
            email=str(payload.email) if payload.email else None,
            phone=payload.phone,
            address=payload.address.model_dump(exclude_none=True),
            birthday=payload.birthday,
            anniversary=payload.anniversary,
            notes=payload.notes,
            tags=list(payload.tags),
            linked_user_id=str(payload.linked_user_id) if payload.linked_user_id else None,
        )
    )
    return _contact_response(contact, _today())


@router.get("/contacts", response_model=list[ContactResponse])
def list_contacts(
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    today = _today()
    contacts = sorted(
        db.list_contacts(ctx.household_id), key=lambda c: c.display_name.lower()
    )
    return [_contact_response(c, today) for c in contacts]


@router.get("/contacts/upcoming-birthdays", response_model=list[ContactResponse])
def upcoming_birthdays(
    days_ahead: int = Query(default=30, ge=1, le=366),
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    today = _today()
    upcoming = [
        c
        for c in db.list_contacts(ctx.household_id)
        if c.birthday is not None
        and days_until_birthday(c.birthday, today) <= days_ahead
    ]
    upcoming.sort(key=lambda c: (next_birthday(c.birthday, today), c.display_name))
    return [_contact_response(c, today) for c in upcoming]


# ---------------------------------------------------------------------------
# Shopping
# ---------------------------------------------------------------------------


@router.post("/shopping-lists", response_model=ShoppingListResponse, status_code=201)
def create_shopping_list(
    payload: ShoppingListCreate,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    shopping_list = db.create_shopping_list(
        ShoppingListRecord(
            household_id=ctx.household_id,
            created_by=ctx.user.id,
            name=payload.name,
            emoji=payload.emoji,
            is_default=payload.is_default,
        )
    )
    return ShoppingListResponse(**asdict(shopping_list))


def _get_list_or_404(db: DbClient, household_id: str, list_id: str) -> ShoppingListRecord:
    shopping_list = db.get_shopping_list(household_id, list_id)
    if not shopping_list:
        raise HTTPException(status_code=404, detail="Shopping list not found")
    return shopping_list


@router.post(
    "/shopping-lists/{list_id}/items",
    response_model=ShoppingItemResponse,
    status_code=201,
)
def add_shopping_item(
    list_id: str,
    payload: ShoppingItemCreate,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    _get_list_or_404(db, ctx.household_id, list_id)
    item = db.add_shopping_item(
        ShoppingItemRecord(
            list_id=list_id,
            added_by=ctx.user.id,
            name=payload.name,
            quantity=payload.quantity,
            category=payload.category,
            notes=payload.notes,
        )
    )
    return ShoppingItemResponse(**asdict(item))


@router.get(
    "/shopping-lists/{list_id}/items", response_model=list[ShoppingItemResponse]
)
def list_shopping_items(
    list_id: str,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    _get_list_or_404(db, ctx.household_id, list_id)
    return [ShoppingItemResponse(**asdict(i)) for i in db.list_shopping_items(list_id)]


@router.patch("/shopping-items/{item_id}/check", response_model=ShoppingItemResponse)
def check_shopping_item(
    item_id: str,
    payload: CheckShoppingItemRequest,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    item = db.get_shopping_item(item_id)
    if not item or not db.get_shopping_list(ctx.household_id, item.list_id):
        raise HTTPException(status_code=404, detail="Shopping item not found")
    if payload.checked:
        changes = {
            "checked": True,
            "checked_by": ctx.user.id,
            "checked_at": datetime.now(timezone.utc),
        }
    else:
        changes = {"checked": False, "checked_by": None, "checked_at": None}
    return ShoppingItemResponse(**asdict(db.update_shopping_item(item_id, changes)))


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@router.get("/notifications", response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = False,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    notifications = db.list_notifications(ctx.user.id, ctx.household_id, unread_only)
    return [NotificationResponse(**asdict(n)) for n in notifications]


@router.post("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: str,
    ctx: RequestContext = Depends(require_household),
    db: DbClient = Depends(get_db_client),
):
    if not db.mark_notification_read(ctx.user.id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


# ---------------------------------------------------------------------------
# Integrations
# ---------------------------------------------------------------------------


@router.get("/external-events", response_model=list[ExternalEventResponse])
def list_external_events(
    start_date: datetime,
    end_date: datetime,
    user: ProfileRecord = Depends(require_user),
    db: DbClient = Depends(get_db_client),
):
    """Mirrored provider events for the caller, by start time."""
    start_date, end_date = _check_window(start_date, end_date)
    events = db.list_external_events(user.id, start_date, end_date)
    return [ExternalEventResponse(**asdict(e)) for e in events]
