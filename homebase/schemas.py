"""
Pydantic schemas for the household API.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, EmailStr, Field, model_validator

from homebase.db import to_utc

from homebase_shared.types import (
    BillCategory,
    EventCategory,
    NotificationType,
    RelationshipType,
    SeriesMode,
    TaskPriority,
    TaskStatus,
)

AMOUNT_PATTERN = r"^\d+(\.\d{1,2})?$"
COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"

ReminderMinutes = Annotated[int, Field(ge=0, le=10080)]
Tag = Annotated[str, Field(max_length=50)]
# Offset-less timestamps are read as UTC.
UtcDatetime = Annotated[datetime, AfterValidator(to_utc)]


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------


class EventFields(BaseModel):
    description: Optional[str] = Field(default=None, max_length=5000)
    location: Optional[str] = Field(default=None, max_length=500)
    end_at: Optional[UtcDatetime] = None
    rrule: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class EventCreate(EventFields):
    title: str = Field(..., min_length=1, max_length=255)
    category: EventCategory = EventCategory.OTHER
    start_at: UtcDatetime
    all_day: bool = False
    attendee_ids: list[UUID] = Field(default_factory=list)
    reminder_minutes: list[ReminderMinutes] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_end_after_start(self):
        if self.end_at is not None and self.end_at < self.start_at:
            raise ValueError("end_at must not be before start_at")
        return self


class EventChanges(EventFields):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[EventCategory] = None
    start_at: Optional[UtcDatetime] = None
    all_day: Optional[bool] = None
    attendee_ids: Optional[list[UUID]] = None
    reminder_minutes: Optional[list[ReminderMinutes]] = None

    @model_validator(mode="after")
    def check_end_after_start(self):
        if (
            self.start_at is not None
            and self.end_at is not None
            and self.end_at < self.start_at
        ):
            raise ValueError("end_at must not be before start_at")
        return self


class EventUpdateRequest(BaseModel):
    update_mode: SeriesMode = SeriesMode.THIS
    instance_date: Optional[UtcDatetime] = None
    data: EventChanges


class EventResponse(BaseModel):
    id: str
    household_id: str
    created_by: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    category: str
    start_at: datetime
    end_at: Optional[datetime] = None
    all_day: bool
    rrule: Optional[str] = None
    series_until: Optional[datetime] = None
    parent_event_id: Optional[str] = None
    color: Optional[str] = None
    reminder_minutes: list[int]
    attendee_ids: list[str]
    exception_dates: list[datetime]
    recurrence_description: str
    series_state: str


class EventInstance(BaseModel):
    id: str
    event_id: str
    title: str
    start_at: datetime
    end_at: Optional[datetime] = None
    all_day: bool
    category: str
    color: Optional[str] = None
    location: Optional[str] = None
    is_recurring_instance: bool
    instance_date: Optional[datetime] = None


class EventUpdateResponse(BaseModel):
    mode: str
    event: EventResponse
    series: Optional[EventResponse] = None


class DeleteResponse(BaseModel):
    success: bool = True
    state: str


class AgendaItemResponse(BaseModel):
    id: str
    type: str
    title: str
    timestamp: datetime
    end: Optional[datetime] = None
    all_day: bool
    source_id: str
    detail: dict


class AgendaResponse(BaseModel):
    start_date: datetime
    end_date: datetime
    items: list[AgendaItemResponse]


# ---------------------------------------------------------------------------
# Finances
# ---------------------------------------------------------------------------


class BillCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: BillCategory
    amount: str = Field(..., pattern=AMOUNT_PATTERN)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    due_day: int = Field(..., ge=1, le=31)
    rrule: str
    auto_pay: bool = False
    notes: Optional[str] = Field(default=None, max_length=2000)
    url: Optional[str] = Field(default=None, max_length=2000)
    assigned_to: Optional[UUID] = None


class BillResponse(BaseModel):
    id: str
    name: str
    category: str
    amount: str
    currency: str
    due_day: int
    rrule: str
    auto_pay: bool
    notes: Optional[str] = None
    url: Optional[str] = None
    is_active: bool
    assigned_to: Optional[str] = None
    next_due_date: Optional[date] = None
    recurrence_description: str


class MarkBillPaidRequest(BaseModel):
    amount: str = Field(..., pattern=AMOUNT_PATTERN)
    paid_at: Optional[UtcDatetime] = None
    due_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2000)
    receipt_url: Optional[str] = Field(default=None, max_length=2000)


class BillPaymentResponse(BaseModel):
    id: str
    bill_id: str
    paid_by: str
    amount: str
    paid_at: datetime
    due_date: date
    status: str
    notes: Optional[str] = None
    receipt_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=10000)
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_at: Optional[UtcDatetime] = None
    rrule: Optional[str] = Field(default=None, max_length=500)
    tags: list[Tag] = Field(default_factory=list)
    assignee_ids: list[UUID] = Field(default_factory=list)
    parent_task_id: Optional[UUID] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus


class TaskResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    due_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rrule: Optional[str] = None
    tags: list[str]
    assignee_ids: list[str]
    parent_task_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class Address(BaseModel):
    street: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    zip: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)


class ContactCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    relationship_type: RelationshipType
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=50)
    address: Address = Field(default_factory=Address)
    birthday: Optional[date] = None
    anniversary: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=10000)
    tags: list[Tag] = Field(default_factory=list)
    linked_user_id: Optional[UUID] = None


class ContactResponse(BaseModel):
    id: str
    first_name: str
    last_name: Optional[str] = None
    display_name: str
    relationship_type: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: dict
    birthday: Optional[date] = None
    anniversary: Optional[date] = None
    days_until_birthday: Optional[int] = None
    notes: Optional[str] = None
    tags: list[str]


# ---------------------------------------------------------------------------
# Shopping
# ---------------------------------------------------------------------------


class ShoppingListCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    emoji: str = Field(default="\U0001F6D2", max_length=10)
    is_default: bool = False


class ShoppingListResponse(BaseModel):
    id: str
    name: str
    emoji: str
    is_default: bool


class ShoppingItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    quantity: Optional[str] = Field(default=None, max_length=50)
    category: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=500)


class CheckShoppingItemRequest(BaseModel):
    checked: bool


class ShoppingItemResponse(BaseModel):
    id: str
    list_id: str
    name: str
    quantity: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    checked: bool
    checked_by: Optional[str] = None
    checked_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    id: str
    type: NotificationType
    title: str
    body: Optional[str] = None
    data: dict
    read_at: Optional[datetime] = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Integrations
# ---------------------------------------------------------------------------


class ExternalEventResponse(BaseModel):
    id: str
    connected_account_id: str
    external_id: str
    title: str
    description: Optional[str] = None
    location: Optional[str] = None
    start_at: datetime
    end_at: Optional[datetime] = None
    all_day: bool
    status: str
    last_updated_external: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------


class WebhookAck(BaseModel):
    ok: bool = True
