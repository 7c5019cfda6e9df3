"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Optional, Protocol, TypeVar

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    or_,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from homebase_shared.types import (
    EventCategory,
    ExternalEventStatus,
    MemberRole,
    PlaidItemStatus,
    TaskPriority,
    TaskStatus,
)


def new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, list):
        return [_normalize(item) for item in value]
    return value


@dataclass
class ProfileRecord:
    id: str
    email: str
    display_name: Optional[str] = None


@dataclass
class MemberRecord:
    household_id: str
    user_id: str
    role: str = MemberRole.MEMBER.value
    joined_at: datetime = field(default_factory=_now)


@dataclass
class EventRecord:
    household_id: str
    created_by: str
    title: str
    start_at: datetime
    end_at: Optional[datetime] = None
    all_day: bool = False
    rrule: Optional[str] = None
    series_until: Optional[datetime] = None
    parent_event_id: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    category: str = EventCategory.OTHER.value
    color: Optional[str] = None
    reminder_minutes: list[int] = field(default_factory=list)
    attendee_ids: list[str] = field(default_factory=list)
    exception_dates: list[datetime] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class BillRecord:
    household_id: str
    created_by: str
    name: str
    category: str
    amount: str
    due_day: int
    rrule: str
    currency: str = "USD"
    auto_pay: bool = False
    notes: Optional[str] = None
    url: Optional[str] = None
    is_active: bool = True
    assigned_to: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)


@dataclass
class BillPaymentRecord:
    bill_id: str
    paid_by: str
    amount: str
    paid_at: datetime
    due_date: date
    notes: Optional[str] = None
    receipt_url: Optional[str] = None
    status: str = "paid"
    id: str = field(default_factory=new_id)


@dataclass
class TaskRecord:
    household_id: str
    created_by: str
    title: str
    description: Optional[str] = None
    status: str = TaskStatus.TODO.value
    priority: str = TaskPriority.MEDIUM.value
    due_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rrule: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    assignee_ids: list[str] = field(default_factory=list)
    parent_task_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class ContactRecord:
    household_id: str
    created_by: str
    first_name: str
    relationship_type: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: dict = field(default_factory=dict)
    birthday: Optional[date] = None
    anniversary: Optional[date] = None
    notes: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    linked_user_id: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


@dataclass
class ShoppingListRecord:
    household_id: str
    created_by: str
    name: str
    emoji: str = "\U0001F6D2"
    is_default: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)


@dataclass
class ShoppingItemRecord:
    list_id: str
    added_by: str
    name: str
    quantity: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    checked: bool = False
    checked_by: Optional[str] = None
    checked_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)


@dataclass
class NotificationRecord:
    user_id: str
    household_id: str
    type: str
    title: str
    body: Optional[str] = None
    data: dict = field(default_factory=dict)
    channels: list[str] = field(default_factory=lambda: ["in_app"])
    dedupe_key: Optional[str] = None
    read_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=_now)


@dataclass
class ConnectedAccountRecord:
    user_id: str
    provider: str
    provider_account_id: str
    email: Optional[str] = None
    calendar_id: Optional[str] = None
    sync_token: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    sync_error: Optional[str] = None
    is_active: bool = True
    id: str = field(default_factory=new_id)


@dataclass
class WebhookSubscriptionRecord:
    connected_account_id: str
    provider: str
    channel_id: str
    resource_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    sync_token: Optional[str] = None
    is_active: bool = True
    id: str = field(default_factory=new_id)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class ExternalEventRecord:
    connected_account_id: str
    user_id: str
    external_id: str
    title: str
    start_at: datetime
    end_at: Optional[datetime] = None
    all_day: bool = False
    description: Optional[str] = None
    location: Optional[str] = None
    status: str = ExternalEventStatus.CONFIRMED.value
    last_updated_external: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class PlaidItemRecord:
    household_id: str
    user_id: str
    plaid_item_id: str
    institution_name: Optional[str] = None
    transactions_cursor: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    sync_error: Optional[str] = None
    status: str = PlaidItemStatus.ACTIVE.value
    is_active: bool = True
    id: str = field(default_factory=new_id)


@dataclass
class TransactionRecord:
    household_id: str
    created_by: str
    plaid_transaction_id: str
    type: str
    amount: str
    category: str
    description: str
    date: date
    currency: str = "USD"
    account_id: Optional[str] = None
    merchant_name: Optional[str] = None
    pending: bool = False
    id: str = field(default_factory=new_id)


class DbClient(Protocol):
    """Interface for database access."""

    # Households
    def save_profile(self, profile: ProfileRecord) -> None:
        ...

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        ...

    def add_member(self, member: MemberRecord) -> None:
        ...

    def get_member_role(self, household_id: str, user_id: str) -> Optional[str]:
        ...

    # Calendar
    def create_event(self, event: EventRecord) -> EventRecord:
        ...

    def get_event(self, household_id: str, event_id: str) -> Optional[EventRecord]:
        ...

    def list_events(
        self, household_id: str, starting_before: Optional[datetime] = None
    ) -> list[EventRecord]:
        ...

    def list_events_with_reminders(self) -> list[EventRecord]:
        ...

    def search_events(
        self, household_id: str, query: str, limit: int = 20
    ) -> list[EventRecord]:
        ...

    def update_event(self, event_id: str, changes: dict) -> Optional[EventRecord]:
        ...

    def add_event_exception(self, event_id: str, instance_date: datetime) -> None:
        ...

    def delete_event(self, event_id: str) -> None:
        ...

    # Finances
    def create_bill(self, bill: BillRecord) -> BillRecord:
        ...

    def get_bill(self, household_id: str, bill_id: str) -> Optional[BillRecord]:
        ...

    def list_bills(
        self, household_id: str, active_only: bool = True
    ) -> list[BillRecord]:
        ...

    def save_bill_payment(self, payment: BillPaymentRecord) -> BillPaymentRecord:
        ...

    def list_bill_payments(self, bill_ids: Iterable[str]) -> list[BillPaymentRecord]:
        ...

    # Tasks
    def create_task(self, task: TaskRecord) -> TaskRecord:
        ...

    def get_task(self, household_id: str, task_id: str) -> Optional[TaskRecord]:
        ...

    def list_tasks(
        self, household_id: str, statuses: Optional[Iterable[str]] = None
    ) -> list[TaskRecord]:
        ...

    def update_task(self, task_id: str, changes: dict) -> Optional[TaskRecord]:
        ...

    # Contacts
    def create_contact(self, contact: ContactRecord) -> ContactRecord:
        ...

    def list_contacts(self, household_id: str) -> list[ContactRecord]:
        ...

    # Shopping
    def create_shopping_list(self, shopping_list: ShoppingListRecord) -> ShoppingListRecord:
        ...

    def get_shopping_list(
        self, household_id: str, list_id: str
    ) -> Optional[ShoppingListRecord]:
        ...

    def add_shopping_item(self, item: ShoppingItemRecord) -> ShoppingItemRecord:
        ...

    def get_shopping_item(self, item_id: str) -> Optional[ShoppingItemRecord]:
        ...

    def update_shopping_item(
        self, item_id: str, changes: dict
    ) -> Optional[ShoppingItemRecord]:
        ...

    def list_shopping_items(self, list_id: str) -> list[ShoppingItemRecord]:
        ...

    # Notifications
    def create_notification(self, notification: NotificationRecord) -> bool:
        ...

    def list_notifications(
        self, user_id: str, household_id: str, unread_only: bool = False
    ) -> list[NotificationRecord]:
        ...

    def mark_notification_read(self, user_id: str, notification_id: str) -> bool:
        ...

    # Integrations
    def create_connected_account(
        self, account: ConnectedAccountRecord
    ) -> ConnectedAccountRecord:
        ...

    def get_connected_account(self, account_id: str) -> Optional[ConnectedAccountRecord]:
        ...

    def update_connected_account(self, account_id: str, changes: dict) -> None:
        ...

    def create_subscription(
        self, subscription: WebhookSubscriptionRecord
    ) -> WebhookSubscriptionRecord:
        ...

    def find_subscription(
        self, provider: str, channel_id: str
    ) -> Optional[WebhookSubscriptionRecord]:
        ...

    def list_expiring_subscriptions(
        self, now: datetime, cutoff: datetime
    ) -> list[WebhookSubscriptionRecord]:
        ...

    def update_subscription(self, subscription_id: str, changes: dict) -> None:
        ...

    def upsert_external_event(self, event: ExternalEventRecord) -> ExternalEventRecord:
        ...

    def get_external_event(
        self, account_id: str, external_id: str
    ) -> Optional[ExternalEventRecord]:
        ...

    def list_external_events(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[ExternalEventRecord]:
        ...

    def cancel_external_event(self, account_id: str, external_id: str) -> None:
        ...

    # Plaid
    def create_plaid_item(self, item: PlaidItemRecord) -> PlaidItemRecord:
        ...

    def get_plaid_item_by_plaid_id(self, plaid_item_id: str) -> Optional[PlaidItemRecord]:
        ...

    def list_active_plaid_items(self) -> list[PlaidItemRecord]:
        ...

    def update_plaid_item(self, item_id: str, changes: dict) -> None:
        ...

    def insert_transaction(self, transaction: TransactionRecord) -> bool:
        ...

    def update_transaction(
        self, household_id: str, plaid_transaction_id: str, changes: dict
    ) -> bool:
        ...

    def delete_transaction(self, household_id: str, plaid_transaction_id: str) -> bool:
        ...

    def list_transactions(self, household_id: str) -> list[TransactionRecord]:
        ...


R = TypeVar("R")


def _apply(record: R, changes: dict) -> R:
    values = {f.name: getattr(record, f.name) for f in fields(record)}
    values.update(changes)
    return replace(record, **{k: _normalize(v) for k, v in values.items()})


def _contains(value: Optional[str], needle: str) -> bool:
    return bool(value) and needle in value.lower()


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.profiles: Dict[str, ProfileRecord] = {}
        self.members: Dict[tuple[str, str], MemberRecord] = {}
        self.events: Dict[str, EventRecord] = {}
        self.bills: Dict[str, BillRecord] = {}
        self.bill_payments: Dict[str, BillPaymentRecord] = {}
        self.tasks: Dict[str, TaskRecord] = {}
        self.contacts: Dict[str, ContactRecord] = {}
        self.shopping_lists: Dict[str, ShoppingListRecord] = {}
        self.shopping_items: Dict[str, ShoppingItemRecord] = {}
        self.notifications: Dict[str, NotificationRecord] = {}
        self.connected_accounts: Dict[str, ConnectedAccountRecord] = {}
        self.subscriptions: Dict[str, WebhookSubscriptionRecord] = {}
        self.external_events: Dict[tuple[str, str], ExternalEventRecord] = {}
        self.plaid_items: Dict[str, PlaidItemRecord] = {}
        self.transactions: Dict[str, TransactionRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        for value in vars(self).values():
            value.clear()

    def save_profile(self, profile: ProfileRecord) -> None:
        self.profiles[profile.id] = profile

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        return self.profiles.get(user_id)

    def add_member(self, member: MemberRecord) -> None:
        self.members[(member.household_id, member.user_id)] = member

    def get_member_role(self, household_id: str, user_id: str) -> Optional[str]:
        member = self.members.get((household_id, user_id))
        return member.role if member else None

    def create_event(self, event: EventRecord) -> EventRecord:
        event = _apply(event, {})
        self.events[event.id] = event
        return event

    def get_event(self, household_id: str, event_id: str) -> Optional[EventRecord]:
        event = self.events.get(event_id)
        if event and event.household_id == household_id:
            return event
        return None

    def list_events(
        self, household_id: str, starting_before: Optional[datetime] = None
    ) -> list[EventRecord]:
        return [
            event
            for event in self.events.values()
            if event.household_id == household_id
            and (starting_before is None or event.start_at <= starting_before)
        ]

    def list_events_with_reminders(self) -> list[EventRecord]:
        return [event for event in self.events.values() if event.reminder_minutes]

    def search_events(
        self, household_id: str, query: str, limit: int = 20
    ) -> list[EventRecord]:
        needle = query.lower()
        matches = [
            event
            for event in self.events.values()
            if event.household_id == household_id
            and (
                _contains(event.title, needle)
                or _contains(event.description, needle)
                or _contains(event.location, needle)
            )
        ]
        matches.sort(key=lambda e: e.start_at, reverse=True)
        return matches[:limit]

    def update_event(self, event_id: str, changes: dict) -> Optional[EventRecord]:
        event = self.events.get(event_id)
        if not event:
            return None
        updated = _apply(event, {**changes, "updated_at": _now()})
        self.events[event_id] = updated
        return updated

    def add_event_exception(self, event_id: str, instance_date: datetime) -> None:
        event = self.events.get(event_id)
        if not event:
            return
        instance_date = to_utc(instance_date)
        if instance_date not in event.exception_dates:
            event.exception_dates.append(instance_date)
        event.updated_at = _now()

    def delete_event(self, event_id: str) -> None:
        self.events.pop(event_id, None)

    def create_bill(self, bill: BillRecord) -> BillRecord:
        bill = _apply(bill, {})
        self.bills[bill.id] = bill
        return bill

    def get_bill(self, household_id: str, bill_id: str) -> Optional[BillRecord]:
        bill = self.bills.get(bill_id)
        if bill and bill.household_id == household_id:
            return bill
        return None

    def list_bills(
        self, household_id: str, active_only: bool = True
    ) -> list[BillRecord]:
        return [
            bill
            for bill in self.bills.values()
            if bill.household_id == household_id and (bill.is_active or not active_only)
        ]

    def save_bill_payment(self, payment: BillPaymentRecord) -> BillPaymentRecord:
        payment = _apply(payment, {})
        self.bill_payments[payment.id] = payment
        return payment

    def list_bill_payments(self, bill_ids: Iterable[str]) -> list[BillPaymentRecord]:
        wanted = set(bill_ids)
        return [p for p in self.bill_payments.values() if p.bill_id in wanted]

    def create_task(self, task: TaskRecord) -> TaskRecord:
        task = _apply(task, {})
        self.tasks[task.id] = task
        return task

    def get_task(self, household_id: str, task_id: str) -> Optional[TaskRecord]:
        task = self.tasks.get(task_id)
        if task and task.household_id == household_id:
            return task
        return None

    def list_tasks(
        self, household_id: str, statuses: Optional[Iterable[str]] = None
    ) -> list[TaskRecord]:
        wanted = set(statuses) if statuses else None
        return [
            task
            for task in self.tasks.values()
            if task.household_id == household_id
            and (wanted is None or task.status in wanted)
        ]

    def update_task(self, task_id: str, changes: dict) -> Optional[TaskRecord]:
        task = self.tasks.get(task_id)
        if not task:
            return None
        updated = _apply(task, {**changes, "updated_at": _now()})
        self.tasks[task_id] = updated
        return updated

    def create_contact(self, contact: ContactRecord) -> ContactRecord:
        contact = _apply(contact, {})
        self.contacts[contact.id] = contact
        return contact

    def list_contacts(self, household_id: str) -> list[ContactRecord]:
        return [c for c in self.contacts.values() if c.household_id == household_id]

    def create_shopping_list(self, shopping_list: ShoppingListRecord) -> ShoppingListRecord:
        shopping_list = _apply(shopping_list, {})
        self.shopping_lists[shopping_list.id] = shopping_list
        return shopping_list

    def get_shopping_list(
        self, household_id: str, list_id: str
    ) -> Optional[ShoppingListRecord]:
        shopping_list = self.shopping_lists.get(list_id)
        if shopping_list and shopping_list.household_id == household_id:
            return shopping_list
        return None

    def add_shopping_item(self, item: ShoppingItemRecord) -> ShoppingItemRecord:
        item = _apply(item, {})
        self.shopping_items[item.id] = item
        return item

    def get_shopping_item(self, item_id: str) -> Optional[ShoppingItemRecord]:
        return self.shopping_items.get(item_id)

    def update_shopping_item(
        self, item_id: str, changes: dict
    ) -> Optional[ShoppingItemRecord]:
        item = self.shopping_items.get(item_id)
        if not item:
            return None
        updated = _apply(item, changes)
        self.shopping_items[item_id] = updated
        return updated

    def list_shopping_items(self, list_id: str) -> list[ShoppingItemRecord]:
        items = [i for i in self.shopping_items.values() if i.list_id == list_id]
        items.sort(key=lambda i: (i.checked, i.created_at))
        return items

    def create_notification(self, notification: NotificationRecord) -> bool:
        notification = _apply(notification, {})
        if notification.dedupe_key and any(
            n.dedupe_key == notification.dedupe_key
            for n in self.notifications.values()
        ):
            return False
        self.notifications[notification.id] = notification
        return True

    def list_notifications(
        self, user_id: str, household_id: str, unread_only: bool = False
    ) -> list[NotificationRecord]:
        items = [
            n
            for n in self.notifications.values()
            if n.user_id == user_id
            and n.household_id == household_id
            and (not unread_only or n.read_at is None)
        ]
        items.sort(key=lambda n: n.created_at, reverse=True)
        return items

    def mark_notification_read(self, user_id: str, notification_id: str) -> bool:
        notification = self.notifications.get(notification_id)
        if not notification or notification.user_id != user_id:
            return False
        if notification.read_at is None:
            notification.read_at = _now()
        return True

    def create_connected_account(
        self, account: ConnectedAccountRecord
    ) -> ConnectedAccountRecord:
        account = _apply(account, {})
        self.connected_accounts[account.id] = account
        return account

    def get_connected_account(self, account_id: str) -> Optional[ConnectedAccountRecord]:
        return self.connected_accounts.get(account_id)

    def update_connected_account(self, account_id: str, changes: dict) -> None:
        account = self.connected_accounts.get(account_id)
        if account:
            self.connected_accounts[account_id] = _apply(account, changes)

    def create_subscription(
        self, subscription: WebhookSubscriptionRecord
    ) -> WebhookSubscriptionRecord:
        subscription = _apply(subscription, {})
        self.subscriptions[subscription.id] = subscription
        return subscription

    def find_subscription(
        self, provider: str, channel_id: str
    ) -> Optional[WebhookSubscriptionRecord]:
        for subscription in self.subscriptions.values():
            if (
                subscription.provider == provider
                and subscription.channel_id == channel_id
                and subscription.is_active
            ):
                return subscription
        return None

    def list_expiring_subscriptions(
        self, now: datetime, cutoff: datetime
    ) -> list[WebhookSubscriptionRecord]:
        return [
            s
            for s in self.subscriptions.values()
            if s.is_active and s.expires_at is not None and now <= s.expires_at <= cutoff
        ]

    def update_subscription(self, subscription_id: str, changes: dict) -> None:
        subscription = self.subscriptions.get(subscription_id)
        if subscription:
            self.subscriptions[subscription_id] = _apply(
                subscription, {**changes, "updated_at": _now()}
            )

    def upsert_external_event(self, event: ExternalEventRecord) -> ExternalEventRecord:
        key = (event.connected_account_id, event.external_id)
        existing = self.external_events.get(key)
        if existing:
            event = replace(event, id=existing.id)
        event = _apply(event, {"updated_at": _now()})
        self.external_events[key] = event
        return event

    def get_external_event(
        self, account_id: str, external_id: str
    ) -> Optional[ExternalEventRecord]:
        return self.external_events.get((account_id, external_id))

    def list_external_events(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[ExternalEventRecord]:
        start, end = to_utc(start), to_utc(end)
        events = [
            e
            for e in self.external_events.values()
            if e.user_id == user_id and start <= e.start_at <= end
        ]
        events.sort(key=lambda e: e.start_at)
        return events

    def cancel_external_event(self, account_id: str, external_id: str) -> None:
        key = (account_id, external_id)
        existing = self.external_events.get(key)
        if existing:
            self.external_events[key] = _apply(
                existing,
                {"status": ExternalEventStatus.CANCELLED.value, "updated_at": _now()},
            )

    def create_plaid_item(self, item: PlaidItemRecord) -> PlaidItemRecord:
        item = _apply(item, {})
        self.plaid_items[item.id] = item
        return item

    def get_plaid_item_by_plaid_id(self, plaid_item_id: str) -> Optional[PlaidItemRecord]:
        for item in self.plaid_items.values():
            if item.plaid_item_id == plaid_item_id:
                return item
        return None

    def list_active_plaid_items(self) -> list[PlaidItemRecord]:
        return [item for item in self.plaid_items.values() if item.is_active]

    def update_plaid_item(self, item_id: str, changes: dict) -> None:
        item = self.plaid_items.get(item_id)
        if item:
            self.plaid_items[item_id] = _apply(item, changes)

    def insert_transaction(self, transaction: TransactionRecord) -> bool:
        if transaction.plaid_transaction_id in self.transactions:
            return False
        transaction = _apply(transaction, {})
        self.transactions[transaction.plaid_transaction_id] = transaction
        return True

    def update_transaction(
        self, household_id: str, plaid_transaction_id: str, changes: dict
    ) -> bool:
        existing = self.transactions.get(plaid_transaction_id)
        if not existing or existing.household_id != household_id:
            return False
        self.transactions[plaid_transaction_id] = _apply(existing, changes)
        return True

    def delete_transaction(self, household_id: str, plaid_transaction_id: str) -> bool:
        existing = self.transactions.get(plaid_transaction_id)
        if not existing or existing.household_id != household_id:
            return False
        del self.transactions[plaid_transaction_id]
        return True

    def list_transactions(self, household_id: str) -> list[TransactionRecord]:
        return [t for t in self.transactions.values() if t.household_id == household_id]


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @staticmethod
    def _to_record(record_cls: type[R], row: Any, **extra: Any) -> R:
        # Backends without timezone support (SQLite) hand back naive UTC values.
        values = {
            f.name: _normalize(getattr(row, f.name))
            for f in fields(record_cls)
            if f.name not in extra and hasattr(row, f.name)
        }
        return record_cls(**values, **extra)

    @staticmethod
    def _to_row(row_cls: type, record: Any, skip: tuple[str, ...] = ()) -> Any:
        values = {
            f.name: _normalize(getattr(record, f.name))
            for f in fields(record)
            if f.name not in skip
        }
        return row_cls(**values)

    def _insert(self, row_cls: type, record: R, skip: tuple[str, ...] = ()) -> R:
        with self.Session() as session:
            session.add(self._to_row(row_cls, record, skip))
            session.commit()
        return record

    def _update(self, row_cls: type, key: Any, changes: dict) -> Optional[Any]:
        with self.Session() as session:
            row = session.get(row_cls, key)
            if not row:
                return None
            for name, value in changes.items():
                setattr(row, name, _normalize(value))
            session.commit()
            session.refresh(row)
            return row

    def _event_record(self, session: Session, row: "EventRow") -> EventRecord:
        exceptions = session.execute(
            select(EventExceptionRow.instance_date)
            .where(EventExceptionRow.event_id == row.id)
            .order_by(EventExceptionRow.instance_date.asc())
        ).scalars()
        return self._to_record(
            EventRecord,
            row,
            exception_dates=[to_utc(value) for value in exceptions],
        )

    def save_profile(self, profile: ProfileRecord) -> None:
        with self.Session() as session:
            session.merge(self._to_row(ProfileRow, profile))
            session.commit()

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            return self._to_record(ProfileRecord, row) if row else None

    def add_member(self, member: MemberRecord) -> None:
        with self.Session() as session:
            session.merge(self._to_row(MemberRow, member))
            session.commit()

    def get_member_role(self, household_id: str, user_id: str) -> Optional[str]:
        with self.Session() as session:
            row = session.get(MemberRow, (household_id, user_id))
            return row.role if row else None

    def create_event(self, event: EventRecord) -> EventRecord:
        with self.Session() as session:
            session.add(self._to_row(EventRow, event, skip=("exception_dates",)))
            for instance_date in event.exception_dates:
                session.add(
                    EventExceptionRow(event_id=event.id, instance_date=to_utc(instance_date))
                )
            session.commit()
            return self._event_record(session, session.get(EventRow, event.id))

    def get_event(self, household_id: str, event_id: str) -> Optional[EventRecord]:
        with self.Session() as session:
            row = session.get(EventRow, event_id)
            if not row or row.household_id != household_id:
                return None
            return self._event_record(session, row)

    def list_events(
        self, household_id: str, starting_before: Optional[datetime] = None
    ) -> list[EventRecord]:
        with self.Session() as session:
            stmt = select(EventRow).where(EventRow.household_id == household_id)
            if starting_before is not None:
                stmt = stmt.where(EventRow.start_at <= to_utc(starting_before))
            rows = session.execute(stmt.order_by(EventRow.start_at.asc())).scalars()
            return [self._event_record(session, row) for row in rows]

    def list_events_with_reminders(self) -> list[EventRecord]:
        with self.Session() as session:
            rows = session.execute(select(EventRow)).scalars()
            return [
                self._event_record(session, row) for row in rows if row.reminder_minutes
            ]

    def search_events(
        self, household_id: str, query: str, limit: int = 20
    ) -> list[EventRecord]:
        pattern = f"%{query}%"
        with self.Session() as session:
            stmt = (
                select(EventRow)
                .where(
                    EventRow.household_id == household_id,
                    or_(
                        EventRow.title.ilike(pattern),
                        EventRow.description.ilike(pattern),
                        EventRow.location.ilike(pattern),
                    ),
                )
                .order_by(EventRow.start_at.desc())
                .limit(limit)
            )
            rows = session.execute(stmt).scalars()
            return [self._event_record(session, row) for row in rows]

    def update_event(self, event_id: str, changes: dict) -> Optional[EventRecord]:
        changes = {k: v for k, v in changes.items() if k != "exception_dates"}
        row = self._update(EventRow, event_id, {**changes, "updated_at": _now()})
        if row is None:
            return None
        with self.Session() as session:
            return self._event_record(session, session.get(EventRow, event_id))

    def add_event_exception(self, event_id: str, instance_date: datetime) -> None:
        instance_date = to_utc(instance_date)
        with self.Session() as session:
            row = session.get(EventRow, event_id)
            if not row:
                return
            exists = session.execute(
                select(EventExceptionRow.id).where(
                    EventExceptionRow.event_id == event_id,
                    EventExceptionRow.instance_date == instance_date,
                )
            ).first()
            if not exists:
                session.add(EventExceptionRow(event_id=event_id, instance_date=instance_date))
            row.updated_at = _now()
            session.commit()

    def delete_event(self, event_id: str) -> None:
        with self.Session() as session:
            session.execute(
                delete(EventExceptionRow).where(EventExceptionRow.event_id == event_id)
            )
            session.execute(delete(EventRow).where(EventRow.id == event_id))
            session.commit()

    def create_bill(self, bill: BillRecord) -> BillRecord:
        return self._insert(BillRow, bill)

    def get_bill(self, household_id: str, bill_id: str) -> Optional[BillRecord]:
        with self.Session() as session:
            row = session.get(BillRow, bill_id)
            if not row or row.household_id != household_id:
                return None
            return self._to_record(BillRecord, row)

    def list_bills(
        self, household_id: str, active_only: bool = True
    ) -> list[BillRecord]:
        with self.Session() as session:
            stmt = select(BillRow).where(BillRow.household_id == household_id)
            if active_only:
                stmt = stmt.where(BillRow.is_active.is_(True))
            rows = session.execute(stmt.order_by(BillRow.due_day.asc())).scalars()
            return [self._to_record(BillRecord, row) for row in rows]

    def save_bill_payment(self, payment: BillPaymentRecord) -> BillPaymentRecord:
        return self._insert(BillPaymentRow, payment)

    def list_bill_payments(self, bill_ids: Iterable[str]) -> list[BillPaymentRecord]:
        wanted = list(bill_ids)
        if not wanted:
            return []
        with self.Session() as session:
            rows = session.execute(
                select(BillPaymentRow).where(BillPaymentRow.bill_id.in_(wanted))
            ).scalars()
            return [self._to_record(BillPaymentRecord, row) for row in rows]

    def create_task(self, task: TaskRecord) -> TaskRecord:
        return self._insert(TaskRow, task)

    def get_task(self, household_id: str, task_id: str) -> Optional[TaskRecord]:
        with self.Session() as session:
            row = session.get(TaskRow, task_id)
            if not row or row.household_id != household_id:
                return None
            return self._to_record(TaskRecord, row)

    def list_tasks(
        self, household_id: str, statuses: Optional[Iterable[str]] = None
    ) -> list[TaskRecord]:
        with self.Session() as session:
            stmt = select(TaskRow).where(TaskRow.household_id == household_id)
            if statuses:
                stmt = stmt.where(TaskRow.status.in_(list(statuses)))
            rows = session.execute(stmt.order_by(TaskRow.created_at.asc())).scalars()
            return [self._to_record(TaskRecord, row) for row in rows]

    def update_task(self, task_id: str, changes: dict) -> Optional[TaskRecord]:
        row = self._update(TaskRow, task_id, {**changes, "updated_at": _now()})
        return self._to_record(TaskRecord, row) if row is not None else None

    def create_contact(self, contact: ContactRecord) -> ContactRecord:
        return self._insert(ContactRow, contact)

    def list_contacts(self, household_id: str) -> list[ContactRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(ContactRow)
                .where(ContactRow.household_id == household_id)
                .order_by(ContactRow.first_name.asc())
            ).scalars()
            return [self._to_record(ContactRecord, row) for row in rows]

    def create_shopping_list(self, shopping_list: ShoppingListRecord) -> ShoppingListRecord:
        return self._insert(ShoppingListRow, shopping_list)

    def get_shopping_list(
        self, household_id: str, list_id: str
    ) -> Optional[ShoppingListRecord]:
        with self.Session() as session:
            row = session.get(ShoppingListRow, list_id)
            if not row or row.household_id != household_id:
                return None
            return self._to_record(ShoppingListRecord, row)

    def add_shopping_item(self, item: ShoppingItemRecord) -> ShoppingItemRecord:
        return self._insert(ShoppingItemRow, item)

    def get_shopping_item(self, item_id: str) -> Optional[ShoppingItemRecord]:
        with self.Session() as session:
            row = session.get(ShoppingItemRow, item_id)
            return self._to_record(ShoppingItemRecord, row) if row else None

    def update_shopping_item(
        self, item_id: str, changes: dict
    ) -> Optional[ShoppingItemRecord]:
        row = self._update(ShoppingItemRow, item_id, changes)
        return self._to_record(ShoppingItemRecord, row) if row is not None else None

    def list_shopping_items(self, list_id: str) -> list[ShoppingItemRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(ShoppingItemRow)
                .where(ShoppingItemRow.list_id == list_id)
                .order_by(ShoppingItemRow.checked.asc(), ShoppingItemRow.created_at.asc())
            ).scalars()
            return [self._to_record(ShoppingItemRecord, row) for row in rows]

    def create_notification(self, notification: NotificationRecord) -> bool:
        # The unique dedupe_key decides between concurrent sweeps.
        with self.Session() as session:
            session.add(self._to_row(NotificationRow, notification))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

    def list_notifications(
        self, user_id: str, household_id: str, unread_only: bool = False
    ) -> list[NotificationRecord]:
        with self.Session() as session:
            stmt = select(NotificationRow).where(
                NotificationRow.user_id == user_id,
                NotificationRow.household_id == household_id,
            )
            if unread_only:
                stmt = stmt.where(NotificationRow.read_at.is_(None))
            rows = session.execute(
                stmt.order_by(NotificationRow.created_at.desc())
            ).scalars()
            return [self._to_record(NotificationRecord, row) for row in rows]

    def mark_notification_read(self, user_id: str, notification_id: str) -> bool:
        with self.Session() as session:
            row = session.get(NotificationRow, notification_id)
            if not row or row.user_id != user_id:
                return False
            if row.read_at is None:
                row.read_at = _now()
                session.commit()
            return True

    def create_connected_account(
        self, account: ConnectedAccountRecord
    ) -> ConnectedAccountRecord:
        return self._insert(ConnectedAccountRow, account)

    def get_connected_account(self, account_id: str) -> Optional[ConnectedAccountRecord]:
        with self.Session() as session:
            row = session.get(ConnectedAccountRow, account_id)
            return self._to_record(ConnectedAccountRecord, row) if row else None

    def update_connected_account(self, account_id: str, changes: dict) -> None:
        self._update(ConnectedAccountRow, account_id, changes)

    def create_subscription(
        self, subscription: WebhookSubscriptionRecord
    ) -> WebhookSubscriptionRecord:
        return self._insert(WebhookSubscriptionRow, subscription)

    def find_subscription(
        self, provider: str, channel_id: str
    ) -> Optional[WebhookSubscriptionRecord]:
        with self.Session() as session:
            row = session.execute(
                select(WebhookSubscriptionRow).where(
                    WebhookSubscriptionRow.provider == provider,
                    WebhookSubscriptionRow.channel_id == channel_id,
                    WebhookSubscriptionRow.is_active.is_(True),
                )
            ).scalars().first()
            return self._to_record(WebhookSubscriptionRecord, row) if row else None

    def list_expiring_subscriptions(
        self, now: datetime, cutoff: datetime
    ) -> list[WebhookSubscriptionRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(WebhookSubscriptionRow).where(
                    WebhookSubscriptionRow.is_active.is_(True),
                    WebhookSubscriptionRow.expires_at.is_not(None),
                    WebhookSubscriptionRow.expires_at >= to_utc(now),
                    WebhookSubscriptionRow.expires_at <= to_utc(cutoff),
                )
            ).scalars()
            return [self._to_record(WebhookSubscriptionRecord, row) for row in rows]

    def update_subscription(self, subscription_id: str, changes: dict) -> None:
        self._update(
            WebhookSubscriptionRow, subscription_id, {**changes, "updated_at": _now()}
        )

    @staticmethod
    def _external_event_row(
        session: Session, account_id: str, external_id: str
    ) -> Optional["ExternalEventRow"]:
        return session.execute(
            select(ExternalEventRow).where(
                ExternalEventRow.connected_account_id == account_id,
                ExternalEventRow.external_id == external_id,
            )
        ).scalars().first()

    def _save_external_event(self, event: ExternalEventRecord) -> ExternalEventRecord:
        with self.Session() as session:
            row = self._external_event_row(
                session, event.connected_account_id, event.external_id
            )
            if row is None:
                row = self._to_row(ExternalEventRow, event)
                session.add(row)
            else:
                for f in fields(event):
                    if f.name != "id":
                        setattr(row, f.name, _normalize(getattr(event, f.name)))
            row.updated_at = _now()
            session.commit()
            session.refresh(row)
            return self._to_record(ExternalEventRecord, row)

    def upsert_external_event(self, event: ExternalEventRecord) -> ExternalEventRecord:
        try:
            return self._save_external_event(event)
        except IntegrityError:
            # A redelivered notification inserted the same event first.
            return self._save_external_event(event)

    def get_external_event(
        self, account_id: str, external_id: str
    ) -> Optional[ExternalEventRecord]:
        with self.Session() as session:
            row = self._external_event_row(session, account_id, external_id)
            return self._to_record(ExternalEventRecord, row) if row else None

    def list_external_events(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[ExternalEventRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(ExternalEventRow)
                .where(
                    ExternalEventRow.user_id == user_id,
                    ExternalEventRow.start_at >= to_utc(start),
                    ExternalEventRow.start_at <= to_utc(end),
                )
                .order_by(ExternalEventRow.start_at.asc())
            ).scalars()
            return [self._to_record(ExternalEventRecord, row) for row in rows]

    def cancel_external_event(self, account_id: str, external_id: str) -> None:
        with self.Session() as session:
            row = self._external_event_row(session, account_id, external_id)
            if row is None:
                return
            row.status = ExternalEventStatus.CANCELLED.value
            row.updated_at = _now()
            session.commit()

    def create_plaid_item(self, item: PlaidItemRecord) -> PlaidItemRecord:
        return self._insert(PlaidItemRow, item)

    def get_plaid_item_by_plaid_id(self, plaid_item_id: str) -> Optional[PlaidItemRecord]:
        with self.Session() as session:
            row = session.execute(
                select(PlaidItemRow).where(PlaidItemRow.plaid_item_id == plaid_item_id)
            ).scalars().first()
            return self._to_record(PlaidItemRecord, row) if row else None

    def list_active_plaid_items(self) -> list[PlaidItemRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(PlaidItemRow).where(PlaidItemRow.is_active.is_(True))
            ).scalars()
            return [self._to_record(PlaidItemRecord, row) for row in rows]

    def update_plaid_item(self, item_id: str, changes: dict) -> None:
        self._update(PlaidItemRow, item_id, changes)

    def insert_transaction(self, transaction: TransactionRecord) -> bool:
        with self.Session() as session:
            session.add(self._to_row(TransactionRow, transaction))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

    def update_transaction(
        self, household_id: str, plaid_transaction_id: str, changes: dict
    ) -> bool:
        with self.Session() as session:
            row = session.execute(
                select(TransactionRow).where(
                    TransactionRow.household_id == household_id,
                    TransactionRow.plaid_transaction_id == plaid_transaction_id,
                )
            ).scalars().first()
            if row is None:
                return False
            for name, value in changes.items():
                setattr(row, name, value)
            session.commit()
            return True

    def delete_transaction(self, household_id: str, plaid_transaction_id: str) -> bool:
        with self.Session() as session:
            result = session.execute(
                delete(TransactionRow).where(
                    TransactionRow.household_id == household_id,
                    TransactionRow.plaid_transaction_id == plaid_transaction_id,
                )
            )
            session.commit()
            return result.rowcount > 0

    def list_transactions(self, household_id: str) -> list[TransactionRecord]:
        with self.Session() as session:
            rows = session.execute(
                select(TransactionRow)
                .where(TransactionRow.household_id == household_id)
                .order_by(TransactionRow.date.desc())
            ).scalars()
            return [self._to_record(TransactionRecord, row) for row in rows]


Base = declarative_base()


class ProfileRow(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=True)


class MemberRow(Base):
    __tablename__ = "household_members"

    household_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    role = Column(String(20), nullable=False, default=MemberRole.MEMBER.value)
    joined_at = Column(DateTime(timezone=True), nullable=False)


class EventRow(Base):
    __tablename__ = "events"

    id = Column(String, primary_key=True)
    household_id = Column(String, nullable=False, index=True)
    created_by = Column(String, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    category = Column(String(20), nullable=False, default="other")
    start_at = Column(DateTime(timezone=True), nullable=False, index=True)
    end_at = Column(DateTime(timezone=True), nullable=True)
    all_day = Column(Boolean, nullable=False, default=False)
    rrule = Column(Text, nullable=True)
    series_until = Column(DateTime(timezone=True), nullable=True)
    parent_event_id = Column(String, nullable=True)
    color = Column(String(7), nullable=True)
    reminder_minutes = Column(JSON, nullable=False, default=list)
    attendee_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class EventExceptionRow(Base):
    __tablename__ = "event_exceptions"
    __table_args__ = (UniqueConstraint("event_id", "instance_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String, nullable=False, index=True)
    instance_date = Column(DateTime(timezone=True), nullable=False)


class BillRow(Base):
    __tablename__ = "bills"

    id = Column(String, primary_key=True)
    household_id = Column(String, nullable=False, index=True)
    created_by = Column(String, nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False)
    amount = Column(String(20), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    due_day = Column(Integer, nullable=False)
    rrule = Column(Text, nullable=False)
    auto_pay = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    url = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    assigned_to = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class BillPaymentRow(Base):
    __tablename__ = "bill_payments"

    id = Column(String, primary_key=True)
    bill_id = Column(String, nullable=False, index=True)
    paid_by = Column(String, nullable=False)
    amount = Column(String(20), nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="paid")
    notes = Column(Text, nullable=True)
    receipt_url = Column(Text, nullable=True)


class TaskRow(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True)
    household_id = Column(String, nullable=False, index=True)
    created_by = Column(String, nullable=False)
    parent_task_id = Column(String, nullable=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="todo")
    priority = Column(String(20), nullable=False, default="medium")
    due_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    rrule = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    assignee_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ContactRow(Base):
    __tablename__ = "contacts"

    id = Column(String, primary_key=True)
    household_id = Column(String, nullable=False, index=True)
    created_by = Column(String, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    relationship_type = Column(String(50), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(JSON, nullable=False, default=dict)
    birthday = Column(Date, nullable=True)
    anniversary = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    linked_user_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ShoppingListRow(Base):
    __tablename__ = "shopping_lists"

    id = Column(String, primary_key=True)
    household_id = Column(String, nullable=False, index=True)
    created_by = Column(String, nullable=False)
    name = Column(String(100), nullable=False)
    emoji = Column(String(10), nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ShoppingItemRow(Base):
    __tablename__ = "shopping_items"

    id = Column(String, primary_key=True)
    list_id = Column(String, nullable=False, index=True)
    added_by = Column(String, nullable=False)
    name = Column(String(255), nullable=False)
    quantity = Column(String(50), nullable=True)
    category = Column(String(100), nullable=True)
    notes = Column(String(500), nullable=True)
    checked = Column(Boolean, nullable=False, default=False)
    checked_by = Column(String, nullable=True)
    checked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class NotificationRow(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    household_id = Column(String, nullable=False, index=True)
    type = Column(String(30), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    data = Column(JSON, nullable=False, default=dict)
    channels = Column(JSON, nullable=False, default=list)
    dedupe_key = Column(String(255), nullable=True, unique=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class ConnectedAccountRow(Base):
    __tablename__ = "connected_accounts"
    __table_args__ = (UniqueConstraint("user_id", "provider", "provider_account_id"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    provider = Column(String(20), nullable=False)
    provider_account_id = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    calendar_id = Column(String(255), nullable=True)
    sync_token = Column(Text, nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    sync_error = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class WebhookSubscriptionRow(Base):
    __tablename__ = "webhook_subscriptions"

    id = Column(String, primary_key=True)
    connected_account_id = Column(String, nullable=False, index=True)
    provider = Column(String(20), nullable=False)
    channel_id = Column(String(255), nullable=False, index=True)
    resource_id = Column(String(255), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    sync_token = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class ExternalEventRow(Base):
    __tablename__ = "external_events"
    __table_args__ = (UniqueConstraint("connected_account_id", "external_id"),)

    id = Column(String, primary_key=True)
    connected_account_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    external_id = Column(String(255), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(Text, nullable=True)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=True)
    all_day = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="confirmed")
    last_updated_external = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)


class PlaidItemRow(Base):
    __tablename__ = "plaid_items"

    id = Column(String, primary_key=True)
    household_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    plaid_item_id = Column(String(100), nullable=False, unique=True)
    institution_name = Column(String(200), nullable=True)
    transactions_cursor = Column(Text, nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    sync_error = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="active")
    is_active = Column(Boolean, nullable=False, default=True)


class TransactionRow(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    household_id = Column(String, nullable=False, index=True)
    created_by = Column(String, nullable=False)
    plaid_transaction_id = Column(String(100), nullable=False, unique=True)
    account_id = Column(String, nullable=True)
    type = Column(String(20), nullable=False)
    amount = Column(String(20), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    category = Column(String(50), nullable=False)
    description = Column(String(255), nullable=False)
    date = Column(Date, nullable=False)
    merchant_name = Column(String(255), nullable=True)
    pending = Column(Boolean, nullable=False, default=False)
