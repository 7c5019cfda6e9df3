"""
Contracts for the external providers the service talks to (auth, calendar push
providers, bank aggregator), plus in-memory implementations for development
and tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional, Protocol

from homebase.db import (
    ConnectedAccountRecord,
    PlaidItemRecord,
    WebhookSubscriptionRecord,
)


class ProviderError(Exception):
    """Raised when an external provider call fails."""


class SyncTokenExpired(ProviderError):
    """The stored incremental sync token is no longer accepted; do a full sync."""


class ProviderAuthError(ProviderError):
    """The linked account must be re-authenticated by its owner."""


@dataclass
class AuthUser:
    id: str
    email: str


@dataclass
class CalendarItem:
    external_id: str
    status: str = "confirmed"
    title: Optional[str] = None
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    all_day: bool = False
    description: Optional[str] = None
    location: Optional[str] = None
    updated: Optional[datetime] = None


@dataclass
class CalendarChanges:
    items: list[CalendarItem] = field(default_factory=list)
    next_sync_token: Optional[str] = None


@dataclass
class ChannelRenewal:
    channel_id: str
    resource_id: Optional[str]
    expires_at: datetime


@dataclass
class BankTransaction:
    transaction_id: str
    amount: str
    date: date
    name: str
    account_id: Optional[str] = None
    merchant_name: Optional[str] = None
    category: Optional[str] = None
    pending: bool = False
    currency: str = "USD"


@dataclass
class TransactionsPage:
    added: list[BankTransaction] = field(default_factory=list)
    modified: list[BankTransaction] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


class AuthProvider(Protocol):
    def exchange_code_for_session(self, code: str) -> AuthUser:
        ...

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        ...


class CalendarProvider(Protocol):
    def list_changes(
        self,
        account: ConnectedAccountRecord,
        sync_token: Optional[str] = None,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> CalendarChanges:
        """Incremental changes since `sync_token`, or a full listing of the range."""
        ...

    def get_event(
        self, account: ConnectedAccountRecord, external_id: str
    ) -> Optional[CalendarItem]:
        ...

    def renew_subscription(
        self,
        account: ConnectedAccountRecord,
        subscription: WebhookSubscriptionRecord,
    ) -> ChannelRenewal:
        ...


class FinancialProvider(Protocol):
    def sync_transactions(
        self, item: PlaidItemRecord, cursor: Optional[str]
    ) -> TransactionsPage:
        ...


class InMemoryAuthProvider:
    """Token and code tables keyed by opaque strings."""

    def __init__(self):
        self.tokens: Dict[str, AuthUser] = {}
        self.codes: Dict[str, AuthUser] = {}

    def exchange_code_for_session(self, code: str) -> AuthUser:
        user = self.codes.pop(code, None)
        if user is None:
            raise ProviderAuthError("Invalid or expired authorization code")
        return user

    def get_user(self, access_token: str) -> Optional[AuthUser]:
        return self.tokens.get(access_token)


class InMemoryCalendarProvider:
    """Serves canned events per account and hands out counter-based sync tokens."""

    def __init__(self, channel_ttl: timedelta = timedelta(days=7)):
        self.events: Dict[str, Dict[str, CalendarItem]] = {}
        self.channel_ttl = channel_ttl
        self._token_counter = 0

    def put_event(self, account_id: str, item: CalendarItem) -> None:
        self.events.setdefault(account_id, {})[item.external_id] = item

    def _next_token(self) -> str:
        self._token_counter += 1
        return f"sync-{self._token_counter}"

    def list_changes(
        self,
        account: ConnectedAccountRecord,
        sync_token: Optional[str] = None,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> CalendarChanges:
        items = list(self.events.get(account.id, {}).values())
        if sync_token is None:
            items = [
                item
                for item in items
                if item.start_at is None
                or (
                    (time_min is None or item.start_at >= time_min)
                    and (time_max is None or item.start_at <= time_max)
                )
            ]
        return CalendarChanges(items=items, next_sync_token=self._next_token())

    def get_event(
        self, account: ConnectedAccountRecord, external_id: str
    ) -> Optional[CalendarItem]:
        return self.events.get(account.id, {}).get(external_id)

    def renew_subscription(
        self,
        account: ConnectedAccountRecord,
        subscription: WebhookSubscriptionRecord,
    ) -> ChannelRenewal:
        return ChannelRenewal(
            channel_id=subscription.channel_id,
            resource_id=subscription.resource_id,
            expires_at=datetime.now(timezone.utc) + self.channel_ttl,
        )


class InMemoryFinancialProvider:
    """Replays queued transaction pages per Plaid item id."""

    def __init__(self):
        self.pages: Dict[str, list[TransactionsPage]] = {}

    def queue_page(self, plaid_item_id: str, page: TransactionsPage) -> None:
        self.pages.setdefault(plaid_item_id, []).append(page)

    def sync_transactions(
        self, item: PlaidItemRecord, cursor: Optional[str]
    ) -> TransactionsPage:
        queued = self.pages.get(item.plaid_item_id)
        if not queued:
            return TransactionsPage(next_cursor=cursor, has_more=False)
        return queued.pop(0)
