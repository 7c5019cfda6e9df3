"""
Background triggers: cron sweeps and provider push notifications.

Handlers here never raise into the HTTP layer for provider-side failures; they
log and report an outcome so the caller can acknowledge the delivery.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Mapping, Optional

from homebase.db import (
    ConnectedAccountRecord,
    DbClient,
    ExternalEventRecord,
    NotificationRecord,
    PlaidItemRecord,
    TransactionRecord,
    WebhookSubscriptionRecord,
)
from homebase.integrations import (
    BankTransaction,
    CalendarChanges,
    CalendarItem,
    CalendarProvider,
    FinancialProvider,
    ProviderAuthError,
    SyncTokenExpired,
)
from homebase_shared.recurrence import expand
from homebase_shared.series import is_excepted
from homebase_shared.types import (
    ExternalEventStatus,
    NotificationType,
    PlaidItemStatus,
    Provider,
)

logger = logging.getLogger(__name__)

RENEWAL_WINDOW = timedelta(hours=24)

GOOGLE_HANDSHAKE_STATE = "sync"

PLAID_SYNC_CODES = {"SYNC_UPDATES_AVAILABLE", "INITIAL_UPDATE", "HISTORICAL_UPDATE"}
PLAID_LOGIN_CODES = {"LOGIN_REQUIRED", "PENDING_EXPIRATION"}

PLAID_CATEGORY_MAP = {
    "INCOME": "income",
    "TRANSFER_IN": "income",
    "TRANSFER_OUT": "other",
    "LOAN_PAYMENTS": "debt",
    "BANK_FEES": "other",
    "ENTERTAINMENT": "entertainment",
    "FOOD_AND_DRINK": "food",
    "GENERAL_MERCHANDISE": "shopping",
    "GENERAL_SERVICES": "other",
    "GOVERNMENT_AND_NON_PROFIT": "other",
    "HOME_IMPROVEMENT": "housing",
    "MEDICAL": "healthcare",
    "PERSONAL_CARE": "personal",
    "RENT_AND_UTILITIES": "utilities",
    "TRANSPORTATION": "transportation",
    "TRAVEL": "entertainment",
}
PLAID_INCOME_CATEGORIES = {"INCOME", "TRANSFER_IN"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def verify_cron_authorization(
    authorization: Optional[str], secret: Optional[str]
) -> bool:
    """Constant-time check of an `Authorization: Bearer <secret>` header."""
    if not authorization or not secret:
        return False
    expected = f"Bearer {secret}".encode("utf-8")
    provided = authorization.encode("utf-8")
    if len(provided) != len(expected):
        return False
    return hmac.compare_digest(provided, expected)


# ---------------------------------------------------------------------------
# Calendar push notifications
# ---------------------------------------------------------------------------


def _upsert_calendar_items(
    db: DbClient, account: ConnectedAccountRecord, items: list[CalendarItem]
) -> int:
    applied = 0
    for item in items:
        if not item.external_id:
            continue
        if item.status == ExternalEventStatus.CANCELLED.value:
            db.cancel_external_event(account.id, item.external_id)
            applied += 1
            continue
        if not item.title or item.start_at is None:
            continue
        db.upsert_external_event(
            ExternalEventRecord(
                connected_account_id=account.id,
                user_id=account.user_id,
                external_id=item.external_id,
                title=item.title,
                description=item.description,
                location=item.location,
                start_at=item.start_at,
                end_at=item.end_at,
                all_day=item.all_day,
                status=item.status or ExternalEventStatus.CONFIRMED.value,
                last_updated_external=item.updated,
            )
        )
        applied += 1
    return applied


def sync_calendar_subscription(
    db: DbClient,
    provider: CalendarProvider,
    subscription: WebhookSubscriptionRecord,
    full_sync_horizon: timedelta = timedelta(days=90),
    now: Optional[datetime] = None,
) -> int:
    """Pull changes for the subscription's account and mirror them locally.

    Uses the stored sync token; an expired token falls back to a full listing
    of the upcoming horizon. Returns the number of changes applied.
    """
    now = now or _utcnow()
    account = db.get_connected_account(subscription.connected_account_id)
    if account is None or not account.is_active:
        logger.warning(
            "Subscription %s has no active account; skipping", subscription.id
        )
        return 0

    token = subscription.sync_token or account.sync_token
    changes: Optional[CalendarChanges] = None
    if token:
        try:
            changes = provider.list_changes(account, sync_token=token)
        except SyncTokenExpired:
            logger.info("Sync token expired for account %s; full sync", account.id)
    if changes is None:
        changes = provider.list_changes(
            account, time_min=now, time_max=now + full_sync_horizon
        )

    applied = _upsert_calendar_items(db, account, changes.items)
    if changes.next_sync_token:
        db.update_subscription(subscription.id, {"sync_token": changes.next_sync_token})
    db.update_connected_account(
        account.id,
        {
            "sync_token": changes.next_sync_token or token,
            "last_sync_at": now,
            "sync_error": None,
        },
    )
    return applied


def handle_google_notification(
    db: DbClient,
    provider: CalendarProvider,
    channel_id: str,
    resource_id: str,
    resource_state: Optional[str],
    full_sync_horizon: timedelta = timedelta(days=90),
) -> str:
    """Process one Google push notification; returns a short outcome label."""
    if resource_state == GOOGLE_HANDSHAKE_STATE:
        logger.info("Google channel %s handshake acknowledged", channel_id)
        return "handshake"

    try:
        subscription = db.find_subscription(Provider.GOOGLE.value, channel_id)
        if subscription is None:
            logger.info("Ignoring notification for unknown channel %s", channel_id)
            return "ignored"
        if subscription.resource_id and subscription.resource_id != resource_id:
            logger.warning("Resource mismatch on channel %s; ignoring", channel_id)
            return "ignored"
        sync_calendar_subscription(db, provider, subscription, full_sync_horizon)
        return "synced"
    except Exception:
        logger.exception("Google webhook processing failed for channel %s", channel_id)
        return "failed"


def handle_microsoft_notification(
    db: DbClient,
    provider: CalendarProvider,
    subscription_id: str,
    change_type: str,
    resource: str,
    client_state: Optional[str] = None,
) -> str:
    subscription = db.find_subscription(Provider.MICROSOFT.value, subscription_id)
    if subscription is None:
        logger.info("Ignoring notification for unknown subscription %s", subscription_id)
        return "ignored"
    if client_state and client_state != subscription.channel_id:
        logger.warning("clientState mismatch on %s; ignoring", subscription_id)
        return "ignored"

    account = db.get_connected_account(subscription.connected_account_id)
    if account is None or not account.is_active:
        return "ignored"

    external_id = resource.rstrip("/").split("/")[-1]
    if not external_id:
        return "ignored"

    if change_type == "deleted":
        db.cancel_external_event(account.id, external_id)
        return "cancelled"

    item = provider.get_event(account, external_id)
    if item is None:
        return "ignored"
    _upsert_calendar_items(db, account, [item])
    return "synced"


def handle_microsoft_notifications(
    db: DbClient, provider: CalendarProvider, payload: Mapping
) -> int:
    """Process a Graph `{value: [...]}` batch. Returns how many were handled."""
    notifications = payload.get("value") if isinstance(payload, Mapping) else None
    if not isinstance(notifications, list):
        return 0

    handled = 0
    for notification in notifications:
        if not isinstance(notification, Mapping):
            continue
        subscription_id = notification.get("subscriptionId")
        change_type = notification.get("changeType")
        resource = notification.get("resource")
        if not subscription_id or not change_type or not resource:
            continue
        try:
            handle_microsoft_notification(
                db,
                provider,
                subscription_id,
                change_type,
                resource,
                notification.get("clientState"),
            )
            handled += 1
        except Exception:
            logger.exception(
                "Microsoft webhook processing failed for subscription %s",
                subscription_id,
            )
    return handled


def renew_expiring_subscriptions(
    db: DbClient,
    providers: Mapping[str, CalendarProvider],
    now: Optional[datetime] = None,
    window: timedelta = RENEWAL_WINDOW,
) -> dict:
    """Renew subscriptions that expire within `window`; expired ones are left alone."""
    now = now or _utcnow()
    renewed = 0
    errors = 0
    for subscription in db.list_expiring_subscriptions(now, now + window):
        try:
            provider = providers.get(subscription.provider)
            if provider is None:
                raise LookupError(f"No calendar provider for {subscription.provider}")
            account = db.get_connected_account(subscription.connected_account_id)
            if account is None or not account.is_active:
                raise LookupError(f"No active account for subscription {subscription.id}")
            renewal = provider.renew_subscription(account, subscription)
            db.update_subscription(
                subscription.id,
                {
                    "channel_id": renewal.channel_id,
                    "resource_id": renewal.resource_id,
                    "expires_at": renewal.expires_at,
                },
            )
            renewed += 1
        except Exception:
            logger.exception("Failed to renew subscription %s", subscription.id)
            errors += 1
    logger.info("Webhook renewal: %d renewed, %d errors", renewed, errors)
    return {"renewed": renewed, "errors": errors}


# ---------------------------------------------------------------------------
# Bank transactions
# ---------------------------------------------------------------------------


@dataclass
class TransactionSyncResult:
    added: int = 0
    modified: int = 0
    removed: int = 0


def _transaction_fields(txn: BankTransaction) -> dict:
    amount = Decimal(txn.amount)
    primary = (txn.category or "").upper()
    if primary in PLAID_INCOME_CATEGORIES:
        txn_type = "income"
    elif primary in PLAID_CATEGORY_MAP:
        txn_type = "expense"
    else:
        # Positive amounts are money leaving the account.
        txn_type = "expense" if amount > 0 else "income"
    return {
        "type": txn_type,
        "amount": f"{abs(amount):.2f}",
        "currency": txn.currency,
        "category": PLAID_CATEGORY_MAP.get(primary, "other"),
        "description": (txn.name or txn.merchant_name or "")[:255],
        "date": txn.date,
        "account_id": txn.account_id,
        "merchant_name": txn.merchant_name,
        "pending": txn.pending,
    }


def sync_plaid_item(
    db: DbClient,
    provider: FinancialProvider,
    item: PlaidItemRecord,
    now: Optional[datetime] = None,
) -> TransactionSyncResult:
    """Page through new transactions for one item from its stored cursor."""
    now = now or _utcnow()
    result = TransactionSyncResult()
    cursor = item.transactions_cursor
    try:
        while True:
            page = provider.sync_transactions(item, cursor)
            for txn in page.added:
                inserted = db.insert_transaction(
                    TransactionRecord(
                        household_id=item.household_id,
                        created_by=item.user_id,
                        plaid_transaction_id=txn.transaction_id,
                        **_transaction_fields(txn),
                    )
                )
                result.added += int(inserted)
            for txn in page.modified:
                updated = db.update_transaction(
                    item.household_id, txn.transaction_id, _transaction_fields(txn)
                )
                result.modified += int(updated)
            for transaction_id in page.removed:
                removed = db.delete_transaction(item.household_id, transaction_id)
                result.removed += int(removed)
            cursor = page.next_cursor
            if not page.has_more:
                break
    except ProviderAuthError as exc:
        db.update_plaid_item(
            item.id,
            {"status": PlaidItemStatus.LOGIN_REQUIRED.value, "sync_error": str(exc)},
        )
        raise

    db.update_plaid_item(
        item.id,
        {
            "transactions_cursor": cursor,
            "last_sync_at": now,
            "sync_error": None,
            "status": PlaidItemStatus.ACTIVE.value,
        },
    )
    return result


def sync_all_plaid_items(db: DbClient, provider: FinancialProvider) -> dict:
    """Sync every active item in turn; one failure never stops the rest."""
    synced = 0
    errors = 0
    for item in db.list_active_plaid_items():
        try:
            sync_plaid_item(db, provider, item)
            synced += 1
        except Exception:
            logger.exception("Plaid sync failed for item %s", item.id)
            errors += 1
    logger.info("Plaid sync: %d synced, %d errors", synced, errors)
    return {"synced": synced, "errors": errors}


def handle_plaid_webhook(
    db: DbClient,
    provider: FinancialProvider,
    webhook_type: str,
    webhook_code: str,
    plaid_item_id: str,
) -> str:
    try:
        item = db.get_plaid_item_by_plaid_id(plaid_item_id)
        if item is None or not item.is_active:
            logger.info("Ignoring Plaid webhook for unknown item %s", plaid_item_id)
            return "ignored"

        if webhook_type == "TRANSACTIONS" and webhook_code in PLAID_SYNC_CODES:
            sync_plaid_item(db, provider, item)
            return "synced"
        if webhook_type == "ITEM" and webhook_code in PLAID_LOGIN_CODES:
            db.update_plaid_item(
                item.id,
                {
                    "status": PlaidItemStatus.LOGIN_REQUIRED.value,
                    "sync_error": webhook_code,
                },
            )
            return "login_required"
        if webhook_type == "ITEM" and webhook_code == "ERROR":
            db.update_plaid_item(
                item.id,
                {"status": PlaidItemStatus.ERROR.value, "sync_error": webhook_code},
            )
            return "error"
        return "ignored"
    except Exception:
        logger.exception("Plaid webhook processing failed for item %s", plaid_item_id)
        return "failed"


# ---------------------------------------------------------------------------
# Event reminders
# ---------------------------------------------------------------------------


def check_reminders(
    db: DbClient,
    now: Optional[datetime] = None,
    interval: timedelta = timedelta(minutes=5),
) -> dict:
    """Notify for every reminder whose fire time fell in (now - interval, now].

    Each (event, instance, user, offset) produces at most one notification no
    matter how often the sweep runs.
    """
    now = now or _utcnow()
    sent = 0
    for event in db.list_events_with_reminders():
        offsets = sorted({m for m in event.reminder_minutes if m >= 0})
        if not offsets:
            continue
        window_end = now + timedelta(minutes=offsets[-1])
        recipients = list(dict.fromkeys([event.created_by, *event.attendee_ids]))
        expansion = expand(
            event.rrule,
            event.start_at,
            event.end_at,
            now - interval,
            window_end,
            all_day=event.all_day,
            until=event.series_until,
        )
        for occurrence in expansion:
            if is_excepted(occurrence, event.exception_dates):
                continue
            for minutes in offsets:
                fire_at = occurrence.start - timedelta(minutes=minutes)
                if not (now - interval < fire_at <= now):
                    continue
                for user_id in recipients:
                    created = db.create_notification(
                        NotificationRecord(
                            user_id=user_id,
                            household_id=event.household_id,
                            type=NotificationType.EVENT_REMINDER.value,
                            title=f"Upcoming: {event.title}",
                            body=_reminder_body(minutes),
                            data={
                                "route": "/calendar",
                                "entity_type": "event",
                                "entity_id": event.id,
                                "instance_date": occurrence.start.isoformat(),
                            },
                            dedupe_key=(
                                f"reminder:{event.id}:{user_id}:"
                                f"{occurrence.start.isoformat()}:{minutes}"
                            ),
                        )
                    )
                    sent += int(created)
    logger.info("Reminder sweep sent %d notifications", sent)
    return {"sent": sent}


def _reminder_body(minutes: int) -> str:
    if minutes == 0:
        return "Starting now"
    if minutes % 1440 == 0:
        days = minutes // 1440
        return f"Starts in {days} day{'s' if days != 1 else ''}"
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"Starts in {hours} hour{'s' if hours != 1 else ''}"
    return f"Starts in {minutes} minutes"
