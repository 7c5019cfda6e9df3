"""
Routes called by machines rather than household members: scheduled cron
sweeps, provider push webhooks and OAuth redirects.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import timedelta
from typing import Callable, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from homebase.config import get_settings
from homebase.dependencies import Resources, get_resources
from homebase.integrations import ProviderError
from homebase.relay import (
    check_reminders,
    handle_google_notification,
    handle_microsoft_notifications,
    handle_plaid_webhook,
    renew_expiring_subscriptions,
    sync_all_plaid_items,
    verify_cron_authorization,
)
from homebase.schemas import WebhookAck
from homebase_shared.types import Provider

logger = logging.getLogger(__name__)

router = APIRouter()

VALIDATION_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9\-_=+/.]{1,512}$")


def _run_cron(authorization: Optional[str], name: str, job: Callable[[], dict]):
    if not verify_cron_authorization(authorization, get_settings().cron_secret):
        return JSONResponse({"error": "Unauthorized"}, status_code=401)
    try:
        result = job()
    except Exception:
        logger.exception("Cron job %s failed", name)
        return JSONResponse({"error": "Internal error"}, status_code=500)
    return {"success": True, **result}


# ---------------------------------------------------------------------------
# Cron
# ---------------------------------------------------------------------------


@router.post("/cron/sync-plaid")
def cron_sync_plaid(
    authorization: Optional[str] = Header(default=None),
    resources: Resources = Depends(get_resources),
):
    return _run_cron(
        authorization,
        "sync-plaid",
        lambda: sync_all_plaid_items(resources.db, resources.financial),
    )


@router.post("/cron/renew-webhooks")
def cron_renew_webhooks(
    authorization: Optional[str] = Header(default=None),
    resources: Resources = Depends(get_resources),
):
    window = timedelta(hours=get_settings().webhook_renewal_window_hours)
    return _run_cron(
        authorization,
        "renew-webhooks",
        lambda: renew_expiring_subscriptions(
            resources.db, resources.calendars, window=window
        ),
    )


@router.post("/cron/reminders")
def cron_reminders(
    authorization: Optional[str] = Header(default=None),
    resources: Resources = Depends(get_resources),
):
    interval = timedelta(minutes=get_settings().reminder_interval_minutes)
    return _run_cron(
        authorization,
        "reminders",
        lambda: check_reminders(resources.db, interval=interval),
    )


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


@router.post("/webhooks/google", response_model=WebhookAck)
def google_webhook(
    x_goog_channel_id: Optional[str] = Header(default=None),
    x_goog_resource_id: Optional[str] = Header(default=None),
    x_goog_resource_state: Optional[str] = Header(default=None),
    resources: Resources = Depends(get_resources),
):
    if not x_goog_channel_id or not x_goog_resource_id:
        return JSONResponse({"error": "Missing headers"}, status_code=400)
    provider = resources.calendars.get(Provider.GOOGLE.value)
    if provider is None:
        logger.warning("Google webhook received without a Google provider configured")
        return WebhookAck()
    handle_google_notification(
        resources.db,
        provider,
        x_goog_channel_id,
        x_goog_resource_id,
        x_goog_resource_state,
        timedelta(days=get_settings().full_sync_horizon_days),
    )
    return WebhookAck()


@router.post("/webhooks/microsoft")
async def microsoft_webhook(
    request: Request,
    validation_token: Optional[str] = Query(default=None, alias="validationToken"),
    resources: Resources = Depends(get_resources),
):
    if validation_token is not None:
        if not VALIDATION_TOKEN_PATTERN.match(validation_token):
            return PlainTextResponse("Invalid token", status_code=400)
        return PlainTextResponse(validation_token, status_code=200)

    try:
        payload = json.loads(await request.body() or b"{}")
    except ValueError:
        logger.warning("Microsoft webhook body is not valid JSON")
        return JSONResponse({"ok": True}, status_code=202)

    provider = resources.calendars.get(Provider.MICROSOFT.value)
    if provider is not None:
        handle_microsoft_notifications(resources.db, provider, payload)
    return JSONResponse({"ok": True}, status_code=202)


@router.post("/webhooks/plaid", response_model=WebhookAck)
async def plaid_webhook(
    request: Request,
    resources: Resources = Depends(get_resources),
):
    try:
        payload = json.loads(await request.body() or b"{}")
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return JSONResponse({"error": "Missing fields"}, status_code=400)

    webhook_type = payload.get("webhook_type")
    webhook_code = payload.get("webhook_code")
    item_id = payload.get("item_id")
    if not webhook_type or not webhook_code or not item_id:
        return JSONResponse({"error": "Missing fields"}, status_code=400)

    if resources.financial is not None:
        handle_plaid_webhook(
            resources.db, resources.financial, webhook_type, webhook_code, item_id
        )
    return WebhookAck()


# ---------------------------------------------------------------------------
# OAuth callbacks
# ---------------------------------------------------------------------------


def _safe_next(value: Optional[str], default: str) -> str:
    if not value or not value.startswith("/") or value.startswith(("//", "/\\")):
        return default
    return value


def _app_url(path: str) -> str:
    return get_settings().app_base_url.rstrip("/") + path


@router.get("/auth/callback")
def auth_callback(
    code: Optional[str] = None,
    next: Optional[str] = None,
    resources: Resources = Depends(get_resources),
):
    settings = get_settings()
    target = _safe_next(next, settings.default_redirect_path)
    if code:
        try:
            resources.auth.exchange_code_for_session(code)
            return RedirectResponse(_app_url(target), status_code=307)
        except ProviderError:
            logger.warning("OAuth code exchange failed", exc_info=True)
    return RedirectResponse(
        _app_url(f"{settings.login_path}?error=auth-callback-error"), status_code=307
    )


def _integration_redirect(
    provider: Provider,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str],
    error_description: Optional[str],
) -> RedirectResponse:
    if error:
        params = {"provider": provider.value, "error": error}
        if error_description:
            params["error_description"] = error_description
    elif not code or not state:
        params = {"provider": provider.value, "error": "missing_params"}
    else:
        params = {"provider": provider.value, "code": code, "state": state}
    base = get_settings().settings_integrations_path
    separator = "&" if "?" in base else "?"
    return RedirectResponse(
        _app_url(f"{base}{separator}{urlencode(params)}"), status_code=307
    )


@router.get("/auth/callback/google")
def google_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
):
    return _integration_redirect(Provider.GOOGLE, code, state, error, error_description)


@router.get("/auth/callback/microsoft")
def microsoft_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
):
    return _integration_redirect(
        Provider.MICROSOFT, code, state, error, error_description
    )
