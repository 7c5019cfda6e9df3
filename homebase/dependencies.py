"""
Dependency wiring for the FastAPI app.

Long-lived clients are built once when the app is created and kept on
`app.state.resources`; request handlers receive them through `Depends`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from fastapi import Depends, HTTPException, Request

from homebase.config import Settings, get_settings
from homebase.db import DbClient, InMemoryDbClient, ProfileRecord, SqlDbClient
from homebase.integrations import (
    AuthProvider,
    CalendarProvider,
    FinancialProvider,
    InMemoryAuthProvider,
    InMemoryCalendarProvider,
    InMemoryFinancialProvider,
)
from homebase_shared.types import Provider

logger = logging.getLogger(__name__)


@dataclass
class Resources:
    db: DbClient
    auth: AuthProvider
    calendars: Dict[str, CalendarProvider] = field(default_factory=dict)
    financial: Optional[FinancialProvider] = None


@dataclass
class RequestContext:
    user: ProfileRecord
    household_id: str


def build_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory database")
        return InMemoryDbClient()
    return SqlDbClient(settings.database_url)


def build_resources(settings: Optional[Settings] = None) -> Resources:
    settings = settings or get_settings()
    return Resources(
        db=build_db_client(settings),
        auth=InMemoryAuthProvider(),
        calendars={
            Provider.GOOGLE.value: InMemoryCalendarProvider(),
            Provider.MICROSOFT.value: InMemoryCalendarProvider(),
        },
        financial=InMemoryFinancialProvider(),
    )


def get_resources(request: Request) -> Resources:
    return request.app.state.resources


def get_db_client(resources: Resources = Depends(get_resources)) -> DbClient:
    return resources.db


def get_auth_provider(resources: Resources = Depends(get_resources)) -> AuthProvider:
    return resources.auth


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def get_current_user(
    request: Request,
    db: DbClient = Depends(get_db_client),
    auth: AuthProvider = Depends(get_auth_provider),
) -> Optional[ProfileRecord]:
    """Resolve the caller's profile, or None for anonymous callers."""
    token = _bearer_token(request)
    if not token:
        return None
    user = auth.get_user(token)
    if user is None:
        return None
    profile = db.get_profile(user.id)
    if profile is None:
        profile = ProfileRecord(id=user.id, email=user.email)
        db.save_profile(profile)
    return profile


def get_household_id(request: Request) -> Optional[str]:
    settings = get_settings()
    return request.headers.get(settings.household_header) or request.cookies.get(
        settings.household_cookie
    )


def require_user(
    user: Optional[ProfileRecord] = Depends(get_current_user),
) -> ProfileRecord:
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_household(
    user: ProfileRecord = Depends(require_user),
    household_id: Optional[str] = Depends(get_household_id),
    db: DbClient = Depends(get_db_client),
) -> RequestContext:
    if not household_id:
        raise HTTPException(status_code=400, detail="No household selected")
    if db.get_member_role(household_id, user.id) is None:
        raise HTTPException(status_code=403, detail="Not a member of this household")
    return RequestContext(user=user, household_id=household_id)
