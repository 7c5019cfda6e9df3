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

from enum import StrEnum


class EventCategory(StrEnum):
    SCHOOL = "school"
    MEDICAL = "medical"
    WORK = "work"
    SPORTS = "sports"
    SOCIAL = "social"
    FAMILY = "family"
    HOLIDAY = "holiday"
    BIRTHDAY = "birthday"
    OTHER = "other"


class SeriesMode(StrEnum):
    """Which part of a recurring series a delete or update applies to."""

    THIS = "this"
    THIS_AND_FUTURE = "this_and_future"
    ALL = "all"


class SeriesState(StrEnum):
    ACTIVE = "ACTIVE"
    EXCEPTION_DELETED = "EXCEPTION_DELETED"
    TRUNCATED = "TRUNCATED"
    DELETED = "DELETED"


class AgendaItemType(StrEnum):
    EVENT = "event"
    BILL = "bill"
    TASK = "task"
    BIRTHDAY = "birthday"
    ANNIVERSARY = "anniversary"


# Tie-break order for agenda items sharing a timestamp.
AGENDA_TYPE_PRIORITY = {
    AgendaItemType.EVENT: 0,
    AgendaItemType.BILL: 1,
    AgendaItemType.TASK: 2,
    AgendaItemType.BIRTHDAY: 3,
    AgendaItemType.ANNIVERSARY: 4,
}


class TaskStatus(StrEnum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class BillCategory(StrEnum):
    HOUSING = "housing"
    UTILITIES = "utilities"
    INSURANCE = "insurance"
    TRANSPORTATION = "transportation"
    SUBSCRIPTIONS = "subscriptions"
    FOOD = "food"
    HEALTHCARE = "healthcare"
    OTHER = "other"


class RelationshipType(StrEnum):
    SPOUSE = "spouse"
    PARTNER = "partner"
    CHILD = "child"
    PARENT = "parent"
    SIBLING = "sibling"
    EXTENDED_FAMILY = "extended_family"
    FRIEND = "friend"
    DOCTOR = "doctor"
    TEACHER = "teacher"
    NEIGHBOR = "neighbor"
    COLLEAGUE = "colleague"
    SERVICE_PROVIDER = "service_provider"
    OTHER = "other"


class NotificationType(StrEnum):
    EVENT_REMINDER = "event_reminder"
    BILL_DUE = "bill_due"
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    MEMBER_JOINED = "member_joined"
    SHOPPING_ITEM_ADDED = "shopping_item_added"
    BIRTHDAY_REMINDER = "birthday_reminder"
    SYNC_CONFLICT = "sync_conflict"
    SYSTEM = "system"


class MemberRole(StrEnum):
    ADMIN = "admin"
    MEMBER = "member"
    CHILD = "child"


class Provider(StrEnum):
    GOOGLE = "google"
    MICROSOFT = "microsoft"


class PlaidItemStatus(StrEnum):
    ACTIVE = "active"
    LOGIN_REQUIRED = "login_required"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class ExternalEventStatus(StrEnum):
    CONFIRMED = "confirmed"
    TENTATIVE = "tentative"
    CANCELLED = "cancelled"
