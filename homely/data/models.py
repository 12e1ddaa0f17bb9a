"""
Homely — Data Models.

Task templates describe *what* has to be done and *how often*; events are the
concrete scheduled occurrences that get completed, postponed or cancelled.
Households own both and carry the subscription plan whose limits are tracked
in plan usage rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    POSTPONED = "postponed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (EventStatus.COMPLETED, EventStatus.CANCELLED)


class UsageType(Enum):
    TASKS = "tasks"
    HOUSEHOLD_MEMBERS = "household_members"


PRIORITIES = ("low", "medium", "high")
HOUSEHOLD_ROLES = ("admin", "member", "dashboard")

HISTORY_FEATURE = "event_history"
ONE_OFF_TASK_NAME = "One-off event"


class RecurrenceInterval(BaseModel):
    """Recurrence period of a task template.

    Four independent components; all zero means a one-time task.
    Negative components are rejected, missing ones (NULL columns) become 0.
    """

    model_config = ConfigDict(frozen=True)

    years: int = Field(default=0, ge=0)
    months: int = Field(default=0, ge=0)
    weeks: int = Field(default=0, ge=0)
    days: int = Field(default=0, ge=0)

    @field_validator("years", "months", "weeks", "days", mode="before")
    @classmethod
    def none_as_zero(cls, v: int | None) -> int:
        return 0 if v is None else v

    @property
    def is_recurring(self) -> bool:
        return any((self.years, self.months, self.weeks, self.days))


class _SoftDeletable(Protocol):
    deleted_at: datetime | None


def is_active(entity: _SoftDeletable | None) -> bool:
    """True when the entity exists and has not been soft-deleted."""
    return entity is not None and entity.deleted_at is None


@dataclass
class TaskTemplate:
    """A recurring (or one-time) chore definition."""

    id: int | None
    household_id: int
    name: str
    created_by: str
    interval: RecurrenceInterval = field(default_factory=RecurrenceInterval)
    priority: str = "medium"
    category_id: int | None = None
    description: str | None = None
    assigned_to: str | None = None
    last_date: date | None = None     # last done before it was entered
    notes: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


@dataclass
class Event:
    """A concrete scheduled occurrence, optionally generated from a template."""

    id: int | None
    household_id: int
    due_date: date
    created_by: str
    task_id: int | None = None
    assigned_to: str | None = None
    status: EventStatus = EventStatus.PENDING
    priority: str = "medium"
    completion_date: date | None = None
    completion_notes: str | None = None
    postponed_from_date: date | None = None
    postpone_reason: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    # Loaded alongside the event, never persisted through it
    task: TaskTemplate | None = field(default=None, repr=False, compare=False)

    @property
    def original_due_date(self) -> date:
        """Due date before any postponement."""
        return self.postponed_from_date or self.due_date


@dataclass(frozen=True)
class EventHistory:
    """Immutable archival snapshot of a completed event."""

    id: int | None
    household_id: int
    due_date: date
    completion_date: date
    task_name: str
    event_id: int | None = None
    task_id: int | None = None
    assigned_to: str | None = None
    completed_by: str | None = None
    completion_notes: str | None = None
    created_at: datetime | None = None


@dataclass
class PlanType:
    """Subscription plan. A None maximum means unlimited."""

    id: int | None
    name: str
    max_tasks: int | None = None
    max_household_members: int | None = None
    features: list[str] = field(default_factory=list)
    is_active: bool = True

    def max_for(self, usage_type: UsageType) -> int | None:
        if usage_type is UsageType.TASKS:
            return self.max_tasks
        return self.max_household_members


@dataclass
class Household:
    id: int | None
    name: str
    plan_type_id: int | None = None
    plan: PlanType | None = field(default=None, compare=False)
    created_at: datetime | None = None
    deleted_at: datetime | None = None


@dataclass
class HouseholdMember:
    id: int | None
    household_id: int
    user_id: str
    role: str = "member"
    joined_at: datetime | None = None
    deleted_at: datetime | None = None


@dataclass
class PlanUsage:
    """Per-household, per-usage-type counter as of one day."""

    id: int | None
    household_id: int
    usage_type: UsageType
    current_value: int
    usage_date: date
    max_value: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
