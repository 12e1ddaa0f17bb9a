"""Persistence ports — abstract interfaces for storage operations.

Core modules depend on these protocols, never on a specific database.
Every loader returns fully populated dataclasses (an event comes with its
template, a household with its plan); nothing is fetched lazily.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Protocol

from homely.data.models import (
    Event,
    EventHistory,
    EventStatus,
    Household,
    HouseholdMember,
    PlanType,
    PlanUsage,
    TaskTemplate,
    UsageType,
)


class PersistenceError(Exception):
    """Raised when any storage operation fails."""


class TransactionManager(Protocol):
    """Begin / commit / rollback as a context manager.

    Commits when the block exits normally, rolls back when it raises.
    """

    def transaction(self) -> AbstractContextManager[None]: ...


class TaskTemplateStore(Protocol):
    def get_task(self, task_id: int) -> TaskTemplate | None: ...

    def insert_task(self, task: TaskTemplate) -> TaskTemplate: ...

    def save_task(self, task: TaskTemplate) -> None: ...

    def list_tasks(
        self, household_id: int, include_deleted: bool = False,
    ) -> list[TaskTemplate]: ...

    def list_active_tasks(self, household_id: int) -> list[TaskTemplate]: ...

    def count_active_tasks(self, household_id: int) -> int: ...


class EventStore(Protocol):
    def get_event(self, event_id: int) -> Event | None: ...

    def save_event(self, event: Event) -> None: ...

    def insert_event(self, event: Event) -> Event: ...

    def insert_event_history(self, history: EventHistory) -> EventHistory: ...

    def list_events(
        self,
        household_id: int,
        status: EventStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Event]: ...

    def list_task_events(self, task_id: int) -> list[Event]: ...

    def find_open_event(self, task_id: int, due_date: date) -> Event | None: ...

    def count_future_pending(self, task_id: int, today: date) -> int: ...

    def latest_pending_due_date(self, task_id: int) -> date | None: ...

    def soft_delete_future_pending(
        self, task_id: int, today: date, now: datetime,
    ) -> int: ...

    def list_event_history(self, household_id: int) -> list[EventHistory]: ...


class HouseholdStore(Protocol):
    def get_household(self, household_id: int) -> Household | None: ...

    def insert_household(self, household: Household) -> Household: ...

    def insert_plan_type(self, plan: PlanType) -> PlanType: ...

    def list_household_ids(self) -> list[int]: ...

    def find_membership(
        self, household_id: int, user_id: str,
    ) -> HouseholdMember | None: ...

    def insert_member(self, member: HouseholdMember) -> HouseholdMember: ...

    def save_member(self, member: HouseholdMember) -> None: ...

    def count_active_members(self, household_id: int) -> int: ...


class PlanUsageStore(Protocol):
    def get_usage(
        self, household_id: int, usage_type: UsageType, as_of: date,
    ) -> PlanUsage | None: ...

    def upsert_usage(
        self,
        household_id: int,
        usage_type: UsageType,
        current_value: int,
        max_value: int | None,
        as_of: date,
        now: datetime,
    ) -> PlanUsage: ...

    def list_usage(self, household_id: int, as_of: date) -> list[PlanUsage]: ...
