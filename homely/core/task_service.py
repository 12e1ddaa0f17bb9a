"""
Homely — Task template service.

Creates, edits and removes task templates. Every mutation that changes the
number of active templates is followed by a full recount of the household's
task usage, and adding an active template (or switching one back on) is
refused once the plan's task limit is reached. Recurring templates get their
future events seeded on creation and regenerated when their interval changes;
the template write, the recount and the events commit together.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from homely.core.results import ResultKind, TaskResult
from homely.data.models import PRIORITIES, RecurrenceInterval, TaskTemplate, UsageType
from homely.data.models import is_active as not_deleted
from homely.ports.persistence_port import PersistenceError

if TYPE_CHECKING:
    from homely.core.event_lifecycle import EventLifecycleManager
    from homely.core.plan_usage import PlanUsageGuard
    from homely.ports.clock_port import Clock
    from homely.ports.persistence_port import (
        HouseholdStore,
        TaskTemplateStore,
        TransactionManager,
    )

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = {
    "name", "description", "category_id", "interval", "priority",
    "assigned_to", "last_date", "notes", "is_active",
}


def _coerce_interval(
    interval: RecurrenceInterval | dict[str, int | None] | None,
) -> RecurrenceInterval:
    """Accept a ready interval or a {years, months, weeks, days} mapping."""
    if interval is None:
        return RecurrenceInterval()
    if isinstance(interval, RecurrenceInterval):
        return interval
    return RecurrenceInterval(**interval)


def _limit_reached(household_id: int) -> TaskResult:
    return TaskResult(
        ResultKind.LIMIT_EXCEEDED,
        f"Household {household_id} has reached its plan limit for tasks",
    )


class TaskService:
    """Task template management on top of the lifecycle manager."""

    def __init__(
        self,
        tasks: TaskTemplateStore,
        households: HouseholdStore,
        lifecycle: EventLifecycleManager,
        usage_guard: PlanUsageGuard,
        transactions: TransactionManager,
        clock: Clock,
    ) -> None:
        self._tasks = tasks
        self._households = households
        self._lifecycle = lifecycle
        self._guard = usage_guard
        self._tx = transactions
        self._clock = clock

    def get_task(self, task_id: int) -> TaskResult:
        task = self._tasks.get_task(task_id)
        if not not_deleted(task):
            return TaskResult(ResultKind.NOT_FOUND, f"Task {task_id} not found")
        return TaskResult(ResultKind.SUCCESS, task=task)

    def list_tasks(self, household_id: int) -> list[TaskTemplate]:
        return self._tasks.list_tasks(household_id)

    def create_task(
        self,
        household_id: int,
        name: str,
        created_by: str,
        interval: RecurrenceInterval | dict[str, int | None] | None = None,
        priority: str = "medium",
        category_id: int | None = None,
        description: str | None = None,
        assigned_to: str | None = None,
        last_date: date | None = None,
        notes: str | None = None,
        is_active: bool = True,
    ) -> TaskResult:
        """Insert a template, recount usage and seed its future events.

        All three happen in one transaction: a failure while seeding leaves
        neither the template nor its usage behind.
        """
        if not name or not name.strip():
            return TaskResult(ResultKind.VALIDATION, "Task name is required")
        if not created_by:
            return TaskResult(ResultKind.VALIDATION, "created_by is required")
        if priority not in PRIORITIES:
            return TaskResult(ResultKind.VALIDATION, f"Invalid priority {priority!r}")
        try:
            parsed_interval = _coerce_interval(interval)
        except ValidationError as exc:
            return TaskResult(ResultKind.VALIDATION, f"Invalid interval: {exc.errors()[0]['msg']}")

        events_generated = 0
        try:
            with self._tx.transaction():
                household = self._households.get_household(household_id)
                if not not_deleted(household):
                    return TaskResult(ResultKind.NOT_FOUND, f"Household {household_id} not found")

                # Switched-off templates don't count toward the limit
                if is_active and self._guard.would_exceed_limit(household_id, UsageType.TASKS):
                    return _limit_reached(household_id)

                now = self._clock.now()
                task = self._tasks.insert_task(
                    TaskTemplate(
                        id=None,
                        household_id=household_id,
                        name=name.strip(),
                        description=description,
                        category_id=category_id,
                        interval=parsed_interval,
                        priority=priority,
                        assigned_to=assigned_to,
                        last_date=last_date,
                        notes=notes,
                        is_active=is_active,
                        created_by=created_by,
                        created_at=now,
                        updated_at=now,
                    )
                )
                usage = self._guard.update_usage(household_id, UsageType.TASKS)

                if task.is_active:
                    series = self._lifecycle.generate_event_series(
                        task.id, last_date or self._clock.today(),
                    )
                    if not series.ok:
                        raise PersistenceError(series.message)
                    events_generated = len(series.generated)
        except PersistenceError as exc:
            logger.error("Error creating task in household %d: %s", household_id, exc)
            return TaskResult(ResultKind.UNEXPECTED, f"Could not create task: {exc}")

        logger.info(
            "Task #%d created for household %d (%d future events)",
            task.id, household_id, events_generated,
        )
        return TaskResult(
            ResultKind.SUCCESS,
            f"Task '{task.name}' created",
            task=task,
            events_generated=events_generated,
            usage=usage,
        )

    def update_task(self, task_id: int, **changes: Any) -> TaskResult:
        """Apply field changes; regenerate future events if the interval changed."""
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            return TaskResult(
                ResultKind.VALIDATION, f"Cannot update fields: {', '.join(sorted(unknown))}",
            )
        if "priority" in changes and changes["priority"] not in PRIORITIES:
            return TaskResult(ResultKind.VALIDATION, f"Invalid priority {changes['priority']!r}")
        if "name" in changes and not (changes["name"] or "").strip():
            return TaskResult(ResultKind.VALIDATION, "Task name is required")
        if "interval" in changes:
            try:
                changes["interval"] = _coerce_interval(changes["interval"])
            except ValidationError as exc:
                return TaskResult(
                    ResultKind.VALIDATION, f"Invalid interval: {exc.errors()[0]['msg']}",
                )

        events_generated = 0
        try:
            with self._tx.transaction():
                task = self._tasks.get_task(task_id)
                if not not_deleted(task):
                    return TaskResult(ResultKind.NOT_FOUND, f"Task {task_id} not found")

                interval_changed = "interval" in changes and changes["interval"] != task.interval
                activity_changed = "is_active" in changes and changes["is_active"] != task.is_active

                # Switching a template back on adds one to the active count
                if activity_changed and changes["is_active"] and self._guard.would_exceed_limit(
                    task.household_id, UsageType.TASKS,
                ):
                    return _limit_reached(task.household_id)

                updated = replace(task, **changes, updated_at=self._clock.now())
                self._tasks.save_task(updated)
                usage = None
                if activity_changed:
                    usage = self._guard.update_usage(updated.household_id, UsageType.TASKS)

                if interval_changed and updated.is_active:
                    logger.info("Task %d interval changed - regenerating future events", task_id)
                    regenerated = self._lifecycle.regenerate_events_for_task(task_id)
                    if not regenerated.ok:
                        raise PersistenceError(regenerated.message)
                    events_generated = len(regenerated.generated)
        except PersistenceError as exc:
            logger.error("Error updating task %d: %s", task_id, exc)
            return TaskResult(ResultKind.UNEXPECTED, f"Could not update task: {exc}")

        logger.info("Task #%d updated", task_id)
        return TaskResult(
            ResultKind.SUCCESS,
            f"Task '{updated.name}' updated",
            task=updated,
            events_generated=events_generated,
            usage=usage,
        )

    def delete_task(self, task_id: int) -> TaskResult:
        """Soft-delete a template and recount task usage."""
        try:
            with self._tx.transaction():
                task = self._tasks.get_task(task_id)
                if not not_deleted(task):
                    return TaskResult(ResultKind.NOT_FOUND, f"Task {task_id} not found")

                now = self._clock.now()
                task.deleted_at = now
                task.updated_at = now
                self._tasks.save_task(task)
                usage = self._guard.update_usage(task.household_id, UsageType.TASKS)
        except PersistenceError as exc:
            logger.error("Error deleting task %d: %s", task_id, exc)
            return TaskResult(ResultKind.UNEXPECTED, f"Could not delete task: {exc}")

        logger.info("Task #%d soft-deleted", task_id)
        return TaskResult(ResultKind.SUCCESS, f"Task {task_id} deleted", task=task, usage=usage)
