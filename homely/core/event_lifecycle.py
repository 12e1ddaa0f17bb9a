"""
Homely — Event lifecycle manager.

Owns the event state machine:

    pending --complete--> completed   (terminal)
    pending --postpone--> postponed --postpone--> postponed
    pending/postponed --cancel--> cancelled (terminal)
    postponed --complete--> completed

Completing an event of a recurring template materializes its successor in
the same transaction, anchored to the event's original due date (never the
completion date, so late completions don't push the schedule back). Plans
with history retention also get an archival snapshot in that transaction.

The manager is storage-agnostic: it depends on the persistence and clock
ports, and returns tagged result objects instead of raising for rule
violations.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from homely.config import EventGenerationSettings
from homely.core.recurrence import has_interval, iter_due_dates, next_due_date
from homely.core.results import EventResult, RefillResult, ResultKind
from homely.data.models import (
    HISTORY_FEATURE,
    ONE_OFF_TASK_NAME,
    PRIORITIES,
    Event,
    EventHistory,
    EventStatus,
    PlanType,
    RecurrenceInterval,
    TaskTemplate,
    is_active,
)
from homely.ports.persistence_port import PersistenceError

if TYPE_CHECKING:
    from homely.ports.clock_port import Clock
    from homely.ports.persistence_port import (
        EventStore,
        HouseholdStore,
        TaskTemplateStore,
        TransactionManager,
    )

logger = logging.getLogger(__name__)

CANCELLED_MARKER = "[CANCELLED]"


class EventLifecycleManager:
    """Create, complete, postpone, cancel and delete events; refill series."""

    def __init__(
        self,
        events: EventStore,
        tasks: TaskTemplateStore,
        households: HouseholdStore,
        transactions: TransactionManager,
        clock: Clock,
        generation: EventGenerationSettings | None = None,
        history_keywords: list[str] | None = None,
    ) -> None:
        if generation is None or history_keywords is None:
            from homely.config import settings
            generation = generation or settings.event_generation()
            if history_keywords is None:
                history_keywords = settings.HISTORY_PLAN_KEYWORDS

        self._events = events
        self._tasks = tasks
        self._households = households
        self._tx = transactions
        self._clock = clock
        self._generation = generation
        self._history_keywords = [k.lower() for k in history_keywords]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_event(self, event_id: int) -> EventResult:
        try:
            event = self._events.get_event(event_id)
        except PersistenceError as exc:
            return self._unexpected("loading", event_id, exc)
        if not is_active(event):
            return _not_found(event_id)
        return EventResult(ResultKind.SUCCESS, event=event)

    def list_upcoming_events(self, household_id: int, days: int = 30) -> list[Event]:
        """Open events due between today and today + days, earliest first."""
        today = self._clock.today()
        events = self._events.list_events(
            household_id, start_date=today, end_date=today + timedelta(days=days),
        )
        return [e for e in events if not e.status.is_terminal]

    def list_overdue_events(self, household_id: int) -> list[Event]:
        """Open events whose due date has passed."""
        yesterday = self._clock.today() - timedelta(days=1)
        events = self._events.list_events(household_id, end_date=yesterday)
        return [e for e in events if not e.status.is_terminal]

    def count_future_events(self, task_id: int) -> int:
        """Pending, non-deleted events of the template due today or later."""
        return self._events.count_future_pending(task_id, self._clock.today())

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def create_event(
        self,
        household_id: int,
        due_date: date,
        created_by: str,
        task_id: int | None = None,
        assigned_to: str | None = None,
        priority: str | None = None,
        notes: str | None = None,
    ) -> EventResult:
        """Schedule a new pending event, optionally from a task template.

        Priority is inherited from the template unless given explicitly.
        """
        if priority is not None and priority not in PRIORITIES:
            return EventResult(
                ResultKind.VALIDATION,
                f"Invalid priority {priority!r}; expected one of {', '.join(PRIORITIES)}",
            )

        try:
            with self._tx.transaction():
                household = self._households.get_household(household_id)
                if not is_active(household):
                    return EventResult(
                        ResultKind.NOT_FOUND, f"Household {household_id} not found",
                    )

                template: TaskTemplate | None = None
                if task_id is not None:
                    template = self._tasks.get_task(task_id)
                    if not is_active(template):
                        return EventResult(
                            ResultKind.NOT_FOUND, f"Task template {task_id} not found",
                        )
                    if template.household_id != household_id:
                        return EventResult(
                            ResultKind.VALIDATION,
                            f"Task template {task_id} belongs to another household",
                        )

                now = self._clock.now()
                event = Event(
                    id=None,
                    task_id=task_id,
                    household_id=household_id,
                    assigned_to=assigned_to,
                    due_date=due_date,
                    status=EventStatus.PENDING,
                    priority=priority or (template.priority if template else "medium"),
                    notes=notes,
                    created_by=created_by,
                    created_at=now,
                    updated_at=now,
                )
                self._events.insert_event(event)
                event.task = template
        except PersistenceError as exc:
            logger.error("Error creating event for household %d: %s", household_id, exc)
            return EventResult(ResultKind.UNEXPECTED, f"Could not create event: {exc}")

        logger.info(
            "Event #%d created for task %s in household %d, due %s",
            event.id, task_id, household_id, due_date,
        )
        return EventResult(ResultKind.SUCCESS, "Event created", event=event)

    def complete_event(
        self,
        event_id: int,
        completed_by: str,
        completion_date: date | None = None,
        notes: str | None = None,
    ) -> EventResult:
        """Mark an event completed and materialize its successor atomically.

        Either all of completion, successor and history are written, or none.
        """
        try:
            with self._tx.transaction():
                event = self._events.get_event(event_id)
                if not is_active(event):
                    return _not_found(event_id)
                if event.status is EventStatus.COMPLETED:
                    return EventResult(
                        ResultKind.CONFLICT, f"Event {event_id} is already completed",
                        event=event,
                    )
                if event.status is EventStatus.CANCELLED:
                    return EventResult(
                        ResultKind.CONFLICT, f"Cannot complete cancelled event {event_id}",
                        event=event,
                    )

                now = self._clock.now()
                event.status = EventStatus.COMPLETED
                event.completion_date = completion_date or self._clock.today()
                event.completion_notes = notes
                event.updated_at = now
                self._events.save_event(event)

                successor = self._create_successor(event, now)
                history = self._archive_if_retained(event, completed_by, now)
        except PersistenceError as exc:
            return self._unexpected("completing", event_id, exc)

        logger.info("Event #%d marked as completed on %s", event_id, event.completion_date)
        return EventResult(
            ResultKind.SUCCESS,
            f"Event {event_id} completed",
            event=event,
            successor=successor,
            history=history,
        )

    def postpone_event(
        self,
        event_id: int,
        new_due_date: date,
        reason: str | None = None,
    ) -> EventResult:
        """Move an open event to a later date, remembering the first due date."""
        try:
            with self._tx.transaction():
                event = self._events.get_event(event_id)
                if not is_active(event):
                    return _not_found(event_id)
                if event.status.is_terminal:
                    return EventResult(
                        ResultKind.CONFLICT,
                        f"Cannot postpone {event.status.value} event {event_id}",
                        event=event,
                    )
                if new_due_date <= self._clock.today():
                    return EventResult(
                        ResultKind.VALIDATION, "New due date must be in the future",
                        event=event,
                    )

                if event.postponed_from_date is None:
                    event.postponed_from_date = event.due_date
                event.due_date = new_due_date
                event.postpone_reason = reason
                event.status = EventStatus.POSTPONED
                event.updated_at = self._clock.now()
                self._events.save_event(event)
        except PersistenceError as exc:
            return self._unexpected("postponing", event_id, exc)

        logger.info("Event #%d postponed to %s", event_id, new_due_date)
        return EventResult(ResultKind.SUCCESS, f"Event {event_id} postponed", event=event)

    def cancel_event(self, event_id: int, reason: str) -> EventResult:
        """Cancel an open event, keeping the reason in front of its notes."""
        try:
            with self._tx.transaction():
                event = self._events.get_event(event_id)
                if not is_active(event):
                    return _not_found(event_id)
                if event.status.is_terminal:
                    return EventResult(
                        ResultKind.CONFLICT,
                        f"Cannot cancel {event.status.value} event {event_id}",
                        event=event,
                    )

                cancelled_notes = f"{CANCELLED_MARKER} {reason}"
                if event.notes:
                    cancelled_notes += f"\n\nPrevious notes:\n{event.notes}"
                event.status = EventStatus.CANCELLED
                event.notes = cancelled_notes
                event.updated_at = self._clock.now()
                self._events.save_event(event)
        except PersistenceError as exc:
            return self._unexpected("cancelling", event_id, exc)

        logger.info("Event #%d cancelled with reason: %s", event_id, reason)
        return EventResult(ResultKind.SUCCESS, f"Event {event_id} cancelled", event=event)

    def delete_event(self, event_id: int) -> EventResult:
        """Soft-delete an event. Its status is left as it was."""
        try:
            with self._tx.transaction():
                event = self._events.get_event(event_id)
                if not is_active(event):
                    return _not_found(event_id)
                now = self._clock.now()
                event.deleted_at = now
                event.updated_at = now
                self._events.save_event(event)
        except PersistenceError as exc:
            return self._unexpected("deleting", event_id, exc)

        logger.info("Event #%d soft-deleted", event_id)
        return EventResult(ResultKind.SUCCESS, f"Event {event_id} deleted", event=event)

    # ------------------------------------------------------------------
    # Series generation and refill
    # ------------------------------------------------------------------

    def generate_event_series(self, task_id: int, start_date: date) -> EventResult:
        """Generate the template's pending events after start_date up to the horizon."""
        try:
            with self._tx.transaction():
                template = self._tasks.get_task(task_id)
                if not is_active(template):
                    return EventResult(
                        ResultKind.NOT_FOUND, f"Task template {task_id} not found",
                    )
                generated = self._generate_series(template, start_date)
        except PersistenceError as exc:
            logger.error("Error generating event series for task %d: %s", task_id, exc)
            return EventResult(
                ResultKind.UNEXPECTED, f"Could not generate events for task {task_id}: {exc}",
            )

        if generated:
            logger.info(
                "Generated %d events for task %d from %s to %s",
                len(generated), task_id, generated[0].due_date, generated[-1].due_date,
            )
        return EventResult(
            ResultKind.SUCCESS, f"{len(generated)} events generated", generated=generated,
        )

    def regenerate_events_for_task(self, task_id: int) -> EventResult:
        """Replace the template's future pending events with a fresh series.

        Used after the template's interval changed. Runs as one transaction.
        """
        try:
            with self._tx.transaction():
                template = self._tasks.get_task(task_id)
                if not is_active(template):
                    return EventResult(
                        ResultKind.NOT_FOUND, f"Task template {task_id} not found",
                    )
                today = self._clock.today()
                removed = self._events.soft_delete_future_pending(
                    task_id, today, self._clock.now(),
                )
                logger.info("Deleted %d future events for task %d", removed, task_id)
                generated = self._generate_series(template, today)
        except PersistenceError as exc:
            logger.error("Error regenerating events for task %d: %s", task_id, exc)
            return EventResult(
                ResultKind.UNEXPECTED, f"Could not regenerate events for task {task_id}: {exc}",
            )

        return EventResult(
            ResultKind.SUCCESS,
            f"{len(generated)} events regenerated",
            generated=generated,
        )

    def refill_events(self, household_id: int) -> RefillResult:
        """Top up future pending events of every active recurring template.

        A template is refilled only when it has fewer future pending events
        than the configured threshold; generation continues from its latest
        pending event. Only adds, so re-running is harmless. Each template is
        refilled in its own transaction.
        """
        try:
            household = self._households.get_household(household_id)
            if not is_active(household):
                return RefillResult(
                    ResultKind.NOT_FOUND, f"Household {household_id} not found",
                )
            templates = self._tasks.list_active_tasks(household_id)
        except PersistenceError as exc:
            logger.error("Error loading templates of household %d: %s", household_id, exc)
            return RefillResult(ResultKind.UNEXPECTED, f"Could not refill household: {exc}")

        result = RefillResult(ResultKind.SUCCESS)
        for template in templates:
            if not has_interval(template):
                continue
            try:
                with self._tx.transaction():
                    generated = self._refill_template(template)
            except PersistenceError as exc:
                logger.error("Error refilling task %d: %s", template.id, exc)
                result.failed_tasks.append(template.id)
                continue
            if generated:
                result.per_task[template.id] = len(generated)
                result.generated += len(generated)

        logger.info(
            "Refill complete for household %d: %d total events generated",
            household_id, result.generated,
        )
        if result.failed_tasks:
            result.kind = ResultKind.UNEXPECTED
            result.message = (
                f"Refill failed for tasks {', '.join(map(str, result.failed_tasks))}"
            )
        else:
            result.message = f"{result.generated} events generated"
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _refill_template(self, template: TaskTemplate) -> list[Event]:
        today = self._clock.today()
        future = self._events.count_future_pending(template.id, today)
        if future >= self._generation.min_future_events_threshold:
            logger.debug(
                "Task %d has %d future events, no refill needed", template.id, future,
            )
            return []

        last_pending = self._events.latest_pending_due_date(template.id)
        anchor = last_pending or template.last_date or today
        generated = self._generate_series(template, anchor)
        logger.info(
            "Refilled %d events for task %d (last event was: %s)",
            len(generated), template.id, last_pending or "none",
        )
        return generated

    def _generate_series(self, template: TaskTemplate, anchor: date) -> list[Event]:
        """Insert pending events stepping from anchor; caller owns the transaction."""
        if not has_interval(template):
            logger.info(
                "Task %d has no interval - skipping event series generation", template.id,
            )
            return []

        today = self._clock.today()
        horizon = next_due_date(
            today, RecurrenceInterval(years=self._generation.future_horizon_years),
        )
        budget = self._generation.max_future_events - self._events.count_future_pending(
            template.id, today,
        )
        now = self._clock.now()

        generated: list[Event] = []
        for due in iter_due_dates(anchor, template.interval, horizon):
            if budget <= 0:
                break
            if due < today:
                continue
            if self._events.find_open_event(template.id, due) is not None:
                continue
            event = Event(
                id=None,
                task_id=template.id,
                household_id=template.household_id,
                assigned_to=template.assigned_to,
                due_date=due,
                status=EventStatus.PENDING,
                priority=template.priority,
                created_by=template.created_by,
                created_at=now,
                updated_at=now,
            )
            generated.append(self._events.insert_event(event))
            budget -= 1
        return generated

    def _create_successor(self, event: Event, now: datetime) -> Event | None:
        template = event.task
        if event.task_id is None:
            return None
        if not is_active(template):
            logger.warning(
                "Task template %d of event #%d not found, skipping recurrence",
                event.task_id, event.id,
            )
            return None
        if not template.is_active:
            logger.info("Task %d is switched off, no next event", template.id)
            return None
        if not has_interval(template):
            logger.debug("Task %d is one-time, no next event", template.id)
            return None

        due = next_due_date(event.original_due_date, template.interval)
        existing = self._events.find_open_event(template.id, due)
        if existing is not None:
            logger.info(
                "Next event for task %d on %s already scheduled as #%d",
                template.id, due, existing.id,
            )
            return existing

        successor = Event(
            id=None,
            task_id=template.id,
            household_id=event.household_id,
            assigned_to=event.assigned_to,
            due_date=due,
            status=EventStatus.PENDING,
            priority=template.priority,
            notes=None,
            created_by=event.created_by,
            created_at=now,
            updated_at=now,
        )
        self._events.insert_event(successor)
        logger.info(
            "Created next event #%d for task %d, due %s", successor.id, template.id, due,
        )
        return successor

    def _archive_if_retained(
        self, event: Event, completed_by: str, now: datetime,
    ) -> EventHistory | None:
        household = self._households.get_household(event.household_id)
        if household is None or household.plan is None:
            logger.warning(
                "Cannot create event history: household %d or its plan not found",
                event.household_id,
            )
            return None
        if not self._plan_includes_history(household.plan):
            logger.debug(
                "Skipping event history: household %d plan '%s' has no history",
                event.household_id, household.plan.name,
            )
            return None

        history = self._events.insert_event_history(
            EventHistory(
                id=None,
                event_id=event.id,
                task_id=event.task_id,
                household_id=event.household_id,
                assigned_to=event.assigned_to,
                completed_by=completed_by,
                due_date=event.due_date,
                completion_date=event.completion_date or self._clock.today(),
                task_name=event.task.name if event.task else ONE_OFF_TASK_NAME,
                completion_notes=event.completion_notes,
                created_at=now,
            )
        )
        logger.info(
            "Created event history #%d for event #%d in household %d",
            history.id, event.id, event.household_id,
        )
        return history

    def _plan_includes_history(self, plan: PlanType) -> bool:
        if HISTORY_FEATURE in plan.features:
            return True
        name = plan.name.lower()
        return any(keyword in name for keyword in self._history_keywords)

    def _unexpected(self, action: str, event_id: int, exc: Exception) -> EventResult:
        logger.error("Error %s event %d: %s", action, event_id, exc)
        return EventResult(
            ResultKind.UNEXPECTED, f"Storage failure while {action} event {event_id}: {exc}",
        )


def _not_found(event_id: int) -> EventResult:
    return EventResult(ResultKind.NOT_FOUND, f"Event {event_id} not found")
