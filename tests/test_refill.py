"""Tests for EventLifecycleManager.refill_events — topping up future events."""

from datetime import date
from unittest.mock import patch

from homely.core.results import ResultKind
from homely.data.models import EventStatus
from homely.ports.persistence_port import PersistenceError


def _pending_dates(event_db, task_id):
    return [
        e.due_date for e in event_db.list_task_events(task_id)
        if e.status is EventStatus.PENDING
    ]


class TestRefillEvents:
    def test_fills_empty_template_up_to_horizon(self, lifecycle, event_db, household, make_task):
        task = make_task(household.id, interval={"months": 1})

        result = lifecycle.refill_events(household.id)

        assert result.ok
        assert result.generated == 24
        assert result.per_task == {task.id: 24}
        dates = _pending_dates(event_db, task.id)
        assert dates[0] == date(2024, 2, 10)
        assert dates[-1] == date(2026, 1, 10)

    def test_idempotent(self, lifecycle, event_db, household, make_task):
        task = make_task(household.id, interval={"months": 1})
        lifecycle.refill_events(household.id)

        again = lifecycle.refill_events(household.id)

        assert again.ok
        assert again.generated == 0
        assert again.per_task == {}
        assert len(_pending_dates(event_db, task.id)) == 24

    def test_continues_from_latest_pending(self, lifecycle, event_db, household, make_task, make_event):
        task = make_task(household.id, interval={"months": 1})
        for due in (date(2024, 2, 10), date(2024, 3, 10), date(2024, 4, 10)):
            make_event(household.id, due, task_id=task.id)

        result = lifecycle.refill_events(household.id)

        assert result.generated == 21
        dates = _pending_dates(event_db, task.id)
        assert len(dates) == len(set(dates)) == 24
        assert dates[3] == date(2024, 5, 10)

    def test_threshold_reached_skips_template(self, lifecycle, household, make_task, make_event):
        task = make_task(household.id, interval={"days": 1})
        for day in range(10, 16):
            make_event(household.id, date(2024, 1, day), task_id=task.id)

        result = lifecycle.refill_events(household.id)

        assert result.ok
        assert result.generated == 0

    def test_past_last_date_starts_from_today(self, lifecycle, event_db, household, make_task):
        task = make_task(household.id, interval={"months": 1}, last_date=date(2023, 11, 15))

        lifecycle.refill_events(household.id)

        dates = _pending_dates(event_db, task.id)
        assert dates[0] == date(2024, 1, 15)
        assert dates[-1] == date(2025, 12, 15)

    def test_cap_on_future_events(self, lifecycle, event_db, household, make_task):
        task = make_task(household.id, interval={"days": 1})
        result = lifecycle.refill_events(household.id)
        assert result.generated == 60
        assert len(_pending_dates(event_db, task.id)) == 60

    def test_skips_one_time_and_inactive_templates(self, lifecycle, household, make_task):
        make_task(household.id, name="Once")
        make_task(household.id, name="Paused", interval={"weeks": 1}, is_active=False)
        result = lifecycle.refill_events(household.id)
        assert result.ok
        assert result.generated == 0

    def test_completed_events_are_not_an_anchor(self, lifecycle, event_db, household,
                                                 make_task, make_event):
        task = make_task(household.id, interval={"months": 1})
        make_event(household.id, date(2024, 5, 10), task_id=task.id, status=EventStatus.COMPLETED)

        result = lifecycle.refill_events(household.id)

        assert result.generated == 24
        assert _pending_dates(event_db, task.id)[0] == date(2024, 2, 10)

    def test_missing_household(self, lifecycle):
        assert lifecycle.refill_events(999).kind is ResultKind.NOT_FOUND

    def test_one_failing_template_does_not_stop_others(self, lifecycle, event_db, household,
                                                       make_task):
        bad = make_task(household.id, name="Bad", interval={"months": 1})
        good = make_task(household.id, name="Good", interval={"months": 1})
        original_insert = event_db.insert_event

        def flaky_insert(event):
            if event.task_id == bad.id:
                raise PersistenceError("disk full")
            return original_insert(event)

        with patch.object(event_db, "insert_event", side_effect=flaky_insert):
            result = lifecycle.refill_events(household.id)

        assert result.kind is ResultKind.UNEXPECTED
        assert result.failed_tasks == [bad.id]
        assert result.per_task == {good.id: 24}
        assert _pending_dates(event_db, bad.id) == []
        assert len(_pending_dates(event_db, good.id)) == 24
