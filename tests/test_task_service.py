"""Tests for homely.core.task_service — templates, limits and event seeding."""

from datetime import date
from unittest.mock import patch

import pytest

from homely.core.results import ResultKind
from homely.data.models import RecurrenceInterval, UsageType
from homely.ports.persistence_port import PersistenceError


@pytest.fixture
def task_service(services):
    return services.task_service


class TestCreateTask:
    def test_recurring_task_seeds_events(self, task_service, event_db, household):
        result = task_service.create_task(
            household.id, "Change filter", "alice", interval={"months": 1}, priority="high",
        )

        assert result.ok
        assert result.task.id is not None
        assert result.task.interval == RecurrenceInterval(months=1)
        assert result.events_generated == 24
        assert result.usage.current_value == 1
        events = event_db.list_task_events(result.task.id)
        assert events[0].due_date == date(2024, 2, 10)
        assert all(e.priority == "high" for e in events)

    def test_seeds_from_last_date(self, task_service, event_db, household):
        result = task_service.create_task(
            household.id, "Descale kettle", "alice",
            interval=RecurrenceInterval(months=1), last_date=date(2023, 11, 15),
        )
        events = event_db.list_task_events(result.task.id)
        assert events[0].due_date == date(2024, 1, 15)

    def test_one_time_task(self, task_service, household):
        result = task_service.create_task(household.id, "Assemble shelf", "alice")
        assert result.ok
        assert result.events_generated == 0

    def test_inactive_task_gets_no_events(self, task_service, household):
        result = task_service.create_task(
            household.id, "Winterize garden", "alice", interval={"years": 1},
            is_active=False,
        )
        assert result.ok
        assert result.events_generated == 0
        assert result.usage.current_value == 0

    def test_name_is_stripped(self, task_service, household):
        result = task_service.create_task(household.id, "  Mop  ", "alice")
        assert result.task.name == "Mop"

    def test_limit_exceeded(self, task_service, task_db, make_household):
        household = make_household(max_tasks=2)
        assert task_service.create_task(household.id, "One", "alice").ok
        assert task_service.create_task(household.id, "Two", "alice").ok

        result = task_service.create_task(household.id, "Three", "alice")

        assert result.kind is ResultKind.LIMIT_EXCEEDED
        assert task_db.count_active_tasks(household.id) == 2

    def test_deleting_frees_capacity(self, task_service, make_household):
        household = make_household(max_tasks=1)
        first = task_service.create_task(household.id, "One", "alice")
        task_service.delete_task(first.task.id)
        assert task_service.create_task(household.id, "Two", "alice").ok

    def test_inactive_task_allowed_at_limit(self, task_service, task_db, make_household):
        household = make_household(max_tasks=1)
        assert task_service.create_task(household.id, "On", "alice").ok

        result = task_service.create_task(household.id, "Off", "alice", is_active=False)

        assert result.ok
        assert result.usage.current_value == 1
        assert len(task_db.list_tasks(household.id)) == 2

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": ""},
            {"name": "   "},
            {"priority": "urgent"},
            {"interval": {"days": -1}},
            {"created_by": ""},
        ],
    )
    def test_validation(self, task_service, household, kwargs):
        args = {"name": "Dust", "created_by": "alice"}
        args.update(kwargs)
        result = task_service.create_task(household.id, **args)
        assert result.kind is ResultKind.VALIDATION

    def test_missing_household(self, task_service):
        result = task_service.create_task(999, "Dust", "alice")
        assert result.kind is ResultKind.NOT_FOUND


class TestUpdateTask:
    def test_interval_change_regenerates(self, task_service, event_db, household):
        created = task_service.create_task(household.id, "Bins", "alice", interval={"months": 1})

        result = task_service.update_task(created.task.id, interval={"weeks": 2})

        assert result.ok
        assert result.task.interval == RecurrenceInterval(weeks=2)
        assert result.events_generated == 52
        events = event_db.list_task_events(created.task.id)
        assert len(events) == 52
        assert events[0].due_date == date(2024, 1, 24)

    def test_same_interval_does_not_regenerate(self, task_service, household):
        created = task_service.create_task(household.id, "Bins", "alice", interval={"months": 1})
        result = task_service.update_task(created.task.id, interval={"months": 1}, notes="blue bin")
        assert result.ok
        assert result.events_generated == 0
        assert result.task.notes == "blue bin"

    def test_switching_off_recounts_usage(self, task_service, household):
        created = task_service.create_task(household.id, "Bins", "alice")
        result = task_service.update_task(created.task.id, is_active=False)
        assert result.usage.current_value == 0

    def test_switching_on_at_limit_refused(self, task_service, task_db, make_household):
        household = make_household(max_tasks=1)
        off = task_service.create_task(household.id, "Off", "alice", is_active=False)
        assert task_service.create_task(household.id, "On", "alice").ok

        result = task_service.update_task(off.task.id, is_active=True)

        assert result.kind is ResultKind.LIMIT_EXCEEDED
        assert task_db.get_task(off.task.id).is_active is False
        assert task_db.count_active_tasks(household.id) == 1

    def test_switching_on_below_limit(self, task_service, event_db, make_household):
        household = make_household(max_tasks=2)
        off = task_service.create_task(household.id, "Off", "alice", is_active=False)

        result = task_service.update_task(off.task.id, is_active=True)

        assert result.ok
        assert result.usage.current_value == 1

    def test_persisted(self, task_service, task_db, household):
        created = task_service.create_task(household.id, "Bins", "alice")
        task_service.update_task(created.task.id, name="Recycling", priority="low")
        stored = task_db.get_task(created.task.id)
        assert stored.name == "Recycling"
        assert stored.priority == "low"

    def test_unknown_field(self, task_service, household):
        created = task_service.create_task(household.id, "Bins", "alice")
        result = task_service.update_task(created.task.id, household_id=2)
        assert result.kind is ResultKind.VALIDATION

    def test_invalid_priority(self, task_service, household):
        created = task_service.create_task(household.id, "Bins", "alice")
        assert task_service.update_task(created.task.id, priority="asap").kind is ResultKind.VALIDATION

    def test_missing_task(self, task_service):
        assert task_service.update_task(999, name="x").kind is ResultKind.NOT_FOUND


class TestTaskAtomicity:
    def test_failed_seeding_rolls_back_create(self, task_service, task_db, event_db,
                                              usage_db, household):
        with patch.object(event_db, "insert_event", side_effect=PersistenceError("disk full")):
            result = task_service.create_task(household.id, "Mop", "alice",
                                              interval={"weeks": 1})

        assert result.kind is ResultKind.UNEXPECTED
        assert task_db.list_tasks(household.id, include_deleted=True) == []
        assert usage_db.get_usage(household.id, UsageType.TASKS, date(2024, 1, 10)) is None

    def test_retry_after_failure_creates_one_template(self, task_service, task_db, event_db,
                                                      make_household):
        household = make_household(max_tasks=1)
        with patch.object(event_db, "insert_event", side_effect=PersistenceError("disk full")):
            task_service.create_task(household.id, "Mop", "alice", interval={"weeks": 1})

        result = task_service.create_task(household.id, "Mop", "alice", interval={"weeks": 1})

        assert result.ok
        assert len(task_db.list_tasks(household.id)) == 1

    def test_failed_regeneration_rolls_back_update(self, task_service, task_db, event_db,
                                                   household):
        created = task_service.create_task(household.id, "Bins", "alice", interval={"months": 1})

        with patch.object(event_db, "insert_event", side_effect=PersistenceError("disk full")):
            result = task_service.update_task(created.task.id, interval={"weeks": 2})

        assert result.kind is ResultKind.UNEXPECTED
        assert task_db.get_task(created.task.id).interval == RecurrenceInterval(months=1)
        events = event_db.list_task_events(created.task.id)
        assert len(events) == 24
        assert events[0].due_date == date(2024, 2, 10)


class TestDeleteTask:
    def test_soft_delete_recounts(self, task_service, task_db, household):
        created = task_service.create_task(household.id, "Bins", "alice")

        result = task_service.delete_task(created.task.id)

        assert result.ok
        assert result.usage.current_value == 0
        assert task_db.get_task(created.task.id).deleted_at is not None
        assert task_service.get_task(created.task.id).kind is ResultKind.NOT_FOUND
        assert task_service.list_tasks(household.id) == []

    def test_delete_twice(self, task_service, household):
        created = task_service.create_task(household.id, "Bins", "alice")
        task_service.delete_task(created.task.id)
        assert task_service.delete_task(created.task.id).kind is ResultKind.NOT_FOUND

    def test_usage_row_for_today(self, task_service, usage_db, household):
        task_service.create_task(household.id, "A", "alice")
        task_service.create_task(household.id, "B", "alice")
        usage = usage_db.get_usage(household.id, UsageType.TASKS, date(2024, 1, 10))
        assert usage.current_value == 2
