"""Shared test fixtures and configuration.

Sets up environment variables before homely.config is imported, and provides
a temp-file database, a pinned clock and fully wired services.
"""

import os

# Patch env vars BEFORE any homely imports
os.environ.setdefault("DATABASE_PATH", os.path.join("data", "test-homely.db"))
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("HISTORY_PLAN_KEYWORDS", "premium,rodzinny")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import date, datetime, timezone

import pytest


TODAY = date(2024, 1, 10)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_homely.db")


@pytest.fixture
def database(tmp_db_path):
    from homely.data.db import Database
    return Database(db_path=tmp_db_path)


@pytest.fixture
def clock():
    """Clock pinned to 2024-01-10 09:00 UTC."""
    from homely.adapters.system_clock import FixedClock
    return FixedClock(datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def generation():
    from homely.config import EventGenerationSettings
    return EventGenerationSettings(
        future_horizon_years=2, min_future_events_threshold=6, max_future_events=60,
    )


@pytest.fixture
def services(database, clock, generation):
    from homely.app import build_services
    return build_services(
        database=database,
        clock=clock,
        generation=generation,
        history_keywords=["premium", "rodzinny"],
    )


@pytest.fixture
def task_db(services):
    return services.tasks_db


@pytest.fixture
def event_db(services):
    return services.events_db


@pytest.fixture
def household_db(services):
    return services.households_db


@pytest.fixture
def usage_db(services):
    return services.usage_db


@pytest.fixture
def lifecycle(services):
    return services.lifecycle


@pytest.fixture
def make_plan(household_db):
    """Factory: insert a plan type and return it."""
    from homely.data.models import PlanType

    def _make(name="Basic", max_tasks=None, max_household_members=None, features=None):
        return household_db.insert_plan_type(
            PlanType(
                id=None,
                name=name,
                max_tasks=max_tasks,
                max_household_members=max_household_members,
                features=features or [],
            )
        )

    return _make


@pytest.fixture
def make_household(household_db, make_plan, clock):
    """Factory: insert a household on a (new) plan and return it."""
    from homely.data.models import Household

    def _make(name="Home", plan=None, **plan_kwargs):
        if plan is None:
            plan = make_plan(**plan_kwargs)
        household = household_db.insert_household(
            Household(id=None, name=name, plan_type_id=plan.id, created_at=clock.now())
        )
        return household_db.get_household(household.id)

    return _make


@pytest.fixture
def household(make_household):
    return make_household()


@pytest.fixture
def make_task(task_db, clock):
    """Factory: insert a task template directly, without generating events."""
    from homely.data.models import RecurrenceInterval, TaskTemplate

    def _make(household_id, name="Vacuum", interval=None, **kwargs):
        if isinstance(interval, dict):
            interval = RecurrenceInterval(**interval)
        return task_db.insert_task(
            TaskTemplate(
                id=None,
                household_id=household_id,
                name=name,
                created_by=kwargs.pop("created_by", "alice"),
                interval=interval or RecurrenceInterval(),
                created_at=clock.now(),
                updated_at=clock.now(),
                **kwargs,
            )
        )

    return _make


@pytest.fixture
def make_event(event_db, clock):
    """Factory: insert a pending event directly."""
    from homely.data.models import Event

    def _make(household_id, due_date, task_id=None, **kwargs):
        return event_db.insert_event(
            Event(
                id=None,
                household_id=household_id,
                due_date=due_date,
                task_id=task_id,
                created_by=kwargs.pop("created_by", "alice"),
                created_at=clock.now(),
                updated_at=clock.now(),
                **kwargs,
            )
        )

    return _make
