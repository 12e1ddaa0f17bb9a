"""
Homely — Application wiring.

Builds the stores, the guard and the services on one SQLite database, and
hosts the entry point of the periodic refill run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from homely.adapters.system_clock import SystemClock
from homely.config import EventGenerationSettings, settings
from homely.core.event_lifecycle import EventLifecycleManager
from homely.core.household_service import HouseholdService
from homely.core.plan_usage import PlanUsageGuard
from homely.core.refill_job import run_refill_for_all_households
from homely.core.task_service import TaskService
from homely.data.db import Database, EventDB, HouseholdDB, PlanUsageDB, TaskDB
from homely.ports.clock_port import Clock
from homely.ports.persistence_port import PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class Services:
    database: Database
    tasks_db: TaskDB
    events_db: EventDB
    households_db: HouseholdDB
    usage_db: PlanUsageDB
    usage_guard: PlanUsageGuard
    lifecycle: EventLifecycleManager
    task_service: TaskService
    household_service: HouseholdService


def build_services(
    database: Database | None = None,
    clock: Clock | None = None,
    generation: EventGenerationSettings | None = None,
    history_keywords: list[str] | None = None,
) -> Services:
    """Wire every component on a single database (defaults from settings)."""
    database = database or Database()
    clock = clock or SystemClock()
    generation = generation or settings.event_generation()
    if history_keywords is None:
        history_keywords = settings.HISTORY_PLAN_KEYWORDS

    tasks_db = TaskDB(database)
    events_db = EventDB(database)
    households_db = HouseholdDB(database)
    usage_db = PlanUsageDB(database)

    guard = PlanUsageGuard(usage_db, households_db, tasks_db, clock)
    lifecycle = EventLifecycleManager(
        events_db, tasks_db, households_db, database, clock,
        generation=generation,
        history_keywords=history_keywords,
    )
    return Services(
        database=database,
        tasks_db=tasks_db,
        events_db=events_db,
        households_db=households_db,
        usage_db=usage_db,
        usage_guard=guard,
        lifecycle=lifecycle,
        task_service=TaskService(
            tasks_db, households_db, lifecycle, guard, database, clock,
        ),
        household_service=HouseholdService(households_db, guard, clock),
    )


def main() -> int:
    """Entry point: run one refill pass over all households."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Homely event refill (db: %s)...", settings.DATABASE_PATH)
    try:
        services = build_services()
        results = run_refill_for_all_households(services.lifecycle, services.households_db)
    except PersistenceError as exc:
        logger.error("Refill aborted: %s", exc)
        return 1
    return 0 if all(r.ok for r in results.values()) else 1


if __name__ == "__main__":
    raise SystemExit(main())
