"""
Homely — SQLite Storage.

One Database owns the file, the schema and the transaction boundary; the
store classes (TaskDB, EventDB, HouseholdDB, PlanUsageDB) share it so that a
lifecycle operation spanning several tables commits or rolls back as a unit.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from homely.data.models import (
    Event,
    EventHistory,
    EventStatus,
    Household,
    HouseholdMember,
    PlanType,
    PlanUsage,
    RecurrenceInterval,
    TaskTemplate,
    UsageType,
)
from homely.ports.persistence_port import PersistenceError

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS plan_types (
        id                    INTEGER PRIMARY KEY AUTOINCREMENT,
        name                  TEXT    NOT NULL,
        max_household_members INTEGER,
        max_tasks             INTEGER,
        features              TEXT    NOT NULL DEFAULT '[]',
        is_active             INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS households (
        id           INTEGER PRIMARY KEY AUTOINCREMENT,
        name         TEXT    NOT NULL,
        plan_type_id INTEGER REFERENCES plan_types(id),
        created_at   TEXT,
        deleted_at   TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS household_members (
        id           INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id),
        user_id      TEXT    NOT NULL,
        role         TEXT    NOT NULL DEFAULT 'member',
        joined_at    TEXT,
        deleted_at   TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id           INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id),
        category_id  INTEGER,
        name         TEXT    NOT NULL,
        description  TEXT,
        years_value  INTEGER,
        months_value INTEGER,
        weeks_value  INTEGER,
        days_value   INTEGER,
        priority     TEXT    NOT NULL DEFAULT 'medium',
        notes        TEXT,
        is_active    INTEGER NOT NULL DEFAULT 1,
        assigned_to  TEXT,
        created_by   TEXT    NOT NULL,
        created_at   TEXT,
        updated_at   TEXT,
        deleted_at   TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id               INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id          INTEGER REFERENCES tasks(id),
        household_id     INTEGER NOT NULL REFERENCES households(id),
        assigned_to      TEXT,
        due_date         TEXT    NOT NULL,
        status           TEXT    NOT NULL DEFAULT 'pending',
        priority         TEXT    NOT NULL DEFAULT 'medium',
        completion_date  TEXT,
        completion_notes TEXT,
        notes            TEXT,
        created_by       TEXT    NOT NULL,
        created_at       TEXT,
        updated_at       TEXT,
        deleted_at       TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events_history (
        id               INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id         INTEGER,
        task_id          INTEGER,
        household_id     INTEGER NOT NULL,
        assigned_to      TEXT,
        completed_by     TEXT,
        due_date         TEXT    NOT NULL,
        completion_date  TEXT    NOT NULL,
        task_name        TEXT    NOT NULL,
        completion_notes TEXT,
        created_at       TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS plan_usage (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id  INTEGER NOT NULL,
        usage_type    TEXT    NOT NULL,
        current_value INTEGER NOT NULL DEFAULT 0,
        max_value     INTEGER,
        usage_date    TEXT    NOT NULL,
        created_at    TEXT,
        updated_at    TEXT,
        UNIQUE (household_id, usage_type, usage_date)
    )
    """,
)

# Created after migrations, since they may index migrated columns
_INDEXES = (
    "CREATE INDEX IF NOT EXISTS ix_events_task_due ON events (task_id, due_date)",
    "CREATE INDEX IF NOT EXISTS ix_events_household ON events (household_id, due_date)",
)

# Columns added after the first schema: table -> {column: DDL}
_MIGRATIONS = {
    "tasks": {
        "last_date": "ALTER TABLE tasks ADD COLUMN last_date TEXT",
    },
    "events": {
        "postponed_from_date": "ALTER TABLE events ADD COLUMN postponed_from_date TEXT",
        "postpone_reason": "ALTER TABLE events ADD COLUMN postpone_reason TEXT",
    },
}


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _to_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _to_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class Database:
    """SQLite file, schema and transaction boundary shared by all stores."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from homely.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        self._local = threading.local()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def path(self) -> str:
        return self._db_path

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open database {self._db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection.

        Inside transaction() this is the transaction's connection and nothing
        is committed here; otherwise a fresh connection commits on exit.
        """
        active = getattr(self._local, "conn", None)
        if active is not None:
            try:
                yield active
            except sqlite3.Error as exc:
                raise PersistenceError(str(exc)) from exc
            return

        conn = self._open()
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run every store call in the block on one connection, atomically.

        A nested transaction() joins the outer one.
        """
        if getattr(self._local, "conn", None) is not None:
            yield
            return

        conn = self._open()
        self._local.conn = conn
        try:
            with conn:
                yield
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            self._local.conn = None
            conn.close()

    def _init_db(self) -> None:
        """Create tables if they don't exist, and migrate schema."""
        with self.connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
            for table, columns in _MIGRATIONS.items():
                existing_cols = {
                    row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()
                }
                for column, ddl in columns.items():
                    if column not in existing_cols:
                        conn.execute(ddl)
            for statement in _INDEXES:
                conn.execute(statement)
        logger.debug("Schema initialized at %s", self._db_path)


class _Store:
    def __init__(self, database: Database | None = None) -> None:
        self._db = database or Database()

    @property
    def database(self) -> Database:
        return self._db


class TaskDB(_Store):
    """Task templates."""

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> TaskTemplate:
        return TaskTemplate(
            id=row["id"],
            household_id=row["household_id"],
            category_id=row["category_id"],
            name=row["name"],
            description=row["description"],
            interval=RecurrenceInterval(
                years=row["years_value"],
                months=row["months_value"],
                weeks=row["weeks_value"],
                days=row["days_value"],
            ),
            last_date=_to_date(row["last_date"]),
            priority=row["priority"],
            notes=row["notes"],
            is_active=bool(row["is_active"]),
            assigned_to=row["assigned_to"],
            created_by=row["created_by"],
            created_at=_to_datetime(row["created_at"]),
            updated_at=_to_datetime(row["updated_at"]),
            deleted_at=_to_datetime(row["deleted_at"]),
        )

    @staticmethod
    def _task_params(task: TaskTemplate) -> tuple:
        return (
            task.household_id, task.category_id, task.name, task.description,
            task.interval.years or None, task.interval.months or None,
            task.interval.weeks or None, task.interval.days or None,
            _iso(task.last_date), task.priority, task.notes, int(task.is_active),
            task.assigned_to, task.created_by, _iso(task.created_at),
            _iso(task.updated_at), _iso(task.deleted_at),
        )

    def get_task(self, task_id: int) -> TaskTemplate | None:
        """Fetch a template by ID, including soft-deleted ones."""
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def insert_task(self, task: TaskTemplate) -> TaskTemplate:
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO tasks
                    (household_id, category_id, name, description,
                     years_value, months_value, weeks_value, days_value,
                     last_date, priority, notes, is_active, assigned_to,
                     created_by, created_at, updated_at, deleted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._task_params(task),
            )
            task.id = cursor.lastrowid
        logger.info("Task added: #%d '%s'", task.id, task.name)
        return task

    def save_task(self, task: TaskTemplate) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                UPDATE tasks SET
                    household_id = ?, category_id = ?, name = ?, description = ?,
                    years_value = ?, months_value = ?, weeks_value = ?, days_value = ?,
                    last_date = ?, priority = ?, notes = ?, is_active = ?,
                    assigned_to = ?, created_by = ?, created_at = ?,
                    updated_at = ?, deleted_at = ?
                WHERE id = ?
                """,
                (*self._task_params(task), task.id),
            )

    def list_tasks(
        self, household_id: int, include_deleted: bool = False,
    ) -> list[TaskTemplate]:
        query = "SELECT * FROM tasks WHERE household_id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        query += " ORDER BY name, id"
        with self._db.connect() as conn:
            rows = conn.execute(query, (household_id,)).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_active_tasks(self, household_id: int) -> list[TaskTemplate]:
        """Templates that are switched on and not soft-deleted."""
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM tasks
                WHERE household_id = ? AND is_active = 1 AND deleted_at IS NULL
                ORDER BY id
                """,
                (household_id,),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def count_active_tasks(self, household_id: int) -> int:
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) FROM tasks
                WHERE household_id = ? AND is_active = 1 AND deleted_at IS NULL
                """,
                (household_id,),
            ).fetchone()
        return row[0]


class EventDB(_Store):
    """Scheduled events and their completion history."""

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            task_id=row["task_id"],
            household_id=row["household_id"],
            assigned_to=row["assigned_to"],
            due_date=date.fromisoformat(row["due_date"]),
            status=EventStatus(row["status"]),
            priority=row["priority"],
            completion_date=_to_date(row["completion_date"]),
            completion_notes=row["completion_notes"],
            postponed_from_date=_to_date(row["postponed_from_date"]),
            postpone_reason=row["postpone_reason"],
            notes=row["notes"],
            created_by=row["created_by"],
            created_at=_to_datetime(row["created_at"]),
            updated_at=_to_datetime(row["updated_at"]),
            deleted_at=_to_datetime(row["deleted_at"]),
        )

    @staticmethod
    def _row_to_history(row: sqlite3.Row) -> EventHistory:
        return EventHistory(
            id=row["id"],
            event_id=row["event_id"],
            task_id=row["task_id"],
            household_id=row["household_id"],
            assigned_to=row["assigned_to"],
            completed_by=row["completed_by"],
            due_date=date.fromisoformat(row["due_date"]),
            completion_date=date.fromisoformat(row["completion_date"]),
            task_name=row["task_name"],
            completion_notes=row["completion_notes"],
            created_at=_to_datetime(row["created_at"]),
        )

    @staticmethod
    def _event_params(event: Event) -> tuple:
        return (
            event.task_id, event.household_id, event.assigned_to,
            _iso(event.due_date), event.status.value, event.priority,
            _iso(event.completion_date), event.completion_notes,
            _iso(event.postponed_from_date), event.postpone_reason, event.notes,
            event.created_by, _iso(event.created_at), _iso(event.updated_at),
            _iso(event.deleted_at),
        )

    def get_event(self, event_id: int) -> Event | None:
        """Fetch an event by ID together with its task template (if any)."""
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
            if row is None:
                return None
            event = self._row_to_event(row)
            if event.task_id is not None:
                task_row = conn.execute(
                    "SELECT * FROM tasks WHERE id = ?", (event.task_id,)
                ).fetchone()
                if task_row is not None:
                    event.task = TaskDB._row_to_task(task_row)
        return event

    def insert_event(self, event: Event) -> Event:
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO events
                    (task_id, household_id, assigned_to, due_date, status, priority,
                     completion_date, completion_notes, postponed_from_date,
                     postpone_reason, notes, created_by, created_at, updated_at,
                     deleted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._event_params(event),
            )
            event.id = cursor.lastrowid
        logger.debug("Event #%d inserted, due %s", event.id, event.due_date)
        return event

    def save_event(self, event: Event) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                UPDATE events SET
                    task_id = ?, household_id = ?, assigned_to = ?, due_date = ?,
                    status = ?, priority = ?, completion_date = ?,
                    completion_notes = ?, postponed_from_date = ?,
                    postpone_reason = ?, notes = ?, created_by = ?,
                    created_at = ?, updated_at = ?, deleted_at = ?
                WHERE id = ?
                """,
                (*self._event_params(event), event.id),
            )

    def insert_event_history(self, history: EventHistory) -> EventHistory:
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO events_history
                    (event_id, task_id, household_id, assigned_to, completed_by,
                     due_date, completion_date, task_name, completion_notes,
                     created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    history.event_id, history.task_id, history.household_id,
                    history.assigned_to, history.completed_by,
                    _iso(history.due_date), _iso(history.completion_date),
                    history.task_name, history.completion_notes,
                    _iso(history.created_at),
                ),
            )
            history_id = cursor.lastrowid
        return EventHistory(
            id=history_id,
            event_id=history.event_id,
            task_id=history.task_id,
            household_id=history.household_id,
            assigned_to=history.assigned_to,
            completed_by=history.completed_by,
            due_date=history.due_date,
            completion_date=history.completion_date,
            task_name=history.task_name,
            completion_notes=history.completion_notes,
            created_at=history.created_at,
        )

    def list_events(
        self,
        household_id: int,
        status: EventStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Event]:
        """Active events of a household, optionally filtered, by due date."""
        conditions = ["household_id = ?", "deleted_at IS NULL"]
        params: list = [household_id]
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        if start_date is not None:
            conditions.append("due_date >= ?")
            params.append(start_date.isoformat())
        if end_date is not None:
            conditions.append("due_date <= ?")
            params.append(end_date.isoformat())

        query = "SELECT * FROM events WHERE " + " AND ".join(conditions)
        query += " ORDER BY due_date, id"
        with self._db.connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_event(r) for r in rows]

    def list_task_events(self, task_id: int) -> list[Event]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM events
                WHERE task_id = ? AND deleted_at IS NULL
                ORDER BY due_date, id
                """,
                (task_id,),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    def find_open_event(self, task_id: int, due_date: date) -> Event | None:
        """An active pending/postponed event of the template on that date."""
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM events
                WHERE task_id = ? AND due_date = ? AND deleted_at IS NULL
                  AND status IN (?, ?)
                ORDER BY id LIMIT 1
                """,
                (
                    task_id, due_date.isoformat(),
                    EventStatus.PENDING.value, EventStatus.POSTPONED.value,
                ),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    def count_future_pending(self, task_id: int, today: date) -> int:
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) FROM events
                WHERE task_id = ? AND status = ? AND deleted_at IS NULL
                  AND due_date >= ?
                """,
                (task_id, EventStatus.PENDING.value, today.isoformat()),
            ).fetchone()
        return row[0]

    def latest_pending_due_date(self, task_id: int) -> date | None:
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT MAX(due_date) FROM events
                WHERE task_id = ? AND status = ? AND deleted_at IS NULL
                """,
                (task_id, EventStatus.PENDING.value),
            ).fetchone()
        return _to_date(row[0])

    def soft_delete_future_pending(
        self, task_id: int, today: date, now: datetime,
    ) -> int:
        """Soft-delete pending events due today or later. Returns the count."""
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                UPDATE events SET deleted_at = ?, updated_at = ?
                WHERE task_id = ? AND status = ? AND deleted_at IS NULL
                  AND due_date >= ?
                """,
                (
                    now.isoformat(), now.isoformat(), task_id,
                    EventStatus.PENDING.value, today.isoformat(),
                ),
            )
        return cursor.rowcount

    def list_event_history(self, household_id: int) -> list[EventHistory]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM events_history
                WHERE household_id = ?
                ORDER BY completion_date, id
                """,
                (household_id,),
            ).fetchall()
        return [self._row_to_history(r) for r in rows]


class HouseholdDB(_Store):
    """Households, their plans and their members."""

    @staticmethod
    def _row_to_plan(row: sqlite3.Row) -> PlanType:
        return PlanType(
            id=row["id"],
            name=row["name"],
            max_household_members=row["max_household_members"],
            max_tasks=row["max_tasks"],
            features=json.loads(row["features"] or "[]"),
            is_active=bool(row["is_active"]),
        )

    @staticmethod
    def _row_to_member(row: sqlite3.Row) -> HouseholdMember:
        return HouseholdMember(
            id=row["id"],
            household_id=row["household_id"],
            user_id=row["user_id"],
            role=row["role"],
            joined_at=_to_datetime(row["joined_at"]),
            deleted_at=_to_datetime(row["deleted_at"]),
        )

    def insert_plan_type(self, plan: PlanType) -> PlanType:
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO plan_types
                    (name, max_household_members, max_tasks, features, is_active)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    plan.name, plan.max_household_members, plan.max_tasks,
                    json.dumps(plan.features), int(plan.is_active),
                ),
            )
            plan.id = cursor.lastrowid
        logger.info("Plan type added: #%d '%s'", plan.id, plan.name)
        return plan

    def get_household(self, household_id: int) -> Household | None:
        """Fetch a household together with its plan type."""
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM households WHERE id = ?", (household_id,)
            ).fetchone()
            if row is None:
                return None
            household = Household(
                id=row["id"],
                name=row["name"],
                plan_type_id=row["plan_type_id"],
                created_at=_to_datetime(row["created_at"]),
                deleted_at=_to_datetime(row["deleted_at"]),
            )
            if household.plan_type_id is not None:
                plan_row = conn.execute(
                    "SELECT * FROM plan_types WHERE id = ?", (household.plan_type_id,)
                ).fetchone()
                if plan_row is not None:
                    household.plan = self._row_to_plan(plan_row)
        return household

    def insert_household(self, household: Household) -> Household:
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO households (name, plan_type_id, created_at, deleted_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    household.name, household.plan_type_id,
                    _iso(household.created_at), _iso(household.deleted_at),
                ),
            )
            household.id = cursor.lastrowid
        logger.info("Household added: #%d '%s'", household.id, household.name)
        return household

    def list_household_ids(self) -> list[int]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT id FROM households WHERE deleted_at IS NULL ORDER BY id"
            ).fetchall()
        return [r["id"] for r in rows]

    def find_membership(
        self, household_id: int, user_id: str,
    ) -> HouseholdMember | None:
        """Latest membership row for the user, removed ones included."""
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM household_members
                WHERE household_id = ? AND user_id = ?
                ORDER BY id DESC LIMIT 1
                """,
                (household_id, user_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_member(row)

    def insert_member(self, member: HouseholdMember) -> HouseholdMember:
        with self._db.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO household_members
                    (household_id, user_id, role, joined_at, deleted_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    member.household_id, member.user_id, member.role,
                    _iso(member.joined_at), _iso(member.deleted_at),
                ),
            )
            member.id = cursor.lastrowid
        return member

    def save_member(self, member: HouseholdMember) -> None:
        with self._db.connect() as conn:
            conn.execute(
                """
                UPDATE household_members
                SET role = ?, joined_at = ?, deleted_at = ?
                WHERE id = ?
                """,
                (member.role, _iso(member.joined_at), _iso(member.deleted_at), member.id),
            )

    def count_active_members(self, household_id: int) -> int:
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) FROM household_members
                WHERE household_id = ? AND deleted_at IS NULL
                """,
                (household_id,),
            ).fetchone()
        return row[0]


class PlanUsageDB(_Store):
    """Daily plan usage counters."""

    @staticmethod
    def _row_to_usage(row: sqlite3.Row) -> PlanUsage:
        return PlanUsage(
            id=row["id"],
            household_id=row["household_id"],
            usage_type=UsageType(row["usage_type"]),
            current_value=row["current_value"],
            max_value=row["max_value"],
            usage_date=date.fromisoformat(row["usage_date"]),
            created_at=_to_datetime(row["created_at"]),
            updated_at=_to_datetime(row["updated_at"]),
        )

    def get_usage(
        self, household_id: int, usage_type: UsageType, as_of: date,
    ) -> PlanUsage | None:
        with self._db.connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM plan_usage
                WHERE household_id = ? AND usage_type = ? AND usage_date = ?
                """,
                (household_id, usage_type.value, as_of.isoformat()),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_usage(row)

    def upsert_usage(
        self,
        household_id: int,
        usage_type: UsageType,
        current_value: int,
        max_value: int | None,
        as_of: date,
        now: datetime,
    ) -> PlanUsage:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO plan_usage
                    (household_id, usage_type, current_value, max_value,
                     usage_date, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (household_id, usage_type, usage_date) DO UPDATE SET
                    current_value = excluded.current_value,
                    max_value     = excluded.max_value,
                    updated_at    = excluded.updated_at
                """,
                (
                    household_id, usage_type.value, current_value, max_value,
                    as_of.isoformat(), now.isoformat(), now.isoformat(),
                ),
            )
            row = conn.execute(
                """
                SELECT * FROM plan_usage
                WHERE household_id = ? AND usage_type = ? AND usage_date = ?
                """,
                (household_id, usage_type.value, as_of.isoformat()),
            ).fetchone()
        return self._row_to_usage(row)

    def list_usage(self, household_id: int, as_of: date) -> list[PlanUsage]:
        with self._db.connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM plan_usage
                WHERE household_id = ? AND usage_date = ?
                ORDER BY usage_type
                """,
                (household_id, as_of.isoformat()),
            ).fetchall()
        return [self._row_to_usage(r) for r in rows]
