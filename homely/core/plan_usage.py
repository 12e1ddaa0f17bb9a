"""
Homely — Plan usage guard.

Keeps a household inside its subscription plan. Usage rows are recomputed on
demand by a full recount of the owning collection (active tasks, active
members), so a missed update heals itself on the next recount.

The limit check is advisory at call time: callers check, then add the entity
in a separate step. Two concurrent adders can both pass the check and jointly
exceed the limit; nothing here reserves capacity.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from homely.data.models import PlanUsage, UsageType

if TYPE_CHECKING:
    from homely.ports.clock_port import Clock
    from homely.ports.persistence_port import (
        HouseholdStore,
        PlanUsageStore,
        TaskTemplateStore,
    )

logger = logging.getLogger(__name__)


def _as_usage_type(usage_type: UsageType | str) -> UsageType:
    if isinstance(usage_type, UsageType):
        return usage_type
    try:
        return UsageType(usage_type)
    except ValueError:
        raise ValueError(f"Unknown usage type: {usage_type!r}") from None


class PlanUsageGuard:
    """Checks and recounts per-household plan usage."""

    def __init__(
        self,
        usage_store: PlanUsageStore,
        household_store: HouseholdStore,
        task_store: TaskTemplateStore,
        clock: Clock,
    ) -> None:
        self._usage = usage_store
        self._households = household_store
        self._tasks = task_store
        self._clock = clock

    def would_exceed_limit(
        self, household_id: int, usage_type: UsageType | str,
    ) -> bool:
        """Would adding one more entity of this type exceed the plan maximum?

        A missing maximum means unlimited. When no usage row exists for today
        yet, or the plan changed since it was written, the count is taken first.
        """
        usage_type = _as_usage_type(usage_type)
        usage = self._current_usage(household_id, usage_type)
        if usage is None or usage.max_value is None:
            return False
        return usage.current_value + 1 > usage.max_value

    def is_limit_exceeded(
        self, household_id: int, usage_type: UsageType | str,
    ) -> bool:
        """Is the household already at (or over) its maximum?"""
        usage_type = _as_usage_type(usage_type)
        usage = self._current_usage(household_id, usage_type)
        if usage is None or usage.max_value is None:
            return False
        return usage.current_value >= usage.max_value

    def update_usage(
        self, household_id: int, usage_type: UsageType | str,
    ) -> PlanUsage | None:
        """Recount the usage from scratch and persist it as today's value."""
        usage_type = _as_usage_type(usage_type)

        household = self._households.get_household(household_id)
        if household is None:
            logger.warning(
                "Cannot update %s usage: household %d not found",
                usage_type.value, household_id,
            )
            return None

        if usage_type is UsageType.TASKS:
            count = self._tasks.count_active_tasks(household_id)
        else:
            count = self._households.count_active_members(household_id)

        max_value = household.plan.max_for(usage_type) if household.plan else None
        usage = self._usage.upsert_usage(
            household_id,
            usage_type,
            current_value=count,
            max_value=max_value,
            as_of=self._clock.today(),
            now=self._clock.now(),
        )
        logger.info(
            "Updated %s usage for household %d: %d/%s",
            usage_type.value, household_id, count,
            max_value if max_value is not None else "unlimited",
        )
        return usage

    def usage_summary(self, household_id: int) -> dict[str, float]:
        """Percentage of each limit used today. Unlimited types report 0."""
        summary: dict[str, float] = {}
        for usage in self._usage.list_usage(household_id, self._clock.today()):
            if usage.max_value:
                summary[usage.usage_type.value] = round(
                    usage.current_value / usage.max_value * 100, 2,
                )
            else:
                summary[usage.usage_type.value] = 0.0
        return summary

    def _current_usage(
        self, household_id: int, usage_type: UsageType,
    ) -> PlanUsage | None:
        usage = self._usage.get_usage(household_id, usage_type, self._clock.today())
        if usage is None or usage.max_value != self._plan_max(household_id, usage_type):
            # No row yet, or the plan changed since the row was written
            usage = self.update_usage(household_id, usage_type)
        return usage

    def _plan_max(self, household_id: int, usage_type: UsageType) -> int | None:
        household = self._households.get_household(household_id)
        if household is None or household.plan is None:
            return None
        return household.plan.max_for(usage_type)
