"""
Homely — Household membership service.

Adds and removes household members within the plan's member limit and
recounts member usage after every change.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from homely.core.results import MemberResult, ResultKind
from homely.data.models import HOUSEHOLD_ROLES, Household, HouseholdMember, UsageType, is_active
from homely.ports.persistence_port import PersistenceError

if TYPE_CHECKING:
    from homely.core.plan_usage import PlanUsageGuard
    from homely.ports.clock_port import Clock
    from homely.ports.persistence_port import HouseholdStore

logger = logging.getLogger(__name__)


class HouseholdService:
    def __init__(
        self,
        households: HouseholdStore,
        usage_guard: PlanUsageGuard,
        clock: Clock,
    ) -> None:
        self._households = households
        self._guard = usage_guard
        self._clock = clock

    def create_household(self, name: str, plan_type_id: int | None = None) -> Household:
        return self._households.insert_household(
            Household(
                id=None,
                name=name,
                plan_type_id=plan_type_id,
                created_at=self._clock.now(),
            )
        )

    def add_member(
        self, household_id: int, user_id: str, role: str = "member",
    ) -> MemberResult:
        """Add (or restore) a member if the plan allows one more."""
        if role not in HOUSEHOLD_ROLES:
            return MemberResult(
                ResultKind.VALIDATION,
                f"Invalid role: {role}. Must be one of: {', '.join(HOUSEHOLD_ROLES)}",
            )

        try:
            if not is_active(self._households.get_household(household_id)):
                return MemberResult(ResultKind.NOT_FOUND, f"Household {household_id} not found")

            existing = self._households.find_membership(household_id, user_id)
            if is_active(existing):
                return MemberResult(
                    ResultKind.CONFLICT,
                    f"User {user_id} is already a member of household {household_id}",
                    member=existing,
                )

            if self._guard.would_exceed_limit(household_id, UsageType.HOUSEHOLD_MEMBERS):
                return MemberResult(
                    ResultKind.LIMIT_EXCEEDED,
                    f"Household {household_id} has reached its plan limit for members",
                )

            now = self._clock.now()
            if existing is not None:
                existing.deleted_at = None
                existing.role = role
                existing.joined_at = now
                self._households.save_member(existing)
                member = existing
                logger.info(
                    "Restored member %s to household %d with role %s",
                    user_id, household_id, role,
                )
            else:
                member = self._households.insert_member(
                    HouseholdMember(
                        id=None,
                        household_id=household_id,
                        user_id=user_id,
                        role=role,
                        joined_at=now,
                    )
                )
                logger.info(
                    "Added member %s to household %d with role %s",
                    user_id, household_id, role,
                )

            usage = self._guard.update_usage(household_id, UsageType.HOUSEHOLD_MEMBERS)
        except PersistenceError as exc:
            logger.error("Error adding member %s to household %d: %s", user_id, household_id, exc)
            return MemberResult(ResultKind.UNEXPECTED, f"Could not add member: {exc}")

        return MemberResult(ResultKind.SUCCESS, f"User {user_id} added", member=member, usage=usage)

    def remove_member(self, household_id: int, user_id: str) -> MemberResult:
        """Soft-delete a membership and recount member usage."""
        try:
            member = self._households.find_membership(household_id, user_id)
            if not is_active(member):
                return MemberResult(
                    ResultKind.NOT_FOUND,
                    f"User {user_id} is not a member of household {household_id}",
                )
            member.deleted_at = self._clock.now()
            self._households.save_member(member)
            usage = self._guard.update_usage(household_id, UsageType.HOUSEHOLD_MEMBERS)
        except PersistenceError as exc:
            logger.error(
                "Error removing member %s from household %d: %s", user_id, household_id, exc,
            )
            return MemberResult(ResultKind.UNEXPECTED, f"Could not remove member: {exc}")

        logger.info("Removed member %s from household %d", user_id, household_id)
        return MemberResult(ResultKind.SUCCESS, f"User {user_id} removed", member=member, usage=usage)
