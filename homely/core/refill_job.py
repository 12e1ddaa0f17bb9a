"""
Homely — Periodic refill job.

Tops up future events for every household. Nothing in the core schedules
this; an external scheduler (cron, a systemd timer) runs ``main.py`` which
calls into here once per invocation.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from homely.core.results import RefillResult, ResultKind

if TYPE_CHECKING:
    from homely.core.event_lifecycle import EventLifecycleManager
    from homely.ports.persistence_port import HouseholdStore

logger = logging.getLogger(__name__)


def run_refill_for_all_households(
    lifecycle: EventLifecycleManager,
    households: HouseholdStore,
) -> dict[int, RefillResult]:
    """Refill every active household; one failing household doesn't stop the rest."""
    results: dict[int, RefillResult] = {}
    for household_id in households.list_household_ids():
        result = lifecycle.refill_events(household_id)
        results[household_id] = result
        if result.kind is ResultKind.SUCCESS:
            logger.info(
                "Household %d refilled: %d events", household_id, result.generated,
            )
        else:
            logger.error("Refill of household %d failed: %s", household_id, result.message)

    total = sum(r.generated for r in results.values())
    logger.info("Refill run finished: %d households, %d events", len(results), total)
    return results
