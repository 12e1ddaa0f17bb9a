"""
Homely — Service result types.

Every service operation returns one of these tagged objects instead of
raising for business-rule violations. Callers (an HTTP layer, the refill job)
branch on ``kind`` and render ``message``; they never parse message text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from homely.data.models import Event, EventHistory, HouseholdMember, PlanUsage, TaskTemplate


class ResultKind(Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    LIMIT_EXCEEDED = "limit_exceeded"
    UNEXPECTED = "unexpected"


@dataclass
class ServiceResult:
    kind: ResultKind
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is ResultKind.SUCCESS


@dataclass
class EventResult(ServiceResult):
    event: Event | None = None
    successor: Event | None = None       # complete_event on a recurring template
    history: EventHistory | None = None  # complete_event on a history plan
    generated: list[Event] = field(default_factory=list)  # series generation


@dataclass
class RefillResult(ServiceResult):
    generated: int = 0
    per_task: dict[int, int] = field(default_factory=dict)
    failed_tasks: list[int] = field(default_factory=list)


@dataclass
class TaskResult(ServiceResult):
    task: TaskTemplate | None = None
    events_generated: int = 0
    usage: PlanUsage | None = None


@dataclass
class MemberResult(ServiceResult):
    member: HouseholdMember | None = None
    usage: PlanUsage | None = None
