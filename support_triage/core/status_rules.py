"""Thread status transition rules.

Permissive by default: any recognised status may follow any other. Setting
STATUS_TRANSITIONS_STRICT=true switches to the graph below.
"""

from dataclasses import dataclass

from support_triage.core.config import settings
from support_triage.db.enums import ThreadStatus

_WORKING = {
    ThreadStatus.OPEN,
    ThreadStatus.ASSIGNED,
    ThreadStatus.WAITING,
    ThreadStatus.ACTIVE,
}

STRICT_STATUS_TRANSITIONS: dict[ThreadStatus, frozenset[ThreadStatus]] = {
    ThreadStatus.OPEN: frozenset(_WORKING | {ThreadStatus.RESOLVED, ThreadStatus.CLOSED}),
    ThreadStatus.ASSIGNED: frozenset(_WORKING | {ThreadStatus.RESOLVED, ThreadStatus.CLOSED}),
    ThreadStatus.WAITING: frozenset(_WORKING | {ThreadStatus.RESOLVED, ThreadStatus.CLOSED}),
    ThreadStatus.ACTIVE: frozenset(_WORKING | {ThreadStatus.RESOLVED, ThreadStatus.CLOSED}),
    # Terminal states only reopen (or close a resolved thread)
    ThreadStatus.RESOLVED: frozenset({ThreadStatus.OPEN, ThreadStatus.CLOSED}),
    ThreadStatus.CLOSED: frozenset({ThreadStatus.OPEN}),
}


@dataclass(frozen=True)
class StatusTransitionPolicy:
    """Decides whether a thread may move from one status to another."""

    transitions: dict[ThreadStatus, frozenset[ThreadStatus]] | None = None

    @property
    def strict(self) -> bool:
        return self.transitions is not None

    def allows(self, current: ThreadStatus | None, target: ThreadStatus) -> bool:
        if self.transitions is None or current is None or current == target:
            return True
        return target in self.transitions.get(current, frozenset())


PERMISSIVE_POLICY = StatusTransitionPolicy()
STRICT_POLICY = StatusTransitionPolicy(transitions=STRICT_STATUS_TRANSITIONS)


def get_status_policy() -> StatusTransitionPolicy:
    """Policy selected by configuration."""
    return STRICT_POLICY if settings.STATUS_TRANSITIONS_STRICT else PERMISSIVE_POLICY
