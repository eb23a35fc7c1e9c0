"""Centralized RBAC policies for API resources."""

from dataclasses import dataclass

from support_triage.core.permissions import Capability as C


@dataclass(frozen=True)
class ResourcePolicy:
    """Default capability + per-action overrides for a resource."""

    default: C | None
    actions: dict[str, C]


POLICIES: dict[str, ResourcePolicy] = {
    "threads": ResourcePolicy(
        default=C.THREADS_VIEW,
        actions={
            "export": C.THREADS_EXPORT,
            "assign": C.THREADS_ASSIGN,
            "status": C.THREADS_CHANGE_STATUS,
            "priority": C.THREADS_CHANGE_PRIORITY,
            "addTag": C.THREADS_TAG,
            "removeTag": C.THREADS_TAG,
            "note": C.THREADS_NOTE,
        },
    ),
    "flags": ResourcePolicy(
        default=C.FLAGS_VIEW,
        actions={"manage": C.FLAGS_MANAGE},
    ),
    "moderation_history": ResourcePolicy(default=C.MODERATION_HISTORY_VIEW, actions={}),
    "audit": ResourcePolicy(default=C.AUDIT_VIEW, actions={}),
}
