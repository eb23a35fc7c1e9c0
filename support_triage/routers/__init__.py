"""API routers."""

from support_triage.routers.audit import router as audit_router
from support_triage.routers.flags import router as flags_router
from support_triage.routers.moderation_history import router as moderation_history_router
from support_triage.routers.threads import router as threads_router

__all__ = [
    "audit_router",
    "flags_router",
    "moderation_history_router",
    "threads_router",
]
