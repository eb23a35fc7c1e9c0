"""Pydantic schemas for API request/response models."""

from support_triage.schemas.auth import TokenPayload, UserSession
from support_triage.schemas.common import ActionResult, CamelModel
from support_triage.schemas.flags import (
    ConversationFlagsResponse,
    FlagActionRequest,
    FlagListResponse,
)
from support_triage.schemas.support import (
    ThreadActionRequest,
    ThreadDetailResponse,
    ThreadFilters,
    ThreadListResponse,
    ThreadRow,
)

__all__ = [
    "ActionResult",
    "CamelModel",
    "ConversationFlagsResponse",
    "FlagActionRequest",
    "FlagListResponse",
    "ThreadActionRequest",
    "ThreadDetailResponse",
    "ThreadFilters",
    "ThreadListResponse",
    "ThreadRow",
    "TokenPayload",
    "UserSession",
]
