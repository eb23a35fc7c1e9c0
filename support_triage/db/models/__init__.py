"""SQLAlchemy ORM models."""

from support_triage.db.models.audit import AdminAuditLog, SupportModerationHistory
from support_triage.db.models.auth import Seller, User
from support_triage.db.models.flags import ConversationFlag, ConversationFlagExtended
from support_triage.db.models.support import (
    Conversation,
    Order,
    SupportInternalNote,
    SupportThread,
    SupportThreadTag,
)

__all__ = [
    "AdminAuditLog",
    "Conversation",
    "ConversationFlag",
    "ConversationFlagExtended",
    "Order",
    "Seller",
    "SupportInternalNote",
    "SupportModerationHistory",
    "SupportThread",
    "SupportThreadTag",
    "User",
]
