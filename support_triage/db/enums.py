"""Enums shared by models, services, and schemas."""

from enum import Enum


class Role(str, Enum):
    """Marketplace user roles."""

    BUYER = "buyer"
    SELLER = "seller"
    SUPPORT = "support"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        return value in cls._value2member_map_


class ThreadSource(str, Enum):
    """Origin channel of a support thread."""

    BUYER_SELLER = "buyer_seller"
    SELLER_SUPPORT = "seller_support"
    CHATBOT = "chatbot"
    WHATSAPP = "whatsapp"


class ThreadStatus(str, Enum):
    """Support thread lifecycle status."""

    OPEN = "open"
    ASSIGNED = "assigned"
    WAITING = "waiting"
    RESOLVED = "resolved"
    CLOSED = "closed"
    ACTIVE = "active"


class ThreadPriority(str, Enum):
    """Support thread priority level (declaration order is rank order)."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ThreadSortField(str, Enum):
    """Sortable thread columns."""

    LAST_MESSAGE_AT = "lastMessageAt"
    CREATED_AT = "createdAt"
    PRIORITY = "priority"
    SLA_DEADLINE = "slaDeadline"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ThreadAction(str, Enum):
    """Actions accepted by POST /threads."""

    ASSIGN = "assign"
    STATUS = "status"
    PRIORITY = "priority"
    ADD_TAG = "addTag"
    REMOVE_TAG = "removeTag"


class FlagAction(str, Enum):
    """Actions accepted by POST /flags."""

    SET_FRAUD = "setFraud"
    ESCALATE = "escalate"
    DEESCALATE = "deescalate"
    ADD_EVIDENCE = "addEvidence"


class FlagListFilter(str, Enum):
    """Flag listing views."""

    BYPASS = "bypass"
    FRAUD = "fraud"
    ESCALATED = "escalated"
    ALL = "all"


class AuditAction(str, Enum):
    """Dotted action names written to the admin audit log."""

    THREAD_ASSIGN = "support.thread.assign"
    THREAD_STATUS = "support.thread.status"
    THREAD_PRIORITY = "support.thread.priority"
    THREAD_ADD_TAG = "support.thread.addTag"
    THREAD_REMOVE_TAG = "support.thread.removeTag"
    THREAD_NOTE_ADD = "support.thread.note.add"
    THREADS_EXPORT = "support.threads.export"
    FLAGS_VIEW = "support.flags.view"
    FLAGS_SET_FRAUD = "support.flags.setFraud"
    FLAGS_ESCALATE = "support.flags.escalate"
    FLAGS_DEESCALATE = "support.flags.deescalate"
    FLAGS_ADD_EVIDENCE = "support.flags.addEvidence"


class ModerationActionType(str, Enum):
    """Thread-scoped moderation history action types."""

    THREAD_PRIORITY_CHANGE = "thread.priorityChange"
    THREAD_ASSIGN = "thread.assign"
    THREAD_UNASSIGN = "thread.unassign"
    THREAD_ESCALATE = "thread.escalate"
    THREAD_DEESCALATE = "thread.deescalate"


class ModerationEntityType(str, Enum):
    THREAD = "thread"


class ModerationActorRole(str, Enum):
    ADMIN = "admin"
    SUPPORT = "support"
    SYSTEM = "system"
