"""Capability registry for the support back office.

Handlers never compare role strings. They ask ``can(session, Capability.X)``
and the role -> capability mapping lives here, in one table.
"""

from dataclasses import dataclass
from enum import Enum

from support_triage.db.enums import Role


class Capability(str, Enum):
    """Everything a caller may be allowed to do."""

    THREADS_VIEW = "threads_view"
    THREADS_EXPORT = "threads_export"
    THREADS_ASSIGN = "threads_assign"
    THREADS_CHANGE_STATUS = "threads_change_status"
    THREADS_CHANGE_PRIORITY = "threads_change_priority"
    THREADS_TAG = "threads_tag"
    THREADS_NOTE = "threads_note"
    FLAGS_VIEW = "flags_view"
    FLAGS_MANAGE = "flags_manage"
    MODERATION_HISTORY_VIEW = "moderation_history_view"
    AUDIT_VIEW = "audit_view"


@dataclass(frozen=True)
class CapabilityDef:
    key: Capability
    admin_only: bool = False


# =============================================================================
# Capability Registry
# =============================================================================

CAPABILITY_REGISTRY: dict[Capability, CapabilityDef] = {
    Capability.THREADS_VIEW: CapabilityDef(Capability.THREADS_VIEW),
    Capability.THREADS_EXPORT: CapabilityDef(Capability.THREADS_EXPORT, admin_only=True),
    Capability.THREADS_ASSIGN: CapabilityDef(Capability.THREADS_ASSIGN),
    Capability.THREADS_CHANGE_STATUS: CapabilityDef(Capability.THREADS_CHANGE_STATUS),
    Capability.THREADS_CHANGE_PRIORITY: CapabilityDef(Capability.THREADS_CHANGE_PRIORITY),
    Capability.THREADS_TAG: CapabilityDef(Capability.THREADS_TAG),
    Capability.THREADS_NOTE: CapabilityDef(Capability.THREADS_NOTE),
    Capability.FLAGS_VIEW: CapabilityDef(Capability.FLAGS_VIEW),
    Capability.FLAGS_MANAGE: CapabilityDef(Capability.FLAGS_MANAGE),
    Capability.MODERATION_HISTORY_VIEW: CapabilityDef(Capability.MODERATION_HISTORY_VIEW),
    Capability.AUDIT_VIEW: CapabilityDef(Capability.AUDIT_VIEW, admin_only=True),
}


# =============================================================================
# Default Role Capabilities
# =============================================================================

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.BUYER: frozenset(),
    Role.SELLER: frozenset(),
    Role.SUPPORT: frozenset(
        key for key, definition in CAPABILITY_REGISTRY.items() if not definition.admin_only
    ),
    Role.ADMIN: frozenset(CAPABILITY_REGISTRY.keys()),  # All capabilities
}


# =============================================================================
# Helper Functions
# =============================================================================

def get_role_capabilities(role: Role | str) -> frozenset[Capability]:
    """Get capabilities granted to a role (empty for unknown roles)."""
    if not Role.has_value(str(getattr(role, "value", role))):
        return frozenset()
    return ROLE_CAPABILITIES.get(Role(getattr(role, "value", role)), frozenset())


def can(session, capability: Capability) -> bool:
    """Check whether the caller's role grants a capability."""
    if session is None:
        return False
    return capability in get_role_capabilities(session.role)


def is_admin_only(capability: Capability) -> bool:
    """Check if a capability is reserved for admins."""
    definition = CAPABILITY_REGISTRY.get(capability)
    return definition.admin_only if definition else False
