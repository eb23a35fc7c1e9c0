"""Audit log, moderation history, and evidence ledger schemas.

Each audit action and moderation action type has its own metadata model so
the JSON written to ``admin_audit_logs.meta`` and
``support_moderation_history.metadata`` has a fixed shape per action.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import ConfigDict, Field

from support_triage.schemas.common import CamelModel


# =============================================================================
# Per-action metadata
# =============================================================================

class AssignMeta(CamelModel):
    """support.thread.assign / thread.assign / thread.unassign"""
    prev_assignee_id: UUID | None = None
    new_assignee_id: UUID | None = None


class StatusChangeMeta(CamelModel):
    """support.thread.status"""
    prev_status: str
    new_status: str


class PriorityChangeMeta(CamelModel):
    """support.thread.priority / thread.priorityChange"""
    prev_priority: str
    new_priority: str


class TagMeta(CamelModel):
    """support.thread.addTag / support.thread.removeTag"""
    tag: str


class ExportMeta(CamelModel):
    """support.threads.export"""
    filters: dict[str, Any]
    count: int


class NoteMeta(CamelModel):
    """support.thread.note.add"""
    thread_id: UUID
    note_length: int


class FraudMeta(CamelModel):
    """support.flags.setFraud"""
    fraud_suspected: bool | None = None
    fraud_reason: str | None = None


class EscalateMeta(CamelModel):
    """support.flags.escalate / thread.escalate"""
    escalate_to_user_id: UUID
    escalation_reason: str | None = None
    conversation_id: UUID | None = None
    thread_resolved: bool | None = None


class DeescalateMeta(CamelModel):
    """support.flags.deescalate / thread.deescalate"""
    prev_escalated_to: UUID | None = None
    conversation_id: UUID | None = None
    thread_resolved: bool | None = None


class EvidenceMeta(CamelModel):
    """support.flags.addEvidence"""
    evidence_type: str


# =============================================================================
# Evidence ledger
# =============================================================================

class EvidenceEntry(CamelModel):
    added_by: UUID
    added_at: datetime
    content: Any


class EvidenceLedger(CamelModel):
    """
    ``evidence_json`` document: ``{"entries": [...]}``.

    Unknown top-level keys from older rows are carried through untouched.
    Entries are only ever appended.
    """

    model_config = ConfigDict(extra="allow")

    entries: list[EvidenceEntry] = Field(default_factory=list)

    @classmethod
    def load(cls, raw: dict | None) -> "EvidenceLedger":
        return cls.model_validate(raw or {})

    def append(self, *, added_by: UUID, added_at: datetime, content: Any) -> "EvidenceLedger":
        """Return a new ledger with one more entry; self is left unchanged."""
        entry = EvidenceEntry(added_by=added_by, added_at=added_at, content=content)
        return self.model_copy(update={"entries": [*self.entries, entry]})


# =============================================================================
# Read models
# =============================================================================

class AuditLogRead(CamelModel):
    """Audit log entry for API response."""
    id: UUID
    actor_id: UUID | None
    actor_role: str | None
    actor_email: str | None = None
    action: str
    entity_type: str
    entity_id: str
    message: str | None
    meta: dict[str, Any] | None
    created_at: datetime


class AuditLogListResponse(CamelModel):
    """Paginated audit log response."""
    page: int
    page_size: int
    total: int
    rows: list[AuditLogRead]


class ModerationEventRead(CamelModel):
    """Moderation history entry for API response."""
    id: UUID
    actor_id: UUID | None
    actor_name: str | None
    actor_role: str | None
    action_type: str
    entity_type: str
    entity_id: str
    thread_id: UUID | None
    reason: str | None
    note: str | None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ModerationHistoryResponse(CamelModel):
    data: list[ModerationEventRead]
    total: int
    page: int
    limit: int
    total_pages: int


class ModerationExportActor(CamelModel):
    id: UUID
    name: str | None
    role: str


class ModerationExportFilters(CamelModel):
    """Raw filter values as the caller sent them."""
    thread_id: str | None = None
    actor_id: str | None = None
    action_type: str | None = None
    entity_type: str | None = None
    start_date: str | None = None
    end_date: str | None = None


class ModerationExportResponse(CamelModel):
    export_date: datetime
    exported_by: ModerationExportActor
    filters: ModerationExportFilters
    total: int
    data: list[ModerationEventRead]
