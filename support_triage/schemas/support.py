"""Support thread schemas: filters, enriched rows, and action bodies."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from support_triage.db.enums import ThreadPriority, ThreadSource, ThreadStatus
from support_triage.schemas.common import CamelModel
from support_triage.schemas.flags import FlagExtendedRead


UNASSIGNED = "unassigned"


class ThreadFilters(CamelModel):
    """
    Parsed GET /threads filters.

    Every field is optional; an empty list means "no filter" for that
    dimension. ``assigned_to_user_id`` is a user id or ``UNASSIGNED``.
    """
    status: list[ThreadStatus] = Field(default_factory=list)
    source: list[ThreadSource] = Field(default_factory=list)
    priority: list[ThreadPriority] = Field(default_factory=list)
    assigned_to_user_id: UUID | str | None = None
    seller_id: UUID | None = None
    buyer_id: UUID | None = None
    order_id: UUID | None = None
    tags: list[str] = Field(default_factory=list)
    sla_breach: bool | None = None
    search: str | None = None
    date_from: datetime | None = Field(default=None, alias="from")
    date_to: datetime | None = Field(default=None, alias="to")
    closed_resolved_by_user_id: UUID | None = None

    def snapshot(self) -> dict:
        """Filters actually in effect, for the export audit entry."""
        return self.model_dump(mode="json", by_alias=True, exclude_defaults=True)


# =============================================================================
# Enrichment
# =============================================================================

class SellerSummary(CamelModel):
    id: UUID
    brand_name: str
    slug: str


class BuyerSummary(CamelModel):
    id: UUID
    name: str | None
    email: str
    role: str


class UserSummary(CamelModel):
    id: UUID
    display_id: str | None
    name: str | None
    email: str
    role: str


class AssigneeSummary(CamelModel):
    id: UUID
    name: str | None
    email: str


class ThreadRow(CamelModel):
    """Enriched thread as returned by GET /threads."""
    id: UUID
    source: str
    source_id: str
    status: str
    priority: str
    order_id: UUID | None
    seller_id: UUID | None
    buyer_id: UUID | None
    assigned_to_user_id: UUID | None
    closed_by_user_id: UUID | None
    resolved_by_user_id: UUID | None
    subject: str | None
    display_subject: str | None = None
    last_message_preview: str | None
    message_count: int
    last_message_at: datetime | None
    sla_deadline: datetime | None
    sla_breach: bool
    created_at: datetime
    updated_at: datetime
    seller: SellerSummary | None = None
    buyer: BuyerSummary | None = None
    assignee: AssigneeSummary | None = None
    closed_by: UserSummary | None = None
    resolved_by: UserSummary | None = None
    tags: list[str] = Field(default_factory=list)


class ThreadListResponse(CamelModel):
    data: list[ThreadRow]
    total: int
    page: int
    limit: int


class ThreadDetailResponse(ThreadRow):
    extended_flags: FlagExtendedRead | None = None


class ThreadActionRequest(CamelModel):
    """
    POST /threads body: ``{threadId, action, ...params}``.

    Fields are optional at the schema level so missing values produce the
    action-specific 400 messages.
    """
    thread_id: str | None = None
    action: str | None = None
    assign_to_user_id: str | None = None
    status: str | None = None
    priority: str | None = None
    tag: str | None = None


# =============================================================================
# Internal notes
# =============================================================================

class NoteCreateRequest(CamelModel):
    body: str | None = None


class NoteRead(CamelModel):
    id: UUID
    body: str
    author_id: UUID | None
    author_name: str | None = None
    author_email: str | None = None
    created_at: datetime


class NoteListResponse(CamelModel):
    notes: list[NoteRead]


class NoteCreated(CamelModel):
    id: UUID
    created_at: datetime
