"""Conversation flag schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field

from support_triage.schemas.common import CamelModel


class FlagBasicRead(CamelModel):
    id: UUID
    conversation_id: UUID
    bypass_suspected: bool
    attempts_24h: int = Field(alias="attempts24h")
    updated_at: datetime


class FlagExtendedRead(CamelModel):
    id: UUID
    conversation_id: UUID
    fraud_suspected: bool
    fraud_reason: str | None
    fraud_detected_at: datetime | None
    fraud_detected_by_user_id: UUID | None
    escalated_to_user_id: UUID | None
    escalated_at: datetime | None
    escalation_reason: str | None
    evidence_json: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class ConversationFlagsResponse(CamelModel):
    conversation_id: UUID
    basic_flags: FlagBasicRead | None
    extended_flags: FlagExtendedRead | None


# =============================================================================
# Listing rows (one shape per filter)
# =============================================================================

class BypassFlagRow(CamelModel):
    conversation_id: UUID
    bypass_suspected: bool
    attempts_24h: int = Field(alias="attempts24h")
    updated_at: datetime


class FraudFlagRow(CamelModel):
    id: UUID
    conversation_id: UUID
    fraud_suspected: bool
    fraud_reason: str | None
    fraud_detected_at: datetime | None
    escalated_at: datetime | None
    created_at: datetime


class EscalatedFlagRow(CamelModel):
    id: UUID
    conversation_id: UUID
    escalated_to_user_id: UUID | None
    escalated_at: datetime | None
    escalation_reason: str | None
    escalated_to_name: str | None = None
    escalated_to_email: str | None = None


class FlaggedRow(CamelModel):
    id: UUID
    conversation_id: UUID
    fraud_suspected: bool
    fraud_reason: str | None
    escalated_to_user_id: UUID | None
    escalated_at: datetime | None
    updated_at: datetime


class FlagListResponse(CamelModel):
    data: list[BypassFlagRow | FraudFlagRow | EscalatedFlagRow | FlaggedRow]
    total: int
    page: int
    limit: int
    filter: str


class FlagActionRequest(CamelModel):
    """
    POST /flags body: ``{conversationId, action, ...params}``.

    Fields are optional at the schema level so missing values produce the
    action-specific 400 messages instead of a generic validation error.
    """
    conversation_id: str | None = None
    action: str | None = None
    fraud_suspected: bool | None = None
    fraud_reason: str | None = None
    evidence_json: Any = None
    escalate_to_user_id: str | None = None
    escalation_reason: str | None = None
    evidence: Any = None
