"""Conversation risk flags (basic + extended)."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, Uuid, false, func, text
from sqlalchemy.orm import Mapped, mapped_column

from support_triage.db.base import Base
from support_triage.db.types import JSONType, UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationFlag(Base):
    """
    Legacy per-conversation abuse flags.

    Maintained by the abuse-detection job; read-only for the triage engine.
    """

    __tablename__ = "conversation_flags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    bypass_suspected: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    attempts_24h: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )


class ConversationFlagExtended(Base):
    """
    Authoritative fraud/escalation state for a conversation.

    - escalated_to_user_id / escalated_at / escalation_reason move together
    - evidence_json["entries"] is append-only
    - version guards evidence appends against lost updates
    """

    __tablename__ = "conversation_flags_extended"
    __table_args__ = (
        Index("idx_flags_ext_fraud", "fraud_suspected", "fraud_detected_at"),
        Index("idx_flags_ext_escalated", "escalated_to_user_id", "escalated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    fraud_suspected: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    fraud_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    fraud_detected_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    fraud_detected_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    escalated_to_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    escalated_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    escalation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    evidence_json: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )

    __mapper_args__ = {"version_id_col": version}
