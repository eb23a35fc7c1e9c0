"""Support thread ORM models."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from support_triage.db.base import Base
from support_triage.db.types import UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(Base):
    """
    Buyer/seller conversation projection.

    Owned by the messaging system; kept here so flag actions can verify
    that the conversation they target exists.
    """

    __tablename__ = "conversations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    buyer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    seller_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("sellers.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )


class Order(Base):
    """Order number projection used by thread search."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )


class SupportThread(Base):
    """
    Staff-visible envelope around a buyer/seller/chatbot/whatsapp stream.

    subject / last_message_* / message_count are a cached projection of the
    underlying messages; sla_* are maintained by the SLA job.
    """

    __tablename__ = "support_threads"
    __table_args__ = (
        UniqueConstraint("source", "source_id", name="uq_support_threads_source"),
        Index("idx_support_threads_status_last_msg", "status", "last_message_at"),
        Index("idx_support_threads_assignee", "assigned_to_user_id"),
        Index("idx_support_threads_seller", "seller_id"),
        Index("idx_support_threads_buyer", "buyer_id"),
        Index("idx_support_threads_order", "order_id"),
        Index("idx_support_threads_created", "created_at"),
        Index("idx_support_threads_source_id", "source_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    source_id: Mapped[str] = mapped_column(String(64), nullable=False)

    order_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    seller_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("sellers.id", ondelete="SET NULL"), nullable=True
    )
    buyer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="open", server_default="open"
    )
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default="normal", server_default="normal"
    )

    assigned_to_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    # Provenance of terminal transitions; set once, never cleared
    closed_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    resolved_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    last_message_preview: Mapped[str | None] = mapped_column(Text, nullable=True)
    message_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_message_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    sla_deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    sla_breach: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )

    tags: Mapped[list["SupportThreadTag"]] = relationship(
        back_populates="thread", cascade="all, delete-orphan", passive_deletes=True
    )


class SupportThreadTag(Base):
    """Lower-cased label on a thread; (thread_id, tag) is unique."""

    __tablename__ = "support_thread_tags"
    __table_args__ = (
        UniqueConstraint("thread_id", "tag", name="uq_support_thread_tags_thread_tag"),
        Index("idx_support_thread_tags_tag", "tag"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    thread_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("support_threads.id", ondelete="CASCADE"), nullable=False
    )
    tag: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )

    thread: Mapped["SupportThread"] = relationship(back_populates="tags")


class SupportInternalNote(Base):
    """Staff-only note on a thread; never shown to buyers or sellers."""

    __tablename__ = "support_internal_notes"
    __table_args__ = (
        Index("idx_support_internal_notes_thread_created", "thread_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    thread_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("support_threads.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utcnow, server_default=func.now(), nullable=False
    )
