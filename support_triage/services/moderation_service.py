"""Thread moderation history: the staff-facing feed of thread lifecycle actions."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Query, Session

from support_triage.db.enums import (
    ModerationActionType,
    ModerationActorRole,
    ModerationEntityType,
)
from support_triage.db.models import SupportModerationHistory, User
from support_triage.schemas.audit import ModerationEventRead
from support_triage.schemas.auth import UserSession
from support_triage.schemas.common import CamelModel

logger = logging.getLogger(__name__)

SYSTEM_ACTOR_NAME = "System"
UNKNOWN_ACTOR_NAME = "Unknown"


def _resolve_actor_name(db: Session, actor: UserSession | None) -> str:
    if actor is None:
        return SYSTEM_ACTOR_NAME
    if actor.name:
        return actor.name
    if actor.email:
        return actor.email
    user = db.query(User).filter(User.id == actor.user_id).first()
    if user is None:
        return UNKNOWN_ACTOR_NAME
    return user.name or user.email or UNKNOWN_ACTOR_NAME


def log_thread_moderation(
    db: Session,
    *,
    actor: UserSession | None,
    action_type: ModerationActionType,
    thread_id: UUID,
    reason: str | None = None,
    note: str | None = None,
    metadata: CamelModel | None = None,
) -> SupportModerationHistory:
    """
    Stage a thread-scoped moderation event on the session.

    Shares the caller's transaction with the audit entry and the domain
    change; nothing is committed here.
    """
    actor_role = (
        ModerationActorRole(actor.role.value) if actor else ModerationActorRole.SYSTEM
    )

    event = SupportModerationHistory(
        actor_id=actor.user_id if actor else None,
        actor_name=_resolve_actor_name(db, actor),
        actor_role=actor_role.value,
        action_type=action_type.value,
        entity_type=ModerationEntityType.THREAD.value,
        entity_id=str(thread_id),
        thread_id=thread_id,
        reason=reason,
        note=note,
        event_metadata=metadata.to_json() if metadata is not None else {},
    )
    db.add(event)
    logger.info(
        "moderation action_type=%s thread_id=%s actor_id=%s",
        event.action_type,
        thread_id,
        event.actor_id,
    )
    return event


@dataclass(frozen=True)
class ModerationHistoryPage:
    items: list[SupportModerationHistory]
    total: int


@dataclass(frozen=True)
class ModerationHistoryFilters:
    thread_id: UUID | None = None
    actor_id: UUID | None = None
    action_types: list[str] | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


def _filtered_query(db: Session, filters: ModerationHistoryFilters) -> Query:
    query = db.query(SupportModerationHistory)

    if filters.thread_id:
        query = query.filter(SupportModerationHistory.thread_id == filters.thread_id)
    if filters.actor_id:
        query = query.filter(SupportModerationHistory.actor_id == filters.actor_id)
    if filters.action_types:
        query = query.filter(SupportModerationHistory.action_type.in_(filters.action_types))
    if filters.entity_type:
        query = query.filter(SupportModerationHistory.entity_type == filters.entity_type)
    if filters.entity_id:
        query = query.filter(SupportModerationHistory.entity_id == filters.entity_id)
    if filters.start_date:
        query = query.filter(SupportModerationHistory.created_at >= filters.start_date)
    if filters.end_date:
        query = query.filter(SupportModerationHistory.created_at <= filters.end_date)
    return query


def _newest_first(query: Query) -> Query:
    return query.order_by(
        SupportModerationHistory.created_at.desc(),
        SupportModerationHistory.id.desc(),
    )


def list_history(
    db: Session,
    *,
    page: int,
    limit: int,
    thread_id: UUID | None = None,
    actor_id: UUID | None = None,
    action_types: list[str] | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> ModerationHistoryPage:
    """List moderation events newest first."""
    query = _filtered_query(
        db,
        ModerationHistoryFilters(
            thread_id=thread_id,
            actor_id=actor_id,
            action_types=action_types,
            entity_type=entity_type,
            entity_id=entity_id,
            start_date=start_date,
            end_date=end_date,
        ),
    )
    total = query.count()
    items = _newest_first(query).offset((page - 1) * limit).limit(limit).all()
    return ModerationHistoryPage(items=items, total=total)


def fetch_export_rows(
    db: Session,
    *,
    filters: ModerationHistoryFilters,
    max_rows: int,
) -> list[SupportModerationHistory]:
    """All matching events up to max_rows, newest first, no paging."""
    return _newest_first(_filtered_query(db, filters)).limit(max_rows).all()


def to_event_read(event: SupportModerationHistory) -> ModerationEventRead:
    return ModerationEventRead(
        id=event.id,
        actor_id=event.actor_id,
        actor_name=event.actor_name,
        actor_role=event.actor_role,
        action_type=event.action_type,
        entity_type=event.entity_type,
        entity_id=event.entity_id,
        thread_id=event.thread_id,
        reason=event.reason,
        note=event.note,
        metadata=event.event_metadata or {},
        created_at=event.created_at,
    )
