"""Admin audit logging service.

Every back-office mutation writes exactly one ``AdminAuditLog`` row in the
same transaction as the domain change. Rows are append-only.

Security guidelines:
- NEVER log secrets (tokens, passwords)
- Use IDs instead of raw data where possible
- Message bodies and buyer emails stay out of ``meta``
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from support_triage.db.enums import AuditAction
from support_triage.db.models import AdminAuditLog, User
from support_triage.schemas.auth import UserSession
from support_triage.schemas.common import CamelModel

logger = logging.getLogger(__name__)


def write_admin_audit(
    db: Session,
    *,
    actor: UserSession | None,
    action: AuditAction,
    entity_type: str,
    entity_id: str | UUID,
    message: str | None = None,
    meta: CamelModel | None = None,
) -> AdminAuditLog:
    """
    Stage an audit entry on the session.

    Does not commit: the caller commits the domain change and the audit row
    together so neither can exist without the other.
    """
    entry = AdminAuditLog(
        actor_id=actor.user_id if actor else None,
        actor_role=actor.role.value if actor else None,
        action=action.value,
        entity_type=entity_type,
        entity_id=str(entity_id),
        message=message,
        meta=meta.to_json() if meta is not None else None,
    )
    db.add(entry)
    logger.info(
        "audit action=%s entity_type=%s entity_id=%s actor_id=%s",
        entry.action,
        entry.entity_type,
        entry.entity_id,
        entry.actor_id,
    )
    return entry


@dataclass(frozen=True)
class AuditLogPage:
    """Audit list page with resolved actor emails."""

    rows: list[tuple[AdminAuditLog, str | None]]
    total: int


def list_audit_logs(
    db: Session,
    *,
    page: int,
    page_size: int,
    q: str | None = None,
    actor_id: UUID | None = None,
    action: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> AuditLogPage:
    """List audit entries newest first, joined with the actor's email."""
    query = db.query(AdminAuditLog, User.email).outerjoin(
        User, AdminAuditLog.actor_id == User.id
    )

    if q and q.strip():
        search = f"%{q.strip()}%"
        query = query.filter(
            or_(
                AdminAuditLog.action.ilike(search),
                AdminAuditLog.entity_type.ilike(search),
                AdminAuditLog.entity_id.ilike(search),
                AdminAuditLog.message.ilike(search),
            )
        )
    if actor_id:
        query = query.filter(AdminAuditLog.actor_id == actor_id)
    if action:
        query = query.filter(AdminAuditLog.action == action)
    if entity_type:
        query = query.filter(AdminAuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AdminAuditLog.entity_id == entity_id)
    if date_from:
        query = query.filter(AdminAuditLog.created_at >= date_from)
    if date_to:
        query = query.filter(AdminAuditLog.created_at <= date_to)

    total = query.count()

    offset = (page - 1) * page_size
    rows = (
        query.order_by(AdminAuditLog.created_at.desc(), AdminAuditLog.id.desc())
        .offset(offset)
        .limit(page_size)
        .all()
    )
    return AuditLogPage(rows=[(log, email) for log, email in rows], total=total)
