"""Audit router - API endpoint for viewing admin audit logs."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from support_triage.core.deps import get_db, require_permission
from support_triage.core.policies import POLICIES
from support_triage.schemas.audit import AuditLogListResponse, AuditLogRead
from support_triage.schemas.auth import UserSession
from support_triage.services import audit_service
from support_triage.utils.datetime_parsing import parse_datetime
from support_triage.utils.pagination import clamp_pagination

router = APIRouter(prefix="/audit-logs", tags=["Audit"])

MAX_PAGE_SIZE = 200


@router.get("", response_model=AuditLogListResponse)
def list_audit_logs(
    q: str | None = None,
    actor_id: UUID | None = Query(None, alias="actorId"),
    action: str | None = None,
    entity_type: str | None = Query(None, alias="entityType"),
    entity_id: str | None = Query(None, alias="entityId"),
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    page: str | None = None,
    page_size: str | None = Query(None, alias="pageSize"),
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_permission(POLICIES["audit"].default)),
) -> AuditLogListResponse:
    """
    List audit log entries, newest first.

    Requires: admin
    Filters: q (action/entity/message substring), actor, action, entity, date range
    """
    pagination = clamp_pagination(page, page_size, max_limit=MAX_PAGE_SIZE)

    result = audit_service.list_audit_logs(
        db,
        page=pagination.page,
        page_size=pagination.limit,
        q=q,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        date_from=parse_datetime(date_from),
        date_to=parse_datetime(date_to),
    )

    rows = [
        AuditLogRead(
            id=log.id,
            actor_id=log.actor_id,
            actor_role=log.actor_role,
            actor_email=actor_email,
            action=log.action,
            entity_type=log.entity_type,
            entity_id=log.entity_id,
            message=log.message,
            meta=log.meta,
            created_at=log.created_at,
        )
        for log, actor_email in result.rows
    ]
    return AuditLogListResponse(
        page=pagination.page,
        page_size=pagination.limit,
        total=result.total,
        rows=rows,
    )
