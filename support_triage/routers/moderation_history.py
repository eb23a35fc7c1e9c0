"""Moderation history feed and export API."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from support_triage.core.deps import get_db, require_permission
from support_triage.core.policies import POLICIES
from support_triage.schemas.audit import (
    ModerationExportFilters,
    ModerationExportResponse,
    ModerationHistoryResponse,
)
from support_triage.schemas.auth import UserSession
from support_triage.services import moderation_export_service, moderation_service
from support_triage.services.moderation_export_service import ExportFormat
from support_triage.services.moderation_service import ModerationHistoryFilters
from support_triage.utils.datetime_parsing import end_of_day, start_of_day
from support_triage.utils.pagination import clamp_pagination, total_pages

router = APIRouter(prefix="/moderation-history", tags=["Moderation History"])


def _split_action_types(raw: str | None) -> list[str]:
    return [a.strip() for a in (raw or "").split(",") if a.strip()]


@router.get("", response_model=ModerationHistoryResponse)
def list_moderation_history(
    thread_id: UUID | None = Query(None, alias="threadId"),
    actor_id: UUID | None = Query(None, alias="actorId"),
    action_type: str | None = Query(None, alias="actionType"),
    entity_type: str | None = Query(None, alias="entityType"),
    entity_id: str | None = Query(None, alias="entityId"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    page: str | None = None,
    limit: str | None = None,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_permission(POLICIES["moderation_history"].default)),
) -> ModerationHistoryResponse:
    """
    List moderation events, newest first.

    ``actionType`` accepts a comma-separated list; ``endDate`` covers its
    whole calendar day.
    """
    pagination = clamp_pagination(page, limit)

    result = moderation_service.list_history(
        db,
        page=pagination.page,
        limit=pagination.limit,
        thread_id=thread_id,
        actor_id=actor_id,
        action_types=_split_action_types(action_type) or None,
        entity_type=entity_type,
        entity_id=entity_id,
        start_date=start_of_day(start_date),
        end_date=end_of_day(end_date),
    )

    return ModerationHistoryResponse(
        data=[moderation_service.to_event_read(event) for event in result.items],
        total=result.total,
        page=pagination.page,
        limit=pagination.limit,
        total_pages=total_pages(result.total, pagination.limit),
    )


@router.get("/export", response_model=ModerationExportResponse)
def export_moderation_history(
    thread_id: UUID | None = Query(None, alias="threadId"),
    actor_id: UUID | None = Query(None, alias="actorId"),
    action_type: str | None = Query(None, alias="actionType"),
    entity_type: str | None = Query(None, alias="entityType"),
    entity_id: str | None = Query(None, alias="entityId"),
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    raw_format: str | None = Query(None, alias="format"),
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_permission(POLICIES["moderation_history"].default)),
):
    """
    Export every matching event (capped), newest first.

    ``format=csv`` returns an attachment; the default is a JSON document
    that echoes the filters and the exporting user.
    """
    export_format = moderation_export_service.parse_format(raw_format)
    filters = ModerationHistoryFilters(
        thread_id=thread_id,
        actor_id=actor_id,
        action_types=_split_action_types(action_type) or None,
        entity_type=entity_type,
        entity_id=entity_id,
        start_date=start_of_day(start_date),
        end_date=end_of_day(end_date),
    )

    if export_format == ExportFormat.CSV:
        export = moderation_export_service.export_csv(db, actor=session, filters=filters)
        return Response(
            content=export.content,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
        )

    return moderation_export_service.export_json(
        db,
        actor=session,
        filters=filters,
        raw_filters=ModerationExportFilters(
            thread_id=str(thread_id) if thread_id else None,
            actor_id=str(actor_id) if actor_id else None,
            action_type=action_type,
            entity_type=entity_type,
            start_date=start_date,
            end_date=end_date,
        ),
    )
