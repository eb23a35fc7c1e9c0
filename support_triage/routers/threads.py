"""Support thread list/export/search/action and internal note APIs."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from support_triage.core.deps import (
    get_current_session,
    get_db,
    require_csrf_header,
    require_permission,
)
from support_triage.core.errors import NotFoundError
from support_triage.core.permissions import can, is_admin_only
from support_triage.core.policies import POLICIES
from support_triage.schemas.auth import UserSession
from support_triage.schemas.common import ActionResult
from support_triage.schemas.support import (
    NoteCreated,
    NoteCreateRequest,
    NoteListResponse,
    ThreadActionRequest,
    ThreadDetailResponse,
    ThreadListResponse,
)
from support_triage.services import (
    flag_service,
    thread_action_service,
    thread_export_service,
    thread_note_service,
    thread_query_service,
)
from support_triage.utils.pagination import clamp_pagination

router = APIRouter(
    prefix="/threads",
    tags=["Support Threads"],
    dependencies=[Depends(require_permission(POLICIES["threads"].default))],
)

EXPORT_FORMAT_CSV = "csv"


@router.get("", response_model=ThreadListResponse)
def list_threads(
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """
    List threads with filters, sorting, and pagination.

    ``export=csv`` returns the whole (capped) result as a CSV attachment and
    requires the export capability.
    """
    params = request.query_params
    exporting = params.get("export") == EXPORT_FORMAT_CSV
    export_capability = POLICIES["threads"].actions["export"]
    if exporting and not can(session, export_capability):
        detail = "Export requires admin role" if is_admin_only(export_capability) else "Forbidden"
        raise HTTPException(status_code=403, detail=detail)

    filters = thread_query_service.parse_filters(params, caller_id=session.user_id)
    sort_by, sort_order = thread_query_service.parse_sort(
        params.get("sortBy"), params.get("sortOrder")
    )
    ordering = thread_query_service.select_ordering(filters, sort_by, sort_order)

    if exporting:
        export = thread_export_service.export_threads(
            db, actor=session, filters=filters, ordering=ordering
        )
        return Response(
            content=export.content,
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
        )

    pagination = clamp_pagination(params.get("page"), params.get("limit"))
    page = thread_query_service.list_threads(
        db, filters=filters, pagination=pagination, ordering=ordering
    )
    return ThreadListResponse(
        data=page.items,
        total=page.total,
        page=page.page,
        limit=page.limit,
    )


@router.post(
    "",
    response_model=ActionResult,
    dependencies=[Depends(require_csrf_header)],
)
def thread_action(
    body: ThreadActionRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
) -> ActionResult:
    """Apply one action (assign, status, priority, addTag, removeTag) to a thread."""
    action = thread_action_service.parse_action(body.action)
    if not can(session, POLICIES["threads"].actions[action.value]):
        raise HTTPException(status_code=403, detail="Forbidden")

    message = thread_action_service.apply_action(db, actor=session, request=body, action=action)
    return ActionResult(success=True, message=message)


@router.get("/search", response_model=ThreadListResponse)
def search_threads(
    q: str | None = None,
    status: str | None = None,
    page: str | None = None,
    limit: str | None = None,
    db: Session = Depends(get_db),
) -> ThreadListResponse:
    """Search threads by buyer email, seller slug, order number, subject, or preview."""
    statuses = thread_query_service.parse_statuses(status)
    pagination = clamp_pagination(page, limit)
    result = thread_query_service.search_threads(
        db, q=q, statuses=statuses, pagination=pagination
    )
    return ThreadListResponse(
        data=result.items,
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.get("/{thread_id}", response_model=ThreadDetailResponse)
def get_thread(
    thread_id: UUID,
    db: Session = Depends(get_db),
) -> ThreadDetailResponse:
    """Single enriched thread with tags and extended flags."""
    thread = thread_query_service.get_thread(db, thread_id)
    if thread is None:
        raise NotFoundError("Thread not found")

    [row] = thread_query_service.enrich_threads(db, [thread])
    extended = None
    try:
        extended = flag_service.get_extended_flags(db, UUID(thread.source_id))
    except ValueError:
        # source_id is not a conversation uuid (e.g. whatsapp ids)
        extended = None
    return ThreadDetailResponse(**row.model_dump(), extended_flags=extended)


@router.get("/{thread_id}/notes", response_model=NoteListResponse)
def list_thread_notes(
    thread_id: UUID,
    db: Session = Depends(get_db),
) -> NoteListResponse:
    """Internal notes on a thread, oldest first."""
    return NoteListResponse(notes=thread_note_service.list_notes(db, thread_id))


@router.post(
    "/{thread_id}/notes",
    response_model=NoteCreated,
    dependencies=[Depends(require_csrf_header)],
)
def add_thread_note(
    thread_id: UUID,
    body: NoteCreateRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_permission(POLICIES["threads"].actions["note"])),
) -> NoteCreated:
    """Add a staff-only note to a thread."""
    return thread_note_service.add_note(db, actor=session, thread_id=thread_id, body=body.body)
