"""Conversation flag APIs: fraud, escalation, evidence."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from support_triage.core.deps import (
    get_current_session,
    get_db,
    require_csrf_header,
    require_permission,
)
from support_triage.core.policies import POLICIES
from support_triage.schemas.auth import UserSession
from support_triage.schemas.common import ActionResult
from support_triage.schemas.flags import (
    ConversationFlagsResponse,
    FlagActionRequest,
    FlagListResponse,
)
from support_triage.services import flag_service
from support_triage.utils.pagination import clamp_pagination

router = APIRouter(
    prefix="/flags",
    tags=["Flags"],
    dependencies=[Depends(require_permission(POLICIES["flags"].default))],
)


@router.get("", response_model=ConversationFlagsResponse | FlagListResponse)
def get_flags(
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """
    Flags for one conversation (``conversationId``), or a paginated listing
    (``filter`` = bypass | fraud | escalated, default fraud-or-escalated).
    """
    params = request.query_params
    raw_conversation_id = params.get("conversationId")
    if raw_conversation_id:
        conversation_id = flag_service.parse_conversation_id(raw_conversation_id)
        return flag_service.get_flags(db, actor=session, conversation_id=conversation_id)

    pagination = clamp_pagination(params.get("page"), params.get("limit"))
    return flag_service.list_flags(
        db,
        list_filter=flag_service.parse_list_filter(params.get("filter")),
        pagination=pagination,
    )


@router.post(
    "",
    response_model=ActionResult,
    dependencies=[Depends(require_csrf_header)],
)
def flag_action(
    body: FlagActionRequest,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_permission(POLICIES["flags"].actions["manage"])),
) -> ActionResult:
    """Apply one action (setFraud, escalate, deescalate, addEvidence) to a conversation."""
    message = flag_service.apply_action(db, actor=session, request=body)
    return ActionResult(success=True, message=message)
