"""Thread action processor: assign, status, priority, and tags.

Each action validates its input before touching the database, stages the
domain change together with its audit entry (and moderation event where the
action appears in the staff feed), and commits once.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from support_triage.core.errors import NotFoundError, PolicyViolationError, ValidationError
from support_triage.core.permissions import Capability, get_role_capabilities
from support_triage.core.status_rules import StatusTransitionPolicy, get_status_policy
from support_triage.db.enums import (
    AuditAction,
    ModerationActionType,
    ThreadAction,
    ThreadPriority,
    ThreadStatus,
)
from support_triage.db.models import SupportThread, SupportThreadTag, User
from support_triage.db.upsert import insert_ignore
from support_triage.schemas.audit import AssignMeta, PriorityChangeMeta, StatusChangeMeta, TagMeta
from support_triage.schemas.auth import UserSession
from support_triage.schemas.support import ThreadActionRequest
from support_triage.services import audit_service, moderation_service

logger = logging.getLogger(__name__)

THREAD_ENTITY_TYPE = "support_thread"
TAG_MAX_LENGTH = 64


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_action(raw: str | None) -> ThreadAction:
    try:
        return ThreadAction(raw)
    except ValueError as exc:
        raise ValidationError("Invalid action") from exc


def get_thread_or_404(db: Session, raw_thread_id: str | UUID | None) -> SupportThread:
    """Resolve a thread id from a request body; 400 when missing, 404 when absent."""
    if raw_thread_id is None or (isinstance(raw_thread_id, str) and not raw_thread_id.strip()):
        raise ValidationError("threadId required")
    try:
        thread_id = raw_thread_id if isinstance(raw_thread_id, UUID) else UUID(raw_thread_id)
    except ValueError as exc:
        raise NotFoundError("Thread not found") from exc
    thread = db.query(SupportThread).filter(SupportThread.id == thread_id).first()
    if thread is None:
        raise NotFoundError("Thread not found")
    return thread


def normalize_tag(raw: str | None) -> str:
    tag = (raw or "").strip().lower()
    if not tag:
        raise ValidationError("Tag required")
    if len(tag) > TAG_MAX_LENGTH:
        raise ValidationError(f"Tag must be at most {TAG_MAX_LENGTH} characters")
    return tag


def _ensure_staff_assignee(db: Session, user_id: UUID) -> None:
    """Assignees must be active users whose role can work the support queue."""
    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise ValidationError("assignToUserId does not match a user")
    if Capability.THREADS_VIEW not in get_role_capabilities(user.role):
        raise ValidationError("Assignee must be a support or admin user")


# =============================================================================
# Actions
# =============================================================================


def assign_thread(
    db: Session,
    *,
    actor: UserSession,
    thread: SupportThread,
    assign_to_user_id: str | None,
) -> str:
    """Set or clear the assignee. Empty/omitted clears."""
    new_assignee: UUID | None = None
    if assign_to_user_id and assign_to_user_id.strip():
        try:
            new_assignee = UUID(assign_to_user_id.strip())
        except ValueError as exc:
            raise ValidationError("Invalid assignToUserId") from exc
        _ensure_staff_assignee(db, new_assignee)

    prev_assignee = thread.assigned_to_user_id
    thread.assigned_to_user_id = new_assignee
    thread.updated_at = _now_utc()

    meta = AssignMeta(prev_assignee_id=prev_assignee, new_assignee_id=new_assignee)
    audit_service.write_admin_audit(
        db,
        actor=actor,
        action=AuditAction.THREAD_ASSIGN,
        entity_type=THREAD_ENTITY_TYPE,
        entity_id=thread.id,
        message=(
            f"Assigned thread to user {new_assignee}" if new_assignee else "Unassigned thread"
        ),
        meta=meta,
    )
    moderation_service.log_thread_moderation(
        db,
        actor=actor,
        action_type=(
            ModerationActionType.THREAD_ASSIGN
            if new_assignee
            else ModerationActionType.THREAD_UNASSIGN
        ),
        thread_id=thread.id,
        note=f"Assigned to {new_assignee}" if new_assignee else "Unassigned",
        metadata=meta,
    )
    db.commit()
    logger.info("thread_assigned thread_id=%s assignee_id=%s", thread.id, new_assignee)
    return "Thread assigned"


def set_status(
    db: Session,
    *,
    actor: UserSession,
    thread: SupportThread,
    status_value: str | None,
    policy: StatusTransitionPolicy | None = None,
) -> str:
    """Change status; stamps closed/resolved provenance on terminal transitions."""
    try:
        next_status = ThreadStatus(status_value)
    except ValueError as exc:
        raise ValidationError("Invalid status") from exc

    prev_status = thread.status
    current = ThreadStatus(prev_status) if prev_status in ThreadStatus._value2member_map_ else None
    policy = policy or get_status_policy()
    if not policy.allows(current, next_status):
        raise PolicyViolationError(
            f"Cannot change status from {prev_status} to {next_status.value}"
        )

    thread.status = next_status.value
    if next_status == ThreadStatus.CLOSED and thread.closed_by_user_id is None:
        thread.closed_by_user_id = actor.user_id
    if next_status == ThreadStatus.RESOLVED and thread.resolved_by_user_id is None:
        thread.resolved_by_user_id = actor.user_id
    thread.updated_at = _now_utc()

    audit_service.write_admin_audit(
        db,
        actor=actor,
        action=AuditAction.THREAD_STATUS,
        entity_type=THREAD_ENTITY_TYPE,
        entity_id=thread.id,
        message=f"Changed thread status to {next_status.value}",
        meta=StatusChangeMeta(prev_status=prev_status, new_status=next_status.value),
    )
    db.commit()
    logger.info(
        "thread_status_changed thread_id=%s from=%s to=%s",
        thread.id,
        prev_status,
        next_status.value,
    )
    return "Status updated"


def set_priority(
    db: Session,
    *,
    actor: UserSession,
    thread: SupportThread,
    priority_value: str | None,
) -> str:
    try:
        next_priority = ThreadPriority(priority_value)
    except ValueError as exc:
        raise ValidationError("Invalid priority") from exc

    prev_priority = thread.priority
    thread.priority = next_priority.value
    thread.updated_at = _now_utc()

    meta = PriorityChangeMeta(prev_priority=prev_priority, new_priority=next_priority.value)
    audit_service.write_admin_audit(
        db,
        actor=actor,
        action=AuditAction.THREAD_PRIORITY,
        entity_type=THREAD_ENTITY_TYPE,
        entity_id=thread.id,
        message=f"Changed thread priority to {next_priority.value}",
        meta=meta,
    )
    moderation_service.log_thread_moderation(
        db,
        actor=actor,
        action_type=ModerationActionType.THREAD_PRIORITY_CHANGE,
        thread_id=thread.id,
        note=f"Priority changed from {prev_priority} to {next_priority.value}",
        metadata=meta,
    )
    db.commit()
    logger.info(
        "thread_priority_changed thread_id=%s from=%s to=%s",
        thread.id,
        prev_priority,
        next_priority.value,
    )
    return "Priority updated"


def add_tag(
    db: Session,
    *,
    actor: UserSession,
    thread: SupportThread,
    tag_value: str | None,
) -> str:
    """Idempotent: a duplicate (thread, tag) is a silent no-op."""
    tag = normalize_tag(tag_value)
    inserted = insert_ignore(
        db,
        SupportThreadTag,
        {"thread_id": thread.id, "tag": tag},
        ["thread_id", "tag"],
    )
    audit_service.write_admin_audit(
        db,
        actor=actor,
        action=AuditAction.THREAD_ADD_TAG,
        entity_type=THREAD_ENTITY_TYPE,
        entity_id=thread.id,
        message=f'Added tag "{tag}"',
        meta=TagMeta(tag=tag),
    )
    db.commit()
    logger.info("thread_tag_added thread_id=%s tag=%s inserted=%s", thread.id, tag, inserted)
    return "Tag added"


def remove_tag(
    db: Session,
    *,
    actor: UserSession,
    thread: SupportThread,
    tag_value: str | None,
) -> str:
    """Delete by normalised tag; absent tags are not an error."""
    tag = normalize_tag(tag_value)
    removed = (
        db.query(SupportThreadTag)
        .filter(SupportThreadTag.thread_id == thread.id, SupportThreadTag.tag == tag)
        .delete(synchronize_session=False)
    )
    audit_service.write_admin_audit(
        db,
        actor=actor,
        action=AuditAction.THREAD_REMOVE_TAG,
        entity_type=THREAD_ENTITY_TYPE,
        entity_id=thread.id,
        message=f'Removed tag "{tag}"',
        meta=TagMeta(tag=tag),
    )
    db.commit()
    logger.info("thread_tag_removed thread_id=%s tag=%s removed=%s", thread.id, tag, removed)
    return "Tag removed"


def apply_action(
    db: Session,
    *,
    actor: UserSession,
    request: ThreadActionRequest,
    action: ThreadAction | None = None,
) -> str:
    """Dispatch one POST /threads body. Returns the success message."""
    thread = get_thread_or_404(db, request.thread_id)
    action = action or parse_action(request.action)

    if action == ThreadAction.ASSIGN:
        return assign_thread(
            db, actor=actor, thread=thread, assign_to_user_id=request.assign_to_user_id
        )
    if action == ThreadAction.STATUS:
        return set_status(db, actor=actor, thread=thread, status_value=request.status)
    if action == ThreadAction.PRIORITY:
        return set_priority(db, actor=actor, thread=thread, priority_value=request.priority)
    if action == ThreadAction.ADD_TAG:
        return add_tag(db, actor=actor, thread=thread, tag_value=request.tag)
    return remove_tag(db, actor=actor, thread=thread, tag_value=request.tag)
