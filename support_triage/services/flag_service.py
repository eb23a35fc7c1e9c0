"""Flag state engine: fraud suspicion, escalation, and the evidence ledger.

Flags are keyed by the source conversation id. ``ConversationFlagExtended``
rows are created lazily through an insert-ignore on the unique
conversation id, and every update is guarded by the row's version counter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from support_triage.core.config import settings
from support_triage.core.errors import ConflictError, NotFoundError, ValidationError
from support_triage.db.enums import AuditAction, FlagAction, FlagListFilter, ModerationActionType
from support_triage.db.models import (
    Conversation,
    ConversationFlag,
    ConversationFlagExtended,
    SupportThread,
    User,
)
from support_triage.db.upsert import insert_ignore
from support_triage.schemas.audit import (
    DeescalateMeta,
    EscalateMeta,
    EvidenceLedger,
    EvidenceMeta,
    FraudMeta,
)
from support_triage.schemas.auth import UserSession
from support_triage.schemas.flags import (
    BypassFlagRow,
    ConversationFlagsResponse,
    EscalatedFlagRow,
    FlagActionRequest,
    FlagBasicRead,
    FlagExtendedRead,
    FlaggedRow,
    FlagListResponse,
    FraudFlagRow,
)
from support_triage.services import audit_service, moderation_service
from support_triage.utils.pagination import PaginationParams

logger = logging.getLogger(__name__)

CONVERSATION_ENTITY_TYPE = "conversation"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Thread lookup
# =============================================================================


@dataclass(frozen=True)
class Found:
    thread_id: UUID


@dataclass(frozen=True)
class NotFound:
    pass


ThreadLookup = Found | NotFound


def lookup_thread(db: Session, conversation_id: UUID) -> ThreadLookup:
    """Find the support thread whose source is this conversation."""
    row = (
        db.query(SupportThread.id)
        .filter(SupportThread.source_id == str(conversation_id))
        .order_by(SupportThread.created_at.asc())
        .first()
    )
    if row is None:
        return NotFound()
    return Found(thread_id=row.id)


# =============================================================================
# Helpers
# =============================================================================


def parse_conversation_id(raw: str | UUID | None) -> UUID:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError("conversationId required")
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(raw.strip())
    except ValueError as exc:
        raise ValidationError("Invalid conversationId") from exc


def get_conversation_or_404(db: Session, conversation_id: UUID) -> Conversation:
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


def _fetch_extended(db: Session, conversation_id: UUID) -> ConversationFlagExtended | None:
    return (
        db.query(ConversationFlagExtended)
        .filter(ConversationFlagExtended.conversation_id == conversation_id)
        .populate_existing()
        .first()
    )


def _get_or_create_extended(db: Session, conversation_id: UUID) -> ConversationFlagExtended:
    """Concurrent first writers converge on the single row for the conversation."""
    insert_ignore(
        db,
        ConversationFlagExtended,
        {"conversation_id": conversation_id},
        ["conversation_id"],
    )
    return _fetch_extended(db, conversation_id)


def _commit_versioned(
    db: Session,
    *,
    conversation_id: UUID,
    apply: Callable[[ConversationFlagExtended], None],
    create: bool = True,
    missing_message: str = "Flag record not found",
    max_attempts: int = 1,
) -> ConversationFlagExtended:
    """
    Load the flag row, apply a mutation, and commit under the version check.

    ``apply`` also stages the audit/moderation rows so they are rolled back
    and rewritten together with the flag change on each attempt.
    """
    for attempt in range(1, max(1, max_attempts) + 1):
        flags = (
            _get_or_create_extended(db, conversation_id)
            if create
            else _fetch_extended(db, conversation_id)
        )
        if flags is None:
            raise ValidationError(missing_message)
        apply(flags)
        try:
            db.commit()
            return flags
        except StaleDataError:
            db.rollback()
            logger.warning(
                "flag_version_conflict conversation_id=%s attempt=%s",
                conversation_id,
                attempt,
            )
    raise ConflictError("Flags were modified concurrently, please retry")


def _evidence_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _is_empty_evidence(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (dict, list)):
        return len(value) == 0
    return False


# =============================================================================
# Mutations
# =============================================================================


def set_fraud(
    db: Session,
    *,
    actor: UserSession,
    conversation_id: UUID,
    fraud_suspected: bool | None,
    fraud_reason: str | None = None,
    evidence: Any = None,
) -> str:
    """
    Set or clear fraud suspicion.

    Omitted fields keep their stored values. Detection provenance is stamped
    when suspicion turns on and survives clearing.
    """
    get_conversation_or_404(db, conversation_id)

    def apply(flags: ConversationFlagExtended) -> None:
        now = _now_utc()
        if fraud_suspected and not flags.fraud_suspected:
            flags.fraud_detected_at = now
            flags.fraud_detected_by_user_id = actor.user_id
        if fraud_suspected is not None:
            flags.fraud_suspected = fraud_suspected
        if fraud_reason is not None:
            flags.fraud_reason = fraud_reason
        if not _is_empty_evidence(evidence):
            ledger = EvidenceLedger.load(flags.evidence_json).append(
                added_by=actor.user_id, added_at=now, content=evidence
            )
            flags.evidence_json = ledger.to_json()
        flags.updated_at = now

        if fraud_suspected:
            message = (
                f"Marked conversation as fraud suspected: {fraud_reason}"
                if fraud_reason
                else "Marked conversation as fraud suspected"
            )
        elif fraud_suspected is False:
            message = "Cleared fraud suspicion"
        else:
            message = "Updated fraud flag"
        audit_service.write_admin_audit(
            db,
            actor=actor,
            action=AuditAction.FLAGS_SET_FRAUD,
            entity_type=CONVERSATION_ENTITY_TYPE,
            entity_id=conversation_id,
            message=message,
            meta=FraudMeta(fraud_suspected=fraud_suspected, fraud_reason=fraud_reason),
        )

    _commit_versioned(db, conversation_id=conversation_id, apply=apply)
    logger.info(
        "flag_fraud_set conversation_id=%s fraud_suspected=%s", conversation_id, fraud_suspected
    )
    if fraud_suspected:
        return "Fraud flag set"
    if fraud_suspected is False:
        return "Fraud flag cleared"
    return "Fraud flag updated"


def escalate(
    db: Session,
    *,
    actor: UserSession,
    conversation_id: UUID,
    escalate_to_user_id: str | UUID | None,
    escalation_reason: str | None = None,
) -> str:
    """Escalate to a user; the three escalation fields are written together."""
    if escalate_to_user_id is None or (
        isinstance(escalate_to_user_id, str) and not escalate_to_user_id.strip()
    ):
        raise ValidationError("escalateToUserId required")
    try:
        target_id = (
            escalate_to_user_id
            if isinstance(escalate_to_user_id, UUID)
            else UUID(escalate_to_user_id.strip())
        )
    except ValueError as exc:
        raise ValidationError("Invalid escalateToUserId") from exc

    get_conversation_or_404(db, conversation_id)
    if db.query(User.id).filter(User.id == target_id).first() is None:
        raise ValidationError("escalateToUserId does not match a user")

    lookup = lookup_thread(db, conversation_id)

    def apply(flags: ConversationFlagExtended) -> None:
        now = _now_utc()
        flags.escalated_to_user_id = target_id
        flags.escalated_at = now
        flags.escalation_reason = escalation_reason
        flags.updated_at = now

        audit_service.write_admin_audit(
            db,
            actor=actor,
            action=AuditAction.FLAGS_ESCALATE,
            entity_type=CONVERSATION_ENTITY_TYPE,
            entity_id=conversation_id,
            message=f"Escalated conversation to {target_id}",
            meta=EscalateMeta(
                escalate_to_user_id=target_id, escalation_reason=escalation_reason
            ),
        )
        _log_flag_moderation(
            db,
            actor=actor,
            lookup=lookup,
            conversation_id=conversation_id,
            action_type=ModerationActionType.THREAD_ESCALATE,
            note=escalation_reason or f"Escalated to {target_id}",
            metadata=EscalateMeta(
                escalate_to_user_id=target_id,
                escalation_reason=escalation_reason,
                conversation_id=conversation_id,
                thread_resolved=isinstance(lookup, Found),
            ),
        )

    _commit_versioned(db, conversation_id=conversation_id, apply=apply)
    logger.info("flag_escalated conversation_id=%s target_id=%s", conversation_id, target_id)
    return "Conversation escalated"


def deescalate(db: Session, *, actor: UserSession, conversation_id: UUID) -> str:
    """Clear the escalation, recording who it was escalated to."""
    get_conversation_or_404(db, conversation_id)
    lookup = lookup_thread(db, conversation_id)

    def apply(flags: ConversationFlagExtended) -> None:
        prev_escalated_to = flags.escalated_to_user_id
        flags.escalated_to_user_id = None
        flags.escalated_at = None
        flags.escalation_reason = None
        flags.updated_at = _now_utc()

        audit_service.write_admin_audit(
            db,
            actor=actor,
            action=AuditAction.FLAGS_DEESCALATE,
            entity_type=CONVERSATION_ENTITY_TYPE,
            entity_id=conversation_id,
            message="De-escalated conversation",
            meta=DeescalateMeta(prev_escalated_to=prev_escalated_to),
        )
        _log_flag_moderation(
            db,
            actor=actor,
            lookup=lookup,
            conversation_id=conversation_id,
            action_type=ModerationActionType.THREAD_DEESCALATE,
            note=f"De-escalated from {prev_escalated_to}",
            metadata=DeescalateMeta(
                prev_escalated_to=prev_escalated_to,
                conversation_id=conversation_id,
                thread_resolved=isinstance(lookup, Found),
            ),
        )

    _commit_versioned(
        db,
        conversation_id=conversation_id,
        apply=apply,
        create=False,
        missing_message="No flags to de-escalate",
    )
    logger.info("flag_deescalated conversation_id=%s", conversation_id)
    return "Conversation de-escalated"


def add_evidence(
    db: Session,
    *,
    actor: UserSession,
    conversation_id: UUID,
    evidence: Any,
) -> str:
    """Append one entry to the evidence ledger, retrying on version conflicts."""
    if _is_empty_evidence(evidence):
        raise ValidationError("evidence required")
    get_conversation_or_404(db, conversation_id)

    def apply(flags: ConversationFlagExtended) -> None:
        now = _now_utc()
        ledger = EvidenceLedger.load(flags.evidence_json).append(
            added_by=actor.user_id, added_at=now, content=evidence
        )
        flags.evidence_json = ledger.to_json()
        flags.updated_at = now
        audit_service.write_admin_audit(
            db,
            actor=actor,
            action=AuditAction.FLAGS_ADD_EVIDENCE,
            entity_type=CONVERSATION_ENTITY_TYPE,
            entity_id=conversation_id,
            message="Added evidence to conversation flags",
            meta=EvidenceMeta(evidence_type=_evidence_type(evidence)),
        )

    _commit_versioned(
        db,
        conversation_id=conversation_id,
        apply=apply,
        max_attempts=settings.FLAG_EVIDENCE_MAX_RETRIES,
    )
    logger.info("flag_evidence_added conversation_id=%s", conversation_id)
    return "Evidence added"


def _log_flag_moderation(
    db: Session,
    *,
    actor: UserSession,
    lookup: ThreadLookup,
    conversation_id: UUID,
    action_type: ModerationActionType,
    note: str,
    metadata,
) -> None:
    if isinstance(lookup, Found):
        thread_id = lookup.thread_id
    else:
        # No thread for this conversation: keep the event, keyed by conversation
        thread_id = conversation_id
    moderation_service.log_thread_moderation(
        db,
        actor=actor,
        action_type=action_type,
        thread_id=thread_id,
        note=note,
        metadata=metadata,
    )


def apply_action(
    db: Session,
    *,
    actor: UserSession,
    request: FlagActionRequest,
) -> str:
    """Dispatch one POST /flags body. Returns the success message."""
    conversation_id = parse_conversation_id(request.conversation_id)
    try:
        action = FlagAction(request.action)
    except ValueError as exc:
        raise ValidationError("Invalid action") from exc

    if action == FlagAction.SET_FRAUD:
        return set_fraud(
            db,
            actor=actor,
            conversation_id=conversation_id,
            fraud_suspected=request.fraud_suspected,
            fraud_reason=request.fraud_reason,
            evidence=request.evidence_json,
        )
    if action == FlagAction.ESCALATE:
        return escalate(
            db,
            actor=actor,
            conversation_id=conversation_id,
            escalate_to_user_id=request.escalate_to_user_id,
            escalation_reason=request.escalation_reason,
        )
    if action == FlagAction.DEESCALATE:
        return deescalate(db, actor=actor, conversation_id=conversation_id)
    return add_evidence(
        db, actor=actor, conversation_id=conversation_id, evidence=request.evidence
    )


# =============================================================================
# Reads
# =============================================================================


def get_flags(
    db: Session,
    *,
    actor: UserSession,
    conversation_id: UUID,
) -> ConversationFlagsResponse:
    """Basic + extended flags for one conversation. The read itself is audited."""
    get_conversation_or_404(db, conversation_id)
    basic = (
        db.query(ConversationFlag)
        .filter(ConversationFlag.conversation_id == conversation_id)
        .first()
    )
    extended = _fetch_extended(db, conversation_id)

    audit_service.write_admin_audit(
        db,
        actor=actor,
        action=AuditAction.FLAGS_VIEW,
        entity_type=CONVERSATION_ENTITY_TYPE,
        entity_id=conversation_id,
        message="Viewed conversation flags",
    )
    db.commit()

    return ConversationFlagsResponse(
        conversation_id=conversation_id,
        basic_flags=FlagBasicRead.model_validate(basic) if basic else None,
        extended_flags=FlagExtendedRead.model_validate(extended) if extended else None,
    )


def get_extended_flags(db: Session, conversation_id: UUID) -> FlagExtendedRead | None:
    """Extended flags without auditing (used by thread detail)."""
    extended = _fetch_extended(db, conversation_id)
    return FlagExtendedRead.model_validate(extended) if extended else None


def parse_list_filter(raw: str | None) -> FlagListFilter:
    try:
        return FlagListFilter(raw) if raw else FlagListFilter.ALL
    except ValueError:
        return FlagListFilter.ALL


def list_flags(
    db: Session,
    *,
    list_filter: FlagListFilter,
    pagination: PaginationParams,
) -> FlagListResponse:
    """Paginated flag listing; each view has its own count query."""
    offset = pagination.offset
    limit = pagination.limit

    if list_filter == FlagListFilter.BYPASS:
        query = db.query(ConversationFlag).filter(ConversationFlag.bypass_suspected.is_(True))
        total = query.count()
        rows = (
            query.order_by(ConversationFlag.updated_at.desc(), ConversationFlag.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        data = [BypassFlagRow.model_validate(row) for row in rows]

    elif list_filter == FlagListFilter.FRAUD:
        query = db.query(ConversationFlagExtended).filter(
            ConversationFlagExtended.fraud_suspected.is_(True)
        )
        total = query.count()
        rows = (
            query.order_by(
                ConversationFlagExtended.fraud_detected_at.desc().nulls_last(),
                ConversationFlagExtended.id.desc(),
            )
            .offset(offset)
            .limit(limit)
            .all()
        )
        data = [FraudFlagRow.model_validate(row) for row in rows]

    elif list_filter == FlagListFilter.ESCALATED:
        base = db.query(ConversationFlagExtended).filter(
            ConversationFlagExtended.escalated_to_user_id.isnot(None)
        )
        total = base.count()
        rows = (
            db.query(ConversationFlagExtended, User.name, User.email)
            .outerjoin(User, ConversationFlagExtended.escalated_to_user_id == User.id)
            .filter(ConversationFlagExtended.escalated_to_user_id.isnot(None))
            .order_by(
                ConversationFlagExtended.escalated_at.desc().nulls_last(),
                ConversationFlagExtended.id.desc(),
            )
            .offset(offset)
            .limit(limit)
            .all()
        )
        data = [
            EscalatedFlagRow(
                id=flags.id,
                conversation_id=flags.conversation_id,
                escalated_to_user_id=flags.escalated_to_user_id,
                escalated_at=flags.escalated_at,
                escalation_reason=flags.escalation_reason,
                escalated_to_name=name,
                escalated_to_email=email,
            )
            for flags, name, email in rows
        ]

    else:
        query = db.query(ConversationFlagExtended).filter(
            or_(
                ConversationFlagExtended.fraud_suspected.is_(True),
                ConversationFlagExtended.escalated_to_user_id.isnot(None),
            )
        )
        total = query.count()
        rows = (
            query.order_by(
                ConversationFlagExtended.updated_at.desc(),
                ConversationFlagExtended.id.desc(),
            )
            .offset(offset)
            .limit(limit)
            .all()
        )
        data = [FlaggedRow.model_validate(row) for row in rows]
        list_filter = FlagListFilter.ALL

    return FlagListResponse(
        data=data,
        total=total,
        page=pagination.page,
        limit=limit,
        filter=list_filter.value,
    )
