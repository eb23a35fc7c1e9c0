"""Staff-only internal notes on support threads."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from support_triage.core.errors import NotFoundError, ValidationError
from support_triage.db.enums import AuditAction
from support_triage.db.models import SupportInternalNote, SupportThread, User
from support_triage.schemas.audit import NoteMeta
from support_triage.schemas.auth import UserSession
from support_triage.schemas.support import NoteCreated, NoteRead
from support_triage.services import audit_service

logger = logging.getLogger(__name__)

NOTE_ENTITY_TYPE = "support_internal_note"


def _ensure_thread(db: Session, thread_id: UUID) -> None:
    found = db.query(SupportThread.id).filter(SupportThread.id == thread_id).first()
    if found is None:
        raise NotFoundError("Thread not found")


def list_notes(db: Session, thread_id: UUID) -> list[NoteRead]:
    """Notes for one thread, oldest first, with the author's name and email."""
    _ensure_thread(db, thread_id)
    rows = (
        db.query(SupportInternalNote, User.name, User.email)
        .outerjoin(User, SupportInternalNote.author_id == User.id)
        .filter(SupportInternalNote.thread_id == thread_id)
        .order_by(SupportInternalNote.created_at.asc(), SupportInternalNote.id.asc())
        .all()
    )
    return [
        NoteRead(
            id=note.id,
            body=note.body,
            author_id=note.author_id,
            author_name=author_name,
            author_email=author_email,
            created_at=note.created_at,
        )
        for note, author_name, author_email in rows
    ]


def add_note(
    db: Session,
    *,
    actor: UserSession,
    thread_id: UUID,
    body: str | None,
) -> NoteCreated:
    """
    Append a note to a thread and audit it.

    The body is checked before the thread lookup, so an empty body on an
    unknown thread is a 400, not a 404. The audit meta records the note
    length only; the text stays out of the audit log.
    """
    text = (body or "").strip()
    if not text:
        raise ValidationError("body required")
    _ensure_thread(db, thread_id)

    note = SupportInternalNote(thread_id=thread_id, author_id=actor.user_id, body=text)
    db.add(note)
    db.flush()

    audit_service.write_admin_audit(
        db,
        actor=actor,
        action=AuditAction.THREAD_NOTE_ADD,
        entity_type=NOTE_ENTITY_TYPE,
        entity_id=note.id,
        message="Added internal note to thread",
        meta=NoteMeta(thread_id=thread_id, note_length=len(text)),
    )
    db.commit()
    logger.info("thread_note_added thread_id=%s note_id=%s", thread_id, note.id)
    return NoteCreated(id=note.id, created_at=note.created_at)
