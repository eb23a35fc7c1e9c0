"""CSV export of thread query results."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable

from sqlalchemy.orm import Session

from support_triage.core.config import settings
from support_triage.db.enums import AuditAction
from support_triage.schemas.audit import ExportMeta
from support_triage.schemas.auth import UserSession
from support_triage.schemas.support import ThreadFilters, ThreadRow
from support_triage.services import audit_service, thread_query_service
from support_triage.services.thread_query_service import ThreadOrdering

logger = logging.getLogger(__name__)

EXPORT_ENTITY_TYPE = "support_threads"
EXPORT_ENTITY_ID = "bulk"
UNASSIGNED_LABEL = "Unassigned"

CSV_HEADERS = [
    "ID",
    "Source",
    "Status",
    "Priority",
    "Subject",
    "Seller",
    "Buyer",
    "Assigned To",
    "Message Count",
    "SLA Breach",
    "Last Message",
    "Created",
]

CSV_DANGEROUS_PREFIXES = ("=", "+", "-", "@")


def csv_safe(value: str) -> str:
    """Neutralise spreadsheet formula prefixes."""
    if value and value.startswith(CSV_DANGEROUS_PREFIXES):
        return f"'{value}"
    return value


def iso_utc(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _row_values(row: ThreadRow) -> list:
    return [
        str(row.id),
        row.source,
        row.status,
        row.priority,
        csv_safe(row.display_subject or row.subject or ""),
        csv_safe(row.seller.brand_name if row.seller else ""),
        csv_safe(row.buyer.email if row.buyer else ""),
        csv_safe(row.assignee.email if row.assignee else UNASSIGNED_LABEL),
        row.message_count,
        "Yes" if row.sla_breach else "No",
        iso_utc(row.last_message_at),
        iso_utc(row.created_at),
    ]


def render_csv(rows: Iterable[ThreadRow]) -> str:
    """Header plus one line per thread; text cells quoted, quotes doubled."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for row in rows:
        writer.writerow(_row_values(row))
    return output.getvalue()


def export_filename(today: date | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"support-threads-{today.isoformat()}.csv"


@dataclass(frozen=True)
class ThreadExport:
    content: str
    filename: str
    count: int


def export_threads(
    db: Session,
    *,
    actor: UserSession,
    filters: ThreadFilters,
    ordering: ThreadOrdering,
    max_rows: int | None = None,
) -> ThreadExport:
    """
    Render all matching threads (capped) as CSV and audit the export.

    Authorization is the caller's job; this function assumes an admin actor.
    """
    rows = thread_query_service.fetch_export_rows(
        db,
        filters=filters,
        ordering=ordering,
        max_rows=max_rows or settings.THREAD_EXPORT_MAX_ROWS,
    )
    content = render_csv(rows)

    audit_service.write_admin_audit(
        db,
        actor=actor,
        action=AuditAction.THREADS_EXPORT,
        entity_type=EXPORT_ENTITY_TYPE,
        entity_id=EXPORT_ENTITY_ID,
        message=f"Exported {len(rows)} support threads",
        meta=ExportMeta(filters=filters.snapshot(), count=len(rows)),
    )
    db.commit()
    logger.info("threads_exported count=%s actor_id=%s", len(rows), actor.user_id)

    return ThreadExport(content=content, filename=export_filename(), count=len(rows))
