"""Moderation history export as CSV or a JSON document."""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Iterable

from sqlalchemy.orm import Session

from support_triage.core.config import settings
from support_triage.core.errors import ValidationError
from support_triage.db.models import SupportModerationHistory
from support_triage.schemas.audit import (
    ModerationExportActor,
    ModerationExportFilters,
    ModerationExportResponse,
)
from support_triage.schemas.auth import UserSession
from support_triage.services import moderation_service
from support_triage.services.moderation_service import ModerationHistoryFilters
from support_triage.services.thread_export_service import csv_safe, iso_utc

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


CSV_HEADERS = [
    "ID",
    "When",
    "Who (ID)",
    "Who (Name)",
    "Who (Role)",
    "Action Type",
    "Entity Type",
    "Entity ID",
    "Thread ID",
    "Reason",
    "Note",
    "Metadata",
]


def parse_format(raw: str | None) -> ExportFormat:
    """Missing format means JSON; anything but csv/json is rejected."""
    if not raw:
        return ExportFormat.JSON
    try:
        return ExportFormat(raw)
    except ValueError as exc:
        raise ValidationError("Invalid format") from exc


def _row_values(event: SupportModerationHistory) -> list[str]:
    return [
        str(event.id),
        iso_utc(event.created_at),
        str(event.actor_id) if event.actor_id else "",
        csv_safe(event.actor_name or ""),
        event.actor_role or "",
        event.action_type,
        event.entity_type,
        event.entity_id,
        str(event.thread_id) if event.thread_id else "",
        csv_safe(event.reason or ""),
        csv_safe(event.note or ""),
        json.dumps(event.event_metadata or {}, separators=(",", ":")),
    ]


def render_csv(events: Iterable[SupportModerationHistory]) -> str:
    """Every cell quoted, quotes doubled, newline-separated rows."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for event in events:
        writer.writerow(_row_values(event))
    return output.getvalue()


def export_filename(today: date | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"moderation-history-{today.isoformat()}.csv"


@dataclass(frozen=True)
class ModerationCsvExport:
    content: str
    filename: str
    count: int


def fetch_events(
    db: Session,
    *,
    filters: ModerationHistoryFilters,
    max_rows: int | None = None,
) -> list[SupportModerationHistory]:
    return moderation_service.fetch_export_rows(
        db, filters=filters, max_rows=max_rows or settings.MODERATION_EXPORT_MAX_ROWS
    )


def export_csv(
    db: Session,
    *,
    actor: UserSession,
    filters: ModerationHistoryFilters,
    max_rows: int | None = None,
) -> ModerationCsvExport:
    events = fetch_events(db, filters=filters, max_rows=max_rows)
    logger.info(
        "moderation_history_exported format=csv count=%s actor_id=%s", len(events), actor.user_id
    )
    return ModerationCsvExport(
        content=render_csv(events), filename=export_filename(), count=len(events)
    )


def export_json(
    db: Session,
    *,
    actor: UserSession,
    filters: ModerationHistoryFilters,
    raw_filters: ModerationExportFilters,
    max_rows: int | None = None,
) -> ModerationExportResponse:
    """Export document echoing the raw filters and who exported it."""
    events = fetch_events(db, filters=filters, max_rows=max_rows)
    logger.info(
        "moderation_history_exported format=json count=%s actor_id=%s", len(events), actor.user_id
    )
    return ModerationExportResponse(
        export_date=datetime.now(timezone.utc),
        exported_by=ModerationExportActor(
            id=actor.user_id,
            name=actor.name or actor.email,
            role=actor.role.value,
        ),
        filters=raw_filters,
        total=len(events),
        data=[moderation_service.to_event_read(event) for event in events],
    )
