"""Thread query engine: filter parsing, predicates, ordering, and enrichment.

Count and page queries are built from the same predicate list so ``total``
always agrees with the rows a caller can page through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Protocol
from uuid import UUID

from sqlalchemy import case, exists, func, or_, select
from sqlalchemy.orm import Query, Session

from support_triage.core.errors import ValidationError
from support_triage.db.enums import (
    SortOrder,
    ThreadPriority,
    ThreadSortField,
    ThreadSource,
    ThreadStatus,
)
from support_triage.db.models import Order, Seller, SupportThread, SupportThreadTag, User
from support_triage.schemas.support import (
    UNASSIGNED,
    AssigneeSummary,
    BuyerSummary,
    SellerSummary,
    ThreadFilters,
    ThreadRow,
    UserSummary,
)
from support_triage.utils.datetime_parsing import end_of_day, start_of_day
from support_triage.utils.pagination import PaginationParams

logger = logging.getLogger(__name__)

ASSIGNEE_ME = "me"

WEBCHAT_SOURCES = {ThreadSource.CHATBOT.value, ThreadSource.WHATSAPP.value}
WEBCHAT_PREFIX = "Webchat:"
WEBCHAT_VISITOR = "Webchat: Vizitator"
ROLE_LABELS = {
    "buyer": "Cumpărător",
    "seller": "Vânzător",
    "support": "Support",
    "admin": "Admin",
}

# Rank follows ThreadPriority declaration order: low < normal < high < urgent
PRIORITY_RANK = {priority.value: rank for rank, priority in enumerate(ThreadPriority)}


# =============================================================================
# Filter parsing
# =============================================================================


def _split_csv(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _parse_enum_list(raw: str | None, enum_cls) -> list:
    """Keep recognised values in request order, drop the rest and duplicates."""
    values = []
    for part in _split_csv(raw):
        if part not in enum_cls._value2member_map_:
            continue
        member = enum_cls(part)
        if member not in values:
            values.append(member)
    return values


def _parse_uuid(raw: str | None, field: str) -> UUID | None:
    if raw is None or not raw.strip():
        return None
    try:
        return UUID(raw.strip())
    except ValueError as exc:
        raise ValidationError(f"Invalid {field}") from exc


def parse_statuses(raw: str | None) -> list[ThreadStatus]:
    return _parse_enum_list(raw, ThreadStatus)


def parse_filters(params: Mapping[str, str], *, caller_id: UUID) -> ThreadFilters:
    """
    Build a ThreadFilters from raw query-string values.

    Unknown enum values are dropped; malformed dates are ignored; malformed
    ids are rejected. ``myQueue=true`` and ``assignedToUserId=me`` both bind
    the assignee filter to the caller.
    """
    assigned: UUID | str | None = None
    raw_assigned = (params.get("assignedToUserId") or "").strip()
    if params.get("myQueue") == "true" or raw_assigned == ASSIGNEE_ME:
        assigned = caller_id
    elif raw_assigned == UNASSIGNED:
        assigned = UNASSIGNED
    elif raw_assigned:
        assigned = _parse_uuid(raw_assigned, "assignedToUserId")

    sla_breach = None
    if params.get("slaBreach") == "true":
        sla_breach = True
    elif params.get("slaBreach") == "false":
        sla_breach = False

    search = (params.get("search") or "").strip() or None

    return ThreadFilters(
        status=parse_statuses(params.get("status")),
        source=_parse_enum_list(params.get("source"), ThreadSource),
        priority=_parse_enum_list(params.get("priority"), ThreadPriority),
        assigned_to_user_id=assigned,
        seller_id=_parse_uuid(params.get("sellerId"), "sellerId"),
        buyer_id=_parse_uuid(params.get("buyerId"), "buyerId"),
        order_id=_parse_uuid(params.get("orderId"), "orderId"),
        tags=[tag.lower() for tag in _split_csv(params.get("tags"))],
        sla_breach=sla_breach,
        search=search,
        date_from=start_of_day(params.get("from")),
        date_to=end_of_day(params.get("to")),
        closed_resolved_by_user_id=_parse_uuid(
            params.get("closedResolvedByUserId"), "closedResolvedByUserId"
        ),
    )


def parse_sort(sort_by: str | None, sort_order: str | None) -> tuple[ThreadSortField, SortOrder]:
    """Unknown sort fields fall back to lastMessageAt; anything but 'asc' is desc."""
    try:
        field = ThreadSortField(sort_by) if sort_by else ThreadSortField.LAST_MESSAGE_AT
    except ValueError:
        field = ThreadSortField.LAST_MESSAGE_AT
    order = SortOrder.ASC if sort_order == SortOrder.ASC.value else SortOrder.DESC
    return field, order


# =============================================================================
# Predicates
# =============================================================================


def build_predicates(filters: ThreadFilters) -> list:
    """Translate filters into SQL predicates (AND-combined by the caller)."""
    predicates: list = []

    if filters.status:
        predicates.append(SupportThread.status.in_([s.value for s in filters.status]))
    if filters.source:
        predicates.append(SupportThread.source.in_([s.value for s in filters.source]))
    if filters.priority:
        predicates.append(SupportThread.priority.in_([p.value for p in filters.priority]))

    if filters.assigned_to_user_id == UNASSIGNED:
        predicates.append(SupportThread.assigned_to_user_id.is_(None))
    elif filters.assigned_to_user_id is not None:
        predicates.append(SupportThread.assigned_to_user_id == filters.assigned_to_user_id)

    if filters.seller_id:
        predicates.append(SupportThread.seller_id == filters.seller_id)
    if filters.buyer_id:
        predicates.append(SupportThread.buyer_id == filters.buyer_id)
    if filters.order_id:
        predicates.append(SupportThread.order_id == filters.order_id)
    if filters.sla_breach is not None:
        predicates.append(SupportThread.sla_breach.is_(filters.sla_breach))

    if filters.search:
        pattern = f"%{filters.search}%"
        predicates.append(
            or_(
                SupportThread.subject.ilike(pattern),
                SupportThread.last_message_preview.ilike(pattern),
            )
        )

    if filters.date_from:
        predicates.append(SupportThread.created_at >= filters.date_from)
    if filters.date_to:
        predicates.append(SupportThread.created_at <= filters.date_to)

    if filters.tags:
        predicates.append(
            SupportThread.id.in_(
                select(SupportThreadTag.thread_id).where(SupportThreadTag.tag.in_(filters.tags))
            )
        )

    if filters.closed_resolved_by_user_id:
        predicates.append(
            or_(
                SupportThread.closed_by_user_id == filters.closed_resolved_by_user_id,
                SupportThread.resolved_by_user_id == filters.closed_resolved_by_user_id,
            )
        )

    return predicates


def any_thread_tagged(db: Session, tags: list[str]) -> bool:
    """True when at least one thread carries one of the tags."""
    return bool(db.query(exists().where(SupportThreadTag.tag.in_(tags))).scalar())


# =============================================================================
# Ordering strategies
# =============================================================================


class ThreadOrdering(Protocol):
    """Ordering rule usable both in SQL and on in-memory threads."""

    def order_by(self) -> list: ...

    def sort_key(self, thread: Any) -> tuple: ...


def _ts(value: datetime | None) -> float:
    return value.timestamp() if value is not None else 0.0


def _priority_rank_expr():
    return case(PRIORITY_RANK, value=SupportThread.priority, else_=-1)


@dataclass(frozen=True)
class ColumnOrdering:
    """Single-column sort with nulls last and id as the final tie-break."""

    sort_by: ThreadSortField = ThreadSortField.LAST_MESSAGE_AT
    sort_order: SortOrder = SortOrder.DESC

    def _column(self):
        if self.sort_by == ThreadSortField.CREATED_AT:
            return SupportThread.created_at
        if self.sort_by == ThreadSortField.PRIORITY:
            return _priority_rank_expr()
        if self.sort_by == ThreadSortField.SLA_DEADLINE:
            return SupportThread.sla_deadline
        return SupportThread.last_message_at

    def order_by(self) -> list:
        column = self._column()
        if self.sort_order == SortOrder.ASC:
            return [column.asc().nulls_last(), SupportThread.id.asc()]
        return [column.desc().nulls_last(), SupportThread.id.desc()]

    def _value(self, thread) -> float | None:
        if self.sort_by == ThreadSortField.CREATED_AT:
            return _ts(thread.created_at)
        if self.sort_by == ThreadSortField.PRIORITY:
            return float(PRIORITY_RANK.get(thread.priority, -1))
        if self.sort_by == ThreadSortField.SLA_DEADLINE:
            return None if thread.sla_deadline is None else _ts(thread.sla_deadline)
        return None if thread.last_message_at is None else _ts(thread.last_message_at)

    def sort_key(self, thread) -> tuple:
        value = self._value(thread)
        sign = 1 if self.sort_order == SortOrder.ASC else -1
        return (value is None, sign * (value or 0.0), sign * thread.id.int)


@dataclass(frozen=True)
class WaitingFirstOrdering:
    """
    Queue view for status={open, waiting}.

    All waiting threads come first, oldest last message first, so the
    longest-waiting customer is answered next. Open threads follow, newest
    first. Threads without a last message sink to the end of their tier.
    """

    def order_by(self) -> list:
        is_waiting = SupportThread.status == ThreadStatus.WAITING.value
        is_open = SupportThread.status == ThreadStatus.OPEN.value
        tier = case((is_waiting, 0), else_=1)
        waiting_ts = case((is_waiting, SupportThread.last_message_at), else_=None)
        open_ts = case((is_open, SupportThread.last_message_at), else_=None)
        return [
            tier.asc(),
            waiting_ts.asc().nulls_last(),
            open_ts.desc().nulls_last(),
            SupportThread.id.asc(),
        ]

    def sort_key(self, thread) -> tuple:
        waiting = thread.status == ThreadStatus.WAITING.value
        ts = thread.last_message_at
        if waiting:
            return (0, ts is None, _ts(ts), thread.id.int)
        return (1, ts is None, -_ts(ts), thread.id.int)


def select_ordering(
    filters: ThreadFilters,
    sort_by: ThreadSortField = ThreadSortField.LAST_MESSAGE_AT,
    sort_order: SortOrder = SortOrder.DESC,
) -> ThreadOrdering:
    """Waiting-first when the status filter is exactly {open, waiting}."""
    if set(filters.status) == {ThreadStatus.OPEN, ThreadStatus.WAITING}:
        return WaitingFirstOrdering()
    return ColumnOrdering(sort_by=sort_by, sort_order=sort_order)


# =============================================================================
# Enrichment
# =============================================================================


def display_subject(thread: SupportThread, buyer: User | None) -> str | None:
    """
    Staff-facing subject for webchat threads.

    Returns None for other sources, meaning "use the raw subject".
    """
    if thread.source not in WEBCHAT_SOURCES:
        return None
    if thread.buyer_id and buyer is not None:
        label = ROLE_LABELS.get(buyer.role) or buyer.email or buyer.name or "—"
        return f"Webchat: {label}"
    if thread.subject and thread.subject.startswith(WEBCHAT_PREFIX):
        return thread.subject
    return WEBCHAT_VISITOR


def enrich_threads(db: Session, threads: list[SupportThread]) -> list[ThreadRow]:
    """Attach seller, buyer, assignee, closer/resolver, and tags in batched lookups."""
    if not threads:
        return []

    seller_ids = {t.seller_id for t in threads if t.seller_id}
    user_ids = {
        user_id
        for t in threads
        for user_id in (
            t.buyer_id,
            t.assigned_to_user_id,
            t.closed_by_user_id,
            t.resolved_by_user_id,
        )
        if user_id
    }
    thread_ids = [t.id for t in threads]

    sellers_by_id: dict[UUID, Seller] = {}
    if seller_ids:
        sellers_by_id = {
            s.id: s for s in db.query(Seller).filter(Seller.id.in_(seller_ids)).all()
        }

    users_by_id: dict[UUID, User] = {}
    if user_ids:
        users_by_id = {u.id: u for u in db.query(User).filter(User.id.in_(user_ids)).all()}

    tags_by_thread: dict[UUID, list[str]] = {}
    for tag_row in (
        db.query(SupportThreadTag)
        .filter(SupportThreadTag.thread_id.in_(thread_ids))
        .order_by(SupportThreadTag.tag.asc())
        .all()
    ):
        tags_by_thread.setdefault(tag_row.thread_id, []).append(tag_row.tag)

    def _user_summary(user_id: UUID | None) -> UserSummary | None:
        user = users_by_id.get(user_id) if user_id else None
        if user is None:
            return None
        return UserSummary(
            id=user.id,
            display_id=user.display_id,
            name=user.name,
            email=user.email,
            role=user.role,
        )

    rows: list[ThreadRow] = []
    for thread in threads:
        seller = sellers_by_id.get(thread.seller_id) if thread.seller_id else None
        buyer = users_by_id.get(thread.buyer_id) if thread.buyer_id else None
        assignee = (
            users_by_id.get(thread.assigned_to_user_id) if thread.assigned_to_user_id else None
        )
        rows.append(
            ThreadRow(
                id=thread.id,
                source=thread.source,
                source_id=thread.source_id,
                status=thread.status,
                priority=thread.priority,
                order_id=thread.order_id,
                seller_id=thread.seller_id,
                buyer_id=thread.buyer_id,
                assigned_to_user_id=thread.assigned_to_user_id,
                closed_by_user_id=thread.closed_by_user_id,
                resolved_by_user_id=thread.resolved_by_user_id,
                subject=thread.subject,
                display_subject=display_subject(thread, buyer),
                last_message_preview=thread.last_message_preview,
                message_count=thread.message_count,
                last_message_at=thread.last_message_at,
                sla_deadline=thread.sla_deadline,
                sla_breach=thread.sla_breach,
                created_at=thread.created_at,
                updated_at=thread.updated_at,
                seller=(
                    SellerSummary(id=seller.id, brand_name=seller.brand_name, slug=seller.slug)
                    if seller
                    else None
                ),
                buyer=(
                    BuyerSummary(id=buyer.id, name=buyer.name, email=buyer.email, role=buyer.role)
                    if buyer
                    else None
                ),
                assignee=(
                    AssigneeSummary(id=assignee.id, name=assignee.name, email=assignee.email)
                    if assignee
                    else None
                ),
                closed_by=_user_summary(thread.closed_by_user_id),
                resolved_by=_user_summary(thread.resolved_by_user_id),
                tags=tags_by_thread.get(thread.id, []),
            )
        )
    return rows


# =============================================================================
# Queries
# =============================================================================


@dataclass(frozen=True)
class ThreadPage:
    """One page of enriched threads."""

    items: list[ThreadRow]
    total: int
    page: int
    limit: int


def _filtered_query(db: Session, filters: ThreadFilters) -> Query | None:
    """Filtered thread query, or None when no thread carries any requested tag."""
    if filters.tags and not any_thread_tagged(db, filters.tags):
        return None
    return db.query(SupportThread).filter(*build_predicates(filters))


def list_threads(
    db: Session,
    *,
    filters: ThreadFilters,
    pagination: PaginationParams,
    ordering: ThreadOrdering,
) -> ThreadPage:
    """Return one ordered, enriched page plus the total match count."""
    query = _filtered_query(db, filters)
    if query is None:
        return ThreadPage(items=[], total=0, page=pagination.page, limit=pagination.limit)

    total = query.count()
    threads = (
        query.order_by(*ordering.order_by())
        .offset(pagination.offset)
        .limit(pagination.limit)
        .all()
    )
    return ThreadPage(
        items=enrich_threads(db, threads),
        total=total,
        page=pagination.page,
        limit=pagination.limit,
    )


def fetch_export_rows(
    db: Session,
    *,
    filters: ThreadFilters,
    ordering: ThreadOrdering,
    max_rows: int,
) -> list[ThreadRow]:
    """All matching threads up to max_rows, same filters and order, no paging."""
    query = _filtered_query(db, filters)
    if query is None:
        return []
    threads = query.order_by(*ordering.order_by()).limit(max_rows).all()
    return enrich_threads(db, threads)


def get_thread(db: Session, thread_id: UUID) -> SupportThread | None:
    return db.query(SupportThread).filter(SupportThread.id == thread_id).first()


# =============================================================================
# Cross-entity search
# =============================================================================


def search_threads(
    db: Session,
    *,
    q: str | None,
    statuses: list[ThreadStatus],
    pagination: PaginationParams,
) -> ThreadPage:
    """
    Threads whose buyer email, seller slug, order number, subject, or last
    message preview contains ``q`` (case-insensitive).

    Ordering follows the list view: waiting-first for {open, waiting},
    otherwise last message newest first.
    """
    term = (q or "").strip()
    if not term:
        raise ValidationError("q (search query) required")
    pattern = f"%{term}%"

    query = (
        db.query(SupportThread)
        .outerjoin(User, SupportThread.buyer_id == User.id)
        .outerjoin(Seller, SupportThread.seller_id == Seller.id)
        .outerjoin(Order, SupportThread.order_id == Order.id)
        .filter(
            or_(
                User.email.ilike(pattern),
                Seller.slug.ilike(pattern),
                Order.order_number.ilike(pattern),
                SupportThread.subject.ilike(pattern),
                SupportThread.last_message_preview.ilike(pattern),
            )
        )
    )
    if statuses:
        query = query.filter(SupportThread.status.in_([s.value for s in statuses]))

    total = query.with_entities(func.count(func.distinct(SupportThread.id))).scalar() or 0
    ordering = select_ordering(ThreadFilters(status=statuses))
    threads = (
        query.order_by(*ordering.order_by())
        .offset(pagination.offset)
        .limit(pagination.limit)
        .all()
    )
    logger.info("threads_searched total=%s statuses=%s", total, [s.value for s in statuses])
    return ThreadPage(
        items=enrich_threads(db, threads),
        total=total,
        page=pagination.page,
        limit=pagination.limit,
    )
