"""
Thread ordering strategy tests.

The sort_key half of each strategy is checked on plain objects (no
database); the order_by half is checked against the same rule in SQL.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from support_triage.db.enums import SortOrder, ThreadSortField, ThreadStatus
from support_triage.db.models import SupportThread
from support_triage.schemas.support import ThreadFilters
from support_triage.services import thread_query_service
from support_triage.services.thread_query_service import ColumnOrdering, WaitingFirstOrdering
from support_triage.utils.pagination import PaginationParams

BASE = datetime(2024, 3, 1, tzinfo=timezone.utc)


@dataclass
class FakeThread:
    status: str
    last_message_at: datetime | None
    id: uuid.UUID = None
    priority: str = "normal"
    created_at: datetime = BASE
    sla_deadline: datetime | None = None

    def __post_init__(self):
        if self.id is None:
            self.id = uuid.uuid4()


def _hours(n: int) -> datetime:
    return BASE + timedelta(hours=n)


class TestSelectOrdering:
    def test_open_waiting_selects_waiting_first(self):
        filters = ThreadFilters(status=[ThreadStatus.WAITING, ThreadStatus.OPEN])
        assert isinstance(thread_query_service.select_ordering(filters), WaitingFirstOrdering)

    @pytest.mark.parametrize(
        "statuses",
        [
            [],
            [ThreadStatus.OPEN],
            [ThreadStatus.WAITING],
            [ThreadStatus.OPEN, ThreadStatus.WAITING, ThreadStatus.CLOSED],
        ],
    )
    def test_other_status_sets_use_column_ordering(self, statuses):
        filters = ThreadFilters(status=statuses)
        ordering = thread_query_service.select_ordering(
            filters, ThreadSortField.PRIORITY, SortOrder.ASC
        )
        assert ordering == ColumnOrdering(ThreadSortField.PRIORITY, SortOrder.ASC)


class TestWaitingFirstSortKey:
    def test_waiting_before_open_regardless_of_timestamps(self):
        old_waiting = FakeThread("waiting", _hours(1))
        new_waiting = FakeThread("waiting", _hours(50))
        newest_open = FakeThread("open", _hours(100))
        oldest_open = FakeThread("open", _hours(0))
        silent_open = FakeThread("open", None)
        silent_waiting = FakeThread("waiting", None)

        ordered = sorted(
            [newest_open, silent_open, new_waiting, oldest_open, silent_waiting, old_waiting],
            key=WaitingFirstOrdering().sort_key,
        )
        assert ordered == [
            old_waiting,
            new_waiting,
            silent_waiting,
            newest_open,
            oldest_open,
            silent_open,
        ]


class TestColumnSortKey:
    def test_last_message_desc_nulls_last(self):
        a = FakeThread("open", _hours(1))
        b = FakeThread("open", _hours(5))
        c = FakeThread("open", None)
        ordered = sorted([c, a, b], key=ColumnOrdering().sort_key)
        assert ordered == [b, a, c]

    def test_last_message_asc_nulls_still_last(self):
        a = FakeThread("open", _hours(1))
        b = FakeThread("open", _hours(5))
        c = FakeThread("open", None)
        ordering = ColumnOrdering(ThreadSortField.LAST_MESSAGE_AT, SortOrder.ASC)
        assert sorted([c, b, a], key=ordering.sort_key) == [a, b, c]

    def test_priority_uses_rank_not_alphabet(self):
        threads = [FakeThread("open", None, priority=p) for p in ("normal", "urgent", "low", "high")]
        ordering = ColumnOrdering(ThreadSortField.PRIORITY, SortOrder.DESC)
        assert [t.priority for t in sorted(threads, key=ordering.sort_key)] == [
            "urgent",
            "high",
            "normal",
            "low",
        ]

    def test_ties_break_on_id(self):
        low_id = FakeThread("open", _hours(1), id=uuid.UUID(int=1))
        high_id = FakeThread("open", _hours(1), id=uuid.UUID(int=2))
        assert sorted([low_id, high_id], key=ColumnOrdering().sort_key) == [high_id, low_id]
        asc = ColumnOrdering(ThreadSortField.LAST_MESSAGE_AT, SortOrder.ASC)
        assert sorted([high_id, low_id], key=asc.sort_key) == [low_id, high_id]


class TestOrderingInSql:
    def _page_ids(self, db, filters, ordering):
        result = thread_query_service.list_threads(
            db,
            filters=filters,
            pagination=PaginationParams(page=1, limit=100),
            ordering=ordering,
        )
        return [row.id for row in result.items]

    def test_waiting_first_sql_matches_sort_key(self, db, make_thread):
        threads = [
            make_thread(status="open", last_message_at=_hours(100)),
            make_thread(status="waiting", last_message_at=_hours(50)),
            make_thread(status="open", last_message_at=_hours(0)),
            make_thread(status="waiting", last_message_at=_hours(1)),
            make_thread(status="open", last_message_at=None),
            make_thread(status="waiting", last_message_at=None),
        ]
        make_thread(status="closed", last_message_at=_hours(200))

        filters = thread_query_service.parse_filters(
            {"status": "open,waiting"}, caller_id=uuid.uuid4()
        )
        ordering = thread_query_service.select_ordering(filters)

        expected = [t.id for t in sorted(threads, key=ordering.sort_key)]
        assert self._page_ids(db, filters, ordering) == expected

        statuses = [db.get(SupportThread, tid).status for tid in expected]
        assert statuses == ["waiting"] * 3 + ["open"] * 3

    @pytest.mark.parametrize("sort_by", list(ThreadSortField))
    @pytest.mark.parametrize("sort_order", list(SortOrder))
    def test_column_sql_matches_sort_key(self, db, make_thread, sort_by, sort_order):
        threads = [
            make_thread(
                priority="high", last_message_at=_hours(3), created_at=_hours(1),
                sla_deadline=_hours(30),
            ),
            make_thread(
                priority="urgent", last_message_at=None, created_at=_hours(2),
                sla_deadline=None,
            ),
            make_thread(
                priority="low", last_message_at=_hours(9), created_at=_hours(3),
                sla_deadline=_hours(10),
            ),
            make_thread(
                priority="normal", last_message_at=_hours(3), created_at=_hours(4),
                sla_deadline=_hours(20),
            ),
        ]
        ordering = ColumnOrdering(sort_by, sort_order)
        expected = [t.id for t in sorted(threads, key=ordering.sort_key)]
        assert self._page_ids(db, ThreadFilters(), ordering) == expected
