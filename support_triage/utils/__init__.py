"""Utility modules."""

from support_triage.utils.datetime_parsing import end_of_day, parse_datetime, start_of_day
from support_triage.utils.pagination import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    PaginationParams,
    clamp_pagination,
    total_pages,
)
