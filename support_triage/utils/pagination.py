"""Pagination utilities for list endpoints."""

from dataclasses import dataclass


# Pagination limits
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 50
MAX_LIMIT = 100


@dataclass
class PaginationParams:
    """Pagination parameters from query string."""
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _to_int(raw: str | None, default: int) -> int:
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def clamp_pagination(
    page: str | None,
    limit: str | None,
    *,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> PaginationParams:
    """
    Parse raw page/limit query values.

    Non-numeric values fall back to defaults; out-of-range values are clamped
    (page >= 1, 1 <= limit <= max_limit) rather than rejected.
    """
    page_value = max(DEFAULT_PAGE, _to_int(page, DEFAULT_PAGE))
    limit_value = min(max(1, _to_int(limit, default_limit)), max_limit)
    return PaginationParams(page=page_value, limit=limit_value)


def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if limit > 0 else 0

