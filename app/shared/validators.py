"""Shared validation utilities"""

from datetime import date
from typing import Optional

from ..config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from .errors import BadRequestError


def validate_pagination(page: Optional[int], limit: Optional[int]) -> tuple[int, int]:
    """
    Validate page/limit query values.

    Returns:
        (page, limit) with defaults applied

    Raises:
        BadRequestError: If page < 1 or limit is outside 1..MAX_PAGE_LIMIT
    """
    page = 1 if page is None else page
    limit = DEFAULT_PAGE_LIMIT if limit is None else limit

    if page < 1:
        raise BadRequestError("page must be greater than or equal to 1")
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        raise BadRequestError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
    return page, limit


def parse_iso_date(value: str) -> date:
    """Parse a YYYY-MM-DD query value"""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise BadRequestError(f"Invalid date '{value}', expected YYYY-MM-DD")


def total_pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit
