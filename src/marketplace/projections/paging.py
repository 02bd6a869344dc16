"""Page slicing for read-model listings."""

import math
from datetime import datetime

from marketplace.errors import ValidationError
from marketplace.voucher.voucher import as_utc

MAX_PAGE_SIZE = 100


def check_page(page: int, limit: int) -> None:
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")


def created_between(start_date: datetime | None, end_date: datetime | None) -> dict:
    """``created_at`` lookups for an inclusive date range."""
    filters = {}
    if start_date is not None:
        filters["created_at__gte"] = as_utc(start_date)
    if end_date is not None:
        filters["created_at__lte"] = as_utc(end_date)
    if start_date is not None and end_date is not None and filters["created_at__gte"] > filters["created_at__lte"]:
        raise ValidationError("start_date must not be after end_date")
    return filters


def page_of(query, page: int, limit: int) -> dict:
    """Newest first, sliced to one page, with the totals a client pages by."""
    result = query.order_by("-created_at").offset((page - 1) * limit).limit(limit).all()
    return {
        "items": result.items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": result.total,
            "total_pages": math.ceil(result.total / limit) if result.total else 0,
        },
    }
