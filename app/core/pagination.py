"""Pagination helpers."""

import math
from typing import Any


def paginate(page: int, limit: int, max_limit: int = 100) -> tuple[int, int]:
    """Clamp page/limit; return (limit, offset)."""
    limit = max(1, min(limit, max_limit))
    page = max(1, page)
    return limit, (page - 1) * limit


def pagination_meta(page: int, limit: int, total: int) -> dict[str, Any]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }
