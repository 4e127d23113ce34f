# Overview: Shared list envelope for paginated service queries.

from __future__ import annotations

from typing import Callable


def paginate(query, *, limit: int, offset: int, serialize: Callable | None = None) -> dict:
    """
    Returns {data, total, limit, offset}. total counts before limit/offset.
    """
    total = query.order_by(None).count()
    rows = query.limit(limit).offset(offset).all()
    render = serialize or (lambda row: row.to_dict())
    return {
        "data": [render(row) for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
