# Overview: Shared offset pagination for list endpoints.

from __future__ import annotations

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def paginate(query, page: int | None, per_page: int | None, serialize=None) -> dict:
    """
    Run an ordered query one page at a time.

    Returns {"items": [...], "count": n, "pagination": {...}}.
    page is 1-indexed; per_page defaults to 20 and is capped at 100.
    """
    per_page = max(1, min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE))
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    serialize = serialize or (lambda row: row.to_dict())

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def page_args(args) -> tuple[int | None, int | None]:
    """(page, per_page) from a query string; "limit" is accepted as an alias."""
    per_page = args.get("per_page", type=int)
    if per_page is None:
        per_page = args.get("limit", type=int)
    return args.get("page", type=int), per_page
