# Overview: Page/limit parsing and the pagination block returned by list endpoints.

from __future__ import annotations

from flask import current_app

from ..errors import ValidationError


def clamp_page_args(page, per_page) -> tuple[int, int]:
    """Coerce page/per_page from query strings; per_page is capped at MAX_PAGE_SIZE."""
    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 10)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 100)
    try:
        page = int(page) if page not in (None, "") else 1
        per_page = int(per_page) if per_page not in (None, "") else default_size
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    return max(page, 1), min(max(per_page, 1), max_size)


def pagination_block(*, page: int, per_page: int, total: int) -> dict:
    total_pages = (total + per_page - 1) // per_page if per_page else 0
    return {
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def paginate(query, *, page, per_page) -> tuple[list, dict]:
    page, per_page = clamp_page_args(page, per_page)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return items, pagination_block(page=page, per_page=per_page, total=total)
