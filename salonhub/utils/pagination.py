"""Pagination helpers for list endpoints."""
from typing import Any, Dict

MAX_PER_PAGE = 100


def clamp_page(page: Any, per_page: Any, default_per_page: int = 20):
    """Coerce page/per_page query values into sane integers."""
    try:
        page = max(int(page or 1), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        per_page = int(per_page or default_per_page)
    except (TypeError, ValueError):
        per_page = default_per_page
    return page, min(max(per_page, 1), MAX_PER_PAGE)


def page_meta(page: int, per_page: int, total: int) -> Dict[str, Any]:
    total_pages = (total + per_page - 1) // per_page if per_page else 0
    return {
        'page': page,
        'per_page': per_page,
        'total': total,
        'total_pages': total_pages,
        'has_next': page < total_pages,
        'has_prev': page > 1,
    }


def paginate(query, page: int, per_page: int) -> Dict[str, Any]:
    """Run a count and a page query; returns {'items', 'meta'}."""
    page, per_page = clamp_page(page, per_page)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return {'items': items, 'meta': page_meta(page, per_page, total)}
