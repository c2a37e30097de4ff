from __future__ import annotations

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def page_window(page: int | None, per_page: int | None) -> tuple[int, int]:
    """Clamp to page >= 1 and 1 <= per_page <= MAX_PER_PAGE."""
    per_page = max(1, min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE))
    page = max(page or 1, 1)
    return page, per_page


def pagination_meta(page: int, per_page: int, total: int) -> dict:
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    return {
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def paginate(query, page: int | None, per_page: int | None) -> tuple[list, dict]:
    """Run an already-ordered query for one page. Returns (rows, pagination)."""
    page, per_page = page_window(page, per_page)
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    return rows, pagination_meta(page, per_page, total)
