from app.core.config import settings


def resolve_page(page: int | None, limit: int | None) -> tuple[int, int, int]:
    """Clamp page/limit query values; returns (page, limit, offset)."""
    page = max(int(page or 1), 1)
    limit = int(limit or settings.DEFAULT_PAGE_SIZE)
    limit = max(1, min(limit, settings.MAX_PAGE_SIZE))
    return page, limit, (page - 1) * limit
