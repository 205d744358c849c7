import math

from fastapi import Query
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session as DbSession


class Page:
    def __init__(self, page: int, limit: int):
        self.page = page
        self.limit = limit

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(default_limit: int):
    def dependency(
        page: int = Query(1, ge=1),
        limit: int = Query(default_limit, ge=1, le=100),
    ) -> Page:
        return Page(page, limit)

    return dependency


def paginate(db: DbSession, stmt: Select, page: Page) -> tuple[list, dict]:
    """Run ``stmt`` for one page and count the whole result set."""
    total = db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = db.execute(stmt.limit(page.limit).offset(page.offset)).all()
    return rows, {
        "total": total,
        "page": page.page,
        "limit": page.limit,
        "pages": math.ceil(total / page.limit),
    }
