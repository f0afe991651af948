from __future__ import annotations

from math import ceil
from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    status: str = "success"
    message: str
    data: T


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, items: List[T], *, total: int, page: int, limit: int) -> "Page[T]":
        total_pages = ceil(total / limit) if limit else 0
        return cls(items=items, total=total, page=page, limit=limit, total_pages=total_pages)
