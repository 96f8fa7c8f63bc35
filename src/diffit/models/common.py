"""Shared response models: error envelope and pagination."""

import math
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


class ErrorDetail(BaseModel):
    """Error detail in API responses."""

    model_config = ConfigDict(extra="forbid")

    code: str
    message: str
    details: dict[str, Any] | list[Any] | str | None = None
    trace_id: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: ErrorDetail


class Pagination(BaseModel):
    """Normalized page/per_page query parameters."""

    page: int = 1
    per_page: int = DEFAULT_PER_PAGE

    @classmethod
    def clamp(cls, page: int, per_page: int) -> "Pagination":
        return cls(page=max(page, 1), per_page=min(max(per_page, 1), MAX_PER_PAGE))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        return self.per_page


class Page(BaseModel, Generic[T]):
    data: list[T]
    page: int
    per_page: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, data: list[T], total: int, pagination: Pagination) -> "Page[T]":
        return cls(
            data=data,
            page=pagination.page,
            per_page=pagination.per_page,
            total=total,
            total_pages=math.ceil(total / pagination.per_page) if total else 0,
        )
