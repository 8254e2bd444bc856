from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from cargo_api.access.query import Page

T = TypeVar("T")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T | None = None
    message: str | None = None
    pagination: Pagination | None = None


def envelope(data: Any = None, *, message: str | None = None, page: Page | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    if page is not None:
        body["pagination"] = page.pagination()
    return body
