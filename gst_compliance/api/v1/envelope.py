# gst_compliance/api/v1/envelope.py
"""
Standardized API response envelope used by all v1 endpoints.

Every response wraps data in:
    {
        "status": "ok" | "error",
        "data": <payload>,
        "message": <optional string>,
        "errors": <optional list of {"kind", "field"?} dicts>
    }

``kind`` is the engine error kind (``validation``, ``configuration``,
``rejected``, ``unavailable``, ...), so clients never parse ``message``.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorDetail(BaseModel):
    kind: str
    field: str | None = None


class ApiResponse(BaseModel, Generic[T]):
    """Standard envelope for all v1 API responses."""

    status: str = "ok"
    data: T | None = None
    message: str | None = None
    errors: list[dict[str, Any]] | None = None


def ok(data: Any = None, message: str | None = None) -> dict:
    """Build a success response dict."""
    return ApiResponse(status="ok", data=data, message=message).model_dump()


def error(message: str, kind: str = "error", field: str | None = None) -> dict:
    """Build an error response dict carrying one error kind."""
    detail = ErrorDetail(kind=kind, field=field).model_dump(exclude_none=True)
    return ApiResponse(status="error", message=message, errors=[detail]).model_dump()
