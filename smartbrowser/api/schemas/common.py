"""Common response envelope used by every API endpoint."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from smartbrowser.core.tasks.models import utcnow


class ApiResponse(BaseModel):
    """Standard body: ``{success, data?, error?, code?, timestamp}``."""

    success: bool
    data: Any = None
    error: str | None = None
    code: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)


def ok(data: Any = None) -> ApiResponse:
    return ApiResponse(success=True, data=data)


def fail(error: str, code: str, data: Any = None) -> ApiResponse:
    return ApiResponse(success=False, error=error, code=code, data=data)
