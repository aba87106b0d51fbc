from datetime import datetime, timezone
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from app.config import settings

T = TypeVar("T")


class Meta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = settings.app_version


class SuccessResponse(BaseModel, Generic[T]):
    """Standard envelope for successful responses."""

    data: T
    meta: Meta = Field(default_factory=Meta)


class ErrorResponse(BaseModel):
    """Standard envelope for error responses.

    ``context`` carries machine-readable details, e.g. the crew's current
    and requested status on a rejected transition.
    """

    detail: str
    error_code: str
    context: Optional[Dict[str, Any]] = None
    meta: Meta = Field(default_factory=Meta)
