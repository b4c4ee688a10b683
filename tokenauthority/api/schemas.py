from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    """Error envelope body with a stable code value."""

    code: str = Field(..., description="Stable error code, e.g. unauthorized")
    message: str
    details: Optional[Any] = None  # object, array, or null


class Envelope(BaseModel):
    """Response envelope used for every error the token authority reports."""

    status: str = Field(..., pattern="^(ok|error)$")
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None
    request_id: str = Field(default_factory=lambda: str(uuid4()))


__all__ = ["ErrorBody", "Envelope"]
