"""
Shared schema primitives: the error envelope every 4xx/5xx response uses.
"""
from typing import Any, Optional
from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """A single field-level validation error (inside details.errors)."""
    field: str
    message: str
    type: str


class ErrorResponse(BaseModel):
    """`{code, message, details}` — code is machine-readable, e.g. TEMPLATE_NOT_FOUND."""
    code: str
    message: str
    details: Optional[dict[str, Any]] = None
