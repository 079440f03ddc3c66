"""
Custom exception hierarchy for the Chapters engine.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages. Inside the chapter
batch the same exceptions are caught per template and turned into
`failed` outcomes instead of HTTP errors.
"""
from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class ChaptersException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class UnauthorizedError(ChaptersException):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"

    def __init__(self):
        super().__init__(message="A resolved caller identity is required.")


class TemplateNotFoundError(ChaptersException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: int):
        super().__init__(
            message=f"Chapter template {template_id} not found.",
            details={"id": template_id},
        )


class ChapterNotFoundError(ChaptersException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "CHAPTER_NOT_FOUND"

    def __init__(self, chapter_id: int):
        super().__init__(
            message=f"Chapter {chapter_id} not found.",
            details={"id": chapter_id},
        )


class GenerationError(ChaptersException):
    """The narrative generation service failed or returned unusable output."""
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "GENERATION_FAILED"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(
            message=message,
            details={"status_code": status_code} if status_code is not None else {},
        )


class ChapterOutputInvalidError(ChaptersException):
    """Generated output broke a structural or grounding rule."""
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "OUTPUT_INVALID"

    def __init__(self, rule: str, message: str):
        self.rule = rule
        super().__init__(message=message, details={"rule": rule})


class ChapterPersistenceError(ChaptersException):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, period_key: str | None = None):
        super().__init__(
            message=message,
            details={"period_key": period_key} if period_key else {},
        )


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def chapters_exception_handler(request: Request, exc: ChaptersException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc != "body"),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )
