"""
Shared router dependencies.

Caller identity is resolved upstream (gateway / auth proxy) and forwarded
in the X-User-Id header; this service never authenticates on its own.
"""
from __future__ import annotations

from typing import Optional

from fastapi import Header

from app.core.errors import UnauthorizedError
from app.services.generation_client import GenerationClient, default_client


def get_caller_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    caller = (x_user_id or "").strip()
    if not caller:
        raise UnauthorizedError()
    return caller


def get_generation_client() -> GenerationClient:
    return default_client()
