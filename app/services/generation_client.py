"""Chat-completions client for chapter generation."""
from __future__ import annotations

import json
import logging
import threading
import time
from functools import lru_cache
from typing import Optional

import httpx

from app.core.config import settings
from app.core.errors import GenerationError
from app.services.narrative_request import NarrativeRequest

logger = logging.getLogger(__name__)

_slots_lock = threading.Lock()
_slots_by_limit: dict[int, threading.BoundedSemaphore] = {}


def shared_slots(limit: int) -> threading.BoundedSemaphore:
    """Process-wide semaphore for `limit`; every client with the same cap shares it."""
    limit = max(1, limit)
    with _slots_lock:
        slots = _slots_by_limit.get(limit)
        if slots is None:
            slots = _slots_by_limit[limit] = threading.BoundedSemaphore(limit)
        return slots


class GenerationClient:
    """Posts a NarrativeRequest to an OpenAI-compatible /chat/completions endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = (api_key if api_key is not None else settings.OPENAI_API_KEY).strip()
        self.base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.GENERATION_TIMEOUT_SECONDS
        self._slots = shared_slots(max_concurrency or settings.GENERATION_MAX_CONCURRENCY)
        self._transport = transport

    def generate(self, request: NarrativeRequest) -> dict:
        """
        Run one generation call.

        Returns:
            dict: the model's JSON object output

        Raises:
            GenerationError: missing key, transport failure, non-2xx, or
                content that is not a JSON object
        """
        if not self.api_key:
            raise GenerationError("OPENAI_API_KEY not set")

        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        started = time.monotonic()
        try:
            with self._slots:
                with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                    response = client.post(url, headers=headers, json=request.to_payload())
        except httpx.HTTPError as e:
            logger.error("Generation request to %s failed: %s", url, e)
            raise GenerationError(f"Generation request failed: {e}") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400:
            message = None
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                message = body["error"].get("message")
            message = str(message) if message else f"Generation error ({response.status_code})"
            logger.warning("Generation returned %s after %dms", response.status_code, elapsed_ms)
            raise GenerationError(f"{message} [{elapsed_ms}ms]", status_code=response.status_code)

        content = None
        if isinstance(body, dict):
            choices = body.get("choices") or []
            if choices and isinstance(choices[0], dict):
                content = (choices[0].get("message") or {}).get("content")
        try:
            output = json.loads(content) if isinstance(content, str) else None
        except ValueError:
            output = None
        if not isinstance(output, dict):
            logger.warning("Generation returned non-JSON content after %dms", elapsed_ms)
            raise GenerationError("Generation returned invalid JSON output")

        logger.info("Generation completed in %dms (model=%s)", elapsed_ms, request.model)
        return output


@lru_cache(maxsize=1)
def default_client() -> GenerationClient:
    """The client built from settings, one per process."""
    return GenerationClient()
