from __future__ import annotations

import logging
import random
import threading
from typing import Any

import httpx

from testdeck.engine.base import EngineRequest, raise_if_cancelled
from testdeck.errors import EngineError, ErrorKind

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 502, 503, 504}


class HttpEngine:
    """Generation engine reached over HTTP.

    POSTs `{requestId, text, selectionContext, selectionPath}` as JSON and
    expects either `{"content": ...}` or `{"errorKind": ..., "message": ...}`.
    Transient statuses are retried with exponential backoff; the backoff
    sleep doubles as the cancellation poll.
    """

    name = "http"

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        max_retries: int = 2,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        client: httpx.Client | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.headers = headers or {}
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, headers=self.headers)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def generate(self, request: EngineRequest, cancel_event: threading.Event) -> str:
        for attempt in range(self.max_retries + 1):
            raise_if_cancelled(cancel_event)
            try:
                response = self.client.post(self.url, json=request.to_payload())
            except httpx.TimeoutException as e:
                raise EngineError(ErrorKind.TIMEOUT, f"engine did not answer: {e}") from e
            except httpx.RequestError as e:
                if attempt == self.max_retries:
                    raise EngineError(ErrorKind.ENGINE_FAILURE, f"engine unreachable: {e}") from e
                self._backoff(attempt, cancel_event, reason=str(e))
                continue

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < self.max_retries:
                self._backoff(attempt, cancel_event, reason=f"HTTP {response.status_code}")
                continue
            return self._parse(response)

        raise EngineError(ErrorKind.ENGINE_FAILURE, "retries exhausted")

    def _backoff(self, attempt: int, cancel_event: threading.Event, *, reason: str) -> None:
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        delay += random.uniform(0, 0.1 * delay)
        logger.warning(f"Retry {attempt + 1}/{self.max_retries} after {delay:.1f}s: {reason}")
        if cancel_event.wait(delay):
            raise EngineError(ErrorKind.CANCELLED, "request cancelled")

    def _parse(self, response: httpx.Response) -> str:
        try:
            body: Any = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("errorKind"):
            raw_kind = str(body["errorKind"]).lower()
            kind = ErrorKind(raw_kind) if raw_kind in {k.value for k in ErrorKind} else ErrorKind.ENGINE_FAILURE
            raise EngineError(kind, str(body.get("message") or "unspecified engine error"))

        if response.is_error:
            detail = response.text.strip()[:200] or response.reason_phrase
            raise EngineError(ErrorKind.ENGINE_FAILURE, f"HTTP {response.status_code}: {detail}")

        if not isinstance(body, dict) or not isinstance(body.get("content"), str):
            raise EngineError(ErrorKind.ENGINE_FAILURE, "malformed engine response")
        return body["content"]
