from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from common import llm
from testdeck.engine.base import EngineRequest, raise_if_cancelled
from testdeck.errors import EngineError, ErrorKind

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a test automation assistant embedded in a project dashboard.
Turn the operator's request into concrete automated tests (unit, integration or
end-to-end as appropriate). When an artifact is selected, focus on it.
Reply with the generated test code followed by a short summary of what it covers."""


class LLMEngine:
    name = "llm"

    def __init__(
        self,
        model: str,
        *,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        request_timeout: float | None = None,
        system_prompt: str = SYSTEM_PROMPT,
        completion_fn: Callable[..., Any] | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self.system_prompt = system_prompt
        self.completion_fn = completion_fn or llm.completion

    def build_messages(self, request: EngineRequest) -> list[dict]:
        user = f"Selected artifact: {request.describe_selection()}\n\nRequest:\n{request.text}"
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": user},
        ]

    def generate(self, request: EngineRequest, cancel_event: threading.Event) -> str:
        raise_if_cancelled(cancel_event)
        try:
            response = self.completion_fn(
                model=self.model,
                messages=self.build_messages(request),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.request_timeout,
            )
        except Exception as e:
            logger.warning(f"Completion failed for {request.request_id}: {e}")
            kind = ErrorKind.TIMEOUT if llm.is_timeout_error(e) else ErrorKind.ENGINE_FAILURE
            raise EngineError(kind, str(e) or type(e).__name__) from e

        raise_if_cancelled(cancel_event)
        content = llm.response_text(response).strip()
        if not content:
            raise EngineError(ErrorKind.ENGINE_FAILURE, f"{self.model} returned an empty response")
        return content
