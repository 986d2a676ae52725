from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Protocol

from testdeck.errors import EngineError, ErrorKind


@dataclass(frozen=True, slots=True)
class EngineRequest:
    request_id: str
    text: str
    selection_context: str | None = None
    selection_path: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "text": self.text,
            "selectionContext": self.selection_context,
            "selectionPath": list(self.selection_path),
        }

    def describe_selection(self) -> str:
        if self.selection_context is None:
            return "no artifact selected"
        if self.selection_path:
            return "/".join(self.selection_path)
        return self.selection_context


class GenerationEngine(Protocol):
    """External generator of tests from a natural-language request.

    `generate` blocks until a terminal outcome: it returns the generated
    content or raises `EngineError`. Implementations should poll
    `cancel_event` and give up early once it is set; the orchestrator
    ignores whatever they return after cancellation anyway.
    """

    name: str

    def generate(self, request: EngineRequest, cancel_event: threading.Event) -> str: ...


def raise_if_cancelled(cancel_event: threading.Event) -> None:
    if cancel_event.is_set():
        raise EngineError(ErrorKind.CANCELLED, "request cancelled")
