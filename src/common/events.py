from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, TypeAlias

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EntryAppendedEvent:
    session_id: str
    entry_id: str
    role: str
    content: str


@dataclass(frozen=True, slots=True)
class StatusChangedEvent:
    session_id: str
    previous: str
    current: str
    request_id: str | None = None


@dataclass(frozen=True, slots=True)
class SelectionChangedEvent:
    session_id: str
    previous: str | None
    current: str | None


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str
    source: str | None = None


Event: TypeAlias = (
    EntryAppendedEvent
    | StatusChangedEvent
    | SelectionChangedEvent
    | ErrorEvent
)
EventCallback: TypeAlias = Callable[[Event], None] | None


class EventEmitter:
    def __init__(self, callback: EventCallback = None):
        self._callback = callback

    def emit(self, event: Event) -> None:
        if self._callback is None:
            return
        try:
            self._callback(event)
        except Exception:
            # Listener errors never propagate into the emitter.
            logger.exception(f"Event callback failed for {type(event).__name__}")
