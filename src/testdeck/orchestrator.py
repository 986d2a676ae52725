from __future__ import annotations

import functools
import logging
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from common.events import EntryAppendedEvent, ErrorEvent, Event, EventEmitter, StatusChangedEvent
from common.ids import LogicalClock, generate_id
from testdeck.engine.base import EngineRequest, GenerationEngine
from testdeck.errors import BusyError, EmptyRequestError, EngineError, ErrorKind
from testdeck.log import SessionLog
from testdeck.models import (
    CANCELLED_CONTENT,
    PendingRequest,
    Role,
    SessionEntry,
    SessionState,
    SessionStatus,
)
from testdeck.tree import ArtifactTree

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0
_ENTRY_SEQ = re.compile(r"(\d+)$")


def render_failure(error: BaseException | str) -> str:
    if isinstance(error, EngineError):
        return error.summary()
    if isinstance(error, BaseException):
        message = str(error) or type(error).__name__
        return f"{ErrorKind.ENGINE_FAILURE.value}: {message}"
    return f"{ErrorKind.ENGINE_FAILURE.value}: {error}"


class GenerationOrchestrator:
    """Single-flight request/response state machine for one session.

    Idle --submit--> AwaitingResponse --result|failure|cancel|timeout--> Idle

    The user's entry is appended before dispatch. While a request is in
    flight every new submit is rejected with `BusyError`, so engine replies
    land in the log in submission order without any correlation on the
    consumer side. Outcomes are matched to the pending request id and
    anything arriving after cancel or timeout is dropped.
    """

    def __init__(
        self,
        tree: ArtifactTree,
        log: SessionLog,
        engine: GenerationEngine,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        session_id: str | None = None,
        emitter: EventEmitter | None = None,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.tree = tree
        self.log = log
        self.engine = engine
        self.timeout_s = timeout_s
        self.session_id = session_id or generate_id()
        self.emitter = emitter or EventEmitter()

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._pending: PendingRequest | None = None
        self._timer: threading.Timer | None = None
        self._entry_clock = LogicalClock(prefix="e")
        self._request_clock = LogicalClock(prefix="r")
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"testdeck-{self.session_id}"
        )
        self.sync_clock()

    def status(self) -> SessionStatus:
        with self._lock:
            return SessionStatus.IDLE if self._pending is None else SessionStatus.AWAITING_RESPONSE

    def pending(self) -> PendingRequest | None:
        with self._lock:
            return self._pending

    def state(self) -> SessionState:
        with self._lock:
            return SessionState(status=self.status(), pending=self._pending)

    def sync_clock(self) -> None:
        """Advance entry/request counters past ids already in the log."""
        for entry in self.log.snapshot():
            match = _ENTRY_SEQ.search(entry.id)
            if match:
                self._entry_clock.advance_to(int(match.group(1)))
            if entry.request_id:
                match = _ENTRY_SEQ.search(entry.request_id)
                if match:
                    self._request_clock.advance_to(int(match.group(1)))

    def submit(self, text: str, selection: str | None = None) -> PendingRequest:
        if not text or not text.strip():
            raise EmptyRequestError()

        events: list[Event] = []
        with self._lock:
            if self._pending is not None:
                raise BusyError(self._pending.request_id)

            selection_path = self.tree.path(selection) if selection is not None else ()
            request_id = self._request_clock.next_id()
            entry = self._new_entry(Role.USER, text, request_id)
            self.log.append(entry)
            self.log.pin(entry.id)

            pending = PendingRequest(
                request_id=request_id,
                text=text,
                selection=selection,
                selection_path=selection_path,
                user_entry_id=entry.id,
            )
            self._pending = pending
            events.append(self._entry_event(entry))
            events.append(
                StatusChangedEvent(
                    session_id=self.session_id,
                    previous=SessionStatus.IDLE.value,
                    current=SessionStatus.AWAITING_RESPONSE.value,
                    request_id=request_id,
                )
            )
        self._emit(events)

        logger.info(f"[{self.session_id}] Dispatching {request_id} (selection={selection!r})")
        self._dispatch(pending)
        return pending

    def on_engine_result(self, content: str, request_id: str | None = None) -> bool:
        return self._resolve(request_id, str(content), outcome="result")

    def on_engine_failure(self, error: BaseException | str, request_id: str | None = None) -> bool:
        return self._resolve(request_id, render_failure(error), outcome="failure")

    def cancel(self) -> bool:
        with self._lock:
            pending = self._pending
            if pending is None:
                return False
            pending.cancel_event.set()
            events = self._finish(pending, CANCELLED_CONTENT, outcome="cancelled")
        self._emit(events)
        return True

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._pending is None, timeout=timeout)

    def shutdown(self) -> None:
        self.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _dispatch(self, pending: PendingRequest) -> None:
        request = EngineRequest(
            request_id=pending.request_id,
            text=pending.text,
            selection_context=pending.selection,
            selection_path=pending.selection_path,
        )
        with self._lock:
            if self._pending is not pending:
                return
            timer = threading.Timer(self.timeout_s, self._on_timeout, args=(pending.request_id,))
            timer.daemon = True
            self._timer = timer
            timer.start()

        try:
            future = self._executor.submit(self.engine.generate, request, pending.cancel_event)
        except RuntimeError as e:
            logger.error(f"[{self.session_id}] Could not dispatch {pending.request_id}: {e}")
            self.on_engine_failure(
                EngineError(ErrorKind.ENGINE_FAILURE, f"dispatch failed: {e}"),
                request_id=pending.request_id,
            )
            return
        future.add_done_callback(functools.partial(self._on_done, pending.request_id))

    def _on_done(self, request_id: str, future: Future) -> None:
        if future.cancelled():
            self.on_engine_failure(EngineError(ErrorKind.CANCELLED, "dispatch cancelled"), request_id)
            return
        error = future.exception()
        if error is None:
            self.on_engine_result(future.result(), request_id=request_id)
            return
        if not isinstance(error, EngineError):
            logger.error(f"[{self.session_id}] Engine raised {type(error).__name__}: {error}")
        self.on_engine_failure(error, request_id=request_id)

    def _on_timeout(self, request_id: str) -> None:
        with self._lock:
            pending = self._pending
            if pending is None or pending.request_id != request_id:
                return
            pending.cancel_event.set()
        logger.warning(f"[{self.session_id}] {request_id} timed out after {self.timeout_s:.1f}s")
        self.on_engine_failure(
            EngineError(ErrorKind.TIMEOUT, f"engine did not respond within {self.timeout_s:g}s"),
            request_id=request_id,
        )

    def _resolve(self, request_id: str | None, content: str, *, outcome: str) -> bool:
        with self._lock:
            pending = self._pending
            if pending is None or (request_id is not None and pending.request_id != request_id):
                logger.debug(f"[{self.session_id}] Dropping late {outcome} for {request_id}")
                return False
            events = self._finish(pending, content, outcome=outcome)
        self._emit(events)
        return True

    def _finish(self, pending: PendingRequest, content: str, *, outcome: str) -> list[Event]:
        """Close out `pending`. Caller holds `_lock`; events are emitted after release."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        entry = self._new_entry(Role.ENGINE, content, pending.request_id)
        self.log.append(entry)
        self.log.unpin(pending.user_entry_id)
        self._pending = None
        self._idle.notify_all()

        events: list[Event] = [
            self._entry_event(entry),
            StatusChangedEvent(
                session_id=self.session_id,
                previous=SessionStatus.AWAITING_RESPONSE.value,
                current=SessionStatus.IDLE.value,
                request_id=pending.request_id,
            ),
        ]
        if outcome == "failure":
            events.append(ErrorEvent(message=content, source=getattr(self.engine, "name", None)))
        logger.info(f"[{self.session_id}] {pending.request_id} finished: {outcome}")
        return events

    def _new_entry(self, role: Role, content: str, request_id: str) -> SessionEntry:
        return SessionEntry(
            id=self._entry_clock.next_id(),
            role=role,
            content=content,
            request_id=request_id,
        )

    def _entry_event(self, entry: SessionEntry) -> EntryAppendedEvent:
        return EntryAppendedEvent(
            session_id=self.session_id,
            entry_id=entry.id,
            role=entry.role.value,
            content=entry.content,
        )

    def _emit(self, events: list[Event]) -> None:
        for event in events:
            self.emitter.emit(event)
