from __future__ import annotations

import logging
from typing import Iterable

from common.events import EventCallback, EventEmitter, SelectionChangedEvent
from common.ids import generate_id
from testdeck.config import DashboardConfig
from testdeck.engine import GenerationEngine, build_engine
from testdeck.log import LogView, SessionLog
from testdeck.models import PendingRequest, SessionStatus
from testdeck.orchestrator import GenerationOrchestrator
from testdeck.tree import ArtifactTree, ExpansionResult, NodeSpec, SelectionResult

logger = logging.getLogger(__name__)


class DashboardSession:
    """Everything one operator conversation owns.

    A session holds its own tree, log and orchestrator; nothing is shared
    between sessions, so several can run side by side in one process.
    """

    def __init__(
        self,
        nodes: Iterable[NodeSpec] = (),
        *,
        tree: ArtifactTree | None = None,
        engine: GenerationEngine | None = None,
        config: DashboardConfig | None = None,
        log: SessionLog | None = None,
        session_id: str | None = None,
        on_event: EventCallback = None,
        emitter: EventEmitter | None = None,
        title: str | None = None,
    ):
        self.config = config or DashboardConfig()
        self.session_id = session_id or generate_id()
        self.title = title
        self.emitter = emitter or EventEmitter(on_event)
        self.tree = tree if tree is not None else ArtifactTree(nodes)
        self.log = log if log is not None else SessionLog(max_entries=self.config.max_history)
        self.engine = engine or build_engine(self.config)
        self.orchestrator = GenerationOrchestrator(
            self.tree,
            self.log,
            self.engine,
            timeout_s=self.config.timeout_s,
            session_id=self.session_id,
            emitter=self.emitter,
        )

    def select(self, node_id: str) -> SelectionResult:
        result = self.tree.select(node_id)
        self._emit_selection(result)
        return result

    def clear_selection(self) -> SelectionResult:
        result = self.tree.clear_selection()
        self._emit_selection(result)
        return result

    def toggle_expand(self, node_id: str) -> ExpansionResult:
        return self.tree.toggle_expand(node_id)

    def current_selection(self) -> str | None:
        return self.tree.current_selection()

    def submit(self, text: str) -> PendingRequest:
        return self.orchestrator.submit(text, self.tree.current_selection())

    def cancel(self) -> bool:
        return self.orchestrator.cancel()

    def status(self) -> SessionStatus:
        return self.orchestrator.status()

    def entries(self) -> LogView:
        return self.log.all()

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        return self.orchestrator.wait_until_idle(timeout)

    def load_tree(self, nodes: Iterable[NodeSpec]) -> SelectionResult:
        result = self.tree.replace(nodes)
        self._emit_selection(result)
        return result

    def reset(self) -> None:
        if self.orchestrator.cancel():
            logger.info(f"[{self.session_id}] Cancelled in-flight request before reset")
        self.log.clear()
        logger.info(f"[{self.session_id}] Session log cleared")

    def close(self) -> None:
        self.orchestrator.shutdown()
        close = getattr(self.engine, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> DashboardSession:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _emit_selection(self, result: SelectionResult) -> None:
        if result.previous != result.current:
            self.emitter.emit(
                SelectionChangedEvent(
                    session_id=self.session_id,
                    previous=result.previous,
                    current=result.current,
                )
            )
