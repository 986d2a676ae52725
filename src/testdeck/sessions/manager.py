from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from common.jsonio import atomic_write_json, load_json
from testdeck.errors import DashboardError
from testdeck.log import SessionLog
from testdeck.session import DashboardSession
from testdeck.sessions.schema import SessionMetadata, SessionRecord

logger = logging.getLogger(__name__)


class SessionStoreError(DashboardError):
    pass


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SessionStore:
    """Saves session transcripts as `<data_dir>/<session_id>.json`."""

    def __init__(self, data_dir: str | Path):
        self.data_dir = Path(data_dir)
        self._created: dict[str, str] = {}

    def _path(self, session_id: str) -> Path:
        return self.data_dir / f"{session_id}.json"

    def save(self, session: DashboardSession, title: str | None = None) -> SessionRecord:
        if title is not None:
            session.title = title
        path = self._path(session.session_id)
        created_at = self._created.get(session.session_id)
        if created_at is None:
            existing = load_json(path)
            created_at = (existing or {}).get("metadata", {}).get("created_at") or _now_iso()
            self._created[session.session_id] = created_at

        entries = list(session.entries())
        record = SessionRecord(
            metadata=SessionMetadata(
                id=session.session_id,
                title=session.title,
                created_at=created_at,
                updated_at=_now_iso(),
                engine=getattr(session.engine, "name", type(session.engine).__name__),
                model=session.config.model if session.config.engine == "llm" else None,
                entry_count=len(entries),
            ),
            selection=session.current_selection(),
            max_entries=session.log.max_entries,
            entries=entries,
        )
        atomic_write_json(path, record.model_dump(mode="json"))
        logger.debug(f"Saved session {session.session_id} ({len(entries)} entries)")
        return record

    def load(self, session_id: str) -> SessionRecord | None:
        data = load_json(self._path(session_id))
        if data is None:
            logger.warning(f"Session {session_id} not found")
            return None
        try:
            return SessionRecord.model_validate(data)
        except ValidationError as e:
            raise SessionStoreError(f"Invalid session data for {session_id}: {e}") from e

    def restore(self, session_id: str, session: DashboardSession) -> DashboardSession:
        """Rebuild a saved session, reusing `session`'s tree, engine and listeners.

        The in-flight request of `session`, if any, is cancelled.
        """
        record = self.load(session_id)
        if record is None:
            raise SessionStoreError(f"Session {session_id} not found")

        log = SessionLog.from_dict(record.model_dump(mode="json", include={"max_entries", "entries"}))

        session.orchestrator.shutdown()
        restored = DashboardSession(
            tree=session.tree,
            engine=session.engine,
            config=session.config,
            log=log,
            session_id=record.metadata.id,
            emitter=session.emitter,
            title=record.metadata.title,
        )
        if record.selection is not None and record.selection in restored.tree:
            restored.select(record.selection)
        self._created[record.metadata.id] = record.metadata.created_at
        logger.info(f"Restored session {session_id} with {len(log)} entries")
        return restored

    def list_sessions(self) -> list[dict[str, Any]]:
        sessions: list[dict[str, Any]] = []
        if not self.data_dir.exists():
            return sessions
        for path in self.data_dir.glob("*.json"):
            data = load_json(path)
            if data and isinstance(data.get("metadata"), dict):
                sessions.append(data["metadata"])
        return sorted(sessions, key=lambda meta: meta.get("updated_at", ""), reverse=True)

    def delete(self, session_id: str) -> bool:
        path = self._path(session_id)
        if not path.exists():
            return False
        path.unlink()
        self._created.pop(session_id, None)
        logger.info(f"Deleted session {session_id}")
        return True
