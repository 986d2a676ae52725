from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    ENGINE = "engine"


class SessionStatus(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"


CANCELLED_CONTENT = "cancelled"


class SessionEntry(BaseModel):
    """One immutable line of the conversation history.

    `created_at` is for display only; the log's append order is the ordering
    authority.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=utc_now)
    request_id: str | None = None

    @property
    def is_user(self) -> bool:
        return self.role is Role.USER


@dataclass(slots=True)
class PendingRequest:
    request_id: str
    text: str
    selection: str | None
    selection_path: tuple[str, ...]
    user_entry_id: str
    submitted_at: datetime = field(default_factory=utc_now)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass(frozen=True, slots=True)
class SessionState:
    status: SessionStatus
    pending: PendingRequest | None = None
