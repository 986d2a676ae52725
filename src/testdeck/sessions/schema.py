from pydantic import BaseModel, Field

from testdeck.models import SessionEntry


class SessionMetadata(BaseModel):
    id: str
    title: str | None = None
    created_at: str
    updated_at: str
    engine: str
    model: str | None = None
    entry_count: int = 0


class SessionRecord(BaseModel):
    metadata: SessionMetadata
    selection: str | None = None
    max_entries: int | None = None
    entries: list[SessionEntry] = Field(default_factory=list)
