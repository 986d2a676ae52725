from enum import Enum


class DashboardError(Exception):
    pass


class EmptyRequestError(DashboardError):
    def __init__(self, message: str = "Request text is empty"):
        super().__init__(message)


class BusyError(DashboardError):
    def __init__(self, request_id: str | None = None):
        self.request_id = request_id
        detail = f" (pending request {request_id})" if request_id else ""
        super().__init__(f"A request is already in flight{detail}")


class NotFoundError(DashboardError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id!r} not found")


class NotAFolderError(DashboardError):
    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node {node_id!r} is not a folder")


class CapacityExceededError(DashboardError):
    def __init__(self, max_entries: int):
        self.max_entries = max_entries
        super().__init__(
            f"Session log is full ({max_entries} entries) and every entry is pinned"
        )


class TreeError(DashboardError):
    pass


class ConfigError(DashboardError):
    pass


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    ENGINE_FAILURE = "engine_failure"
    CANCELLED = "cancelled"


class EngineError(DashboardError):
    def __init__(self, kind: ErrorKind | str, message: str):
        self.kind = ErrorKind(kind)
        self.message = message
        super().__init__(f"{self.kind.value}: {message}")

    def summary(self) -> str:
        return f"{self.kind.value}: {self.message}"
