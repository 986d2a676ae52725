import threading
import uuid


def generate_id() -> str:
    return str(uuid.uuid4())[:8]


class LogicalClock:
    """Thread-safe monotonic counter used to mint ordered, unique ids."""

    def __init__(self, prefix: str = "", start: int = 0):
        self.prefix = prefix
        self._value = start
        self._lock = threading.Lock()

    def tick(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def next_id(self) -> str:
        return f"{self.prefix}{self.tick():06d}"

    def advance_to(self, value: int) -> None:
        with self._lock:
            if value > self._value:
                self._value = value

    @property
    def value(self) -> int:
        return self._value
