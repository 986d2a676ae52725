import logging
import threading

from testdeck.engine.base import EngineRequest
from testdeck.errors import EngineError, ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_REPLY = "Test generation completed. Running automated tests..."


class SimulatedEngine:
    name = "simulated"

    def __init__(
        self,
        delay_s: float = 1.5,
        reply: str = DEFAULT_REPLY,
        fail_with: str | None = None,
    ):
        self.delay_s = delay_s
        self.reply = reply
        self.fail_with = fail_with

    def generate(self, request: EngineRequest, cancel_event: threading.Event) -> str:
        logger.debug(f"Simulating generation for {request.request_id} ({self.delay_s:.1f}s)")
        if cancel_event.wait(self.delay_s):
            raise EngineError(ErrorKind.CANCELLED, "request cancelled")
        if self.fail_with is not None:
            raise EngineError(ErrorKind.ENGINE_FAILURE, self.fail_with)
        return self.reply
