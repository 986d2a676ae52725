import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from testdeck.config import DashboardConfig
from testdeck.engine.base import EngineRequest
from testdeck.log import SessionLog
from testdeck.orchestrator import GenerationOrchestrator
from testdeck.session import DashboardSession
from testdeck.tree import ArtifactTree
from testdeck.tree.loader import sample_project


class ControlledEngine:
    """Engine that blocks until the test releases it."""

    name = "controlled"

    def __init__(self, reply: str = "done"):
        self.reply = reply
        self.error: BaseException | None = None
        self.calls: list[EngineRequest] = []
        self.started = threading.Event()
        self.release = threading.Event()
        self.saw_cancel: bool | None = None

    def generate(self, request: EngineRequest, cancel_event: threading.Event) -> str:
        self.calls.append(request)
        self.started.set()
        self.release.wait(5.0)
        self.saw_cancel = cancel_event.is_set()
        if self.error is not None:
            raise self.error
        return self.reply


class InstantEngine:
    name = "instant"

    def __init__(self, reply: str = "generated"):
        self.reply = reply
        self.calls: list[EngineRequest] = []

    def generate(self, request: EngineRequest, cancel_event: threading.Event) -> str:
        self.calls.append(request)
        return f"{self.reply}: {request.text}"


@pytest.fixture
def tree() -> ArtifactTree:
    return ArtifactTree(sample_project())


@pytest.fixture
def log() -> SessionLog:
    return SessionLog()


@pytest.fixture
def engine() -> ControlledEngine:
    engine = ControlledEngine()
    yield engine
    engine.release.set()


@pytest.fixture
def instant_engine() -> InstantEngine:
    return InstantEngine()


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=1)
    yield pool
    pool.shutdown(wait=False, cancel_futures=True)


@pytest.fixture
def orchestrator(tree, log, engine, executor) -> GenerationOrchestrator:
    return GenerationOrchestrator(tree, log, engine, timeout_s=5.0, executor=executor)


@pytest.fixture
def session_factory():
    created: list[DashboardSession] = []

    def _make(engine=None, **config_overrides) -> DashboardSession:
        config = DashboardConfig(data_dir="unused", **config_overrides)
        session = DashboardSession(sample_project(), engine=engine or InstantEngine(), config=config)
        created.append(session)
        return session

    yield _make
    for session in created:
        session.close()
