import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from common.events import EntryAppendedEvent, ErrorEvent, EventEmitter, StatusChangedEvent
from testdeck.errors import BusyError, EmptyRequestError, EngineError, ErrorKind, NotFoundError
from testdeck.log import SessionLog
from testdeck.models import CANCELLED_CONTENT, Role, SessionStatus
from testdeck.orchestrator import GenerationOrchestrator, render_failure


def _pairs(log):
    return [(entry.role, entry.content) for entry in log.all()]


class TestSubmit:
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_empty_request_rejected(self, orchestrator, log, engine, text):
        with pytest.raises(EmptyRequestError):
            orchestrator.submit(text)
        assert len(log) == 0
        assert orchestrator.status() is SessionStatus.IDLE
        assert engine.calls == []

    def test_user_entry_visible_immediately(self, orchestrator, log):
        orchestrator.submit("add login test")
        last = log.last()
        assert last.role is Role.USER
        assert last.content == "add login test"
        assert orchestrator.status() is SessionStatus.AWAITING_RESPONSE
        assert orchestrator.pending() is not None

    def test_second_submit_is_busy(self, orchestrator, log, engine):
        orchestrator.submit("first")
        assert engine.started.wait(2.0)
        with pytest.raises(BusyError):
            orchestrator.submit("second")
        assert len(log) == 1
        assert len(engine.calls) == 1

    def test_unknown_selection_rejected_without_append(self, orchestrator, log):
        with pytest.raises(NotFoundError):
            orchestrator.submit("x", selection="nope")
        assert len(log) == 0
        assert orchestrator.status() is SessionStatus.IDLE

    def test_selection_is_snapshotted(self, orchestrator, tree, engine):
        tree.select("3")
        pending = orchestrator.submit("cover login", tree.current_selection())
        tree.select("6")
        assert engine.started.wait(2.0)
        assert pending.selection == "3"
        assert engine.calls[0].selection_context == "3"
        assert engine.calls[0].selection_path == ("Project Root", "src", "login.test.js")


class TestCompletion:
    def test_result_pairs_with_request(self, orchestrator, log, engine):
        orchestrator.submit("x")
        assert orchestrator.on_engine_result("done") is True
        assert _pairs(log) == [(Role.USER, "x"), (Role.ENGINE, "done")]
        assert orchestrator.status() is SessionStatus.IDLE

    def test_engine_reply_is_appended(self, orchestrator, log, engine):
        orchestrator.submit("x")
        engine.release.set()
        assert orchestrator.wait_until_idle(2.0)
        assert _pairs(log) == [(Role.USER, "x"), (Role.ENGINE, "done")]
        entries = list(log.all())
        assert entries[0].request_id == entries[1].request_id

    def test_engine_error_becomes_log_entry(self, orchestrator, log, engine):
        engine.error = EngineError(ErrorKind.ENGINE_FAILURE, "boom")
        orchestrator.submit("x")
        engine.release.set()
        assert orchestrator.wait_until_idle(2.0)
        assert _pairs(log)[-1] == (Role.ENGINE, "engine_failure: boom")

    def test_unexpected_exception_becomes_log_entry(self, orchestrator, log, engine):
        engine.error = RuntimeError("kaput")
        orchestrator.submit("x")
        engine.release.set()
        assert orchestrator.wait_until_idle(2.0)
        assert _pairs(log)[-1] == (Role.ENGINE, "engine_failure: kaput")
        assert orchestrator.status() is SessionStatus.IDLE

    def test_manual_failure(self, orchestrator, log):
        orchestrator.submit("x")
        orchestrator.on_engine_failure(EngineError(ErrorKind.ENGINE_FAILURE, "unreachable"))
        assert _pairs(log)[-1] == (Role.ENGINE, "engine_failure: unreachable")

    def test_outcome_without_pending_is_ignored(self, orchestrator, log):
        assert orchestrator.on_engine_result("stray") is False
        assert orchestrator.on_engine_failure("stray") is False
        assert len(log) == 0

    def test_outcome_for_other_request_is_ignored(self, orchestrator, log):
        orchestrator.submit("x")
        assert orchestrator.on_engine_result("wrong", request_id="r999999") is False
        assert len(log) == 1
        assert orchestrator.status() is SessionStatus.AWAITING_RESPONSE

    def test_resubmit_after_completion(self, orchestrator, log, engine):
        orchestrator.submit("one")
        engine.release.set()
        assert orchestrator.wait_until_idle(2.0)
        orchestrator.submit("two")
        assert orchestrator.wait_until_idle(2.0)
        assert _pairs(log) == [
            (Role.USER, "one"),
            (Role.ENGINE, "done"),
            (Role.USER, "two"),
            (Role.ENGINE, "done"),
        ]


class TestCancel:
    def test_cancel_from_idle_is_noop(self, orchestrator, log):
        assert orchestrator.cancel() is False
        assert len(log) == 0

    def test_cancel_returns_to_idle_and_drops_late_reply(self, tree, log, engine):
        executor = ThreadPoolExecutor(max_workers=1)
        orchestrator = GenerationOrchestrator(tree, log, engine, timeout_s=5.0, executor=executor)

        orchestrator.submit("x")
        assert engine.started.wait(2.0)
        assert orchestrator.cancel() is True
        assert orchestrator.status() is SessionStatus.IDLE

        engine.release.set()
        executor.shutdown(wait=True)

        assert engine.saw_cancel is True
        assert _pairs(log) == [(Role.USER, "x"), (Role.ENGINE, CANCELLED_CONTENT)]

    def test_cancel_wins_over_completion_woken_by_cancel(self, tree):
        class WakesOnCancel:
            name = "wakes-on-cancel"

            def __init__(self):
                self.started = threading.Event()

            def generate(self, request, cancel_event):
                self.started.set()
                cancel_event.wait(5.0)
                return "late"

        for _ in range(25):
            log = SessionLog()
            engine = WakesOnCancel()
            executor = ThreadPoolExecutor(max_workers=1)
            orchestrator = GenerationOrchestrator(tree, log, engine, executor=executor)

            orchestrator.submit("x")
            assert engine.started.wait(2.0)
            assert orchestrator.cancel() is True
            executor.shutdown(wait=True)

            assert _pairs(log) == [(Role.USER, "x"), (Role.ENGINE, CANCELLED_CONTENT)]

    def test_cancel_twice_appends_once(self, orchestrator, log):
        orchestrator.submit("x")
        assert orchestrator.cancel() is True
        assert orchestrator.cancel() is False
        assert [content for _, content in _pairs(log)].count(CANCELLED_CONTENT) == 1


class TestTimeout:
    def test_timeout_synthesizes_failure(self, tree, log, engine):
        executor = ThreadPoolExecutor(max_workers=1)
        orchestrator = GenerationOrchestrator(tree, log, engine, timeout_s=0.05, executor=executor)

        orchestrator.submit("slow")
        assert orchestrator.wait_until_idle(2.0)
        role, content = _pairs(log)[-1]
        assert role is Role.ENGINE
        assert content.startswith("timeout:")

        engine.release.set()
        executor.shutdown(wait=True)
        assert engine.saw_cancel is True
        assert len(log) == 2


class TestDispatch:
    def test_dispatch_failure_keeps_user_entry(self, tree, log, engine):
        executor = ThreadPoolExecutor(max_workers=1)
        executor.shutdown()
        orchestrator = GenerationOrchestrator(tree, log, engine, executor=executor)

        orchestrator.submit("x")

        pairs = _pairs(log)
        assert pairs[0] == (Role.USER, "x")
        assert pairs[1][0] is Role.ENGINE
        assert pairs[1][1].startswith("engine_failure: dispatch failed")
        assert orchestrator.status() is SessionStatus.IDLE

    def test_bounded_log_never_evicts_in_flight_request(self, tree, instant_engine):
        log = SessionLog(max_entries=2)
        engine = instant_engine
        orchestrator = GenerationOrchestrator(tree, log, engine)
        try:
            orchestrator.submit("a")
            assert orchestrator.wait_until_idle(2.0)
            orchestrator.submit("b")
            assert orchestrator.wait_until_idle(2.0)
        finally:
            orchestrator.shutdown()
        assert _pairs(log) == [(Role.USER, "b"), (Role.ENGINE, "generated: b")]

    def test_events_follow_transitions(self, tree, log, instant_engine):
        events = []
        engine = instant_engine
        orchestrator = GenerationOrchestrator(
            tree, log, engine, session_id="s1", emitter=EventEmitter(events.append)
        )
        try:
            orchestrator.submit("x")
            assert orchestrator.wait_until_idle(2.0)
        finally:
            orchestrator.shutdown()

        appended = [e for e in events if isinstance(e, EntryAppendedEvent)]
        statuses = [(e.previous, e.current) for e in events if isinstance(e, StatusChangedEvent)]
        assert [e.role for e in appended] == ["user", "engine"]
        assert statuses == [("idle", "awaiting_response"), ("awaiting_response", "idle")]
        assert all(e.session_id == "s1" for e in appended)
        assert not any(isinstance(e, ErrorEvent) for e in events)

    def test_failure_emits_error_event(self, tree, log, engine, executor):
        events = []
        orchestrator = GenerationOrchestrator(
            tree, log, engine, emitter=EventEmitter(events.append), executor=executor
        )
        orchestrator.submit("x")
        orchestrator.on_engine_failure(EngineError(ErrorKind.ENGINE_FAILURE, "boom"))

        errors = [e for e in events if isinstance(e, ErrorEvent)]
        assert [(e.message, e.source) for e in errors] == [("engine_failure: boom", "controlled")]

    def test_clock_continues_after_existing_entries(self, tree, log, instant_engine):
        engine = instant_engine
        first = GenerationOrchestrator(tree, log, engine)
        first.submit("one")
        assert first.wait_until_idle(2.0)
        first.shutdown()

        second = GenerationOrchestrator(tree, log, engine)
        second.submit("two")
        assert second.wait_until_idle(2.0)
        second.shutdown()

        ids = [entry.id for entry in log.all()]
        assert len(ids) == len(set(ids)) == 4


def test_render_failure_variants():
    assert render_failure(EngineError(ErrorKind.TIMEOUT, "late")) == "timeout: late"
    assert render_failure(ValueError()) == "engine_failure: ValueError"
    assert render_failure("plain") == "engine_failure: plain"
