from common.events import EntryAppendedEvent, SelectionChangedEvent
from testdeck.config import DashboardConfig
from testdeck.models import Role, SessionStatus
from testdeck.session import DashboardSession
from testdeck.tree import NodeSpec
from testdeck.tree.loader import sample_project


def test_submit_uses_current_selection(session_factory, instant_engine):
    session = session_factory(engine=instant_engine)
    session.select("4")
    session.submit("cover the api")
    assert session.wait_until_idle(2.0)

    request = instant_engine.calls[0]
    assert request.selection_context == "4"
    assert request.selection_path == ("Project Root", "src", "api.test.js")
    assert [(e.role, e.content) for e in session.entries()] == [
        (Role.USER, "cover the api"),
        (Role.ENGINE, "generated: cover the api"),
    ]


def test_submit_without_selection(session_factory, instant_engine):
    session = session_factory(engine=instant_engine)
    session.submit("anything")
    assert session.wait_until_idle(2.0)
    assert instant_engine.calls[0].selection_context is None
    assert instant_engine.calls[0].selection_path == ()


def test_sessions_are_isolated(session_factory):
    first = session_factory()
    second = session_factory()

    first.select("3")
    first.toggle_expand("2")
    first.submit("only in first")
    assert first.wait_until_idle(2.0)

    assert second.current_selection() is None
    assert second.tree.get("2").expanded is False
    assert len(second.entries()) == 0
    assert second.status() is SessionStatus.IDLE


def test_reset_clears_log(session_factory):
    session = session_factory()
    session.submit("x")
    assert session.wait_until_idle(2.0)
    session.reset()
    assert len(session.entries()) == 0
    assert session.status() is SessionStatus.IDLE


def test_reset_cancels_in_flight_request(session_factory, engine):
    session = session_factory(engine=engine)
    session.submit("x")
    assert engine.started.wait(2.0)
    session.reset()
    assert session.status() is SessionStatus.IDLE
    assert len(session.entries()) == 0


def test_load_tree_drops_vanished_selection(session_factory):
    session = session_factory()
    session.select("7")
    result = session.load_tree([NodeSpec.folder("root", "Root", children=[NodeSpec.file("a", "a.test.js")])])
    assert result.current is None
    assert session.current_selection() is None
    assert "a" in session.tree


def test_selection_events_only_on_change(instant_engine):
    events = []
    config = DashboardConfig(data_dir="unused")
    with DashboardSession(
        sample_project(), engine=instant_engine, config=config, on_event=events.append
    ) as session:
        session.select("3")
        session.select("3")
        session.clear_selection()

        selections = [e for e in events if isinstance(e, SelectionChangedEvent)]
        assert [(e.previous, e.current) for e in selections] == [(None, "3"), ("3", None)]

        session.submit("x")
        assert session.wait_until_idle(2.0)
        appended = [e for e in events if isinstance(e, EntryAppendedEvent)]
        assert [e.session_id for e in appended] == [session.session_id] * 2


def test_max_history_bounds_the_log(session_factory):
    session = session_factory(max_history=2)
    for text in ("a", "b", "c"):
        session.submit(text)
        assert session.wait_until_idle(2.0)
    assert [e.content for e in session.entries()] == ["c", "generated: c"]


def test_close_closes_engine(instant_engine):
    closed = []
    instant_engine.close = lambda: closed.append(True)
    session = DashboardSession(sample_project(), engine=instant_engine, config=DashboardConfig(data_dir="unused"))
    session.close()
    assert closed == [True]
