import logging
from typing import Callable, Iterable

from testdeck.console.builtins import BuiltinCommands
from testdeck.console.router import InputRouter, RouteKind
from testdeck.errors import DashboardError
from testdeck.render import render_entry, render_tree
from testdeck.session import DashboardSession
from testdeck.sessions.manager import SessionStore
from testdeck.tree import NodeSpec

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.2


class DashboardREPL:
    def __init__(
        self,
        session: DashboardSession,
        store: SessionStore | None = None,
        tree_source: Callable[[], Iterable[NodeSpec]] | None = None,
        wait: bool = True,
    ):
        self.session = session
        self.store = store
        self.tree_source = tree_source
        self.wait = wait
        self._printed: set[str] = set()
        self.builtins = BuiltinCommands(self)
        self.router = InputRouter(self.builtins)

    def mark_all_seen(self) -> None:
        self._printed = {entry.id for entry in self.session.entries()}

    def print_new_entries(self) -> None:
        for entry in self.session.entries():
            if entry.id in self._printed:
                continue
            self._printed.add(entry.id)
            print(render_entry(entry))

    def reload_tree(self) -> bool:
        if self.tree_source is None:
            return False
        self.session.load_tree(self.tree_source())
        return True

    def submit(self, text: str) -> None:
        try:
            pending = self.session.submit(text)
        except DashboardError as e:
            print(f"❌ {e}")
            return
        self.print_new_entries()
        if not self.wait:
            print(f"⏳ {pending.request_id} dispatched (/status, /history, /cancel)")
            return

        print("⏳ Generating... (Ctrl+C to cancel)")
        try:
            while not self.session.wait_until_idle(POLL_INTERVAL_S):
                pass
        except KeyboardInterrupt:
            self.session.cancel()
        self.print_new_entries()

    def run(self, initial_message: str | None = None) -> None:
        print(f"🧪 testdeck started (engine: {getattr(self.session.engine, 'name', '?')})")
        print("Commands: /help for all commands")
        print()
        print(render_tree(self.session.tree))
        self.mark_all_seen()

        if initial_message:
            self.submit(initial_message)

        while True:
            try:
                user_input = input("\n> ").strip()
                self.print_new_entries()

                if not user_input:
                    continue

                route = self.router.route(user_input)
                if route.kind is RouteKind.BUILTIN:
                    if not self.builtins.handle(route.name, route.args):
                        break
                    continue
                if route.kind is RouteKind.UNKNOWN:
                    print(
                        f"Unknown command: /{route.name}. Type /help for available commands."
                    )
                    continue

                self.submit(route.args)

            except KeyboardInterrupt:
                print("\n\n⚠️  Interrupted")
                break
            except EOFError:
                break
            except Exception as e:
                logger.exception("REPL command failed")
                print(f"\n❌ Error: {e}")
