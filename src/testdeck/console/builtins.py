from testdeck.errors import DashboardError
from testdeck.render import render_history, render_tree


class BuiltinCommands:
    def __init__(self, console):
        self.console = console
        self._handlers = {
            "quit": self.cmd_quit,
            "exit": self.cmd_quit,
            "tree": self.cmd_tree,
            "select": self.cmd_select,
            "unselect": self.cmd_unselect,
            "toggle": self.cmd_toggle,
            "status": self.cmd_status,
            "history": self.cmd_history,
            "cancel": self.cmd_cancel,
            "reset": self.cmd_reset,
            "reload": self.cmd_reload,
            "sessions": self.cmd_sessions,
            "save": self.cmd_save,
            "load": self.cmd_load,
            "help": self.cmd_help,
        }

    @property
    def session(self):
        return self.console.session

    def register(self, name: str, handler) -> None:
        self._handlers[name] = handler

    def list_commands(self) -> list[str]:
        return sorted(self._handlers.keys())

    def has_command(self, name: str) -> bool:
        return name in self._handlers

    def handle(self, name: str, args: str) -> bool:
        handler = self._handlers.get(name)
        if not handler:
            return True
        try:
            return handler(args)
        except DashboardError as e:
            print(f"❌ {e}")
            return True

    def cmd_quit(self, args: str) -> bool:
        print("👋 Goodbye!")
        return False

    def cmd_tree(self, args: str) -> bool:
        print(render_tree(self.session.tree))
        return True

    def cmd_select(self, args: str) -> bool:
        if not args:
            print("Usage: /select <node-id>")
            return True
        result = self.session.select(args)
        path = "/".join(self.session.tree.path(result.current))
        print(f"✅ Selected {path}")
        return True

    def cmd_unselect(self, args: str) -> bool:
        self.session.clear_selection()
        print("✅ Selection cleared")
        return True

    def cmd_toggle(self, args: str) -> bool:
        if not args:
            print("Usage: /toggle <folder-id>")
            return True
        result = self.session.toggle_expand(args)
        state = "expanded" if result.expanded else "collapsed"
        print(f"✅ {self.session.tree.get(args).name} {state}")
        return True

    def cmd_status(self, args: str) -> bool:
        pending = self.session.orchestrator.pending()
        print(f"Status: {self.session.status().value}")
        selection = self.session.current_selection()
        if selection is not None:
            print(f"Selection: {'/'.join(self.session.tree.path(selection))}")
        if pending is not None:
            print(f"Pending: {pending.request_id} ({pending.text[:60]})")
        return True

    def cmd_history(self, args: str) -> bool:
        print(render_history(self.session.entries()))
        return True

    def cmd_cancel(self, args: str) -> bool:
        if self.session.cancel():
            print("✅ Request cancelled")
        else:
            print("Nothing to cancel")
        return True

    def cmd_reset(self, args: str) -> bool:
        self.session.reset()
        self.console.mark_all_seen()
        print("✅ Session history cleared")
        return True

    def cmd_reload(self, args: str) -> bool:
        if self.console.reload_tree():
            print(f"✅ Reloaded project tree ({len(self.session.tree)} nodes)")
        else:
            print("No project source to reload")
        return True

    def cmd_sessions(self, args: str) -> bool:
        store = self.console.store
        if store is None:
            print("Sessions not available")
            return True
        sessions = store.list_sessions()
        if not sessions:
            print("No saved sessions")
            return True
        print("Sessions:")
        for meta in sessions:
            title = meta.get("title") or "untitled"
            print(f"  • {meta.get('id')} - {title} ({meta.get('entry_count', 0)} entries)")
        return True

    def cmd_save(self, args: str) -> bool:
        store = self.console.store
        if store is None:
            print("Sessions not available")
            return True
        store.save(self.session, title=args or None)
        print(f"✅ Session {self.session.session_id} saved")
        return True

    def cmd_load(self, args: str) -> bool:
        if not args:
            print("Usage: /load <id>")
            return True
        store = self.console.store
        if store is None:
            print("Sessions not available")
            return True
        self.console.session = store.restore(args, self.session)
        self.console.mark_all_seen()
        print(f"✅ Loaded session {args}")
        return True

    def cmd_help(self, args: str) -> bool:
        print("\nCommands:")
        shortcuts: dict[str, list[str]] = {}
        for alias, target in self.console.router.aliases.items():
            shortcuts.setdefault(target, []).append(f"/{alias}")
        for name in self.list_commands():
            extra = f"  ({', '.join(shortcuts[name])})" if name in shortcuts else ""
            print(f"  /{name}{extra}")
        print("Anything else is sent to the engine as a testing request.\n")
        return True
