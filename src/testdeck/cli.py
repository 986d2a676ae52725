from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Callable, Iterable

from dotenv import load_dotenv

from testdeck.config import ENGINE_CHOICES, DashboardConfig, resolve_model_alias
from testdeck.errors import ConfigError, DashboardError
from testdeck.models import SessionStatus
from testdeck.render import render_history, render_tree
from testdeck.session import DashboardSession
from testdeck.sessions.manager import SessionStore
from testdeck.tree import NodeSpec
from testdeck.tree.loader import load_tree_file, sample_project, scan_directory

logger = logging.getLogger(__name__)


def main() -> int:
    load_dotenv()
    return _main(sys.argv[1:])


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        payload = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(verbose: bool = False, quiet: bool = False, log_format: str = "text") -> None:
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    logging.basicConfig(level=level, handlers=[handler], force=True)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--tree", default=None, help="Load the project tree from a JSON/YAML file")
    source.add_argument("--scan", default=None, help="Index test files under this directory")
    parser.add_argument("--engine", default=None, choices=list(ENGINE_CHOICES))
    parser.add_argument(
        "--model",
        default=None,
        help="Model for the llm engine (supports aliases: sonnet, opus, haiku, 4o, flash, deepseek)",
    )
    parser.add_argument("--engine-url", default=None, help="Endpoint for the http engine")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds to wait for the engine")
    parser.add_argument("--max-history", type=int, default=None)
    parser.add_argument("--data-dir", default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("-q", "--quiet", action="store_true")
    parser.add_argument("--log-format", default="text", choices=["text", "json"])


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="testdeck", description="testdeck - test automation dashboard")
    subparsers = parser.add_subparsers(dest="command", required=False)

    repl = subparsers.add_parser("repl", help="Start the interactive dashboard console")
    _add_common_args(repl)
    repl.add_argument("--message", "-m", help="Send one request on startup")
    repl.add_argument("--no-wait", action="store_true", help="Return to the prompt while the engine works")

    ask = subparsers.add_parser("ask", help="Submit one request and print the transcript")
    _add_common_args(ask)
    ask.add_argument("request")
    ask.add_argument("--select", default=None, help="Node id to use as selection context")
    ask.add_argument("--save", action="store_true", help="Save the transcript as a session")

    tree = subparsers.add_parser("tree", help="Print the project tree")
    _add_common_args(tree)
    tree.add_argument("--all", action="store_true", help="Expand every folder")

    sessions = subparsers.add_parser("sessions", help="List/show saved sessions")
    sessions.add_argument("--data-dir", default=None)
    sessions_sub = sessions.add_subparsers(dest="sessions_cmd", required=False)
    sessions_list = sessions_sub.add_parser("list", help="List sessions")
    sessions_list.add_argument("--limit", type=int, default=20)
    sessions_show = sessions_sub.add_parser("show", help="Print a session transcript")
    sessions_show.add_argument("session_id")
    sessions_delete = sessions_sub.add_parser("delete", help="Delete a saved session")
    sessions_delete.add_argument("session_id")

    gui = subparsers.add_parser("gui", help="Launch Gradio web interface")
    _add_common_args(gui)
    gui.add_argument("--port", type=int, default=7860)
    gui.add_argument("--share", action="store_true", help="Create public link")

    return parser


def _build_config(args: argparse.Namespace) -> DashboardConfig:
    config = DashboardConfig.from_env()
    if getattr(args, "engine", None):
        config.engine = args.engine
    if getattr(args, "model", None):
        config.model = resolve_model_alias(args.model)
    if getattr(args, "engine_url", None):
        config.engine_url = args.engine_url
    if getattr(args, "timeout", None) is not None:
        config.timeout_s = args.timeout
    if getattr(args, "max_history", None) is not None:
        config.max_history = args.max_history
    if getattr(args, "data_dir", None):
        config.data_dir = args.data_dir
    config.validate()
    return config


def _tree_source(args: argparse.Namespace) -> Callable[[], Iterable[NodeSpec]]:
    if getattr(args, "tree", None):
        return lambda: load_tree_file(args.tree)
    if getattr(args, "scan", None):
        return lambda: scan_directory(args.scan)
    return sample_project


def _open_session(args: argparse.Namespace) -> tuple[DashboardSession, DashboardConfig]:
    config = _build_config(args)
    session = DashboardSession(_tree_source(args)(), config=config)
    return session, config


def _main(argv: list[str]) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv or ["repl"])
    cmd = args.command or "repl"

    verbose = getattr(args, "verbose", False)
    # Interactive console keeps INFO chatter off the prompt unless asked.
    quiet = getattr(args, "quiet", False) or (cmd == "repl" and not verbose)
    setup_logging(verbose, quiet, getattr(args, "log_format", "text"))

    try:
        if cmd == "repl":
            return _cmd_repl(args)
        if cmd == "ask":
            return _cmd_ask(args)
        if cmd == "tree":
            return _cmd_tree(args)
        if cmd == "sessions":
            return _cmd_sessions(args)
        if cmd == "gui":
            return _cmd_gui(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except DashboardError as e:
        logger.error(str(e))
        return 1

    parser.print_help(sys.stderr)
    return 2


def _cmd_repl(args: argparse.Namespace) -> int:
    from testdeck.console.repl import DashboardREPL

    session, config = _open_session(args)
    with session:
        repl = DashboardREPL(
            session,
            store=SessionStore(config.data_dir),
            tree_source=_tree_source(args),
            wait=not args.no_wait,
        )
        repl.run(initial_message=args.message)
    return 0


def _cmd_ask(args: argparse.Namespace) -> int:
    session, config = _open_session(args)
    with session:
        if args.select:
            session.select(args.select)
        session.submit(args.request)
        session.wait_until_idle(config.timeout_s + 1.0)
        print(render_history(session.entries()))
        if args.save:
            SessionStore(config.data_dir).save(session, title=args.request[:60])
            print(f"\nSaved session {session.session_id}", file=sys.stderr)
        last = session.log.last()
        ok = session.status() is SessionStatus.IDLE and last is not None and not last.is_user
    return 0 if ok else 1


def _cmd_tree(args: argparse.Namespace) -> int:
    session, _ = _open_session(args)
    with session:
        if args.all:
            for node, _depth in list(session.tree.walk()):
                if node.is_folder and not node.expanded:
                    session.toggle_expand(node.id)
        print(render_tree(session.tree))
    return 0


def _cmd_sessions(args: argparse.Namespace) -> int:
    data_dir = args.data_dir or DashboardConfig.from_env().data_dir
    store = SessionStore(data_dir)
    sub = args.sessions_cmd or "list"

    if sub == "list":
        sessions = store.list_sessions()[: getattr(args, "limit", 20)]
        if not sessions:
            print("No saved sessions")
            return 0
        for meta in sessions:
            title = meta.get("title") or "untitled"
            print(f"{meta.get('id')}\t{meta.get('updated_at', '')}\t{meta.get('entry_count', 0)}\t{title}")
        return 0

    if sub == "show":
        record = store.load(args.session_id)
        if record is None:
            print(f"Session {args.session_id} not found", file=sys.stderr)
            return 1
        print(render_history(record.entries))
        return 0

    if sub == "delete":
        if not store.delete(args.session_id):
            print(f"Session {args.session_id} not found", file=sys.stderr)
            return 1
        return 0

    return 2


def _cmd_gui(args: argparse.Namespace) -> int:
    from testdeck.gui.app import launch

    session, _ = _open_session(args)
    with session:
        launch(session, server_port=args.port, share=bool(args.share))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
