from __future__ import annotations

from typing import TYPE_CHECKING

from testdeck.errors import DashboardError
from testdeck.models import Role

if TYPE_CHECKING:
    from testdeck.session import DashboardSession

try:
    import gradio as gr
except ImportError:
    gr = None


def _check_gradio() -> None:
    if gr is None:
        raise ImportError("Gradio not installed. Run: pip install 'testdeck[gui]'")


def _tree_markdown(session: DashboardSession) -> str:
    from testdeck.render import render_tree

    return f"```\n{render_tree(session.tree)}\n```"


def _history_markdown(session: DashboardSession) -> str:
    blocks: list[str] = []
    for entry in session.entries():
        who = "**You**" if entry.role is Role.USER else "**Engine**"
        stamp = entry.created_at.astimezone().strftime("%H:%M:%S")
        blocks.append(f"{who} · _{stamp}_\n\n{entry.content}")
    return "\n\n---\n\n".join(blocks) if blocks else "_No messages yet._"


def _status_text(session: DashboardSession, note: str = "") -> str:
    status = session.status().value.replace("_", " ")
    selection = session.current_selection()
    where = "/".join(session.tree.path(selection)) if selection is not None else "nothing selected"
    text = f"Status: {status} · Selection: {where}"
    return f"{text}\n{note}" if note else text


def _node_choices(session: DashboardSession) -> list[tuple[str, str]]:
    return [
        (f"{'  ' * depth}{node.name}", node.id)
        for node, depth in session.tree.walk()
    ]


def create_app(session: DashboardSession) -> "gr.Blocks":
    _check_gradio()

    def on_select(node_id: str | None):
        note = ""
        if node_id:
            try:
                session.select(node_id)
            except DashboardError as e:
                note = str(e)
        return _tree_markdown(session), _status_text(session, note)

    def on_toggle(node_id: str | None):
        note = ""
        if node_id:
            try:
                session.toggle_expand(node_id)
            except DashboardError as e:
                note = str(e)
        return _tree_markdown(session), _status_text(session, note)

    def on_generate(text: str):
        try:
            session.submit(text)
        except DashboardError as e:
            return text, _history_markdown(session), _status_text(session, str(e))
        session.wait_until_idle(session.config.timeout_s + 1.0)
        return "", _history_markdown(session), _status_text(session)

    def on_cancel():
        note = "Request cancelled" if session.cancel() else "Nothing to cancel"
        return _history_markdown(session), _status_text(session, note)

    def on_refresh():
        return _history_markdown(session), _status_text(session)

    with gr.Blocks(title="testdeck") as app:
        gr.Markdown("# Test Automation Dashboard")

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Project Files")
                tree_view = gr.Markdown(_tree_markdown(session))
                node_picker = gr.Dropdown(choices=_node_choices(session), label="Node")
                with gr.Row():
                    select_btn = gr.Button("Select")
                    toggle_btn = gr.Button("Expand / Collapse")

            with gr.Column(scale=4):
                gr.Markdown("### Testing Request")
                request_box = gr.Textbox(
                    placeholder="Describe your testing requirements...",
                    lines=8,
                    show_label=False,
                )
                with gr.Row():
                    clear_btn = gr.Button("Clear")
                    cancel_btn = gr.Button("Cancel")
                    generate_btn = gr.Button("Generate Tests", variant="primary")
                status_view = gr.Textbox(
                    value=_status_text(session), label="Session", interactive=False, lines=2
                )

            with gr.Column(scale=3):
                gr.Markdown("### Test Results & History")
                history_view = gr.Markdown(_history_markdown(session))
                refresh_btn = gr.Button("Refresh")

        select_btn.click(fn=on_select, inputs=node_picker, outputs=[tree_view, status_view])
        toggle_btn.click(fn=on_toggle, inputs=node_picker, outputs=[tree_view, status_view])
        clear_btn.click(fn=lambda: "", outputs=request_box)
        generate_btn.click(
            fn=on_generate,
            inputs=request_box,
            outputs=[request_box, history_view, status_view],
        )
        cancel_btn.click(fn=on_cancel, outputs=[history_view, status_view])
        refresh_btn.click(fn=on_refresh, outputs=[history_view, status_view])

    return app


def launch(session: DashboardSession, **kwargs) -> None:
    app = create_app(session)
    app.launch(**kwargs)
