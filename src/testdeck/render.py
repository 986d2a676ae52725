from typing import Iterable

from testdeck.models import Role, SessionEntry
from testdeck.tree import ArtifactTree, TreeRow

ROLE_LABELS = {Role.USER: "you", Role.ENGINE: "engine"}


def render_row(row: TreeRow) -> str:
    if row.node.is_folder:
        marker = "▾" if row.expanded else "▸"
    else:
        marker = " "
    cursor = "»" if row.selected else " "
    return f"{cursor} {'  ' * row.depth}{marker} {row.node.name}  [{row.node.id}]"


def render_tree(tree: ArtifactTree) -> str:
    rows = tree.visible_rows()
    if not rows:
        return "(empty project)"
    return "\n".join(render_row(row) for row in rows)


def render_entry(entry: SessionEntry) -> str:
    stamp = entry.created_at.astimezone().strftime("%H:%M:%S")
    return f"[{stamp}] {ROLE_LABELS[entry.role]}: {entry.content}"


def render_history(entries: Iterable[SessionEntry]) -> str:
    lines = [render_entry(entry) for entry in entries]
    return "\n".join(lines) if lines else "(no messages yet)"
