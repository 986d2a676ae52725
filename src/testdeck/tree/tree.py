from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Iterable, Iterator

from testdeck.errors import NotAFolderError, NotFoundError, TreeError
from testdeck.tree.models import (
    ArtifactNode,
    ExpansionResult,
    NodeKind,
    NodeSpec,
    SelectionResult,
    TreeRow,
)

logger = logging.getLogger(__name__)


def _build_arena(
    roots: Iterable[NodeSpec],
) -> tuple[tuple[str, ...], dict[str, ArtifactNode], dict[str, str | None]]:
    nodes: dict[str, ArtifactNode] = {}
    parents: dict[str, str | None] = {}
    root_ids: list[str] = []

    # Depth-first, siblings kept in display order.
    stack: list[tuple[NodeSpec, str | None]] = [
        (spec, None) for spec in reversed(list(roots))
    ]
    while stack:
        spec, parent_id = stack.pop()
        if not spec.id:
            raise TreeError(f"Node {spec.name!r} has an empty id")
        if spec.id in nodes:
            raise TreeError(f"Duplicate node id {spec.id!r}")
        if spec.kind is NodeKind.FILE and spec.children:
            raise TreeError(f"File node {spec.id!r} cannot have children")

        nodes[spec.id] = ArtifactNode(
            id=spec.id,
            name=spec.name,
            kind=spec.kind,
            children=tuple(child.id for child in spec.children),
            expanded=spec.expanded if spec.kind is NodeKind.FOLDER else False,
        )
        parents[spec.id] = parent_id
        if parent_id is None:
            root_ids.append(spec.id)
        for child in reversed(spec.children):
            stack.append((child, spec.id))

    return tuple(root_ids), nodes, parents


class ArtifactTree:
    """Hierarchical index of test artifacts with single-node selection.

    Nodes live in an arena keyed by id. The structure is read-only apart
    from the per-folder `expanded` flag; a new project snapshot replaces the
    whole arena through `replace()`.
    """

    def __init__(self, roots: Iterable[NodeSpec] = ()):
        self._lock = threading.Lock()
        self._roots, self._nodes, self._parents = _build_arena(roots)
        self._selected: str | None = None

    @property
    def roots(self) -> tuple[str, ...]:
        return self._roots

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str) -> ArtifactNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError(node_id)
        return node

    def children(self, node_id: str) -> list[ArtifactNode]:
        node = self.get(node_id)
        return [self._nodes[child_id] for child_id in node.children]

    def parent(self, node_id: str) -> ArtifactNode | None:
        self.get(node_id)
        parent_id = self._parents.get(node_id)
        return self._nodes[parent_id] if parent_id is not None else None

    def path(self, node_id: str) -> tuple[str, ...]:
        with self._lock:
            nodes, parents = self._nodes, self._parents
        if node_id not in nodes:
            raise NotFoundError(node_id)
        names: list[str] = []
        current: str | None = node_id
        while current is not None:
            names.append(nodes[current].name)
            current = parents.get(current)
        return tuple(reversed(names))

    def select(self, node_id: str) -> SelectionResult:
        with self._lock:
            if node_id not in self._nodes:
                raise NotFoundError(node_id)
            previous = self._selected
            self._selected = node_id
        logger.debug(f"Selection changed {previous!r} -> {node_id!r}")
        return SelectionResult(previous=previous, current=node_id)

    def clear_selection(self) -> SelectionResult:
        with self._lock:
            previous = self._selected
            self._selected = None
        return SelectionResult(previous=previous, current=None)

    def current_selection(self) -> str | None:
        return self._selected

    def toggle_expand(self, node_id: str) -> ExpansionResult:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                raise NotFoundError(node_id)
            if not node.is_folder:
                raise NotAFolderError(node_id)
            updated = dataclasses.replace(node, expanded=not node.expanded)
            self._nodes[node_id] = updated
        return ExpansionResult(node_id=node_id, expanded=updated.expanded)

    def replace(self, roots: Iterable[NodeSpec]) -> SelectionResult:
        """Swap in a new project snapshot.

        The selection survives only if its id exists in the new snapshot.
        """
        new_roots, new_nodes, new_parents = _build_arena(roots)
        with self._lock:
            previous = self._selected
            self._roots, self._nodes, self._parents = new_roots, new_nodes, new_parents
            if previous is not None and previous not in new_nodes:
                self._selected = None
            current = self._selected
        logger.info(f"Loaded project tree with {len(new_nodes)} nodes")
        return SelectionResult(previous=previous, current=current)

    def walk(self) -> Iterator[tuple[ArtifactNode, int]]:
        yield from self._iter_depth_first(only_expanded=False)

    def visible_rows(self) -> list[TreeRow]:
        selected = self._selected
        return [
            TreeRow(
                node=node,
                depth=depth,
                expanded=node.expanded,
                selected=node.id == selected,
            )
            for node, depth in self._iter_depth_first(only_expanded=True)
        ]

    def _iter_depth_first(self, *, only_expanded: bool) -> Iterator[tuple[ArtifactNode, int]]:
        with self._lock:
            nodes, roots = self._nodes, self._roots
        stack: list[tuple[str, int]] = [(node_id, 0) for node_id in reversed(roots)]
        while stack:
            node_id, depth = stack.pop()
            node = nodes[node_id]
            yield node, depth
            if node.is_folder and (node.expanded or not only_expanded):
                for child_id in reversed(node.children):
                    stack.append((child_id, depth + 1))
