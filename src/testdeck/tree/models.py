from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class NodeKind(str, Enum):
    FOLDER = "folder"
    FILE = "file"


@dataclass(frozen=True, slots=True)
class ArtifactNode:
    """Arena record for one tree node. Children are referenced by id."""

    id: str
    name: str
    kind: NodeKind
    children: tuple[str, ...] = ()
    expanded: bool = False

    @property
    def is_folder(self) -> bool:
        return self.kind is NodeKind.FOLDER


@dataclass(frozen=True, slots=True)
class NodeSpec:
    """Nested description of a node as supplied by a project source."""

    id: str
    name: str
    kind: NodeKind
    children: tuple[NodeSpec, ...] = ()
    expanded: bool = False

    @classmethod
    def folder(
        cls, id: str, name: str, children: list[NodeSpec] | tuple[NodeSpec, ...] = (), expanded: bool = False
    ) -> NodeSpec:
        return cls(id=id, name=name, kind=NodeKind.FOLDER, children=tuple(children), expanded=expanded)

    @classmethod
    def file(cls, id: str, name: str) -> NodeSpec:
        return cls(id=id, name=name, kind=NodeKind.FILE)


@dataclass(frozen=True, slots=True)
class SelectionResult:
    previous: str | None
    current: str | None


@dataclass(frozen=True, slots=True)
class ExpansionResult:
    node_id: str
    expanded: bool


@dataclass(frozen=True, slots=True)
class TreeRow:
    node: ArtifactNode
    depth: int
    expanded: bool
    selected: bool
