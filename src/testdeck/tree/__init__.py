from testdeck.tree.models import (
    ArtifactNode,
    ExpansionResult,
    NodeKind,
    NodeSpec,
    SelectionResult,
    TreeRow,
)
from testdeck.tree.tree import ArtifactTree

__all__ = [
    "ArtifactNode",
    "ArtifactTree",
    "ExpansionResult",
    "NodeKind",
    "NodeSpec",
    "SelectionResult",
    "TreeRow",
]
