from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from common.jsonio import load_document
from testdeck.errors import TreeError
from testdeck.tree.models import NodeKind, NodeSpec

logger = logging.getLogger(__name__)

DEFAULT_TEST_PATTERNS: tuple[str, ...] = (
    "test_*.py",
    "*_test.py",
    "*.test.js",
    "*.test.ts",
    "*.test.tsx",
    "*.spec.js",
    "*.spec.ts",
    "*.feature",
)
SKIP_DIRS = {".git", ".hg", ".venv", "venv", "node_modules", "__pycache__", "dist", "build"}


def sample_project() -> list[NodeSpec]:
    return [
        NodeSpec.folder(
            "1",
            "Project Root",
            expanded=True,
            children=[
                NodeSpec.folder(
                    "2",
                    "src",
                    children=[
                        NodeSpec.file("3", "login.test.js"),
                        NodeSpec.file("4", "api.test.js"),
                    ],
                ),
                NodeSpec.folder(
                    "5",
                    "tests",
                    children=[
                        NodeSpec.file("6", "integration.test.js"),
                        NodeSpec.file("7", "e2e.test.js"),
                    ],
                ),
            ],
        )
    ]


def _parse_kind(raw: Any, has_children: bool, where: str) -> NodeKind:
    if raw is None:
        return NodeKind.FOLDER if has_children else NodeKind.FILE
    try:
        return NodeKind(str(raw).lower())
    except ValueError as e:
        raise TreeError(f"Unknown node type {raw!r} at {where}") from e


def spec_from_mapping(data: Mapping[str, Any], parent_path: str = "") -> NodeSpec:
    """Build a node from the dashboard's nested tree literal.

    Accepts `id`, `name`, `type` ("folder"/"file"), `children` and
    `expanded`. A missing id falls back to the slash-joined name path.
    """
    if not isinstance(data, Mapping):
        raise TreeError(f"Expected a mapping at {parent_path or '/'}, got {type(data).__name__}")
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise TreeError(f"Node at {parent_path or '/'} has no name")

    path = f"{parent_path}/{name}" if parent_path else name
    raw_children = data.get("children")
    if raw_children is not None and not isinstance(raw_children, list):
        raise TreeError(f"children of {path} must be a list")
    kind = _parse_kind(data.get("type"), raw_children is not None, path)
    node_id = str(data.get("id") or path)

    if kind is NodeKind.FILE:
        if raw_children:
            raise TreeError(f"File node {path} cannot have children")
        return NodeSpec.file(node_id, name)

    children = [spec_from_mapping(child, path) for child in raw_children or []]
    return NodeSpec.folder(node_id, name, children=children, expanded=bool(data.get("expanded", False)))


def specs_from_document(document: Any) -> list[NodeSpec]:
    if isinstance(document, Mapping):
        if "nodes" in document:
            document = document["nodes"]
        else:
            document = [document]
    if not isinstance(document, list):
        raise TreeError("Tree document must be a mapping or a list of nodes")
    return [spec_from_mapping(item) for item in document]


def load_tree_file(path: str | Path) -> list[NodeSpec]:
    try:
        document = load_document(path)
    except FileNotFoundError as e:
        raise TreeError(f"Tree file not found: {path}") from e
    except (ValueError, yaml.YAMLError) as e:
        raise TreeError(f"Invalid tree file {path}: {e}") from e
    specs = specs_from_document(document)
    logger.info(f"Loaded tree file {path} ({len(specs)} root nodes)")
    return specs


def _matches(name: str, patterns: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(name, pattern) for pattern in patterns)


def _scan(directory: Path, root: Path, patterns: tuple[str, ...]) -> list[NodeSpec]:
    folders: list[NodeSpec] = []
    files: list[NodeSpec] = []
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name.lower())
    except PermissionError:
        logger.warning(f"Skipping unreadable directory {directory}")
        return []

    for entry in entries:
        rel = entry.relative_to(root).as_posix()
        if entry.is_dir():
            if entry.is_symlink() or entry.name in SKIP_DIRS or entry.name.startswith("."):
                continue
            children = _scan(entry, root, patterns)
            if children:
                folders.append(NodeSpec.folder(rel, entry.name, children=children))
        elif entry.is_file() and _matches(entry.name, patterns):
            files.append(NodeSpec.file(rel, entry.name))
    return folders + files


def scan_directory(
    root: str | Path,
    patterns: Iterable[str] | None = None,
) -> list[NodeSpec]:
    """Index test artifacts under `root` into a single expanded root folder.

    Node ids are root-relative POSIX paths; folders without matching files
    are pruned and symlinked directories are not followed.
    """
    root_path = Path(root).resolve()
    if not root_path.is_dir():
        raise TreeError(f"Not a directory: {root}")
    pats = tuple(patterns) if patterns else DEFAULT_TEST_PATTERNS
    children = _scan(root_path, root_path, pats)
    logger.info(f"Scanned {root_path}: {sum(1 for _ in _iter_files(children))} test files")
    return [NodeSpec.folder(".", root_path.name or str(root_path), children=children, expanded=True)]


def _iter_files(specs: Iterable[NodeSpec]):
    for spec in specs:
        if spec.kind is NodeKind.FILE:
            yield spec
        else:
            yield from _iter_files(spec.children)
