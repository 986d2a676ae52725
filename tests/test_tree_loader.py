import json

import pytest

from testdeck.errors import TreeError
from testdeck.tree import ArtifactTree, NodeKind
from testdeck.tree.loader import load_tree_file, scan_directory, specs_from_document


def test_load_json_tree_literal(tmp_path):
    path = tmp_path / "tree.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "1",
                    "name": "Project Root",
                    "type": "folder",
                    "expanded": True,
                    "children": [
                        {"id": "2", "name": "login.test.js", "type": "file"},
                    ],
                }
            ]
        )
    )
    tree = ArtifactTree(load_tree_file(path))
    assert tree.get("1").expanded is True
    assert tree.get("2").kind is NodeKind.FILE
    assert tree.path("2") == ("Project Root", "login.test.js")


def test_load_yaml_tree_with_generated_ids(tmp_path):
    path = tmp_path / "tree.yaml"
    path.write_text(
        "nodes:\n"
        "  - name: app\n"
        "    children:\n"
        "      - name: unit\n"
        "        children:\n"
        "          - name: test_login.py\n"
    )
    tree = ArtifactTree(load_tree_file(path))
    assert "app/unit/test_login.py" in tree
    assert tree.get("app/unit").kind is NodeKind.FOLDER


def test_invalid_documents_raise_tree_error(tmp_path):
    with pytest.raises(TreeError):
        specs_from_document("not a tree")
    with pytest.raises(TreeError):
        specs_from_document([{"type": "file"}])
    with pytest.raises(TreeError):
        specs_from_document([{"name": "x", "type": "widget"}])
    with pytest.raises(TreeError):
        load_tree_file(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(TreeError):
        load_tree_file(broken)


def test_scan_directory_indexes_test_files(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "login.test.js").write_text("")
    (tmp_path / "src" / "login.js").write_text("")
    (tmp_path / "tests" / "unit").mkdir(parents=True)
    (tmp_path / "tests" / "unit" / "test_api.py").write_text("")
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "readme.md").write_text("")
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / "x.test.js").write_text("")

    tree = ArtifactTree(scan_directory(tmp_path))

    assert tree.roots == (".",)
    assert tree.get(".").expanded is True
    assert "src/login.test.js" in tree
    assert "tests/unit/test_api.py" in tree
    assert "src/login.js" not in tree
    assert "docs" not in tree
    assert "node_modules" not in tree


def test_scan_directory_custom_patterns(tmp_path):
    (tmp_path / "checkout.feature").write_text("")
    (tmp_path / "test_x.py").write_text("")
    tree = ArtifactTree(scan_directory(tmp_path, patterns=["*.feature"]))
    assert "checkout.feature" in tree
    assert "test_x.py" not in tree


def test_scan_requires_directory(tmp_path):
    with pytest.raises(TreeError):
        scan_directory(tmp_path / "nope")


def test_scan_does_not_follow_directory_symlinks(tmp_path):
    (tmp_path / "tests").mkdir()
    (tmp_path / "tests" / "test_a.py").write_text("")
    try:
        (tmp_path / "tests" / "again").symlink_to(tmp_path / "tests", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported on this filesystem")

    tree = ArtifactTree(scan_directory(tmp_path))

    assert len(tree) == 3
    assert "tests/test_a.py" in tree
    assert "tests/again" not in tree
