from __future__ import annotations

from schema_designer.models import Node
from schema_designer.tree import (
    collect_ids,
    count_nodes,
    depth_of,
    find,
    is_descendant,
    iter_nodes,
    locate,
    map_path,
    parent_of,
    subtree_height,
)


def _sample_tree() -> Node:
    return Node.from_dict(
        {
            "id": "root",
            "type": "div",
            "body": [
                {"id": "card-1", "type": "card", "body": [{"id": "text-1", "type": "text"}]},
                {"id": "card-2", "type": "card", "body": {"id": "text-2", "type": "text"}},
                {"id": "button-1", "type": "button"},
            ],
        }
    )


def _chain(depth: int) -> Node:
    node = Node(id=f"n{depth}", type="div")
    for level in range(depth - 1, -1, -1):
        node = Node(id=f"n{level}", type="div", children=(node,))
    return node


def test_iter_nodes_visits_in_document_order() -> None:
    order = [node.id for node, _ in iter_nodes(_sample_tree())]

    assert order == ["root", "card-1", "text-1", "card-2", "text-2", "button-1"]


def test_find_and_locate() -> None:
    tree = _sample_tree()

    assert find(tree, "text-2").type == "text"
    assert locate(tree, "text-2") == (1, 0)
    assert locate(tree, "root") == ()
    assert find(tree, "missing") is None
    assert find(tree, None) is None


def test_parent_of_and_depth() -> None:
    tree = _sample_tree()

    parent, index = parent_of(tree, "button-1")
    assert parent.id == "root"
    assert index == 2
    assert parent_of(tree, "root") is None
    assert parent_of(tree, "missing") is None
    assert depth_of(tree, "text-1") == 2


def test_find_respects_depth_bound() -> None:
    tree = _chain(10)

    assert find(tree, "n10", max_depth=10) is not None
    assert find(tree, "n10", max_depth=9) is None
    assert count_nodes(tree, max_depth=3) == 4


def test_map_path_shares_untouched_subtrees() -> None:
    tree = _sample_tree()

    updated = map_path(tree, "text-1", lambda node: node.with_props({"content": "hi"}))

    assert updated is not tree
    assert find(updated, "text-1").props == {"content": "hi"}
    # ancestors are rebuilt
    assert updated.children[0] is not tree.children[0]
    # siblings are reused by reference
    assert updated.children[1] is tree.children[1]
    assert updated.children[2] is tree.children[2]


def test_map_path_returns_same_tree_when_unchanged() -> None:
    tree = _sample_tree()

    assert map_path(tree, "missing", lambda node: node.with_props({"x": 1})) is tree
    assert map_path(tree, "card-1", lambda node: node) is tree


def test_is_descendant() -> None:
    tree = _sample_tree()

    assert is_descendant(tree, "root", "text-1") is True
    assert is_descendant(tree, "card-1", "text-1") is True
    assert is_descendant(tree, "card-2", "text-1") is False
    assert is_descendant(tree, "card-1", "card-1") is False
    assert is_descendant(tree, "missing", "text-1") is False


def test_collect_ids_and_height() -> None:
    tree = _sample_tree()

    assert collect_ids(tree) == {"root", "card-1", "text-1", "card-2", "text-2", "button-1"}
    assert subtree_height(tree) == 2
    assert subtree_height(tree.children[2]) == 0


def test_deep_tree_traversal_does_not_recurse() -> None:
    tree = _chain(150)

    assert depth_of(tree, "n150", max_depth=200) == 150
    assert subtree_height(tree, max_depth=200) == 150
