from __future__ import annotations

from schema_designer.history import HistoryManager
from schema_designer.models import Node
from schema_designer.mutations import MutationEngine


def _root() -> Node:
    return Node(id="root", type="div")


def test_undo_restores_previous_snapshot_and_redo_reapplies() -> None:
    engine = MutationEngine()
    initial = _root()
    history = HistoryManager(initial)

    edited = engine.apply_insert(initial, "root", Node(id="t", type="text")).tree
    assert history.commit(edited, "Insert text")

    assert history.undo() is initial
    assert history.current is initial
    assert history.redo() is edited
    assert history.current is edited


def test_labels_follow_the_stacks() -> None:
    history = HistoryManager(_root())
    history.commit(Node(id="root", type="grid"), "Change type")

    assert history.undo_label == "Change type"
    assert history.redo_label is None

    history.undo()

    assert history.undo_label is None
    assert history.redo_label == "Change type"


def test_commit_of_current_tree_is_ignored() -> None:
    engine = MutationEngine()
    history = HistoryManager(_root())

    refused = engine.apply_remove(history.current, "root")
    assert history.commit(refused.tree) is False
    assert history.can_undo is False


def test_new_commit_clears_redo() -> None:
    history = HistoryManager(_root())
    history.commit(Node(id="root", type="a"), "a")
    history.undo()
    assert history.can_redo

    history.commit(Node(id="root", type="b"), "b")

    assert history.can_redo is False
    assert history.redo() is None


def test_limit_drops_oldest_entries() -> None:
    history = HistoryManager(_root(), limit=2)
    for name in ("a", "b", "c"):
        history.commit(Node(id="root", type=name), name)

    assert [tree.type for tree in history.past] == ["a", "b"]
    history.undo()
    history.undo()
    assert history.undo() is None
    assert history.current.type == "a"


def test_reset_and_state_callback() -> None:
    calls: list[int] = []
    history = HistoryManager(_root())
    history.on_state_changed = lambda: calls.append(1)

    history.commit(Node(id="root", type="x"), "x")
    history.reset(_root())

    assert len(calls) == 2
    assert history.to_dict() == {
        "can_undo": False,
        "can_redo": False,
        "undo_label": None,
        "redo_label": None,
        "past": 0,
        "future": 0,
    }
