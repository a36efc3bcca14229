from __future__ import annotations

import logging

import pytest

from schema_designer.config import DesignerOptions
from schema_designer.controller import DesignerController
from schema_designer.errors import (
    CYCLE_DETECTED,
    NO_CHANGE,
    NO_DRAG_SESSION,
    NO_SELECTION,
    NOT_FOUND,
    NOT_RESIZABLE,
    ROOT_PROTECTED,
    UNKNOWN_COMPONENT,
    ValidationError,
)
from schema_designer.keyboard import KeyCommand, KeyEvent
from schema_designer.models import Node
from schema_designer.tree import find


def _document() -> dict:
    return {
        "id": "root",
        "type": "div",
        "body": [
            {"id": "card-1", "type": "card", "body": [{"id": "text-1", "type": "text"}]},
            {"id": "card-2", "type": "card"},
        ],
    }


@pytest.fixture()
def controller() -> DesignerController:
    return DesignerController(_document())


def test_default_document_is_empty_root() -> None:
    controller = DesignerController()

    assert controller.root_id == "root"
    assert controller.tree.children == ()
    assert controller.state()["node_count"] == 1


def test_listeners_receive_each_committed_tree(controller: DesignerController) -> None:
    seen = []
    unsubscribe = controller.subscribe(seen.append)

    controller.insert_component("text", "card-2")
    controller.remove("root")
    unsubscribe()
    controller.undo()

    assert len(seen) == 1
    assert find(seen[0], "card-2").children[0].type == "text"


def test_failing_listener_does_not_block_others(controller: DesignerController, caplog) -> None:
    seen = []

    def broken(tree) -> None:
        raise RuntimeError("boom")

    controller.subscribe(broken)
    controller.subscribe(seen.append)

    with caplog.at_level(logging.ERROR):
        result = controller.move("card-2", "root", 0)

    assert result.applied
    assert len(seen) == 1


def test_insert_selects_new_node(controller: DesignerController) -> None:
    result = controller.insert("root", {"type": "button", "label": "Go"})

    assert result.applied
    assert controller.selection.selected_node_id == result.node_id
    assert controller.history.undo_label == "Insert button"


def test_insert_component_uses_catalog_defaults(controller: DesignerController) -> None:
    result = controller.insert_component("card")

    node = find(controller.tree, result.node_id)
    assert node.props["title"] == "Card Title"
    assert controller.tree.children[-1] is node
    assert controller.insert_component("unknown").reason == UNKNOWN_COMPONENT


def test_remove_defaults_to_selection_and_prunes_it(controller: DesignerController) -> None:
    assert controller.remove().reason == NO_SELECTION

    controller.select("card-1")
    result = controller.remove()

    assert result.applied
    assert controller.selection.selected_node_id is None
    assert find(controller.tree, "text-1") is None


def test_refused_edits_do_not_touch_history(controller: DesignerController) -> None:
    before = controller.tree

    assert controller.remove("root").reason == ROOT_PROTECTED
    assert controller.move("card-1", "text-1").applied is False
    assert controller.update("card-1", {}).reason == NO_CHANGE

    assert controller.tree is before
    assert controller.can_undo is False
    assert controller.undo().reason == NO_CHANGE


def test_undo_redo_round_trip(controller: DesignerController) -> None:
    original = controller.tree
    controller.update("card-1", {"title": "Hello"})
    edited = controller.tree

    assert controller.undo().applied
    assert controller.tree is original
    assert controller.redo().applied
    assert controller.tree is edited
    assert controller.redo().reason == NO_CHANGE


STRUCTURAL_EDITS = {
    "insert": lambda c: c.insert("card-2", {"type": "text"}),
    "update": lambda c: c.update("text-1", {"content": "Hi"}),
    "remove": lambda c: c.remove("card-1"),
    "move_across_parents": lambda c: c.move("text-1", "card-2", 0),
    "move_sibling": lambda c: c.move_sibling("card-2", "up"),
    "cut": lambda c: c.cut("text-1"),
    "paste": lambda c: c.copy("text-1").applied and c.paste("card-2"),
    "duplicate": lambda c: c.duplicate("card-1"),
}


@pytest.mark.parametrize("edit", STRUCTURAL_EDITS.values(), ids=list(STRUCTURAL_EDITS))
def test_each_structural_edit_is_one_undoable_step(controller: DesignerController, edit) -> None:
    original = controller.tree

    assert edit(controller).applied
    edited = controller.tree
    assert edited != original
    assert controller.history.to_dict()["past"] == 1

    assert controller.undo().applied
    assert controller.tree == original
    assert controller.can_undo is False
    assert controller.redo().applied
    assert controller.tree == edited


def test_constructor_rejects_node_with_duplicate_ids() -> None:
    tree = Node(id="root", type="div", children=(Node(id="a", type="text"), Node(id="a", type="text")))

    with pytest.raises(ValidationError) as excinfo:
        DesignerController(tree)

    assert [error["path"] for error in excinfo.value.details["errors"]] == ["$.children[1]"]


def test_load_document_rejects_node_with_duplicate_ids(controller: DesignerController) -> None:
    before = controller.tree

    with pytest.raises(ValidationError):
        controller.load_document(Node(id="root", type="div", children=(Node(id="root", type="text"),)))

    assert controller.tree is before


def test_undo_prunes_selection_of_vanished_nodes(controller: DesignerController) -> None:
    result = controller.insert_component("text")
    assert controller.selection.selected_node_id == result.node_id

    controller.undo()

    assert controller.selection.selected_node_id is None


def test_paste_targets_selection_then_root(controller: DesignerController) -> None:
    controller.copy("text-1")
    controller.select("card-2")

    into_selection = controller.paste()
    assert into_selection.applied
    assert len(find(controller.tree, "card-2").children) == 1

    controller.select(None)
    into_root = controller.paste()
    assert controller.tree.children[-1].id == into_root.node_id


def test_paste_target_root_option() -> None:
    controller = DesignerController(_document(), options=DesignerOptions(paste_target="root"))
    controller.copy("text-1")
    controller.select("card-2")

    controller.paste()

    assert find(controller.tree, "card-2").children == ()
    assert len(controller.tree.children) == 3


def test_cut_and_duplicate_select_results(controller: DesignerController) -> None:
    dup = controller.duplicate("card-2")
    assert controller.selection.selected_node_id == dup.node_id
    assert controller.tree.children[2].id == dup.node_id

    controller.cut("card-1")
    assert controller.can_paste
    assert [c.id for c in controller.tree.children] == ["card-2", dup.node_id]


def test_load_document_resets_history_but_keeps_clipboard(controller: DesignerController) -> None:
    controller.copy("text-1")
    controller.update("card-1", {"title": "x"})

    controller.load_document({"id": "page", "type": "div"})

    assert controller.root_id == "page"
    assert controller.can_undo is False
    assert controller.can_paste
    assert controller.paste().applied


def test_export_uses_configured_children_key() -> None:
    controller = DesignerController(_document(), options=DesignerOptions(children_key="children"))

    exported = controller.export_document()

    assert "children" in exported and "body" not in exported


def test_drag_node_onto_target(controller: DesignerController) -> None:
    assert controller.start_drag(node_id="card-2").applied
    assert controller.drag_over("card-1", 0.1).applied

    result = controller.drop()

    assert result.applied
    assert [c.id for c in find(controller.tree, "card-1").children] == ["card-2", "text-1"]
    assert controller.history.to_dict()["past"] == 1
    assert controller.selection.is_dragging is False


def test_drag_palette_type_appends(controller: DesignerController) -> None:
    controller.start_drag(node_type="button")
    controller.drag_over("card-2", 0.9)

    result = controller.drop()

    assert find(controller.tree, "card-2").children[0].id == result.node_id
    assert controller.history.undo_label == "Insert button"


def test_drag_refusals(controller: DesignerController) -> None:
    assert controller.start_drag(node_id="root").reason == ROOT_PROTECTED
    assert controller.start_drag(node_id="missing").reason == NOT_FOUND
    assert controller.start_drag(node_type="nope").reason == UNKNOWN_COMPONENT
    assert controller.drag_over("card-1", 0.5).reason == NO_DRAG_SESSION
    assert controller.drop().reason == NO_DRAG_SESSION
    with pytest.raises(ValueError):
        controller.start_drag()

    controller.start_drag(node_id="card-1")
    assert controller.drag_over("missing", 0.5).reason == NOT_FOUND
    assert controller.drop().reason == NO_CHANGE

    controller.start_drag(node_id="card-1")
    controller.drag_over("text-1", 0.5)
    assert controller.drop().reason == CYCLE_DETECTED


def test_drop_on_canvas_snaps_to_grid(controller: DesignerController) -> None:
    controller.start_drag(node_type="text")

    result = controller.drop_on_canvas(33, 47)

    style = find(controller.tree, result.node_id).props["style"]
    assert style == {"position": "absolute", "left": "40px", "top": "40px"}


def test_drop_on_canvas_repositions_existing_node() -> None:
    controller = DesignerController(_document(), options=DesignerOptions(snap_to_grid=False))
    controller.start_drag(node_id="card-2")

    controller.drop_on_canvas(13.5, 7)

    assert find(controller.tree, "card-2").props["style"] == {"position": "absolute", "left": "13.5px", "top": "7px"}
    assert controller.history.undo_label == "Move node"


def test_resize_commits_single_clamped_update(controller: DesignerController) -> None:
    assert controller.begin_resize("card-1").applied
    controller.preview_resize(120, 60)
    controller.preview_resize(260, 80)
    assert controller.can_undo is False

    result = controller.end_resize()

    assert result.applied
    assert find(controller.tree, "card-1").props["style"] == {"width": "260px", "height": "100px"}
    assert controller.history.to_dict()["past"] == 1


def test_resize_refusals(controller: DesignerController) -> None:
    assert controller.begin_resize("text-1").reason == NOT_RESIZABLE
    assert controller.begin_resize("missing").reason == NOT_FOUND
    assert controller.preview_resize(10, 10).reason == NO_DRAG_SESSION
    assert controller.end_resize().reason == NO_DRAG_SESSION

    controller.begin_resize("card-2")
    assert controller.end_resize().reason == NO_CHANGE


def test_escape_cancels_gestures(controller: DesignerController) -> None:
    command, result = controller.handle_key(KeyEvent("Escape"))
    assert command is KeyCommand.CANCEL
    assert result.reason == NO_DRAG_SESSION

    controller.begin_resize("card-1")
    controller.preview_resize(300, 300)
    command, result = controller.handle_key(KeyEvent("Escape", target_tag="input"))

    assert result.applied
    assert controller.resize is None
    assert controller.can_undo is False


def test_keyboard_drives_edits(controller: DesignerController) -> None:
    controller.select("card-2")

    controller.handle_key(KeyEvent("ArrowUp", ctrl=True))
    assert [c.id for c in controller.tree.children] == ["card-2", "card-1"]

    controller.handle_key(KeyEvent("Delete"))
    assert find(controller.tree, "card-2") is None

    command, _ = controller.handle_key(KeyEvent("z", meta=True))
    assert command is KeyCommand.UNDO
    assert find(controller.tree, "card-2") is not None

    assert controller.handle_key(KeyEvent("Delete", target_tag="textarea")) == (None, None)
