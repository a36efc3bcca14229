from __future__ import annotations

import math

import pytest

from schema_designer.catalog import ResizeConstraints
from schema_designer.drag import DragPhase, DragSession, DropResolver, DropTarget, ResizeSession, snap
from schema_designer.models import Node
from schema_designer.selection import SelectionModel


@pytest.mark.parametrize(
    "fraction, expected",
    [(0.0, 0), (0.5, 0), (0.51, None), (1.0, None), (-3.0, 0), (7.0, None), (math.nan, 0)],
)
def test_drop_resolver_splits_on_fraction(fraction: float, expected: int | None) -> None:
    assert DropResolver().resolve("card-1", fraction) == DropTarget("card-1", expected)


def test_drop_resolver_honours_custom_split() -> None:
    resolver = DropResolver(split=0.25)

    assert resolver.resolve("x", 0.3).index is None
    assert resolver.resolve("x", 0.2).index == 0


def test_drag_session_lifecycle() -> None:
    session = DragSession()
    assert session.phase is DragPhase.IDLE
    assert session.over("root", 0.1) is None

    session.start_node("card-1")
    assert session.phase is DragPhase.DRAGGING
    assert session.drop() is None
    assert session.phase is DragPhase.CANCELLED

    session.start_type("text")
    target = session.over("root", 0.9)
    assert session.phase is DragPhase.HOVERING
    assert session.source_type == "text" and session.source_node_id is None

    session.leave()
    assert session.phase is DragPhase.DRAGGING
    assert session.target is None

    session.over("root", 0.9)
    assert session.drop() == target
    assert session.phase is DragPhase.DROPPED
    assert session.active is False


def test_drag_cancel_only_when_active() -> None:
    session = DragSession()
    assert session.cancel() is False

    session.start_node("a")
    session.over("b", 0.2)

    assert session.cancel() is True
    assert session.to_dict() == {"phase": "cancelled", "source_node_id": "a", "source_type": None, "target": None}


def test_resize_session_clamps_and_formats() -> None:
    session = ResizeSession("card-1", ResizeConstraints(min_width=200, min_height=100, max_width=400))

    assert session.preview(50, 30) == (200, 100)
    assert session.preview(999, 150.5) == (400, 150.5)
    assert session.style_changes() == {"width": "400px", "height": "150.5px"}


def test_resize_session_disabled_axis() -> None:
    session = ResizeSession("button-1", ResizeConstraints(height=False, min_width=40))

    session.preview(10, 80)

    assert session.style_changes() == {"width": "40px"}


def test_snap_rounds_to_grid() -> None:
    assert snap(33, 20) == 40
    assert snap(29, 20) == 20
    assert snap(33, 20, enabled=False) == 33
    assert snap(33, 0) == 33


def test_selection_drag_sources_are_exclusive() -> None:
    selection = SelectionModel(root_id="root")

    assert selection.start_node_drag("root") is False
    assert selection.start_node_drag("a") is True
    selection.start_type_drag("text")

    assert selection.dragging_node_id is None
    assert selection.dragging_type == "text"
    assert selection.is_dragging

    selection.end_drag()
    assert not selection.is_dragging


def test_selection_prune_drops_stale_references() -> None:
    tree = Node.from_dict({"id": "root", "type": "div", "body": [{"id": "a", "type": "text"}]})
    selection = SelectionModel(root_id="root", selected_node_id="gone", hovered_node_id="a", dragging_node_id="gone")

    selection.prune(tree)

    assert selection.to_dict() == {
        "selected_node_id": None,
        "hovered_node_id": "a",
        "dragging_node_id": None,
        "dragging_type": None,
    }
