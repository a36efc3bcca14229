from __future__ import annotations

import json
from pathlib import Path

import pytest

from schema_designer.catalog import ComponentTemplate, ResizeConstraints, StaticCatalog, build_node
from schema_designer.errors import ValidationError


def test_builtin_catalog_contents() -> None:
    catalog = StaticCatalog.builtin()

    assert {"div", "grid", "card", "text", "button", "input", "image"} <= {t.type for t in catalog.templates()}
    card = catalog.get_template("card")
    assert card.resizable and card.is_container
    assert card.resize_constraints.clamp(10, 10) == (200, 100)
    assert catalog.get_template("text").resizable is False


def test_namespaced_lookup_falls_back_to_bare_type() -> None:
    catalog = StaticCatalog.builtin()

    assert catalog.get_template("ui:button").type == "button"
    assert "ui:button" in catalog
    assert "ui:missing" not in catalog
    assert catalog.get_template("missing") is None


def test_build_node_copies_defaults_without_ids() -> None:
    template = ComponentTemplate.from_dict(
        {
            "type": "panel",
            "defaultProps": {"style": {"padding": "4px"}},
            "defaultChildren": [{"id": "fixed", "type": "text"}],
        }
    )

    first = build_node(template)
    first.props["style"]["padding"] = "9px"
    second = build_node(template)

    assert second.props == {"style": {"padding": "4px"}}
    assert first.id is None
    assert second.children[0].id is None
    assert second.children[0].type == "text"


def test_catalog_from_file(tmp_path: Path) -> None:
    path = tmp_path / "components.json"
    path.write_text(
        json.dumps(
            {
                "components": [
                    {
                        "type": "hero",
                        "label": "Hero",
                        "category": "Marketing",
                        "isContainer": True,
                        "resizable": True,
                        "resizeConstraints": {"height": False, "minWidth": 300},
                    }
                ]
            }
        ),
        encoding="utf-8",
    )

    catalog = StaticCatalog.from_file(path)

    hero = catalog.get_template("hero")
    assert len(catalog) == 1
    assert hero.resize_constraints == ResizeConstraints(height=False, min_width=300)
    assert hero.to_dict()["resizeConstraints"] == {"width": True, "height": False, "minWidth": 300}


@pytest.mark.parametrize(
    "content",
    ["{broken", json.dumps({"components": "nope"}), json.dumps({"components": [{"label": "no type"}]})],
)
def test_catalog_from_file_rejects_bad_content(tmp_path: Path, content: str) -> None:
    path = tmp_path / "components.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ValidationError):
        StaticCatalog.from_file(path)


def test_catalog_from_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        StaticCatalog.from_file(tmp_path / "absent.json")
