"""Component catalog consulted when materializing nodes from a palette type."""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Protocol

from .errors import ValidationError
from .logging import get_logger
from .models import Node, normalize_children

__all__ = [
    "BUILTIN_TEMPLATES",
    "ComponentCatalog",
    "ComponentTemplate",
    "ResizeConstraints",
    "StaticCatalog",
    "build_node",
]

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ResizeConstraints:
    width: bool = True
    height: bool = True
    min_width: float | None = None
    max_width: float | None = None
    min_height: float | None = None
    max_height: float | None = None

    def clamp(self, width: float | None, height: float | None) -> tuple[float | None, float | None]:
        """Clamp a requested size; a disabled axis comes back as None."""

        return (
            _clamp_axis(width, self.min_width, self.max_width) if self.width else None,
            _clamp_axis(height, self.min_height, self.max_height) if self.height else None,
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "ResizeConstraints":
        if not payload:
            return cls()
        return cls(
            width=payload.get("width") is not False,
            height=payload.get("height") is not False,
            min_width=payload.get("minWidth"),
            max_width=payload.get("maxWidth"),
            min_height=payload.get("minHeight"),
            max_height=payload.get("maxHeight"),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"width": self.width, "height": self.height}
        for key, value in (
            ("minWidth", self.min_width),
            ("maxWidth", self.max_width),
            ("minHeight", self.min_height),
            ("maxHeight", self.max_height),
        ):
            if value is not None:
                payload[key] = value
        return payload


@dataclass(frozen=True, slots=True)
class ComponentTemplate:
    type: str
    label: str | None = None
    category: str | None = None
    default_props: Mapping[str, Any] = field(default_factory=dict)
    default_children: tuple[Node, ...] = ()
    is_container: bool = False
    resizable: bool = False
    resize_constraints: ResizeConstraints = field(default_factory=ResizeConstraints)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ComponentTemplate":
        component_type = payload.get("type")
        if not isinstance(component_type, str) or not component_type:
            raise ValidationError("Component entry requires a non-empty string 'type'")
        default_props = payload.get("defaultProps") or {}
        if not isinstance(default_props, Mapping):
            raise ValidationError(f"Component '{component_type}' defaultProps must be an object")
        return cls(
            type=component_type,
            label=payload.get("label"),
            category=payload.get("category"),
            default_props=dict(default_props),
            default_children=normalize_children(payload.get("defaultChildren"), path=f"{component_type}.defaultChildren"),
            is_container=bool(payload.get("isContainer", False)),
            resizable=bool(payload.get("resizable", False)),
            resize_constraints=ResizeConstraints.from_dict(payload.get("resizeConstraints")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "label": self.label or self.type,
            "category": self.category,
            "defaultProps": copy.deepcopy(dict(self.default_props)),
            "defaultChildren": [child.to_dict() for child in self.default_children],
            "isContainer": self.is_container,
            "resizable": self.resizable,
            "resizeConstraints": self.resize_constraints.to_dict(),
        }


class ComponentCatalog(Protocol):
    def get_template(self, component_type: str) -> ComponentTemplate | None: ...


class StaticCatalog:
    """Dict-backed catalog.

    Namespaced lookups such as ``ui:button`` fall back to the bare type when no
    exact registration exists.
    """

    def __init__(self, templates: Iterable[ComponentTemplate] = ()) -> None:
        self._templates: dict[str, ComponentTemplate] = {}
        for template in templates:
            self.register(template)

    def register(self, template: ComponentTemplate) -> None:
        if template.type in self._templates:
            logger.warning("catalog.overwrite", extra={"context": {"type": template.type}})
        self._templates[template.type] = template

    def get_template(self, component_type: str) -> ComponentTemplate | None:
        template = self._templates.get(component_type)
        if template is None and ":" in component_type:
            template = self._templates.get(component_type.split(":", 1)[1])
        return template

    def templates(self) -> list[ComponentTemplate]:
        return sorted(self._templates.values(), key=lambda item: ((item.category or ""), item.type))

    def __contains__(self, component_type: object) -> bool:
        return isinstance(component_type, str) and self.get_template(component_type) is not None

    def __len__(self) -> int:
        return len(self._templates)

    @classmethod
    def builtin(cls) -> "StaticCatalog":
        return cls(BUILTIN_TEMPLATES)

    @classmethod
    def from_file(cls, path: Path) -> "StaticCatalog":
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except OSError as exc:
            raise ValidationError(f"Unable to read component catalog {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Component catalog {path} is not valid JSON: {exc.msg}") from exc
        if not isinstance(raw, Mapping) or not isinstance(raw.get("components"), list):
            raise ValidationError(f"Component catalog {path} must be an object with a 'components' list")
        catalog = cls(ComponentTemplate.from_dict(entry) for entry in raw["components"])
        logger.info("catalog.loaded", extra={"context": {"path": str(path), "components": len(catalog)}})
        return catalog


def build_node(template: ComponentTemplate) -> Node:
    """Materialize an id-less node from ``template``; ids are assigned on insert."""

    return Node(
        id=None,
        type=template.type,
        props=copy.deepcopy(dict(template.default_props)),
        children=tuple(_strip_ids(child) for child in template.default_children),
    )


def _strip_ids(node: Node) -> Node:
    return Node(
        id=None,
        type=node.type,
        props=copy.deepcopy(dict(node.props)),
        children=tuple(_strip_ids(child) for child in node.children),
    )


def _clamp_axis(value: float | None, minimum: float | None, maximum: float | None) -> float | None:
    if value is None:
        return None
    if minimum is not None:
        value = max(value, minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value


BUILTIN_TEMPLATES: tuple[ComponentTemplate, ...] = (
    ComponentTemplate(
        type="div",
        label="Container",
        category="Layout",
        default_props={"className": "p-4"},
        is_container=True,
        resizable=True,
        resize_constraints=ResizeConstraints(min_width=50, min_height=20),
    ),
    ComponentTemplate(
        type="grid",
        label="Grid",
        category="Layout",
        default_props={"columns": 2, "gap": 4},
        is_container=True,
        resizable=True,
        resize_constraints=ResizeConstraints(min_width=100, min_height=50),
    ),
    ComponentTemplate(
        type="card",
        label="Card",
        category="Layout",
        default_props={"title": "Card Title", "description": "Card description goes here", "className": "w-full"},
        is_container=True,
        resizable=True,
        resize_constraints=ResizeConstraints(min_width=200, min_height=100),
    ),
    ComponentTemplate(type="text", label="Text", category="Basic", default_props={"content": "Text"}),
    ComponentTemplate(
        type="button",
        label="Button",
        category="Basic",
        default_props={"label": "Button", "variant": "default"},
        resizable=True,
        resize_constraints=ResizeConstraints(height=False, min_width=40),
    ),
    ComponentTemplate(
        type="input",
        label="Input",
        category="Form",
        default_props={"placeholder": "Enter text", "inputType": "text"},
        resizable=True,
        resize_constraints=ResizeConstraints(height=False, min_width=80),
    ),
    ComponentTemplate(
        type="image",
        label="Image",
        category="Basic",
        default_props={"src": "", "alt": "Image"},
        resizable=True,
        resize_constraints=ResizeConstraints(min_width=16, min_height=16),
    ),
)
