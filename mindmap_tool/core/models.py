"""
Core data models for mind map documents.

These models define the canonical schema:
- Nodes form the document tree (id, text, classTag, notes, children)
- Layout configuration and font description consumed by the layout engine
- Scene graph produced by the layout engine (positioned nodes, connectors, bounds)

Field Naming Convention:
- Python attributes are snake_case
- JSON uses camelCase (`classTag`, `isCollapsed`, `fromId`, ...)
- For backward compatibility, the legacy node field `class` is accepted on input

Nodes are frozen and own their children as tuples, so a document value can be
shared freely (history snapshots, subscribers) without anyone observing a
later edit.
"""

from enum import Enum
from typing import Any, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


DEFAULT_CLASS_TAG = "default"
DEFAULT_NODE_TEXT = "New Node"

# Position/size fields a pasted node may still carry from a previous layout
LAYOUT_FIELDS = ("x", "y", "width", "height")


class NodeProperty(str, Enum):
    """Node properties that can be set by an action."""
    TEXT = "text"
    NOTES = "notes"
    CLASS_TAG = "classTag"


def generate_node_id() -> str:
    """Generate a unique node ID."""
    return f"node-{uuid.uuid4().hex[:12]}"


class Node(BaseModel):
    """A node in the mind map tree. The root node is the document."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=generate_node_id)
    text: str
    class_tag: str = Field(default=DEFAULT_CLASS_TAG, alias="classTag")
    notes: Optional[str] = None
    children: tuple["Node", ...] = ()

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Convert the legacy 'class' field to 'classTag'."""
        if isinstance(data, dict) and 'class' in data:
            data = dict(data)
            legacy = data.pop('class')
            if 'classTag' not in data and 'class_tag' not in data:
                data['classTag'] = legacy
        return data

    @property
    def has_children(self) -> bool:
        return len(self.children) > 0

    @property
    def has_notes(self) -> bool:
        return bool(self.notes)

    def to_json_dict(self) -> dict:
        """Convert to the serialized document shape (notes/children only when present)."""
        result: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "classTag": self.class_tag,
        }
        if self.notes is not None:
            result["notes"] = self.notes
        if self.children:
            result["children"] = [child.to_json_dict() for child in self.children]
        return result

    @classmethod
    def from_json_dict(cls, data: dict) -> "Node":
        """
        Create a node tree from a serialized document dict.

        Each node is validated on its own and the tree is assembled bottom-up
        with an explicit stack, so document depth is not bounded by
        pydantic's nested-validation limit.

        Raises:
            ValidationError: if any node does not match the schema
        """
        root, raw_children = cls._validate_shallow(data)
        # (node, raw child dicts, finished children)
        stack: list[tuple[Node, list, list[Node]]] = [(root, raw_children, [])]
        while True:
            node, raw, built = stack[-1]
            if len(built) < len(raw):
                child, child_raw = cls._validate_shallow(raw[len(built)])
                if child_raw:
                    stack.append((child, child_raw, []))
                else:
                    built.append(child)
                continue

            stack.pop()
            if built:
                node = node.model_copy(update={"children": tuple(built)})
            if not stack:
                return node
            stack[-1][2].append(node)

    @classmethod
    def _validate_shallow(cls, data: Any) -> tuple["Node", list]:
        """Validate one node without its children; return it with the raw children."""
        if isinstance(data, dict) and isinstance(data.get("children"), list):
            return cls.model_validate({**data, "children": ()}), data["children"]
        return cls.model_validate(data), []


# --- Layout Configuration ---

class _CamelModel(BaseModel):
    """Frozen model serialized with camelCase keys."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    def to_json_dict(self) -> dict:
        return self.model_dump(by_alias=True)


class Spacing(_CamelModel):
    """Gaps between parent/child columns and between sibling boxes."""
    horizontal: float = 120
    vertical: float = 40


class LayoutConfig(_CamelModel):
    """Tree layout settings (left-to-right orientation)."""
    spacing: Spacing = Field(default_factory=Spacing)
    min_text_width: float = 80
    max_text_width: float = 300

    @model_validator(mode='after')
    def check_width_range(self) -> "LayoutConfig":
        if self.min_text_width > self.max_text_width:
            raise ValueError("min_text_width must not exceed max_text_width")
        return self


class FontSpec(_CamelModel):
    """Font and box padding used to size node boxes."""
    size: float = 14
    weight: int = 600
    family: str = "Inter, sans-serif"
    line_height: float = 20
    padding_x: float = 16
    padding_y: float = 12
    corner_radius: float = 8


DEFAULT_LAYOUT = LayoutConfig()
DEFAULT_FONT = FontSpec()
DEFAULT_CURVATURE = 0.3


class TextExtent(_CamelModel):
    """Raw size of a rendered string, as reported by a text measurer."""
    width: float
    height: float


class BoxSize(_CamelModel):
    """Size of a node box (text plus padding, clamped to the layout limits)."""
    width: float
    height: float


# --- Scene Graph ---

class PositionedNode(_CamelModel):
    """A node placed by the layout engine."""
    id: str
    x: float
    y: float
    width: float
    height: float
    depth: int
    is_collapsed: bool = False
    has_notes: bool = False
    has_children: bool = False
    # Carried so renderers need no second lookup into the document
    text: str = ""
    class_tag: str = DEFAULT_CLASS_TAG

    def right(self) -> float:
        return self.x + self.width

    def bottom(self) -> float:
        return self.y + self.height


class Connector(_CamelModel):
    """A parent -> child edge in the scene graph (topology only)."""
    from_id: str
    to_id: str


class Bounds(_CamelModel):
    """Bounding box of all positioned nodes."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


class SceneGraph(_CamelModel):
    """Layout output: positioned nodes, connectors and their bounding box."""
    nodes: tuple[PositionedNode, ...] = ()
    connectors: tuple[Connector, ...] = ()
    bounds: Bounds

    def get_node(self, node_id: str) -> Optional[PositionedNode]:
        """Get a positioned node by ID (O(n))."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class BezierCurve(_CamelModel):
    """Cubic Bezier from a parent's right-middle to a child's left-middle."""
    x1: float
    y1: float
    cp1x: float
    cp1y: float
    cp2x: float
    cp2y: float
    x2: float
    y2: float

    def to_svg_path(self) -> str:
        """Render as an SVG path `d` attribute."""
        return (
            f"M {_fmt(self.x1)} {_fmt(self.y1)} "
            f"C {_fmt(self.cp1x)} {_fmt(self.cp1y)}, "
            f"{_fmt(self.cp2x)} {_fmt(self.cp2y)}, "
            f"{_fmt(self.x2)} {_fmt(self.y2)}"
        )


class RoutedConnector(_CamelModel):
    """A connector resolved to drawable geometry."""
    id: str
    from_id: str
    to_id: str
    curve: BezierCurve
    path: str


def _fmt(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")


# --- API Request Models ---

class ActionRequest(BaseModel):
    """Request to dispatch an action."""
    type: str
    params: dict[str, Any] = Field(default_factory=dict)


class ImportRequest(BaseModel):
    """Request to replace the document with a serialized snapshot."""
    snapshot: str


class LayoutRequest(BaseModel):
    """Request to lay out the current document."""
    collapsed_ids: list[str] = Field(default_factory=list)
    layout: Optional[LayoutConfig] = None
    font: Optional[FontSpec] = None
    include_paths: bool = False  # Resolve connectors to SVG paths
    curvature: float = DEFAULT_CURVATURE


class MeasureRequest(BaseModel):
    """Request to size a node box for a piece of text."""
    text: str
    layout: Optional[LayoutConfig] = None
    font: Optional[FontSpec] = None
