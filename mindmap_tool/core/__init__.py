"""
Mindmap Tool Core - Document model, tree operations, layout and connector geometry.

This module provides the core functionality used by the backend runtime,
the HTTP API and the MCP tools, ensuring a single source of truth for all
document logic.
"""

from .models import (
    # Enums
    NodeProperty,
    # Document
    Node,
    generate_node_id,
    DEFAULT_CLASS_TAG,
    DEFAULT_NODE_TEXT,
    # Layout config
    Spacing,
    LayoutConfig,
    FontSpec,
    DEFAULT_LAYOUT,
    DEFAULT_FONT,
    DEFAULT_CURVATURE,
    # Scene graph
    TextExtent,
    BoxSize,
    PositionedNode,
    Connector,
    Bounds,
    SceneGraph,
    BezierCurve,
    RoutedConnector,
    # Request models (for API)
    ActionRequest,
    ImportRequest,
    LayoutRequest,
    MeasureRequest,
)

from .errors import (
    MindmapError,
    UnknownActionError,
    ImportParseError,
    DuplicateNodeIdError,
    ActionParamsError,
)
from .tree import find, add_child, remove_node, set_property, set_text, set_notes, set_class_tag
from .layout import layout, measure, toggle_collapsed, TextMeasurer, HeuristicTextMeasurer
from .connectors import connector_geometry, connector_path, route_connectors
from .validation import validate_document, validation_summary, ValidationIssue, IssueSeverity
from .analysis import summarize_document

__all__ = [
    # Enums
    "NodeProperty",
    # Document
    "Node",
    "generate_node_id",
    "DEFAULT_CLASS_TAG",
    "DEFAULT_NODE_TEXT",
    # Layout config
    "Spacing",
    "LayoutConfig",
    "FontSpec",
    "DEFAULT_LAYOUT",
    "DEFAULT_FONT",
    "DEFAULT_CURVATURE",
    # Scene graph
    "TextExtent",
    "BoxSize",
    "PositionedNode",
    "Connector",
    "Bounds",
    "SceneGraph",
    "BezierCurve",
    "RoutedConnector",
    # Request models
    "ActionRequest",
    "ImportRequest",
    "LayoutRequest",
    "MeasureRequest",
    # Errors
    "MindmapError",
    "UnknownActionError",
    "ImportParseError",
    "DuplicateNodeIdError",
    "ActionParamsError",
    # Tree
    "find",
    "add_child",
    "remove_node",
    "set_property",
    "set_text",
    "set_notes",
    "set_class_tag",
    # Layout
    "layout",
    "measure",
    "toggle_collapsed",
    "TextMeasurer",
    "HeuristicTextMeasurer",
    # Connectors
    "connector_geometry",
    "connector_path",
    "route_connectors",
    # Validation
    "validate_document",
    "validation_summary",
    "ValidationIssue",
    "IssueSeverity",
    # Analysis
    "summarize_document",
]
