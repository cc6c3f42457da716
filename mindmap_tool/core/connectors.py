"""
Connector geometry.

The scene graph only records which nodes are connected. These functions turn
a pair of node rectangles into a cubic Bezier running from the parent's
right-middle anchor to the child's left-middle anchor.
"""

from typing import Protocol

from .models import DEFAULT_CURVATURE, BezierCurve, RoutedConnector, SceneGraph


class Rect(Protocol):
    """Anything with a position and size (PositionedNode, Node boxes, ...)."""
    x: float
    y: float
    width: float
    height: float


def connector_geometry(source: Rect, target: Rect, curvature: float = DEFAULT_CURVATURE) -> BezierCurve:
    """
    Compute the Bezier curve between two node rectangles.

    Args:
        source: Parent rectangle (curve starts at its right-middle)
        target: Child rectangle (curve ends at its left-middle)
        curvature: Fraction of the horizontal distance used for the control points

    Returns:
        BezierCurve with anchors and horizontal control points
    """
    x1 = source.x + source.width
    y1 = source.y + source.height / 2
    x2 = target.x
    y2 = target.y + target.height / 2
    dx = x2 - x1

    return BezierCurve(
        x1=x1,
        y1=y1,
        cp1x=x1 + curvature * dx,
        cp1y=y1,
        cp2x=x2 - curvature * dx,
        cp2y=y2,
        x2=x2,
        y2=y2,
    )


def connector_path(source: Rect, target: Rect, curvature: float = DEFAULT_CURVATURE) -> str:
    """SVG path data for the connector between two rectangles."""
    return connector_geometry(source, target, curvature).to_svg_path()


def route_connectors(scene: SceneGraph, curvature: float = DEFAULT_CURVATURE) -> list[RoutedConnector]:
    """
    Resolve every connector of a scene graph to drawable geometry.

    Connectors whose endpoints are not positioned in the scene are skipped.
    """
    positions = {node.id: node for node in scene.nodes}
    routed: list[RoutedConnector] = []

    for connector in scene.connectors:
        source = positions.get(connector.from_id)
        target = positions.get(connector.to_id)
        if source is None or target is None:
            continue

        curve = connector_geometry(source, target, curvature)
        routed.append(RoutedConnector(
            id=f"{connector.from_id}-{connector.to_id}",
            from_id=connector.from_id,
            to_id=connector.to_id,
            curve=curve,
            path=curve.to_svg_path(),
        ))

    return routed
