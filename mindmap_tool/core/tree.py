"""
Document tree operations.

Every operation takes a document (the root Node) and returns a new document.
Only the nodes on the path from the root to the edited node are copied;
untouched subtrees are shared with the input.

Operations that target a missing node id are no-ops and return the input
document itself, so callers can fire commands at nodes that may have just
been removed by an undo. Use `find` when absence matters.
"""

from collections import Counter
from collections.abc import Callable, Iterator, Mapping
from typing import Any, Optional, Union

from .errors import DuplicateNodeIdError
from .models import (
    DEFAULT_NODE_TEXT,
    LAYOUT_FIELDS,
    Node,
    NodeProperty,
    generate_node_id,
)

# Attribute name on Node for each settable property
_PROPERTY_FIELDS = {
    NodeProperty.TEXT: "text",
    NodeProperty.NOTES: "notes",
    NodeProperty.CLASS_TAG: "class_tag",
}

NodePath = tuple[int, ...]  # Child indexes from the root down to a node


# --- Lookup ---

def find(doc: Node, node_id: str) -> Optional[Node]:
    """Find a node by ID (pre-order, first match wins)."""
    path = _locate(doc, node_id)
    if path is None:
        return None
    return _node_at(doc, path)


def iter_nodes(doc: Node) -> Iterator[Node]:
    """Yield every node in pre-order."""
    for node, _depth in iter_with_depth(doc):
        yield node


def iter_with_depth(doc: Node, depth: int = 0) -> Iterator[tuple[Node, int]]:
    """Yield (node, depth) pairs in pre-order."""
    stack = [(doc, depth)]
    while stack:
        node, node_depth = stack.pop()
        yield node, node_depth
        stack.extend((child, node_depth + 1) for child in reversed(node.children))


def collect_ids(doc: Node) -> set[str]:
    """Get the set of all node IDs in a tree."""
    return {node.id for node in iter_nodes(doc)}


def duplicate_ids(doc: Node) -> set[str]:
    """Get IDs that appear more than once in a tree."""
    seen: set[str] = set()
    duplicates: set[str] = set()
    for node in iter_nodes(doc):
        if node.id in seen:
            duplicates.add(node.id)
        seen.add(node.id)
    return duplicates


def find_parent(doc: Node, node_id: str) -> Optional[Node]:
    """Find the parent of a node (None for the root or a missing node)."""
    path = _locate(doc, node_id)
    if not path:
        return None
    return _node_at(doc, path[:-1])


# --- Property Setters ---

def set_property(doc: Node, node_id: str, prop: NodeProperty, value: Optional[str]) -> Node:
    """
    Set one property of a node.

    Args:
        doc: Document to edit
        node_id: Target node
        prop: Which property to set
        value: New value (only notes may be None)

    Returns:
        The edited document, or `doc` itself if the node does not exist
    """
    field_name = _PROPERTY_FIELDS[NodeProperty(prop)]
    if value is None and prop != NodeProperty.NOTES:
        raise TypeError(f"{NodeProperty(prop).value} cannot be None")

    path = _locate(doc, node_id)
    if path is None:
        return doc
    return _rebuild(doc, path, lambda node: node.model_copy(update={field_name: value}))


def set_text(doc: Node, node_id: str, text: str) -> Node:
    return set_property(doc, node_id, NodeProperty.TEXT, text)


def set_notes(doc: Node, node_id: str, notes: Optional[str]) -> Node:
    return set_property(doc, node_id, NodeProperty.NOTES, notes)


def set_class_tag(doc: Node, node_id: str, class_tag: str) -> Node:
    return set_property(doc, node_id, NodeProperty.CLASS_TAG, class_tag)


# --- Structural Edits ---

def add_child(doc: Node, parent_id: str, node_data: Union[Node, Mapping[str, Any]]) -> Node:
    """
    Append a new child (with its subtree) to a parent's children.

    Geometry fields (x, y, width, height) in `node_data` are dropped. If no
    id is given, a fresh one that is not used anywhere in the tree is
    generated.

    Args:
        doc: Document to edit
        parent_id: Node that receives the child
        node_data: A Node, or a dict in the serialized document shape

    Returns:
        The edited document, or `doc` itself if the parent does not exist

    Raises:
        DuplicateNodeIdError: if the new subtree reuses an existing id
    """
    path = _locate(doc, parent_id)
    if path is None:
        return doc

    existing = collect_ids(doc)
    child = _build_child(node_data, existing)

    counts = Counter(node.id for node in iter_nodes(child))
    clashes = {nid for nid, count in counts.items() if count > 1 or nid in existing}
    if clashes:
        raise DuplicateNodeIdError(clashes)

    return _rebuild(doc, path, lambda parent: parent.model_copy(
        update={"children": parent.children + (child,)}
    ))


def remove_node(doc: Node, node_id: str) -> Node:
    """
    Remove a node together with its whole subtree.

    The root can never be removed. Each node's direct children are checked
    before descending into them, and the first match is removed.

    Returns:
        The edited document, or `doc` itself if nothing was removed
    """
    if node_id == doc.id:
        return doc

    path = _locate_in_children(doc, node_id)
    if path is None:
        return doc

    index = path[-1]
    return _rebuild(doc, path[:-1], lambda parent: parent.model_copy(
        update={"children": parent.children[:index] + parent.children[index + 1:]}
    ))


def copy_subtree(node: Node, id_factory: Callable[[], str] = generate_node_id) -> Node:
    """Deep-copy a subtree, giving every node a new ID (used for paste)."""
    return node.model_copy(update={
        "id": id_factory(),
        "children": tuple(copy_subtree(child, id_factory) for child in node.children),
    })


# --- Internals ---

def _build_child(node_data: Union[Node, Mapping[str, Any]], existing: set[str]) -> Node:
    """Turn node data into a Node with an id that is free in the tree."""
    if isinstance(node_data, Node):
        return node_data

    data = {key: value for key, value in node_data.items() if key not in LAYOUT_FIELDS}
    data.setdefault("text", DEFAULT_NODE_TEXT)
    if not data.get("id"):
        new_id = generate_node_id()
        while new_id in existing:
            new_id = generate_node_id()
        data["id"] = new_id
    return Node.from_json_dict(data)


def _locate(node: Node, node_id: str, path: NodePath = ()) -> Optional[NodePath]:
    """Pre-order search returning the child-index path to a node."""
    if node.id == node_id:
        return path
    for index, child in enumerate(node.children):
        found = _locate(child, node_id, path + (index,))
        if found is not None:
            return found
    return None


def _locate_in_children(node: Node, node_id: str, path: NodePath = ()) -> Optional[NodePath]:
    """Search a node's direct children first, then recurse into each child."""
    for index, child in enumerate(node.children):
        if child.id == node_id:
            return path + (index,)
    for index, child in enumerate(node.children):
        found = _locate_in_children(child, node_id, path + (index,))
        if found is not None:
            return found
    return None


def _node_at(doc: Node, path: NodePath) -> Node:
    node = doc
    for index in path:
        node = node.children[index]
    return node


def _rebuild(node: Node, path: NodePath, edit: Callable[[Node], Node]) -> Node:
    """Apply `edit` to the node at `path`, copying only its ancestors."""
    if not path:
        return edit(node)
    index = path[0]
    children = node.children
    new_child = _rebuild(children[index], path[1:], edit)
    return node.model_copy(update={
        "children": children[:index] + (new_child,) + children[index + 1:]
    })
