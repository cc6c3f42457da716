"""
Document analysis - Tree statistics and summarization utilities.

Provides analysis functions that can be used by both the backend and MCP tools
to understand document structure.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .tree import iter_with_depth

if TYPE_CHECKING:
    from .models import Node


@dataclass
class NodeBranchInfo:
    """Branching information for a single node."""
    node_id: str
    text: str
    depth: int
    child_count: int = 0


@dataclass
class DocumentSummary:
    """Complete summary of a document's structure."""
    root_text: str
    total_nodes: int
    leaf_count: int
    max_depth: int
    nodes_by_class: dict[str, int]
    nodes_with_notes: int
    widest_nodes: list[NodeBranchInfo]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "root_text": self.root_text,
            "total_nodes": self.total_nodes,
            "leaf_count": self.leaf_count,
            "max_depth": self.max_depth,
            "nodes_by_class": self.nodes_by_class,
            "nodes_with_notes": self.nodes_with_notes,
            "widest_nodes": [
                {
                    "id": n.node_id,
                    "text": n.text,
                    "depth": n.depth,
                    "children": n.child_count
                }
                for n in self.widest_nodes
            ]
        }


def calculate_branching(document: "Node") -> list[NodeBranchInfo]:
    """
    Calculate child counts for all nodes.

    Args:
        document: Root node of the document

    Returns:
        List of NodeBranchInfo in pre-order
    """
    return [
        NodeBranchInfo(
            node_id=node.id,
            text=node.text,
            depth=depth,
            child_count=len(node.children)
        )
        for node, depth in iter_with_depth(document)
    ]


def summarize_document(document: "Node", top_n: int = 5) -> DocumentSummary:
    """
    Generate a comprehensive summary of a document.

    Args:
        document: Root node of the document
        top_n: Number of widest nodes to include

    Returns:
        DocumentSummary object with all analysis results
    """
    branching = calculate_branching(document)

    # Count by class tag
    class_counts: dict[str, int] = defaultdict(int)
    notes_count = 0
    for node, _depth in iter_with_depth(document):
        class_counts[node.class_tag] += 1
        if node.has_notes:
            notes_count += 1

    # Widest nodes first; stable sort keeps pre-order among ties
    sorted_by_children = sorted(branching, key=lambda n: n.child_count, reverse=True)
    widest = [n for n in sorted_by_children[:top_n] if n.child_count > 0]

    return DocumentSummary(
        root_text=document.text,
        total_nodes=len(branching),
        leaf_count=sum(1 for n in branching if n.child_count == 0),
        max_depth=max(n.depth for n in branching),
        nodes_by_class=dict(class_counts),
        nodes_with_notes=notes_count,
        widest_nodes=widest
    )
