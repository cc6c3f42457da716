"""
Document validation - Check mind map documents for structural issues.

Provides validation that can be used by both the backend and MCP tools
to ensure document integrity.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .models import DEFAULT_CLASS_TAG, DEFAULT_NODE_TEXT
from .tree import duplicate_ids, iter_nodes

if TYPE_CHECKING:
    from .models import Node


class IssueSeverity(str, Enum):
    """Severity levels for validation issues."""
    ERROR = "error"      # Invalid state, must be fixed
    WARNING = "warning"  # Potential problem, should review
    INFO = "info"        # Informational, may be intentional


@dataclass
class ValidationIssue:
    """A single validation issue found in a document."""
    severity: IssueSeverity
    message: str
    node_id: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.severity.value,
            "message": self.message
        }
        if self.node_id:
            result["node_id"] = self.node_id
        return result


def validate_document(
    document: "Node",
    known_classes: Optional[Iterable[str]] = None
) -> list[ValidationIssue]:
    """
    Validate a document and return a list of issues.

    Checks for:
    - Duplicate node ids - ERROR
    - Empty or default text - WARNING
    - Class tags missing from the style map (when known_classes is given) - WARNING
    - Blank notes - INFO
    - Document with only the root node - INFO

    Args:
        document: Root node of the document
        known_classes: Class tags defined by the host's style map

    Returns:
        List of ValidationIssue objects
    """
    issues: list[ValidationIssue] = []

    for node_id in sorted(duplicate_ids(document)):
        issues.append(ValidationIssue(
            severity=IssueSeverity.ERROR,
            message=f"Duplicate node id: {node_id}",
            node_id=node_id
        ))

    if not document.children:
        issues.append(ValidationIssue(
            severity=IssueSeverity.INFO,
            message="Document has only the root node"
        ))

    classes = None
    if known_classes is not None:
        classes = set(known_classes) | {DEFAULT_CLASS_TAG}

    for node in iter_nodes(document):
        if not node.text.strip() or node.text == DEFAULT_NODE_TEXT:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message="Node has default or empty text",
                node_id=node.id
            ))

        if classes is not None and node.class_tag not in classes:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                message=f"Unknown class tag: {node.class_tag}",
                node_id=node.id
            ))

        if node.notes is not None and not node.notes.strip():
            issues.append(ValidationIssue(
                severity=IssueSeverity.INFO,
                message="Node has blank notes",
                node_id=node.id
            ))

    return issues


def validation_summary(issues: list[ValidationIssue]) -> dict:
    """
    Create a summary of validation issues.

    Args:
        issues: List of validation issues

    Returns:
        Dictionary with counts by severity
    """
    errors = len([i for i in issues if i.severity == IssueSeverity.ERROR])
    return {
        "total": len(issues),
        "errors": errors,
        "warnings": len([i for i in issues if i.severity == IssueSeverity.WARNING]),
        "info": len([i for i in issues if i.severity == IssueSeverity.INFO]),
        "valid": errors == 0
    }
