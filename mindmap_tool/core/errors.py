"""
Error taxonomy for document and runtime operations.

All errors derive from ValueError so API layers can treat them as bad input.
Structural misses (unknown node ids, removing the root) are not errors: the
tree operations return the document unchanged instead.
"""

from typing import Iterable


class MindmapError(ValueError):
    """Base class for mindmap errors."""


class UnknownActionError(MindmapError):
    """Dispatch was called with an action type that has no registered handler."""

    def __init__(self, action_type: str):
        self.action_type = action_type
        super().__init__(f"Unknown action: {action_type}")


class ImportParseError(MindmapError):
    """A serialized document could not be parsed."""


class DuplicateNodeIdError(MindmapError):
    """A mutation would leave two nodes with the same id."""

    def __init__(self, node_ids: Iterable[str]):
        self.node_ids = sorted(set(node_ids))
        super().__init__(f"Duplicate node ids: {', '.join(self.node_ids)}")


class ActionParamsError(MindmapError):
    """Action params are missing fields or have the wrong types."""

    def __init__(self, action_type: str, detail: str):
        self.action_type = action_type
        self.detail = detail
        super().__init__(f"Invalid params for {action_type}: {detail}")
