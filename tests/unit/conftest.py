"""Shared test fixtures."""

import pytest

from mindmap_tool.backend.runtime import CommandRuntime
from mindmap_tool.core.models import Node

# root -> a, b (both leaves)
FLAT_DOCUMENT = {
    "id": "root",
    "text": "R",
    "classTag": "default",
    "children": [
        {"id": "a", "text": "A", "classTag": "default"},
        {"id": "b", "text": "B", "classTag": "default"},
    ],
}

# root -> a -> a1, root -> b
NESTED_DOCUMENT = {
    "id": "root",
    "text": "Project",
    "classTag": "default",
    "children": [
        {
            "id": "a",
            "text": "Research",
            "classTag": "important",
            "notes": "read the papers first",
            "children": [
                {"id": "a1", "text": "Sources", "classTag": "default"},
            ],
        },
        {"id": "b", "text": "Build", "classTag": "default"},
    ],
}


@pytest.fixture
def flat_doc() -> Node:
    """Root with two leaf children a and b."""
    return Node.from_json_dict(FLAT_DOCUMENT)


@pytest.fixture
def nested_doc() -> Node:
    """Root with child a (which has child a1) and leaf b."""
    return Node.from_json_dict(NESTED_DOCUMENT)


@pytest.fixture
def runtime(flat_doc: Node) -> CommandRuntime:
    """Runtime over the flat document with the built-in actions."""
    return CommandRuntime(flat_doc)
