#!/usr/bin/env python3
"""
Mindmap Tool MCP Server

Provides MCP tools for AI agents to interact with the mind map editor.
All changes are immediately reflected in the frontend via WebSocket updates.
"""

import httpx
from mcp.server.fastmcp import FastMCP
from typing import Optional
import json
from urllib.parse import quote

from .config import API_BASE

# Create MCP server
mcp = FastMCP("mindmap-tool")


# --- HTTP Client Helper ---

def _client() -> httpx.Client:
    return httpx.Client(timeout=30.0)


def api_request(method: str, endpoint: str, **kwargs) -> dict:
    """Make a request to the mindmap tool backend."""
    url = f"{API_BASE}{endpoint}"
    with _client() as client:
        if method == "GET":
            response = client.get(url, params=kwargs.get("params"))
        elif method == "POST":
            response = client.post(url, json=kwargs.get("json"), params=kwargs.get("params"))
        else:
            raise ValueError(f"Unknown method: {method}")

        if response.status_code >= 400:
            try:
                error = response.json().get("detail", "Unknown error")
            except ValueError:
                error = response.text or f"HTTP {response.status_code}"
            raise RuntimeError(f"API error: {error}")

        return response.json()


def _dispatch(action_type: str, params: dict) -> str:
    result = api_request("POST", "/actions", json={"type": action_type, "params": params})
    return json.dumps(result, indent=2)


# ============================================================================
# CORE INSPECTION TOOLS
# ============================================================================

@mcp.tool()
def mindmap_get_current() -> str:
    """
    Get the full current mind map.

    Returns the document tree (id, text, classTag, notes, children) together
    with the undo/redo history counters. Use this to understand what's in
    the mind map before making changes.
    """
    result = api_request("GET", "/document")
    return json.dumps(result, indent=2)


@mcp.tool()
def mindmap_find_node(node_id: str) -> str:
    """
    Get one node and its subtree.

    Args:
        node_id: ID of the node to look up
    """
    result = api_request("GET", f"/nodes/{quote(node_id, safe='')}")
    return json.dumps(result, indent=2)


# ============================================================================
# EDITING TOOLS
# ============================================================================

@mcp.tool()
def mindmap_add_child(
    parent_id: str,
    text: str = "New Node",
    class_tag: Optional[str] = None,
    notes: Optional[str] = None,
    node_id: Optional[str] = None,
) -> str:
    """
    Append a child node under a parent.

    Args:
        parent_id: ID of the parent node
        text: Text of the new node
        class_tag: Style class of the new node (e.g. "important")
        notes: Free-form notes attached to the node
        node_id: Explicit ID (generated if omitted; must not already exist)

    Returns the updated document.
    """
    params = {"parentId": parent_id, "text": text}
    if class_tag is not None:
        params["classTag"] = class_tag
    if notes is not None:
        params["notes"] = notes
    if node_id is not None:
        params["id"] = node_id
    return _dispatch("addChild", params)


@mcp.tool()
def mindmap_set_text(node_id: str, text: str) -> str:
    """
    Change the text of a node.

    Args:
        node_id: ID of the node to edit
        text: New text
    """
    return _dispatch("setText", {"nodeId": node_id, "text": text})


@mcp.tool()
def mindmap_set_notes(node_id: str, notes: Optional[str] = None) -> str:
    """
    Set or clear the notes of a node.

    Args:
        node_id: ID of the node to edit
        notes: New notes (omit to clear)
    """
    return _dispatch("setNotes", {"nodeId": node_id, "notes": notes})


@mcp.tool()
def mindmap_set_class(node_id: str, class_tag: str) -> str:
    """
    Change the style class of a node.

    Args:
        node_id: ID of the node to edit
        class_tag: New class tag ("default" for the standard style)
    """
    return _dispatch("setClass", {"nodeId": node_id, "classTag": class_tag})


@mcp.tool()
def mindmap_remove_node(node_id: str) -> str:
    """
    Remove a node and its whole subtree.

    The root node cannot be removed; removing it leaves the document unchanged.

    Args:
        node_id: ID of the node to remove
    """
    return _dispatch("removeNode", {"nodeId": node_id})


@mcp.tool()
def mindmap_paste_nodes(parent_id: str, nodes: list[dict]) -> str:
    """
    Paste copies of subtrees under a parent, in one undoable step.

    Every pasted node gets a fresh ID, so the same clipboard can be pasted
    repeatedly.

    Args:
        parent_id: ID of the node receiving the copies
        nodes: Subtrees in the document shape ({text, classTag?, notes?, children?})
    """
    return _dispatch("pasteNodes", {"parentId": parent_id, "nodes": nodes})


# ============================================================================
# HISTORY TOOLS
# ============================================================================

@mcp.tool()
def mindmap_undo() -> str:
    """
    Undo the last change.

    Returns success status and the restored document.
    """
    result = api_request("POST", "/undo")
    return json.dumps(result, indent=2)


@mcp.tool()
def mindmap_redo() -> str:
    """
    Redo the last undone change.

    Returns success status and the restored document.
    """
    result = api_request("POST", "/redo")
    return json.dumps(result, indent=2)


# ============================================================================
# SNAPSHOT TOOLS
# ============================================================================

@mcp.tool()
def mindmap_export(indent: Optional[int] = 2) -> str:
    """
    Export the mind map as a JSON snapshot string.

    Args:
        indent: Indentation for pretty printing (None for compact output)
    """
    result = api_request("GET", "/document/export", params={"indent": indent} if indent is not None else None)
    return result["snapshot"]


@mcp.tool()
def mindmap_import(snapshot: str) -> str:
    """
    Replace the whole mind map with a JSON snapshot (undoable).

    Args:
        snapshot: Document JSON as produced by mindmap_export
    """
    result = api_request("POST", "/document/import", json={"snapshot": snapshot})
    return json.dumps(result, indent=2)


# ============================================================================
# LAYOUT & ANALYSIS TOOLS
# ============================================================================

@mcp.tool()
def mindmap_layout(collapsed_ids: Optional[list[str]] = None, include_paths: bool = False) -> str:
    """
    Compute node positions for the current mind map.

    Args:
        collapsed_ids: Nodes whose subtrees should be hidden
        include_paths: Also return SVG paths for the connectors

    Returns the scene graph: positioned nodes, connectors and bounds.
    """
    result = api_request("POST", "/layout", json={
        "collapsed_ids": collapsed_ids or [],
        "include_paths": include_paths,
    })
    return json.dumps(result, indent=2)


@mcp.tool()
def mindmap_validate(known_classes: Optional[list[str]] = None) -> str:
    """
    Check the mind map for structural issues.

    Reports duplicate ids (error), empty or placeholder text and unknown
    class tags (warnings), blank notes and root-only documents (info).

    Args:
        known_classes: Class tags defined by the style map, if unknown tags should be flagged
    """
    params = {"known_classes": known_classes} if known_classes else None
    result = api_request("GET", "/document/validate", params=params)
    return json.dumps(result, indent=2)


@mcp.tool()
def mindmap_summarize(top_n: int = 5) -> str:
    """
    Summarize the structure of the mind map.

    Returns node and leaf counts, maximum depth, class tag usage, how many
    nodes have notes, and the nodes with the most children.

    Args:
        top_n: Number of widest nodes to list
    """
    result = api_request("GET", "/document/summary", params={"top_n": top_n})
    return json.dumps(result, indent=2)


# ============================================================================
# MAIN
# ============================================================================

def main():
    mcp.run()


if __name__ == "__main__":
    main()
