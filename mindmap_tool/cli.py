#!/usr/bin/env python3
"""Mindmap tool CLI - subcommands for the mind map editor backend."""

import argparse
import json
import sys
import urllib.request
import urllib.error
import urllib.parse

from .config import API_BASE, API_HOST, API_PORT


def _json_out(data):
    print(json.dumps(data))
    sys.exit(0)


def _api_request(method, endpoint, data=None, params=None):
    """Make a request to the mindmap tool backend."""
    url = f"{API_BASE}{endpoint}"

    if params:
        filtered = {k: v for k, v in params.items() if v is not None}
        if filtered:
            url = f"{url}?{urllib.parse.urlencode(filtered, doseq=True)}"

    headers = {"Content-Type": "application/json"}
    body = json.dumps(data).encode() if data is not None else None

    req = urllib.request.Request(url, data=body, headers=headers, method=method)

    try:
        with urllib.request.urlopen(req, timeout=30) as response:
            return json.loads(response.read().decode())
    except urllib.error.HTTPError as e:
        error_body = e.read().decode()
        try:
            error_data = json.loads(error_body)
            _json_out({"status": "error", "error": f"API error: {error_data.get('detail', 'Unknown error')}"})
        except json.JSONDecodeError:
            _json_out({"status": "error", "error": f"API error ({e.code}): {error_body}"})
    except urllib.error.URLError as e:
        _json_out({"status": "error", "error": f"Connection failed: {e.reason}. Is the mindmap-tool backend running?"})


def _parse_json_arg(value, name):
    """Parse a JSON argument, exiting with an error object if it is malformed."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        _json_out({"status": "error", "error": f"--{name} is not valid JSON: {e}"})


def _dispatch(action_type, params):
    return _api_request("POST", "/actions", data={"type": action_type, "params": params})


def _current_document():
    from .core.models import Node

    state = _api_request("GET", "/document")
    return Node.from_json_dict(state["document"])


# ── Service ──────────────────────────────────────────────────────────────────

def cmd_serve(args):
    import uvicorn
    from .logging_config import configure_logging

    configure_logging(verbose=args.verbose)
    uvicorn.run("mindmap_tool.backend.main:app", host=args.host, port=args.port)


# ── Core ─────────────────────────────────────────────────────────────────────

def cmd_get_current(args):
    _json_out(_api_request("GET", "/document"))


def cmd_find_node(args):
    _json_out(_api_request("GET", f"/nodes/{urllib.parse.quote(args.node_id, safe='')}"))


# ── Actions ──────────────────────────────────────────────────────────────────

def cmd_add_child(args):
    params = {"parentId": args.parent_id}
    if args.text is not None:
        params["text"] = args.text
    if args.id is not None:
        params["id"] = args.id
    if args.class_tag is not None:
        params["classTag"] = args.class_tag
    if args.notes is not None:
        params["notes"] = args.notes
    _json_out(_dispatch("addChild", params))


def cmd_set_text(args):
    _json_out(_dispatch("setText", {"nodeId": args.node_id, "text": args.text}))


def cmd_set_notes(args):
    # An omitted --notes clears the notes
    _json_out(_dispatch("setNotes", {"nodeId": args.node_id, "notes": args.notes}))


def cmd_set_class(args):
    _json_out(_dispatch("setClass", {"nodeId": args.node_id, "classTag": args.class_tag}))


def cmd_remove_node(args):
    _json_out(_dispatch("removeNode", {"nodeId": args.node_id}))


def cmd_paste_nodes(args):
    nodes = _parse_json_arg(args.nodes, "nodes")
    if not isinstance(nodes, list):
        nodes = [nodes]
    _json_out(_dispatch("pasteNodes", {"parentId": args.parent_id, "nodes": nodes}))


def cmd_dispatch(args):
    params = _parse_json_arg(args.params, "params") or {}
    _json_out(_dispatch(args.type, params))


# ── History ──────────────────────────────────────────────────────────────────

def cmd_undo(args):
    _json_out(_api_request("POST", "/undo"))


def cmd_redo(args):
    _json_out(_api_request("POST", "/redo"))


# ── Snapshots ────────────────────────────────────────────────────────────────

def cmd_export(args):
    result = _api_request("GET", "/document/export", params={"indent": args.indent})
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(result["snapshot"])
        _json_out({"success": True, "file_path": args.output})
    _json_out(result)


def cmd_import(args):
    try:
        if args.file_path == "-":
            snapshot = sys.stdin.read()
        else:
            with open(args.file_path, encoding="utf-8") as f:
                snapshot = f.read()
    except OSError as e:
        _json_out({"status": "error", "error": f"Cannot read {args.file_path}: {e}"})
    _json_out(_api_request("POST", "/document/import", data={"snapshot": snapshot}))


# ── Layout ───────────────────────────────────────────────────────────────────

def cmd_layout(args):
    data = {
        "collapsed_ids": args.collapsed or [],
        "include_paths": args.paths,
        "curvature": args.curvature,
    }
    layout_config = _parse_json_arg(args.config, "config")
    if layout_config is not None:
        data["layout"] = layout_config
    _json_out(_api_request("POST", "/layout", data=data))


def cmd_measure(args):
    _json_out(_api_request("POST", "/measure", data={"text": args.text}))


# ── Analysis ─────────────────────────────────────────────────────────────────

def cmd_validate(args):
    from .core.validation import validate_document, validation_summary

    document = _current_document()
    issues = validate_document(document, known_classes=args.known_class)
    summary = validation_summary(issues)

    _json_out({
        "success": True,
        "issues": [issue.to_dict() for issue in issues],
        "summary": summary
    })


def cmd_summarize(args):
    from .core.analysis import summarize_document

    document = _current_document()
    summary = summarize_document(document, top_n=args.top)

    _json_out({
        "success": True,
        "summary": summary.to_dict()
    })


# ── Main ─────────────────────────────────────────────────────────────────────

def build_parser():
    parser = argparse.ArgumentParser(description="Mindmap tool CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    # Service
    p = sub.add_parser("serve")
    p.add_argument("--host", default=API_HOST)
    p.add_argument("--port", type=int, default=API_PORT)
    p.add_argument("--verbose", "-v", action="store_true")

    # Core
    sub.add_parser("get-current")

    p = sub.add_parser("find-node")
    p.add_argument("--node-id", required=True)

    # Actions
    p = sub.add_parser("add-child")
    p.add_argument("--parent-id", required=True)
    p.add_argument("--text", default=None)
    p.add_argument("--id", default=None)
    p.add_argument("--class-tag", default=None)
    p.add_argument("--notes", default=None)

    p = sub.add_parser("set-text")
    p.add_argument("--node-id", required=True)
    p.add_argument("--text", required=True)

    p = sub.add_parser("set-notes")
    p.add_argument("--node-id", required=True)
    p.add_argument("--notes", default=None)

    p = sub.add_parser("set-class")
    p.add_argument("--node-id", required=True)
    p.add_argument("--class-tag", required=True)

    p = sub.add_parser("remove-node")
    p.add_argument("--node-id", required=True)

    p = sub.add_parser("paste-nodes")
    p.add_argument("--parent-id", required=True)
    p.add_argument("--nodes", required=True, help="JSON node or list of nodes")

    p = sub.add_parser("dispatch")
    p.add_argument("--type", required=True)
    p.add_argument("--params", default=None, help="JSON object")

    # History
    sub.add_parser("undo")
    sub.add_parser("redo")

    # Snapshots
    p = sub.add_parser("export")
    p.add_argument("--indent", type=int, default=None)
    p.add_argument("--output", default=None)

    p = sub.add_parser("import")
    p.add_argument("file_path", help="Snapshot file, or - for stdin")

    # Layout
    p = sub.add_parser("layout")
    p.add_argument("--collapsed", action="append", default=None, help="Collapsed node id (repeatable)")
    p.add_argument("--paths", action="store_true", help="Include connector SVG paths")
    p.add_argument("--curvature", type=float, default=0.3)
    p.add_argument("--config", default=None, help="Layout config as JSON")

    p = sub.add_parser("measure")
    p.add_argument("--text", required=True)

    # Analysis
    p = sub.add_parser("validate")
    p.add_argument("--known-class", action="append", default=None, help="Class tag in the style map (repeatable)")

    p = sub.add_parser("summarize")
    p.add_argument("--top", type=int, default=5)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    cmd_map = {
        "serve": cmd_serve,
        "get-current": cmd_get_current,
        "find-node": cmd_find_node,
        "add-child": cmd_add_child,
        "set-text": cmd_set_text,
        "set-notes": cmd_set_notes,
        "set-class": cmd_set_class,
        "remove-node": cmd_remove_node,
        "paste-nodes": cmd_paste_nodes,
        "dispatch": cmd_dispatch,
        "undo": cmd_undo,
        "redo": cmd_redo,
        "export": cmd_export,
        "import": cmd_import,
        "layout": cmd_layout,
        "measure": cmd_measure,
        "validate": cmd_validate,
        "summarize": cmd_summarize,
    }
    cmd_map[args.command](args)


if __name__ == "__main__":
    main()
