"""
Built-in action handlers for the command runtime.

Each handler receives the current document, the action params and the
dispatch context, and returns the replacement document. Params are parsed
with pydantic models; malformed params raise ActionParamsError.

Actions:
- updateNodeProperty {nodeId, property, value}
- setText {nodeId, text}, setNotes {nodeId, notes}, setClass {nodeId, classTag}
- addChild {parentId, text?, ...nodeData}
- removeNode {nodeId}
- pasteNodes {parentId, nodes}
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..core import tree
from ..core.errors import ActionParamsError
from ..core.models import Node, NodeProperty


# --- Params Models ---

class _Params(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class NodeTargetParams(_Params):
    node_id: str = Field(alias="nodeId")


class UpdatePropertyParams(NodeTargetParams):
    property: NodeProperty
    value: Optional[str] = None


class SetTextParams(NodeTargetParams):
    text: str


class SetNotesParams(NodeTargetParams):
    notes: Optional[str] = None


class SetClassParams(NodeTargetParams):
    class_tag: str = Field(alias="classTag")

    @model_validator(mode='before')
    @classmethod
    def convert_legacy_fields(cls, data: Any) -> Any:
        """Accept the legacy 'class' param."""
        if isinstance(data, dict) and 'class' in data and 'classTag' not in data:
            data = {**data, 'classTag': data['class']}
        return data


class AddChildParams(_Params):
    parent_id: str = Field(alias="parentId")


class PasteNodesParams(_Params):
    parent_id: str = Field(alias="parentId")
    nodes: list[dict[str, Any]] = Field(default_factory=list)


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'params'}: {err['msg']}"
        for err in error.errors()
    )


def _parse(model: type[_Params], action_type: str, params: Optional[dict]) -> Any:
    try:
        return model.model_validate(params or {})
    except ValidationError as e:
        raise ActionParamsError(action_type, _describe(e)) from e


# --- Handlers ---

def update_node_property(state: Node, params: dict, context: Optional[dict] = None) -> Node:
    """Set text, notes or classTag on a node."""
    p = _parse(UpdatePropertyParams, "updateNodeProperty", params)
    if p.value is None and p.property != NodeProperty.NOTES:
        raise ActionParamsError("updateNodeProperty", f"{p.property.value} cannot be null")
    return tree.set_property(state, p.node_id, p.property, p.value)


def set_text(state: Node, params: dict, context: Optional[dict] = None) -> Node:
    p = _parse(SetTextParams, "setText", params)
    return update_node_property(state, {
        "nodeId": p.node_id, "property": NodeProperty.TEXT.value, "value": p.text
    }, context)


def set_notes(state: Node, params: dict, context: Optional[dict] = None) -> Node:
    p = _parse(SetNotesParams, "setNotes", params)
    return update_node_property(state, {
        "nodeId": p.node_id, "property": NodeProperty.NOTES.value, "value": p.notes
    }, context)


def set_class(state: Node, params: dict, context: Optional[dict] = None) -> Node:
    p = _parse(SetClassParams, "setClass", params)
    return update_node_property(state, {
        "nodeId": p.node_id, "property": NodeProperty.CLASS_TAG.value, "value": p.class_tag
    }, context)


def add_child(state: Node, params: dict, context: Optional[dict] = None) -> Node:
    """Append a child; every param other than parentId is node data."""
    p = _parse(AddChildParams, "addChild", params)
    node_data = {k: v for k, v in (params or {}).items() if k not in ("parentId", "parent_id")}
    try:
        return tree.add_child(state, p.parent_id, node_data)
    except ValidationError as e:
        raise ActionParamsError("addChild", _describe(e)) from e


def remove_node(state: Node, params: dict, context: Optional[dict] = None) -> Node:
    p = _parse(NodeTargetParams, "removeNode", params)
    return tree.remove_node(state, p.node_id)


def paste_nodes(state: Node, params: dict, context: Optional[dict] = None) -> Node:
    """Append copies of clipboard subtrees (with fresh ids) under one parent."""
    p = _parse(PasteNodesParams, "pasteNodes", params)
    try:
        copies = [tree.copy_subtree(Node.from_json_dict(data)) for data in p.nodes]
    except ValidationError as e:
        raise ActionParamsError("pasteNodes", _describe(e)) from e

    for copy in copies:
        state = tree.add_child(state, p.parent_id, copy)
    return state


BUILTIN_ACTIONS = {
    "updateNodeProperty": update_node_property,
    "setText": set_text,
    "setNotes": set_notes,
    "setClass": set_class,
    "addChild": add_child,
    "removeNode": remove_node,
    "pasteNodes": paste_nodes,
}
