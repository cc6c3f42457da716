"""Tests for backend/runtime.py — dispatch, history, subscriptions, snapshots."""

import asyncio
import json
from typing import Any, Optional

import pytest

from mindmap_tool.backend.runtime import CommandRuntime
from mindmap_tool.core import tree
from mindmap_tool.core.errors import DuplicateNodeIdError, ImportParseError, UnknownActionError
from mindmap_tool.core.models import Node
from tests.unit.fakes import FailingSubscriber, RecordingSubscriber


def _run(coro: Any) -> Any:
    return asyncio.run(coro)


async def _dispatch_all(runtime: CommandRuntime, actions: list[tuple[str, dict]]) -> None:
    for action_type, params in actions:
        await runtime.dispatch(action_type, params)


def _texts(doc: Node) -> list[str]:
    return [child.text for child in doc.children]


# --- Construction ---

def test_rejects_history_size_below_one(flat_doc: Node) -> None:
    with pytest.raises(ValueError):
        CommandRuntime(flat_doc, max_history_size=0)


def test_rejects_initial_document_with_duplicate_ids() -> None:
    doc = Node(id="r", text="R", children=(Node(id="r", text="again"),))
    with pytest.raises(DuplicateNodeIdError):
        CommandRuntime(doc)


def test_initial_state(runtime: CommandRuntime, flat_doc: Node) -> None:
    assert runtime.get_state() is flat_doc
    assert not runtime.can_undo
    assert not runtime.can_redo
    assert runtime.history_size == 0
    assert runtime.max_history_size == 50


# --- Dispatch ---

def test_add_child_then_undo_then_redo(runtime: CommandRuntime, flat_doc: Node) -> None:
    _run(runtime.dispatch("addChild", {"parentId": "root", "text": "C"}))
    three_children = runtime.get_state()
    assert _texts(three_children) == ["A", "B", "C"]
    assert [c.id for c in three_children.children][:2] == ["a", "b"]

    assert runtime.undo() == flat_doc
    assert runtime.get_state() == flat_doc
    assert runtime.can_redo

    assert runtime.redo() == three_children
    assert runtime.get_state() == three_children
    assert not runtime.can_redo


def test_unknown_action_fails_without_side_effects(runtime: CommandRuntime, flat_doc: Node) -> None:
    subscriber = RecordingSubscriber()
    runtime.subscribe(subscriber)

    with pytest.raises(UnknownActionError) as exc_info:
        _run(runtime.dispatch("doesNotExist", {}))

    assert exc_info.value.action_type == "doesNotExist"
    assert runtime.get_state() is flat_doc
    assert runtime.history_size == 0
    assert subscriber.count == 0


def test_dispatch_notifies_subscribers_with_new_state(runtime: CommandRuntime) -> None:
    subscriber = RecordingSubscriber()
    runtime.subscribe(subscriber)

    result = _run(runtime.dispatch("setText", {"nodeId": "a", "text": "Alpha"}))

    assert subscriber.states == [result]
    assert tree.find(result, "a").text == "Alpha"


def test_noop_action_still_consumes_history_slot(runtime: CommandRuntime, flat_doc: Node) -> None:
    _run(runtime.dispatch("removeNode", {"nodeId": "root"}))
    assert runtime.get_state() is flat_doc
    assert runtime.history_size == 1
    assert runtime.can_undo


def test_handler_returning_none_keeps_state(runtime: CommandRuntime, flat_doc: Node) -> None:
    runtime.register_action("inspect", lambda state, params, context: None)
    assert _run(runtime.dispatch("inspect")) is flat_doc
    assert runtime.history_size == 1


def test_context_is_passed_to_handler(runtime: CommandRuntime) -> None:
    seen: list[Optional[dict]] = []

    def handler(state: Node, params: Optional[dict], context: Optional[dict]) -> Node:
        seen.append(context)
        return state

    runtime.register_action("record", handler)
    _run(runtime.dispatch("record", {}, context={"source": "keyboard"}))
    assert seen == [{"source": "keyboard"}]


def test_async_handler_result_is_awaited(runtime: CommandRuntime) -> None:
    async def rename_root(state: Node, params: dict, context: Optional[dict]) -> Node:
        await asyncio.sleep(0)
        return tree.set_text(state, state.id, params["text"])

    runtime.register_action("renameRoot", rename_root)
    _run(runtime.dispatch("renameRoot", {"text": "Renamed"}))
    assert runtime.get_state().text == "Renamed"


def test_failing_handler_rolls_back_history(runtime: CommandRuntime, flat_doc: Node) -> None:
    _run(runtime.dispatch("setText", {"nodeId": "a", "text": "Alpha"}))
    state_before = runtime.get_state()
    subscriber = RecordingSubscriber()
    runtime.subscribe(subscriber)

    def explode(state: Node, params: Any, context: Any) -> Node:
        raise RuntimeError("boom")

    runtime.register_action("explode", explode)
    with pytest.raises(RuntimeError, match="boom"):
        _run(runtime.dispatch("explode"))

    assert runtime.get_state() is state_before
    assert runtime.history_size == 1
    assert runtime.history_index == 0
    assert subscriber.count == 0
    # Undo still goes back to the document before the successful action
    assert runtime.undo() == flat_doc


def test_rollback_keeps_redo_entries(runtime: CommandRuntime) -> None:
    _run(runtime.dispatch("setText", {"nodeId": "a", "text": "Alpha"}))
    runtime.undo()
    assert runtime.can_redo

    with pytest.raises(DuplicateNodeIdError):
        _run(runtime.dispatch("addChild", {"parentId": "root", "id": "a", "text": "dup"}))

    assert runtime.can_redo
    assert tree.find(runtime.redo(), "a").text == "Alpha"


def test_handler_returning_non_document_is_type_error(runtime: CommandRuntime, flat_doc: Node) -> None:
    runtime.register_action("bad", lambda state, params, context: {"id": "x"})
    with pytest.raises(TypeError):
        _run(runtime.dispatch("bad"))
    assert runtime.get_state() is flat_doc
    assert runtime.history_size == 0


def test_subscriber_errors_propagate_after_commit(runtime: CommandRuntime) -> None:
    runtime.subscribe(FailingSubscriber())
    with pytest.raises(RuntimeError, match="subscriber failed"):
        _run(runtime.dispatch("setText", {"nodeId": "a", "text": "Alpha"}))
    assert runtime.find("a").text == "Alpha"


# --- History ---

def test_history_never_exceeds_max_size(flat_doc: Node) -> None:
    runtime = CommandRuntime(flat_doc, max_history_size=3)
    _run(_dispatch_all(runtime, [
        ("setText", {"nodeId": "a", "text": f"A{i}"}) for i in range(1, 6)
    ]))

    assert runtime.history_size == 3
    undone = [runtime.undo() for _ in range(3)]
    assert [tree.find(doc, "a").text for doc in undone] == ["A4", "A3", "A2"]
    assert runtime.undo() is None
    assert runtime.history_size == 3


def test_undo_n_then_redo_n_restores_latest(flat_doc: Node) -> None:
    runtime = CommandRuntime(flat_doc, max_history_size=4)
    _run(_dispatch_all(runtime, [
        ("addChild", {"parentId": "root", "id": f"c{i}", "text": f"C{i}"}) for i in range(4)
    ]))
    latest = runtime.get_state()

    for n in range(1, 5):
        for _ in range(n):
            runtime.undo()
        for _ in range(n):
            runtime.redo()
        assert runtime.get_state() == latest

    for _ in range(4):
        runtime.undo()
    assert runtime.get_state() == flat_doc
    assert not runtime.can_undo


def test_max_history_of_one(flat_doc: Node) -> None:
    runtime = CommandRuntime(flat_doc, max_history_size=1)
    _run(_dispatch_all(runtime, [
        ("setText", {"nodeId": "a", "text": "A1"}),
        ("setText", {"nodeId": "a", "text": "A2"}),
    ]))
    assert runtime.history_size == 1
    assert runtime.find("a").text == "A2"
    runtime.undo()
    assert runtime.find("a").text == "A1"
    assert not runtime.can_undo
    runtime.redo()
    assert runtime.find("a").text == "A2"


def test_new_action_after_undo_drops_redo_entries(runtime: CommandRuntime) -> None:
    _run(_dispatch_all(runtime, [
        ("setText", {"nodeId": "a", "text": "A1"}),
        ("setText", {"nodeId": "a", "text": "A2"}),
    ]))
    runtime.undo()
    _run(runtime.dispatch("setText", {"nodeId": "b", "text": "B1"}))

    assert not runtime.can_redo
    assert runtime.history_size == 2
    assert runtime.redo() is None
    runtime.undo()
    assert runtime.find("a").text == "A1"
    assert runtime.find("b").text == "B"


def test_undo_and_redo_notify_subscribers(runtime: CommandRuntime) -> None:
    _run(runtime.dispatch("setText", {"nodeId": "a", "text": "Alpha"}))
    subscriber = RecordingSubscriber()
    runtime.subscribe(subscriber)

    runtime.undo()
    runtime.redo()
    runtime.redo()  # nothing to redo

    assert subscriber.count == 2


# --- Subscriptions ---

def test_each_subscribe_call_is_a_separate_registration(runtime: CommandRuntime) -> None:
    subscriber = RecordingSubscriber()
    unsubscribe_first = runtime.subscribe(subscriber)
    runtime.subscribe(subscriber)

    runtime.set_state(tree.set_text(runtime.get_state(), "a", "A1"))
    assert subscriber.count == 2

    unsubscribe_first()
    unsubscribe_first()
    runtime.set_state(tree.set_text(runtime.get_state(), "a", "A2"))
    assert subscriber.count == 3


# --- set_state / snapshots ---

def test_set_state_is_undoable(runtime: CommandRuntime, flat_doc: Node) -> None:
    replacement = Node(id="other", text="Other")
    runtime.set_state(replacement)
    assert runtime.get_state() is replacement
    runtime.undo()
    assert runtime.get_state() is flat_doc


def test_set_state_rejects_duplicate_ids(runtime: CommandRuntime, flat_doc: Node) -> None:
    doc = Node(id="r", text="R", children=(Node(id="x", text="1"), Node(id="x", text="2")))
    with pytest.raises(DuplicateNodeIdError):
        runtime.set_state(doc)
    assert runtime.get_state() is flat_doc
    assert runtime.history_size == 0


def test_set_state_rejects_non_documents(runtime: CommandRuntime) -> None:
    with pytest.raises(TypeError):
        runtime.set_state({"id": "x", "text": "X"})  # type: ignore[arg-type]


def test_export_is_compact_json(runtime: CommandRuntime) -> None:
    assert runtime.export_snapshot() == (
        '{"id":"root","text":"R","classTag":"default","children":['
        '{"id":"a","text":"A","classTag":"default"},'
        '{"id":"b","text":"B","classTag":"default"}]}'
    )


def test_export_with_indent_and_unicode(runtime: CommandRuntime) -> None:
    runtime.set_state(tree.set_text(runtime.get_state(), "a", "Größe"))
    text = runtime.export_snapshot(indent=2)
    assert "\n" in text
    assert "Größe" in text
    assert json.loads(text)["children"][0]["text"] == "Größe"


def test_import_of_export_round_trips(nested_doc: Node) -> None:
    runtime = CommandRuntime(nested_doc)
    snapshot = runtime.export_snapshot()

    runtime.import_snapshot(snapshot)

    assert runtime.get_state() == nested_doc
    assert runtime.history_size == 1


def test_deep_chain_export_import_round_trips() -> None:
    runtime = CommandRuntime(Node(id="n0", text="n0"))
    _run(_dispatch_all(runtime, [
        ("addChild", {"parentId": f"n{i}", "id": f"n{i + 1}", "text": f"n{i + 1}"})
        for i in range(299)
    ]))
    deep = runtime.get_state()

    runtime.import_snapshot(runtime.export_snapshot())

    assert runtime.get_state() == deep
    assert tree.find(runtime.get_state(), "n299") is not None


def test_import_of_overly_nested_json_is_parse_error(runtime: CommandRuntime, flat_doc: Node) -> None:
    levels = 100_000
    snapshot = '{"id":"n","text":"t","children":[' * levels + '{"id":"leaf","text":"t"}' + "]}" * levels

    with pytest.raises(ImportParseError):
        runtime.import_snapshot(snapshot)

    assert runtime.get_state() is flat_doc
    assert runtime.history_size == 0


def test_import_replaces_document_and_is_undoable(runtime: CommandRuntime, flat_doc: Node) -> None:
    runtime.import_snapshot('{"id": "n", "text": "New map", "children": [{"id": "n1", "text": "x", "class": "legacy"}]}')
    state = runtime.get_state()
    assert state.id == "n"
    assert state.children[0].class_tag == "legacy"
    runtime.undo()
    assert runtime.get_state() is flat_doc


@pytest.mark.parametrize("snapshot", [
    "not json",
    "[1, 2]",
    '{"id": "x"}',
    '{"id": "r", "text": "R", "children": [{"id": "r", "text": "dup"}]}',
])
def test_import_failures_leave_state_unchanged(runtime: CommandRuntime, flat_doc: Node, snapshot: str) -> None:
    subscriber = RecordingSubscriber()
    runtime.subscribe(subscriber)

    with pytest.raises(ImportParseError):
        runtime.import_snapshot(snapshot)

    assert runtime.get_state() is flat_doc
    assert runtime.history_size == 0
    assert subscriber.count == 0


def test_status_reports_history_counters(runtime: CommandRuntime) -> None:
    _run(runtime.dispatch("setText", {"nodeId": "a", "text": "Alpha"}))
    status = runtime.status()
    assert status["document"]["children"][0]["text"] == "Alpha"
    assert status["can_undo"] is True
    assert status["can_redo"] is False
    assert status["history_index"] == 0
    assert status["history_size"] == 1
    assert status["max_history_size"] == 50


# --- Write queue ---

def _register_slow_append(runtime: CommandRuntime) -> None:
    async def slow_append(state: Node, params: dict, context: Any) -> Node:
        await asyncio.sleep(params["delay"])
        return tree.add_child(state, "root", {"id": params["id"], "text": params["id"]})

    runtime.register_action("slowAppend", slow_append)


def test_concurrent_dispatches_apply_in_arrival_order(runtime: CommandRuntime) -> None:
    _register_slow_append(runtime)

    async def scenario() -> None:
        await asyncio.gather(
            runtime.dispatch("slowAppend", {"id": "x1", "delay": 0.03}),
            runtime.dispatch("slowAppend", {"id": "x2", "delay": 0.0}),
            runtime.dispatch("slowAppend", {"id": "x3", "delay": 0.01}),
        )

    _run(scenario())

    assert _texts(runtime.get_state()) == ["A", "B", "x1", "x2", "x3"]
    assert runtime.history_size == 3


def test_undo_waits_for_running_dispatch(runtime: CommandRuntime, flat_doc: Node) -> None:
    _register_slow_append(runtime)

    async def scenario() -> Optional[Node]:
        task = asyncio.create_task(runtime.dispatch("slowAppend", {"id": "x1", "delay": 0.01}))
        await asyncio.sleep(0)
        queued = runtime.undo()
        await task
        await runtime.join()
        return queued

    assert _run(scenario()) is None
    assert runtime.get_state() == flat_doc
    assert runtime.can_redo


def test_set_state_waits_for_running_dispatch(runtime: CommandRuntime) -> None:
    _register_slow_append(runtime)
    replacement = Node(id="other", text="Other")

    async def scenario() -> None:
        task = asyncio.create_task(runtime.dispatch("slowAppend", {"id": "x1", "delay": 0.01}))
        await asyncio.sleep(0)
        runtime.set_state(replacement)
        await task
        await runtime.join()

    _run(scenario())

    assert runtime.get_state() is replacement
    runtime.undo()
    assert _texts(runtime.get_state()) == ["A", "B", "x1"]


def test_join_reraises_errors_from_queued_operations(runtime: CommandRuntime) -> None:
    _register_slow_append(runtime)

    async def scenario() -> None:
        task = asyncio.create_task(runtime.dispatch("slowAppend", {"id": "x1", "delay": 0.01}))
        await asyncio.sleep(0)
        runtime.subscribe(FailingSubscriber())
        runtime.undo()
        with pytest.raises(RuntimeError):
            await task
        await runtime.join()

    with pytest.raises(RuntimeError, match="subscriber failed"):
        _run(scenario())


def test_failed_dispatch_releases_queue(runtime: CommandRuntime) -> None:
    _register_slow_append(runtime)

    async def scenario() -> None:
        results = await asyncio.gather(
            runtime.dispatch("addChild", {"parentId": "root", "id": "a", "text": "dup"}),
            runtime.dispatch("slowAppend", {"id": "x1", "delay": 0.0}),
            return_exceptions=True,
        )
        assert isinstance(results[0], DuplicateNodeIdError)

    _run(scenario())
    assert _texts(runtime.get_state()) == ["A", "B", "x1"]
    assert runtime.history_size == 1
