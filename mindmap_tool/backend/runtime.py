"""
Command Runtime - Document state, action dispatch, history and subscriptions.

This module implements:
- Single document state (one mind map open at a time)
- Action dispatch through a table of named handlers
- Bounded linear undo/redo history of document snapshots
- JSON export/import of the whole document
- Change subscriptions for real-time sync

Documents are immutable, so a history snapshot is the document value itself
and subscribers can keep the state they were handed.

Writes are serialized: every dispatch takes a slot in a FIFO queue when it
starts and runs only after all earlier slots have finished. The synchronous
operations (undo, redo, set_state, import_snapshot) apply immediately when
the queue is idle and queue behind the in-flight dispatches otherwise.
"""

import asyncio
import inspect
import itertools
import json
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Optional, Union

from loguru import logger
from pydantic import ValidationError

from ..config import MAX_HISTORY_SIZE
from ..core.errors import DuplicateNodeIdError, ImportParseError, UnknownActionError
from ..core.models import Node
from ..core.tree import duplicate_ids, find as find_node, iter_nodes
from .actions import BUILTIN_ACTIONS

ActionHandler = Callable[[Node, Optional[dict], Optional[dict]], Union[Node, None, Awaitable[Optional[Node]]]]
Subscriber = Callable[[Node], Any]


class CommandRuntime:
    """
    Owns the current document and every change made to it.

    The history system works via a list of snapshots and a cursor:
    - Each push truncates the entries after the cursor, appends the current
      state and advances the cursor (or evicts the oldest entry when full)
    - Undo swaps the current state with the entry at the cursor and moves
      the cursor back
    - Redo moves the cursor forward and swaps again

    Entries at or before the cursor are undoable, entries after it are
    redoable, and undo/redo never change the length of the list.
    """

    capabilities = {
        "component": "CommandRuntime",
        "version": "1.0.0",
        "features": ["undo-redo", "import-export", "subscriptions", "async-actions"],
    }

    def __init__(
        self,
        initial_document: Node,
        actions: Optional[Mapping[str, ActionHandler]] = None,
        max_history_size: int = MAX_HISTORY_SIZE,
    ):
        if max_history_size < 1:
            raise ValueError("max_history_size must be at least 1")
        _check_unique_ids(initial_document)

        self._state = initial_document
        self._actions: dict[str, ActionHandler] = dict(BUILTIN_ACTIONS if actions is None else actions)
        self._history: list[Node] = []
        self._index = -1
        self._max_history_size = max_history_size

        self._subscribers: dict[int, Subscriber] = {}
        self._tokens = itertools.count()

        # Queue of writers: each slot resolves when its operation is done
        self._tail: Optional[asyncio.Future] = None
        self._deferred: list[asyncio.Task] = []

    # --- Properties ---

    def get_state(self) -> Node:
        """Get the current document."""
        return self._state

    @property
    def can_undo(self) -> bool:
        """Check if undo is available."""
        return self._index >= 0

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return self._index < len(self._history) - 1

    @property
    def history_index(self) -> int:
        return self._index

    @property
    def history_size(self) -> int:
        return len(self._history)

    @property
    def max_history_size(self) -> int:
        return self._max_history_size

    @property
    def action_types(self) -> list[str]:
        """Names of the registered actions."""
        return sorted(self._actions)

    def find(self, node_id: str) -> Optional[Node]:
        """Find a node in the current document."""
        return find_node(self._state, node_id)

    def register_action(self, action_type: str, handler: ActionHandler):
        """Register (or replace) the handler for an action type."""
        self._actions[action_type] = handler

    # --- Change Subscriptions ---

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback for document changes.

        The callback receives the new document after every committed change.
        Each call creates a separate registration, even for the same
        callback.

        Returns:
            A function removing exactly this registration (safe to call twice)
        """
        token = next(self._tokens)
        self._subscribers[token] = callback

        def unsubscribe():
            self._subscribers.pop(token, None)

        return unsubscribe

    def _notify_change(self):
        """Notify all registered callbacks of a change."""
        for callback in list(self._subscribers.values()):
            callback(self._state)

    # --- History Management ---

    def _save_to_history(self):
        """Push the current state, dropping redoable entries first."""
        del self._history[self._index + 1:]
        self._history.append(self._state)
        if len(self._history) > self._max_history_size:
            self._history.pop(0)
        else:
            self._index += 1

    def _commit(self, document: Node):
        self._save_to_history()
        self._state = document
        self._notify_change()

    def _undo_now(self) -> Optional[Node]:
        if not self.can_undo:
            return None
        self._state, self._history[self._index] = self._history[self._index], self._state
        self._index -= 1
        logger.debug("Undo (history index {})", self._index)
        self._notify_change()
        return self._state

    def _redo_now(self) -> Optional[Node]:
        if not self.can_redo:
            return None
        self._index += 1
        self._state, self._history[self._index] = self._history[self._index], self._state
        logger.debug("Redo (history index {})", self._index)
        self._notify_change()
        return self._state

    def undo(self) -> Optional[Node]:
        """
        Undo the last change.

        Returns:
            The restored document, or None if there was nothing to undo or
            the undo was queued behind a running dispatch
        """
        return self._run_or_queue(self._undo_now, "undo")

    def redo(self) -> Optional[Node]:
        """
        Redo the last undone change.

        Returns:
            The restored document, or None if there was nothing to redo or
            the redo was queued behind a running dispatch
        """
        return self._run_or_queue(self._redo_now, "redo")

    # --- Document Operations ---

    async def dispatch(
        self,
        action_type: str,
        params: Optional[dict] = None,
        context: Optional[dict] = None,
    ) -> Node:
        """
        Apply a named action to the document.

        The current state is pushed to history, then the handler is called
        with (state, params, context). A returned document becomes the new
        state; None keeps the current one. Subscribers are notified
        afterwards.

        Args:
            action_type: Registered action name
            params: Action parameters (handler specific)
            context: Free-form data passed through to the handler

        Returns:
            The document after the action

        Raises:
            UnknownActionError: if no handler is registered for action_type
            TypeError: if the handler returns something other than a document
            Any exception raised by the handler (history is rolled back)
        """
        handler = self._actions.get(action_type)
        if handler is None:
            raise UnknownActionError(action_type)

        previous, slot = self._reserve_slot()
        if previous is not None:
            try:
                await asyncio.shield(previous)
            except asyncio.CancelledError:
                # Later writers must still wait for everything before us
                previous.add_done_callback(lambda _f: self._release_slot(slot))
                raise

        try:
            return await self._apply_action(action_type, handler, params, context)
        finally:
            self._release_slot(slot)

    async def _apply_action(
        self,
        action_type: str,
        handler: ActionHandler,
        params: Optional[dict],
        context: Optional[dict],
    ) -> Node:
        saved_history, saved_index = list(self._history), self._index
        state = self._state
        self._save_to_history()

        try:
            result = handler(state, params, context)
            if inspect.isawaitable(result):
                result = await result
            if result is None:
                result = state
            if not isinstance(result, Node):
                raise TypeError(
                    f"Action {action_type} returned {type(result).__name__}, expected Node"
                )
        except BaseException:
            self._history, self._index = saved_history, saved_index
            logger.warning("Action {} failed, history rolled back", action_type)
            raise

        self._state = result
        logger.debug("Dispatched {} (history index {})", action_type, self._index)
        self._notify_change()
        return result

    def set_state(self, document: Node) -> Optional[Node]:
        """
        Replace the whole document (undoable).

        Raises:
            TypeError: if document is not a Node
            DuplicateNodeIdError: if two nodes share an id
        """
        if not isinstance(document, Node):
            raise TypeError(f"Expected Node, got {type(document).__name__}")
        _check_unique_ids(document)
        return self._run_or_queue(lambda: self._replace_now(document), "set_state")

    def _replace_now(self, document: Node) -> Node:
        self._commit(document)
        logger.debug("Document replaced (root {})", document.id)
        return self._state

    def export_snapshot(self, indent: Optional[int] = None) -> str:
        """Serialize the current document to JSON (compact unless indent is given)."""
        return json.dumps(
            self._state.to_json_dict(),
            indent=indent,
            separators=(",", ":") if indent is None else None,
            ensure_ascii=False,
        )

    def import_snapshot(self, text: str) -> Optional[Node]:
        """
        Replace the document with a serialized snapshot (undoable).

        The snapshot is parsed before anything changes, so a parse failure
        leaves the document and history untouched.

        Raises:
            ImportParseError: on invalid JSON, schema violations or duplicate ids
        """
        try:
            document = Node.from_json_dict(json.loads(text))
        except json.JSONDecodeError as e:
            raise ImportParseError(f"Invalid JSON: {e}") from e
        except RecursionError as e:
            raise ImportParseError("Invalid JSON: document is nested too deeply") from e
        except ValidationError as e:
            raise ImportParseError(f"Invalid document: {e.error_count()} validation error(s)") from e

        try:
            _check_unique_ids(document)
        except DuplicateNodeIdError as e:
            raise ImportParseError(str(e)) from e

        logger.debug("Importing snapshot with {} nodes", sum(1 for _ in iter_nodes(document)))
        return self.set_state(document)

    def status(self) -> dict:
        """Get the document together with the history counters."""
        return {
            "document": self._state.to_json_dict(),
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
            "history_index": self._index,
            "history_size": len(self._history),
            "max_history_size": self._max_history_size,
        }

    # --- Write Queue ---

    def _reserve_slot(self) -> tuple[Optional[asyncio.Future], asyncio.Future]:
        previous = self._tail
        slot = asyncio.get_running_loop().create_future()
        self._tail = slot
        return previous, slot

    def _release_slot(self, slot: asyncio.Future):
        if not slot.done():
            slot.set_result(None)
        if self._tail is slot:
            self._tail = None

    def _run_or_queue(self, operation: Callable[[], Optional[Node]], name: str) -> Optional[Node]:
        if self._tail is None:
            return operation()

        previous, slot = self._reserve_slot()

        async def run_when_ready():
            try:
                await asyncio.shield(previous)
                operation()
            finally:
                self._release_slot(slot)

        self._deferred.append(asyncio.get_running_loop().create_task(run_when_ready()))
        logger.debug("{} queued behind running dispatch", name)
        return None

    async def join(self):
        """
        Wait until every queued operation has finished.

        Errors raised by queued synchronous operations (e.g. a failing
        subscriber) are re-raised here.
        """
        while self._tail is not None:
            await asyncio.shield(self._tail)
        deferred, self._deferred = self._deferred, []
        if deferred:
            await asyncio.gather(*deferred)


def _check_unique_ids(document: Node):
    duplicates = duplicate_ids(document)
    if duplicates:
        raise DuplicateNodeIdError(duplicates)
