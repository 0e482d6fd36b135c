"""
Realtime document store contract.

A store delivers full collection snapshots to subscribers whenever a
collection changes. The in-memory implementation backs local development
and tests; production deployments plug in a hosted realtime database.
"""

import copy
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
Snapshot = List[Document]
OrderBy = Tuple[str, str]  # (field, "asc" | "desc")
Unsubscribe = Callable[[], None]


class RealtimeStore(ABC):
    """Push-subscription source of collection snapshots."""

    @abstractmethod
    def subscribe(
        self,
        path: str,
        order_by: OrderBy,
        on_snapshot: Callable[[Snapshot], None],
        on_error: Callable[[Exception], None],
    ) -> Unsubscribe:
        """Listen to a collection.

        Args:
            path: Collection path, e.g. ``users/{uid}/habits``
            order_by: Field and direction snapshots are sorted by
            on_snapshot: Called with the full, ordered collection on every change
            on_error: Called when the subscription fails

        Returns:
            Callable that stops the subscription
        """


def _sort_snapshot(docs: Snapshot, order_by: OrderBy) -> Snapshot:
    field, direction = order_by
    present = [d for d in docs if d.get(field) is not None]
    missing = [d for d in docs if d.get(field) is None]
    present.sort(key=lambda d: d[field], reverse=(direction == "desc"))
    return present + missing


class InMemoryRealtimeStore(RealtimeStore):
    """Process-local store; callbacks run synchronously on every write."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._listeners: Dict[str, Dict[int, Tuple[OrderBy, Callable, Callable]]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, path, order_by, on_snapshot, on_error) -> Unsubscribe:
        listener_id = next(self._ids)
        self._listeners.setdefault(path, {})[listener_id] = (order_by, on_snapshot, on_error)
        logger.debug("Subscribed", extra={"path": path, "listener_id": listener_id})
        on_snapshot(self.snapshot(path, order_by))

        def unsubscribe() -> None:
            if self._listeners.get(path, {}).pop(listener_id, None) is not None:
                logger.debug("Unsubscribed", extra={"path": path, "listener_id": listener_id})

        return unsubscribe

    def listener_count(self, path: str) -> int:
        return len(self._listeners.get(path, {}))

    def snapshot(self, path: str, order_by: OrderBy = ("id", "asc")) -> Snapshot:
        docs = [copy.deepcopy(doc) for doc in self._collections.get(path, {}).values()]
        return _sort_snapshot(docs, order_by)

    def set_document(self, path: str, document: Document) -> None:
        """Create or replace one document (it must carry an ``id``) and notify."""
        if "id" not in document:
            raise ValueError("document must have an 'id'")
        self._collections.setdefault(path, {})[document["id"]] = copy.deepcopy(document)
        self._notify(path)

    def set_documents(self, path: str, documents: Snapshot) -> None:
        """Replace a whole collection and notify once."""
        for document in documents:
            if "id" not in document:
                raise ValueError("document must have an 'id'")
        self._collections[path] = {d["id"]: copy.deepcopy(d) for d in documents}
        self._notify(path)

    def delete_document(self, path: str, document_id: str) -> None:
        self._collections.get(path, {}).pop(document_id, None)
        self._notify(path)

    def fail(self, path: str, error: Exception) -> None:
        """Deliver an error to every listener on a path."""
        for _, _, on_error in list(self._listeners.get(path, {}).values()):
            on_error(error)

    def _notify(self, path: str) -> None:
        for order_by, on_snapshot, _ in list(self._listeners.get(path, {}).values()):
            on_snapshot(self.snapshot(path, order_by))
