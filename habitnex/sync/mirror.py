"""
Local mirrors of remote collections with optimistic patches.

A mirror holds the last snapshot pushed by the realtime store. Local edits
are applied immediately and remembered as patches so a failed write can be
rolled back; the next authoritative push replaces the mirror and discards
every outstanding patch.
"""

import copy
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .realtime import Document, Snapshot

KeyFunc = Callable[[Document], Optional[str]]


def document_id(document: Document) -> Optional[str]:
    return document.get("id")


def completion_key(document: Document) -> Optional[str]:
    """Completions are addressed by habit and date, not by document id.

    A document missing either field has no key and never matches a lookup.
    """
    habit_id = document.get("habitId")
    day = document.get("date")
    if not habit_id or not day:
        return None
    return f"{habit_id}-{day}"


@dataclass(frozen=True)
class OptimisticPatch:
    """Pre-edit value of an entity awaiting confirmation.

    Attributes:
        entity_id: Mirror key of the patched entity
        original_snapshot: Deep copy of the entity before the edit
        applied_at: When the local edit was made
    """
    entity_id: str
    original_snapshot: Document
    applied_at: datetime


class LocalEntityMirror:
    """Ordered list of documents plus pending optimistic patches.

    Args:
        key: Function mapping a document to its mirror key
        clock: Callable returning the current time (used for ``updatedAt``)
    """

    def __init__(self, key: KeyFunc = document_id, clock: Callable[[], datetime] = datetime.now):
        self._key = key
        self._clock = clock
        self._items: List[Document] = []
        self._patches: Dict[str, OptimisticPatch] = {}

    def items(self) -> List[Document]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def get(self, entity_id: str) -> Optional[Document]:
        for item in self._items:
            if self._key(item) == entity_id:
                return item
        return None

    def pending(self) -> Dict[str, OptimisticPatch]:
        return dict(self._patches)

    def replace(self, snapshot: Snapshot) -> None:
        """Adopt an authoritative snapshot."""
        self._items = list(snapshot)
        self._patches.clear()

    def _remember(self, entity_id: str, current: Document) -> None:
        self._patches[entity_id] = OptimisticPatch(
            entity_id=entity_id,
            original_snapshot=copy.deepcopy(current),
            applied_at=self._clock(),
        )

    def apply_optimistic(self, entity_id: str, updates: Dict[str, Any]) -> bool:
        """Merge `updates` into an entity and stamp ``updatedAt``.

        Returns:
            False (and changes nothing) when the entity is not mirrored
        """
        for index, item in enumerate(self._items):
            if self._key(item) == entity_id:
                self._remember(entity_id, item)
                self._items[index] = {**item, **updates, "updatedAt": self._clock().isoformat()}
                return True
        return False

    def prepend(self, document: Document) -> None:
        """Insert a locally created entity at the front of the mirror."""
        self._items.insert(0, document)

    def remove_optimistic(self, entity_id: str) -> bool:
        existing = self.get(entity_id)
        if existing is None:
            return False
        self._remember(entity_id, existing)
        self._items = [item for item in self._items if self._key(item) != entity_id]
        return True

    def rollback(self, entity_id: str) -> bool:
        """Restore the pre-edit value of an entity.

        A removed entity is re-inserted at the front. Rolling back an entity
        with no pending patch is a no-op.

        Returns:
            True if a patch was rolled back
        """
        patch = self._patches.pop(entity_id, None)
        if patch is None:
            return False

        original = patch.original_snapshot
        for index, item in enumerate(self._items):
            if self._key(item) == entity_id:
                self._items[index] = original
                return True
        self._items.insert(0, original)
        return True
