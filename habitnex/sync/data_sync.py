"""
Realtime data synchronization.

DataSync keeps local mirrors of a user's habits, completions and moods,
plus the habits and completions of an active shared workspace, in step
with a RealtimeStore. It owns the subscription lifecycle: identity and
workspace changes tear down old listeners before new ones are attached.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from .mirror import LocalEntityMirror, completion_key
from .realtime import Document, RealtimeStore, Snapshot
from .subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"


HABITS = "habits"
COMPLETIONS = "completions"
MOODS = "moods"
WORKSPACE_HABITS = "workspace_habits"
WORKSPACE_COMPLETIONS = "workspace_completions"

ERROR_MESSAGES = {
    HABITS: "Failed to sync habits",
    COMPLETIONS: "Failed to sync completions",
    MOODS: "Failed to sync moods",
    WORKSPACE_HABITS: "Failed to sync family habits",
    WORKSPACE_COMPLETIONS: "Failed to sync family completions",
}


def _active_workspace_habit(document: Document, workspace_id: str) -> bool:
    return (
        document.get("workspaceId") == workspace_id
        and bool(document.get("assignedMembers"))
        and document.get("isActive") is not False
        and document.get("isArchived") is not True
    )


def _workspace_completion(document: Document, workspace_id: str) -> bool:
    return document.get("workspaceId") == workspace_id and bool(document.get("memberId"))


class DataSync:
    """Mirrors a user's (and optionally a workspace's) collections.

    Args:
        store: Realtime store to subscribe to
        user_id: Signed-in user, or None when signed out
        workspace_id: Active shared workspace, if any
        clock: Callable returning the current time
        on_change: Optional callback invoked with the collection name after
            every applied snapshot or local edit
    """

    def __init__(
        self,
        store: RealtimeStore,
        user_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.now,
        on_change: Optional[Callable[[str], None]] = None,
    ):
        self.store = store
        self.user_id = user_id
        self.workspace_id = workspace_id
        self.subscriptions = SubscriptionManager()
        self.status = ConnectionStatus.DISCONNECTED
        self.error: Optional[str] = None
        self.last_sync: Optional[datetime] = None
        self._clock = clock
        self._on_change = on_change

        self.mirrors: Dict[str, LocalEntityMirror] = {
            HABITS: LocalEntityMirror(clock=clock),
            COMPLETIONS: LocalEntityMirror(key=completion_key, clock=clock),
            MOODS: LocalEntityMirror(clock=clock),
            WORKSPACE_HABITS: LocalEntityMirror(clock=clock),
            WORKSPACE_COMPLETIONS: LocalEntityMirror(key=completion_key, clock=clock),
        }

    @property
    def habits(self) -> List[Document]:
        return self.mirrors[HABITS].items()

    @property
    def completions(self) -> List[Document]:
        return self.mirrors[COMPLETIONS].items()

    @property
    def moods(self) -> List[Document]:
        return self.mirrors[MOODS].items()

    @property
    def workspace_habits(self) -> List[Document]:
        return self.mirrors[WORKSPACE_HABITS].items()

    @property
    def workspace_completions(self) -> List[Document]:
        return self.mirrors[WORKSPACE_COMPLETIONS].items()

    # Lifecycle

    def start(self) -> None:
        """Attach listeners for the current user and workspace."""
        if not self.user_id:
            self._clear_personal()
            self.status = ConnectionStatus.DISCONNECTED
            return
        self._subscribe_personal()
        self._subscribe_workspace()

    def set_user(self, user_id: Optional[str]) -> None:
        """Switch identity, replacing every listener."""
        self.subscriptions.cleanup_all()
        self.user_id = user_id
        self._clear_personal()
        self._clear_workspace()
        self.start()

    def set_workspace(self, workspace_id: Optional[str]) -> None:
        """Switch the active workspace, replacing only workspace listeners."""
        self.subscriptions.cleanup(WORKSPACE_HABITS)
        self.subscriptions.cleanup(WORKSPACE_COMPLETIONS)
        self.workspace_id = workspace_id
        self._clear_workspace()
        if self.user_id:
            self._subscribe_workspace()

    def refresh(self) -> None:
        """Drop every listener and re-subscribe from scratch."""
        logger.info("Refreshing realtime data", extra={"user_id": self.user_id})
        self.subscriptions.cleanup_all()
        self.status = ConnectionStatus.CONNECTING
        self.start()

    def sign_out(self) -> None:
        self.set_user(None)

    def close(self) -> None:
        self.subscriptions.cleanup_all()
        self.status = ConnectionStatus.DISCONNECTED

    def _clear_personal(self) -> None:
        for name in (HABITS, COMPLETIONS, MOODS):
            self.mirrors[name].replace([])

    def _clear_workspace(self) -> None:
        for name in (WORKSPACE_HABITS, WORKSPACE_COMPLETIONS):
            self.mirrors[name].replace([])

    # Subscriptions

    def _subscribe_personal(self) -> None:
        self.status = ConnectionStatus.CONNECTING
        self.error = None
        base = f"users/{self.user_id}"
        self._listen(HABITS, f"{base}/habits", ("createdAt", "desc"), self._apply)
        self._listen(COMPLETIONS, f"{base}/completions", ("date", "desc"), self._apply)
        self._listen(MOODS, f"{base}/moods", ("date", "desc"), self._apply)

    def _subscribe_workspace(self) -> None:
        if not self.workspace_id:
            return
        workspace_id = self.workspace_id
        base = f"workspaces/{workspace_id}"

        def apply_habits(name: str, snapshot: Snapshot) -> None:
            docs = [{"workspaceId": workspace_id, **doc} for doc in snapshot]
            self._apply(name, [d for d in docs if _active_workspace_habit(d, workspace_id)])

        def apply_completions(name: str, snapshot: Snapshot) -> None:
            docs = [{"workspaceId": workspace_id, **doc} for doc in snapshot]
            self._apply(name, [d for d in docs if _workspace_completion(d, workspace_id)])

        self._listen(WORKSPACE_HABITS, f"{base}/habits", ("createdAt", "desc"), apply_habits)
        self._listen(WORKSPACE_COMPLETIONS, f"{base}/completions", ("date", "desc"), apply_completions)

    def _listen(self, name: str, path: str, order_by, apply: Callable[[str, Snapshot], None]) -> None:
        unsubscribe = self.store.subscribe(
            path,
            order_by,
            lambda snapshot: apply(name, snapshot),
            lambda error: self._fail(name, error),
        )
        self.subscriptions.add(name, unsubscribe)

    def _apply(self, name: str, snapshot: Snapshot) -> None:
        self.mirrors[name].replace(snapshot)
        self.last_sync = self._clock()
        if name == HABITS:
            self.status = ConnectionStatus.CONNECTED
            self.error = None
        self._changed(name)

    def _fail(self, name: str, error: Exception) -> None:
        logger.error(
            "Realtime subscription failed",
            extra={"collection": name, "user_id": self.user_id, "error": str(error)},
        )
        self.error = ERROR_MESSAGES[name]
        self.status = ConnectionStatus.DISCONNECTED

    def _changed(self, name: str) -> None:
        if self._on_change is not None:
            self._on_change(name)

    # Optimistic edits

    def update_habit_optimistic(self, habit_id: str, updates: Dict) -> bool:
        applied = self.mirrors[HABITS].apply_optimistic(habit_id, updates)
        if applied:
            self._changed(HABITS)
        return applied

    def update_completion_optimistic(self, completion: Document) -> bool:
        """Merge a partial completion into the mirror entry for its habit and date.

        Ignored when ``habitId`` or ``date`` is missing.
        """
        if not completion.get("habitId") or not completion.get("date"):
            return False
        key = completion_key(completion)
        applied = self.mirrors[COMPLETIONS].apply_optimistic(key, completion)
        if applied:
            self._changed(COMPLETIONS)
        return applied

    def add_completion_optimistic(self, completion: Document) -> None:
        self.mirrors[COMPLETIONS].prepend(completion)
        self._changed(COMPLETIONS)

    def remove_completion_optimistic(self, habit_id: str, date: str) -> bool:
        removed = self.mirrors[COMPLETIONS].remove_optimistic(f"{habit_id}-{date}")
        if removed:
            self._changed(COMPLETIONS)
        return removed

    def rollback_optimistic_update(self, kind: str, entity_id: str) -> bool:
        """Undo a pending optimistic edit.

        Args:
            kind: ``"habit"`` or ``"completion"``
            entity_id: Habit id, or ``"{habitId}-{date}"`` for completions

        Returns:
            True if something was rolled back; a second rollback is a no-op
        """
        if kind == "habit":
            name = HABITS
        elif kind == "completion":
            name = COMPLETIONS
        else:
            raise ValueError(f"Unknown optimistic update type: {kind}")

        rolled_back = self.mirrors[name].rollback(entity_id)
        if rolled_back:
            logger.info("Rolled back optimistic update", extra={"kind": kind, "entity_id": entity_id})
            self._changed(name)
        return rolled_back
