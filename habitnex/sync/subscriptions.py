"""Keyed registry of active subscriptions."""

import logging
from typing import Dict

from .realtime import Unsubscribe

logger = logging.getLogger(__name__)


class SubscriptionManager:
    """Tracks one unsubscribe callable per collection key.

    Registering a key that is already present tears down the previous
    subscription first, so identity or workspace changes never leak
    listeners.
    """

    def __init__(self):
        self._subscriptions: Dict[str, Unsubscribe] = {}

    def add(self, key: str, unsubscribe: Unsubscribe) -> None:
        self.cleanup(key)
        self._subscriptions[key] = unsubscribe

    def cleanup(self, key: str) -> None:
        existing = self._subscriptions.pop(key, None)
        if existing is not None:
            existing()

    def cleanup_all(self) -> None:
        for key in list(self._subscriptions):
            self.cleanup(key)
        logger.debug("All subscriptions cleaned up")

    def keys(self):
        return set(self._subscriptions)

    def __contains__(self, key: str) -> bool:
        return key in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)
