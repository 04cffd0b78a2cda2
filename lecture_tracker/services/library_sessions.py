from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Lock

from lecture_tracker.services.library_store import GUEST_SCOPE, LibraryStore

LOGGER = logging.getLogger("lecture_tracker.library")

StoreFactory = Callable[[str | None], LibraryStore]


def normalize_scope(user_id: str | None) -> str | None:
    """Map the public ``guest`` id (or a blank one) onto the anonymous scope."""
    if user_id is None:
        return None
    normalized = user_id.strip()
    if not normalized or normalized == GUEST_SCOPE:
        return None
    return normalized


class LibrarySessionManager:
    """Owns one loaded :class:`LibraryStore` per user scope."""

    def __init__(self, store_factory: StoreFactory) -> None:
        self._store_factory = store_factory
        self._lock = Lock()
        self._stores: dict[str, LibraryStore] = {}

    def open(self, user_id: str | None) -> LibraryStore:
        scope_user = normalize_scope(user_id)
        scope = scope_user or GUEST_SCOPE
        with self._lock:
            store = self._stores.get(scope)
            if store is None:
                store = self._store_factory(scope_user)
                store.load()
                self._stores[scope] = store
                LOGGER.info("library session opened scope=%s", scope)
        return store

    def close(self, user_id: str | None) -> bool:
        scope = normalize_scope(user_id) or GUEST_SCOPE
        with self._lock:
            store = self._stores.pop(scope, None)
        if store is None:
            return False
        store.clear()
        LOGGER.info("library session closed scope=%s", scope)
        return True

    def close_all(self) -> None:
        with self._lock:
            stores = list(self._stores.values())
            self._stores.clear()
        for store in stores:
            store.clear()
