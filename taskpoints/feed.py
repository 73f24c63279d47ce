from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

log = logging.getLogger(__name__)

TASKS = "tasks"
HABITS = "habits"
POINTS = "points"
COLLECTIONS = (TASKS, HABITS, POINTS)

ChangeCallback = Callable[[str, str], None]
ErrorCallback = Callable[[Exception], None]


@dataclass
class _Listener:
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback]
    active: bool = True


class ChangeFeed:
    """In-process change stream keyed by (user, collection).

    Notifications are delivered synchronously, in publish order, to the
    listeners registered when the publish happens.
    """

    def __init__(self) -> None:
        self._listeners: Dict[Tuple[str, str], List[_Listener]] = {}

    def subscribe(
        self,
        user_id: str,
        collection: str,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Callable[[], None]:
        if collection not in COLLECTIONS:
            raise ValueError(f"unknown collection {collection!r}")
        listener = _Listener(on_change=on_change, on_error=on_error)
        self._listeners.setdefault((user_id, collection), []).append(listener)

        def unsubscribe() -> None:
            listener.active = False
            bucket = self._listeners.get((user_id, collection), [])
            if listener in bucket:
                bucket.remove(listener)

        return unsubscribe

    def publish(self, user_id: str, collection: str) -> None:
        for listener in list(self._listeners.get((user_id, collection), [])):
            if not listener.active:
                continue
            # publish runs after commit; a listener must not abort the caller
            try:
                listener.on_change(user_id, collection)
            except Exception:
                log.exception("Feed listener for %s/%s failed", user_id, collection)

    def fail(self, user_id: str, collection: str, error: Exception) -> None:
        """Push an error to every listener of the key and drop them."""
        listeners = self._listeners.pop((user_id, collection), [])
        for listener in listeners:
            listener.active = False
            if listener.on_error is not None:
                listener.on_error(error)
            else:
                log.error("Unhandled feed error for %s/%s: %s", user_id, collection, error)

    def listener_count(self, user_id: str, collection: str) -> int:
        return len(self._listeners.get((user_id, collection), []))
