from __future__ import annotations

import logging
from typing import Callable, List, Optional

log = logging.getLogger(__name__)

AuthListener = Callable[[Optional[str]], None]


class AuthContext:
    """Current signed-in user plus sign-in/sign-out notifications."""

    def __init__(self, user_id: Optional[str] = None) -> None:
        self._user_id = user_id
        self._listeners: List[AuthListener] = []

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def signed_in(self) -> bool:
        return self._user_id is not None

    def on_change(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        if self._user_id == user_id:
            return
        if self._user_id is not None:
            self.sign_out()
        self._user_id = user_id
        log.info("Signed in as %s", user_id)
        self._emit()

    def sign_out(self) -> None:
        if self._user_id is None:
            return
        log.info("Signed out %s", self._user_id)
        self._user_id = None
        self._emit()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self._user_id)
