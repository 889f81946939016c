"""Identity session holder.

Adapts the external identity provider to what the capability engine needs:
the current session and a stream of sign-in/sign-out events.
"""

import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

from savestack.models import AuthEvent, Session

logger = logging.getLogger(__name__)

AuthListener = Callable[[AuthEvent, Optional[Session]], Union[None, Awaitable[None]]]


class IdentityService:
    """Tracks the active session and notifies subscribers of changes."""

    def __init__(self, session: Optional[Session] = None):
        self._session = session
        self._listeners: List[AuthListener] = []

    def current_session(self) -> Optional[Session]:
        return self._session

    @property
    def is_signed_in(self) -> bool:
        return self._session is not None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register for ``(event, session)`` pairs; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, session: Session) -> None:
        self._session = session
        logger.info(f"Signed in as {session.user_id}")
        await self._emit(AuthEvent.SIGNED_IN, session)

    async def sign_out(self) -> None:
        if self._session is None:
            return
        logger.info(f"Signed out {self._session.user_id}")
        self._session = None
        await self._emit(AuthEvent.SIGNED_OUT, None)

    async def _emit(self, event: AuthEvent, session: Optional[Session]) -> None:
        for listener in list(self._listeners):
            result = listener(event, session)
            if inspect.isawaitable(result):
                await result
