"""Requests from the capability engine to the user interface.

The engine never renders anything; it asks the UI to route to sign-in, to
open onboarding, or to show the secret-store diagnostic. Requests are queued
for polling clients and pushed to live subscribers.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class UiSignal(str, Enum):
    SIGN_IN = "sign_in"
    ONBOARDING = "onboarding"
    STORE_DIAGNOSTIC = "store_diagnostic"


@dataclass
class UiRequest:
    signal: UiSignal
    detail: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)


SignalListener = Callable[[UiRequest], None]


class SignalBus:
    """Queue of pending UI requests with push subscribers."""

    def __init__(self):
        self._pending: List[UiRequest] = []
        self._listeners: List[SignalListener] = []

    def request_sign_in(self) -> None:
        self._emit(UiRequest(UiSignal.SIGN_IN))

    def request_onboarding(self, reopened: bool = False) -> None:
        self._emit(UiRequest(UiSignal.ONBOARDING, {"reopened": reopened}))

    def request_store_diagnostic(self, code: str) -> None:
        # One blocking diagnostic is enough until the UI picks it up
        if any(r.signal is UiSignal.STORE_DIAGNOSTIC for r in self._pending):
            return
        self._emit(UiRequest(UiSignal.STORE_DIAGNOSTIC, {"code": code}))

    def pending(self) -> List[UiRequest]:
        return list(self._pending)

    def drain(self) -> List[UiRequest]:
        requests, self._pending = self._pending, []
        return requests

    def subscribe(self, listener: SignalListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, request: UiRequest) -> None:
        logger.info(f"UI request: {request.signal.value}")
        self._pending.append(request)
        for listener in list(self._listeners):
            listener(request)
