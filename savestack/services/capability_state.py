"""Observable, process-scoped capability state.

One instance is created per engine; tests build their own. Transitions are
applied in the order they are reported, and listeners are told about every
status change.
"""

import logging
from typing import Callable, List

from savestack.models import CapabilityStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[CapabilityStatus], None]


class CapabilityState:
    """Holds UNKNOWN -> ONLINE | OFFLINE for AI-dependent features."""

    def __init__(self):
        self._status = CapabilityStatus.UNKNOWN
        self._listeners: List[StatusListener] = []

    @property
    def status(self) -> CapabilityStatus:
        return self._status

    def is_offline(self) -> bool:
        """True unless a resolution has succeeded since the last failure."""
        return self._status is not CapabilityStatus.ONLINE

    def mark_online(self) -> None:
        self._transition(CapabilityStatus.ONLINE)

    def mark_offline(self) -> None:
        self._transition(CapabilityStatus.OFFLINE)

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, status: CapabilityStatus) -> None:
        if status is self._status:
            return
        previous, self._status = self._status, status
        logger.info(f"Capability {previous.value} -> {status.value}")
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Capability listener failed")
