"""Online/offline state with change listeners."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkState:
    is_online: bool = True
    effective_type: str | None = None
    downlink: float | None = None


NetworkListener = Callable[[NetworkState], None]


class NetworkMonitor:
    """
    Holds the current connectivity state and notifies listeners when it changes.

    The runtime's connectivity signal is pushed in through set_online/update;
    repeated reports of the same state do not notify again.
    """

    def __init__(self, is_online: bool = True) -> None:
        self._state = NetworkState(is_online=is_online)
        self._listeners: list[NetworkListener] = []

    @property
    def state(self) -> NetworkState:
        return self._state

    @property
    def is_online(self) -> bool:
        return self._state.is_online

    def set_online(self, is_online: bool) -> None:
        self.update(is_online=is_online)

    def update(self, **changes: object) -> None:
        new_state = replace(self._state, **changes)
        if new_state == self._state:
            return
        self._state = new_state
        logger.info("Network state changed", extra={"is_online": new_state.is_online})
        for listener in list(self._listeners):
            listener(new_state)

    def add_listener(self, listener: NetworkListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: NetworkListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
