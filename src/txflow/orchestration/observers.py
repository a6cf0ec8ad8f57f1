"""Ordered fan-out of state snapshots to subscribers."""

from __future__ import annotations

import logging
from collections.abc import Callable

from txflow.domain import OrchestratorState

StateListener = Callable[[OrchestratorState], None]
Unsubscribe = Callable[[], None]


class SubscriberRegistry:
    """Calls listeners in subscription order, isolating listener failures."""

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._listeners: list[StateListener] = []
        self._logger = logger or logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, listener: StateListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, state: OrchestratorState) -> None:
        # Copy so listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            self.deliver(listener, state)

    def deliver(self, listener: StateListener, state: OrchestratorState) -> None:
        try:
            listener(state)
        except Exception:
            self._logger.exception(
                "State listener %r failed for phase %s", listener, state.phase
            )


__all__ = ["StateListener", "SubscriberRegistry", "Unsubscribe"]
