# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Connectivity state shared by the store, the services and the UI.

The monitor is fed by the platform's reachability callback
(``set_connected``) and by components that see transient failures on a
live subscription (``report_degraded``). Listeners are plain callables
invoked synchronously; a failing listener is logged and skipped.
"""

import logging
from typing import Callable

from attendlink.infrastructure.background import BackgroundTaskQueue
from attendlink.infrastructure.events import EventBus, EventTypes

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Tracks whether the shared store is reachable.

    Attributes:
        is_connected: Current reachability.
        degraded_count: Transient subscription failures reported so far.
    """

    def __init__(
        self,
        initially_connected: bool = True,
        event_bus: EventBus | None = None,
        task_queue: BackgroundTaskQueue | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            initially_connected: Starting state.
            event_bus: Optional bus for connectivity events.
            task_queue: Queue used to publish events from sync callers.
        """
        self._connected = initially_connected
        self._listeners: list[ConnectivityListener] = []
        self._event_bus = event_bus
        self._task_queue = task_queue
        self._degraded_count = 0

    @property
    def is_connected(self) -> bool:
        """Current reachability."""
        return self._connected

    @property
    def degraded_count(self) -> int:
        """Number of transient failures reported."""
        return self._degraded_count

    def add_listener(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a listener for connectivity changes.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def set_connected(self, connected: bool) -> None:
        """Record a reachability change and notify listeners.

        Repeated reports of the same state are ignored.
        """
        if connected == self._connected:
            return

        self._connected = connected
        logger.info("Connectivity changed: %s", "online" if connected else "offline")

        for listener in list(self._listeners):
            try:
                listener(connected)
            except Exception as e:
                logger.error("Connectivity listener failed: %s", str(e), exc_info=True)

        self._emit(EventTypes.Connectivity.CHANGED, {"connected": connected})

    def report_degraded(self, source: str, error: BaseException) -> None:
        """Record a transient failure on a live subscription.

        Args:
            source: Component that observed the failure.
            error: The failure.
        """
        self._degraded_count += 1
        logger.warning("Transient connectivity issue in %s: %s", source, str(error))
        self._emit(
            EventTypes.Connectivity.DEGRADED,
            {"source": source, "error": str(error)},
        )

    def _emit(self, event_type: str, payload: dict) -> None:
        if self._event_bus is None or self._task_queue is None:
            return
        try:
            self._task_queue.submit(
                self._event_bus.publish(event_type, payload),
                name=event_type,
            )
        except RuntimeError:
            logger.debug("No running loop, connectivity event %s not published", event_type)
