# lifecycle.py
# Scrolly contributors, Copyright(C)2026, MIT License.
# -*- coding: utf-8 -*-
"""
Ties the presentation server's lifetime to the browser tab that shows it.

The page opens a WebSocket to /ws on load and pings it periodically. When that
socket goes away (tab closed, navigated away, network drop) or the page posts
to /shutdown, the process exits after a short grace period so the last
response can flush. Persistent server mode never creates a controller.
"""
import enum
import logging
import os
import threading
from typing import Callable, Optional

CHANNEL_CLOSED_GRACE_SECONDS = 0.5
SHUTDOWN_REQUEST_GRACE_SECONDS = 0.2


class LifecycleState(enum.Enum):
    AWAITING_CONNECTION = "awaiting_connection"
    CONNECTED = "connected"
    TERMINATING = "terminating"


def exit_process() -> None:
    logging.info("Presentation closed. Exiting.")
    logging.shutdown()
    # Hard exit: open connections are not drained.
    os._exit(0)


class LifecycleController:
    """Owns the AWAITING_CONNECTION -> CONNECTED -> TERMINATING state machine.

    Only the first move into TERMINATING schedules the exit, so a shutdown
    request racing a channel close exits exactly once.
    """

    def __init__(
        self,
        channel_grace: float = CHANNEL_CLOSED_GRACE_SECONDS,
        shutdown_grace: float = SHUTDOWN_REQUEST_GRACE_SECONDS,
        exit_func: Callable[[], None] = exit_process,
    ):
        self.channel_grace = channel_grace
        self.shutdown_grace = shutdown_grace
        self._exit_func = exit_func
        self._lock = threading.Lock()
        self._state = LifecycleState.AWAITING_CONNECTION
        self._channel_id = 0
        self._exit_timer: Optional[threading.Timer] = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def current_channel(self) -> Optional[int]:
        if self._state is LifecycleState.CONNECTED:
            return self._channel_id
        return None

    def open_channel(self) -> Optional[int]:
        """Registers a newly accepted connection as the control channel.

        The newest connection replaces any earlier one. Returns None when the
        process is already terminating.
        """
        with self._lock:
            if self._state is LifecycleState.TERMINATING:
                return None
            self._channel_id += 1
            self._state = LifecycleState.CONNECTED
            return self._channel_id

    def close_channel(self, channel_id: Optional[int]) -> bool:
        """Reports that a control connection stopped reading.

        Returns True if this started termination.
        """
        with self._lock:
            if self._state is not LifecycleState.CONNECTED or channel_id != self._channel_id:
                return False
            logging.info("Browser closed, shutting down...")
            return self._begin_termination(self.channel_grace)

    def request_shutdown(self) -> bool:
        with self._lock:
            if self._state is LifecycleState.TERMINATING:
                return False
            logging.info("Shutdown requested from browser...")
            return self._begin_termination(self.shutdown_grace)

    def _begin_termination(self, grace: float) -> bool:
        # caller holds self._lock
        self._state = LifecycleState.TERMINATING
        self._exit_timer = threading.Timer(grace, self._exit_func)
        self._exit_timer.daemon = True
        self._exit_timer.start()
        return True
