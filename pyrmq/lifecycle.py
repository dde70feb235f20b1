# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Client lifecycle shared by every client role.

A role embeds a :class:`LifecycleController` and registers start/stop hooks
on it. The state only ever moves forward:

    INITIAL -> STARTING -> STARTED -> STOPPING -> STOPPED
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from enum import IntEnum

from .log import get_logger

logger = get_logger(__name__)


class ClientState(IntEnum):
    """Lifecycle states, ordered."""

    INITIAL = 0
    STARTING = 1
    STARTED = 2
    STOPPING = 3
    STOPPED = 4


class LifecycleController:
    """
    Guarded state machine with start and shutdown sequences.

    Example:
        >>> lifecycle = LifecycleController("consumer")
        >>> lifecycle.on_start(gateway.start)
        >>> lifecycle.on_shutdown(gateway.shutdown)
        >>> lifecycle.start()
        >>> lifecycle.state
        <ClientState.STARTED: 2>
    """

    def __init__(self, name: str = "client") -> None:
        self._name = name
        self._state = ClientState.INITIAL
        self._lock = threading.Lock()
        self._start_hooks: list[Callable[[], None]] = []
        self._shutdown_hooks: list[Callable[[], None]] = []

    @property
    def state(self) -> ClientState:
        """Current state."""
        return self._state

    @property
    def running(self) -> bool:
        return self._state == ClientState.STARTED

    def compare_and_set(self, expected: ClientState, new: ClientState) -> bool:
        """
        Move from ``expected`` to ``new`` if the current state is ``expected``.

        Returns:
            True if this call performed the transition.

        Raises:
            ValueError: If ``new`` does not come after ``expected``.
        """
        if new <= expected:
            raise ValueError(f"Illegal transition {expected.name} -> {new.name}")
        with self._lock:
            if self._state != expected:
                return False
            self._state = new
            return True

    def on_start(self, hook: Callable[[], None]) -> None:
        """Register a hook run, in order, while STARTING."""
        self._start_hooks.append(hook)

    def on_shutdown(self, hook: Callable[[], None]) -> None:
        """Register a hook run, in reverse order, while STOPPING."""
        self._shutdown_hooks.append(hook)

    def start(self) -> bool:
        """
        Run the start sequence.

        Only the first call does anything. A failing hook moves the state
        straight to STOPPED and the error propagates.

        Returns:
            True if this call performed the start.
        """
        if not self.compare_and_set(ClientState.INITIAL, ClientState.STARTING):
            logger.warning("%s cannot start from state %s", self._name, self._state.name)
            return False

        try:
            for hook in self._start_hooks:
                hook()
        except Exception:
            self.compare_and_set(ClientState.STARTING, ClientState.STOPPED)
            raise

        self.compare_and_set(ClientState.STARTING, ClientState.STARTED)
        logger.info("%s started", self._name)
        return True

    def shutdown(self) -> None:
        """
        Run the shutdown sequence, leaving the state at STOPPING.

        The owning role finishes with ``STOPPING -> STOPPED`` once its own
        resources are released. Calls that lose the race do nothing.
        """
        if not self.compare_and_set(ClientState.STARTED, ClientState.STOPPING):
            return

        for hook in reversed(self._shutdown_hooks):
            try:
                hook()
            except Exception:
                logger.exception("%s shutdown hook failed", self._name)
