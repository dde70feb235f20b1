# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Single-assignment results for asynchronous operations.

A :class:`Promise` is the producer handle and a :class:`PendingResult` is
what callers hold. Gateway callbacks complete the promise on whatever thread
they run on; callers block on ``get()`` or register a done callback.

Example:
    >>> promise: Promise[int] = Promise()
    >>> result = promise.result
    >>> promise.set_result(42)
    >>> result.get()
    42
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Generic, TypeVar

from .exceptions import PromiseAlreadySatisfiedError
from .log import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


class PendingResult(Generic[T]):
    """
    Result of an in-flight operation.

    Satisfied exactly once, either with a value or with an exception.
    """

    def __init__(self) -> None:
        """Initialize an unsatisfied result."""
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._value: T | None = None
        self._error: BaseException | None = None
        self._callbacks: list[Callable[[PendingResult[T]], None]] = []

    def _complete(self, value: T | None, error: BaseException | None) -> None:
        with self._lock:
            self._value = value
            self._error = error
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._invoke(callback)

    def _invoke(self, callback: Callable[[PendingResult[T]], None]) -> None:
        try:
            callback(self)
        except Exception:
            logger.exception("Done callback raised")

    def get(self, timeout_ms: int | None = None) -> T:
        """
        Wait for the result.

        Args:
            timeout_ms: Maximum time to wait, or None to wait forever.

        Returns:
            The value the operation completed with.

        Raises:
            Exception: The failure the operation completed with.
            TimeoutError: If timeout expires.
        """
        timeout = None if timeout_ms is None else timeout_ms / 1000.0
        if not self._event.wait(timeout=timeout):
            raise TimeoutError("Operation timed out")

        if self._error is not None:
            raise self._error

        return self._value  # type: ignore[return-value]

    def exception(self, timeout_ms: int | None = None) -> BaseException | None:
        """Wait for completion and return the failure, if any."""
        timeout = None if timeout_ms is None else timeout_ms / 1000.0
        if not self._event.wait(timeout=timeout):
            raise TimeoutError("Operation timed out")
        return self._error

    def done(self) -> bool:
        """Check if the operation is complete."""
        return self._event.is_set()

    def succeeded(self) -> bool:
        """Check if the operation succeeded."""
        return self._event.is_set() and self._error is None

    def add_done_callback(self, callback: Callable[[PendingResult[T]], None]) -> None:
        """
        Register a callback to run on completion.

        Runs immediately on the calling thread if the result is already
        available, otherwise on the thread that completes it.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        self._invoke(callback)


class Promise(Generic[T]):
    """
    Producer handle of a :class:`PendingResult`.

    The handle lets go of its result on first completion, so a second
    ``set_result``/``set_exception`` raises instead of overwriting.
    """

    def __init__(self) -> None:
        self._result: PendingResult[T] | None = PendingResult()
        self._view = self._result
        self._lock = threading.Lock()

    @property
    def result(self) -> PendingResult[T]:
        """The caller-facing side."""
        return self._view

    @property
    def satisfied(self) -> bool:
        return self._result is None

    def _take(self) -> PendingResult[T]:
        with self._lock:
            result, self._result = self._result, None
        if result is None:
            raise PromiseAlreadySatisfiedError()
        return result

    def set_result(self, value: T) -> None:
        """Complete with a value."""
        self._take()._complete(value, None)

    def set_exception(self, error: BaseException) -> None:
        """Complete with a failure."""
        self._take()._complete(None, error)


def completed(value: T) -> PendingResult[T]:
    """Return a result that is already satisfied with ``value``."""
    promise: Promise[T] = Promise()
    promise.set_result(value)
    return promise.result


def failed(error: BaseException) -> PendingResult[T]:
    """Return a result that has already failed with ``error``."""
    promise: Promise[T] = Promise()
    promise.set_exception(error)
    return promise.result
