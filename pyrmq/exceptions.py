# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Custom exceptions for the pyrmq pull consumer SDK.

All exceptions inherit from RMQError, so every client failure can be caught
with a single except clause:

    future = consumer.query_offset(query)
    try:
        offset = future.get()
    except RMQError as e:
        print(f"Query failed: {e}")

Failures reported by a broker carry its status code:

    class Handler(PullCallback):
        def on_exception(self, error):
            if isinstance(error, BusinessStatusError):
                print(f"Broker said {error.code}: {error}")
            elif isinstance(error, ServerNotReachableError):
                print(f"{error.address} is down")
"""

from __future__ import annotations


class RMQError(Exception):
    """
    Base exception for all pyrmq errors.

    All pyrmq exceptions inherit from this class, allowing you to catch
    all client-related errors with a single except clause.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        self.hint = hint
        if hint:
            message = f"{message}\n\n  Hint: {hint}"
        super().__init__(message)


class ClientError(RMQError):
    """
    Raised when an RPC to a broker does not complete successfully.

    The ``code`` is -1 for transport-level failures and the broker status
    code for failures the broker reported itself.
    """

    def __init__(self, message: str, code: int = -1, *, hint: str | None = None) -> None:
        self.code = code
        super().__init__(message, hint=hint)


class ServerNotReachableError(ClientError):
    """
    Raised when a broker could not be reached or did not answer in time.

    Common causes:
    - Broker is down or restarting
    - Long-polling timeout shorter than the requested await time
    - Network issues
    """

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(
            f"Server[{address}] is not reachable",
            hint="Check that the broker is running and the route is up to date",
        )


class BusinessStatusError(ClientError):
    """
    Raised when a broker answered with a non-OK status.

    Examples are a partition that moved to another broker or an offset that
    is out of range.
    """

    def __init__(self, message: str, code: int) -> None:
        super().__init__(message, code)


class TopicNotFoundError(RMQError):
    """
    Raised when no route exists for a topic.

    The topic must be created on the cluster before it can be consumed.
    """

    def __init__(self, topic: str) -> None:
        self.topic = topic
        super().__init__(
            f"Topic not found: {topic}",
            hint="Create the topic first or check the namespace (arn) setting",
        )


class InvariantViolationError(RMQError):
    """Raised when the client detects a programming defect, e.g. an empty target address."""


class PromiseAlreadySatisfiedError(RMQError):
    """Raised when a promise is completed a second time."""

    def __init__(self) -> None:
        super().__init__("Promise already satisfied")


class SignatureError(RMQError):
    """Raised when request metadata cannot be signed."""

    def __init__(self, message: str = "Failed to sign request") -> None:
        super().__init__(
            message,
            hint="Check access_key and access_secret in ClientConfig",
        )
