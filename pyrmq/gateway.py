# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
RPC gateway interface consumed by the pull consumer.

The gateway moves requests to brokers and reports completion through a
callback, on a thread of its own choosing. Implementations wrap a concrete
transport (gRPC, remoting, an in-process fake in tests).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .protocol import (
    HeartbeatRequest,
    PullMessageRequest,
    PullMessageResponse,
    QueryOffsetRequest,
    QueryOffsetResponse,
    QueryRouteRequest,
    QueryRouteResponse,
)

R = TypeVar("R")


@dataclass(frozen=True)
class InvocationContext(Generic[R]):
    """
    Completion of a single RPC.

    ``ok`` reflects the transport outcome only. A broker-side failure arrives
    as ``ok=True`` with a non-OK status inside ``response``.
    """

    ok: bool
    response: R | None = None
    error: str = ""
    remote_address: str = ""


Callback = Callable[[Optional[InvocationContext[R]]], None]


class ClientObserver(ABC):
    """A client role the gateway talks back to (heartbeats, server notifications)."""

    @abstractmethod
    def prepare_heartbeat_data(self, request: HeartbeatRequest) -> None:
        pass


class RpcGateway(ABC):
    """
    Asynchronous unary calls to named broker addresses.

    Every dispatch method must eventually invoke ``callback`` exactly once,
    with ``None`` or a failed context when the call could not complete
    (unreachable, timed out).
    """

    @abstractmethod
    def query_offset(
        self,
        address: str,
        metadata: Mapping[str, str],
        request: QueryOffsetRequest,
        timeout_ms: int,
        callback: Callback[QueryOffsetResponse],
    ) -> None:
        pass

    @abstractmethod
    def pull_message(
        self,
        address: str,
        metadata: Mapping[str, str],
        request: PullMessageRequest,
        timeout_ms: int,
        callback: Callback[PullMessageResponse],
    ) -> None:
        pass

    @abstractmethod
    def query_route(
        self,
        address: str,
        metadata: Mapping[str, str],
        request: QueryRouteRequest,
        timeout_ms: int,
        callback: Callback[QueryRouteResponse],
    ) -> None:
        pass

    @abstractmethod
    def add_client_observer(self, observer: ClientObserver) -> None:
        pass

    @abstractmethod
    def remove_client_observer(self, observer: ClientObserver) -> None:
        pass

    def start(self) -> None:
        """Start background resources. No-op by default."""

    def shutdown(self) -> None:
        """Release background resources. No-op by default."""
