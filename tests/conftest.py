# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Shared fixtures: a recording gateway and a deterministic signer."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

import pytest

from pyrmq import (
    ClientConfig,
    ClientContext,
    ClientObserver,
    InvocationContext,
    MessageQueue,
    PullCallback,
    PullConsumer,
    PullResult,
    RpcGateway,
    Signer,
)
from pyrmq.protocol import Broker, Partition, Resource


@dataclass
class Call:
    """A dispatch recorded by the gateway."""

    method: str
    address: str
    metadata: dict[str, str]
    request: Any
    timeout_ms: int
    callback: Any


class RecordingGateway(RpcGateway):
    """Records every dispatch; tests complete calls through the stored callback."""

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self.observers: list[ClientObserver] = []
        self.started = 0
        self.stopped = 0
        self.raise_on_dispatch: Exception | None = None
        self._lock = threading.Lock()

    def _record(self, method: str, address: str, metadata: Any, request: Any, timeout_ms: int, callback: Any) -> None:
        if self.raise_on_dispatch is not None:
            raise self.raise_on_dispatch
        with self._lock:
            self.calls.append(Call(method, address, dict(metadata), request, timeout_ms, callback))

    def query_offset(self, address, metadata, request, timeout_ms, callback) -> None:
        self._record("query_offset", address, metadata, request, timeout_ms, callback)

    def pull_message(self, address, metadata, request, timeout_ms, callback) -> None:
        self._record("pull_message", address, metadata, request, timeout_ms, callback)

    def query_route(self, address, metadata, request, timeout_ms, callback) -> None:
        self._record("query_route", address, metadata, request, timeout_ms, callback)

    def add_client_observer(self, observer: ClientObserver) -> None:
        self.observers.append(observer)

    def remove_client_observer(self, observer: ClientObserver) -> None:
        self.observers.remove(observer)

    def start(self) -> None:
        self.started += 1

    def shutdown(self) -> None:
        self.stopped += 1

    def calls_of(self, method: str) -> list[Call]:
        with self._lock:
            return [c for c in self.calls if c.method == method]

    def last(self, method: str) -> Call:
        return self.calls_of(method)[-1]


class StaticSigner(Signer):
    """Signer returning fixed headers and counting invocations."""

    def __init__(self) -> None:
        self.contexts: list[ClientContext] = []

    def sign(self, context: ClientContext) -> dict[str, str]:
        self.contexts.append(context)
        return {"x-mq-client-id": context.client_id, "authorization": "test"}


class RecordingCallback(PullCallback):
    """Pull handler recording every invocation."""

    def __init__(self) -> None:
        self.results: list[PullResult] = []
        self.errors: list[Exception] = []
        self.event = threading.Event()

    def on_success(self, result: PullResult) -> None:
        self.results.append(result)
        self.event.set()

    def on_exception(self, error: Exception) -> None:
        self.errors.append(error)
        self.event.set()

    @property
    def invocations(self) -> int:
        return len(self.results) + len(self.errors)


def ok(response: Any) -> InvocationContext:
    return InvocationContext(ok=True, response=response)


def failed(error: str = "deadline exceeded") -> InvocationContext:
    return InvocationContext(ok=False, error=error)


def make_partition(topic: str, queue_id: int, address: str = "10.0.0.1:8081", broker: str = "broker-a") -> Partition:
    return Partition(
        topic=Resource(name=topic, arn="MQ_INST_1"),
        id=queue_id,
        broker=Broker(name=broker, id=0, address=address),
    )


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def signer() -> StaticSigner:
    return StaticSigner()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(
        endpoints="ns-1:8081",
        arn="MQ_INST_1",
        client_id="test-client",
        io_timeout_ms=3000,
        long_polling_timeout_ms=30000,
    )


@pytest.fixture
def consumer(gateway: RecordingGateway, signer: StaticSigner, config: ClientConfig) -> PullConsumer:
    c = PullConsumer(gateway, "test-group", config=config, signer=signer)
    yield c
    c.shutdown()


@pytest.fixture
def queue() -> MessageQueue:
    return MessageQueue(topic="orders", broker_name="broker-a", queue_id=2, service_address="10.0.0.1:8081")
