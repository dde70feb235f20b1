# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
pyrmq - Python pull consumer SDK for RocketMQ-style brokers.

A client library that talks to brokers through a pluggable RPC gateway, with
support for:
- Cached, lazily-resolved topic routes
- Offset lookup by beginning, end or point in time
- Long-polling pulls with per-message decoding
- Signed request metadata (HMAC-SHA1)
- Self-driving per-queue pull loops and reactive streams

Quick Start:
    >>> from pyrmq import ClientConfig, OffsetPolicy, OffsetQuery, PullConsumer, PullMessageQuery
    >>>
    >>> consumer = PullConsumer(gateway, "my-group", config=ClientConfig(arn="MQ_INST_1"))
    >>> consumer.start()
    >>> queues = consumer.queues_for("my-topic").get(timeout_ms=3000)
    >>> offset = consumer.query_offset(
    ...     OffsetQuery(message_queue=queues[0], policy=OffsetPolicy.BEGINNING)
    ... ).get()
    >>> result = consumer.pull_future(PullMessageQuery(message_queue=queues[0], offset=offset)).get()
    >>> for message in result.messages:
    ...     print(message.decode())

Callback style:
    >>> class Handler(PullCallback):
    ...     def on_success(self, result):
    ...         print(f"{len(result.messages)} message(s), next offset {result.next_offset}")
    ...     def on_exception(self, error):
    ...         print(f"Pull failed: {error}")
    >>> consumer.pull(PullMessageQuery(message_queue=queues[0], offset=offset), Handler())

Context Manager:
    >>> with PullConsumer(gateway, "my-group") as consumer:
    ...     pq = consumer.process_queue(queues[0])
    ...     pq.start()

Authentication:
    >>> config = ClientConfig(access_key="AK", access_secret="SK", arn="MQ_INST_1")
"""

__version__ = "0.3.0"
__author__ = "Firefly Software Solutions Inc."
__license__ = "Apache-2.0"

from .codec import DefaultMessageDecoder, MessageDecoder
from .consumer import PullCallback, PullConsumer
from .exceptions import (
    BusinessStatusError,
    ClientError,
    InvariantViolationError,
    PromiseAlreadySatisfiedError,
    RMQError,
    ServerNotReachableError,
    SignatureError,
    TopicNotFoundError,
)
from .future import PendingResult, Promise
from .gateway import ClientObserver, InvocationContext, RpcGateway
from .lifecycle import ClientState, LifecycleController
from .log import enable_console_logging, get_logger
from .models import (
    ClientConfig,
    ConsumeFromWhere,
    ConsumerConfig,
    Message,
    MessageQueue,
    OffsetPolicy,
    OffsetQuery,
    PullMessageQuery,
    PullResult,
)
from .process_queue import ProcessQueue
from .reactive import ReactivePullConsumer, from_topic
from .route import RouteCache
from .signature import ClientContext, HmacSigner, Signer

__all__ = [
    # Consumer
    "PullConsumer",
    "PullCallback",
    "ProcessQueue",
    # Reactive
    "ReactivePullConsumer",
    "from_topic",
    # Async results
    "PendingResult",
    "Promise",
    # Routes
    "RouteCache",
    # Gateway
    "RpcGateway",
    "InvocationContext",
    "ClientObserver",
    # Lifecycle
    "ClientState",
    "LifecycleController",
    # Signing
    "Signer",
    "HmacSigner",
    "ClientContext",
    # Decoding
    "MessageDecoder",
    "DefaultMessageDecoder",
    # Configuration
    "ClientConfig",
    "ConsumerConfig",
    "ConsumeFromWhere",
    # Types (Pydantic models)
    "MessageQueue",
    "Message",
    "OffsetPolicy",
    "OffsetQuery",
    "PullMessageQuery",
    "PullResult",
    # Logging
    "get_logger",
    "enable_console_logging",
    # Exceptions
    "RMQError",
    "ClientError",
    "ServerNotReachableError",
    "BusinessStatusError",
    "TopicNotFoundError",
    "InvariantViolationError",
    "PromiseAlreadySatisfiedError",
    "SignatureError",
]
