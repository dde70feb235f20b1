# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Pull consumer implementation.

The pull consumer leaves queue selection and offset bookkeeping to the
caller:

- queues_for: list the queues of a topic
- query_offset: look up the beginning, end or a point-in-time offset
- pull: long-poll a queue from an offset and receive a PullResult

Every call returns immediately; completions arrive on gateway threads.
"""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from .codec import DefaultMessageDecoder, MessageDecoder
from .exceptions import (
    BusinessStatusError,
    ClientError,
    InvariantViolationError,
    PromiseAlreadySatisfiedError,
    ServerNotReachableError,
)
from .future import PendingResult, Promise
from .gateway import ClientObserver, InvocationContext, RpcGateway
from .lifecycle import ClientState, LifecycleController
from .log import get_logger
from .models import (
    ClientConfig,
    ConsumerConfig,
    Message,
    MessageQueue,
    OffsetPolicy,
    OffsetQuery,
    PullMessageQuery,
    PullResult,
)
from .protocol import (
    Broker,
    Code,
    ConsumerData,
    Duration,
    HeartbeatEntry,
    HeartbeatRequest,
    Partition,
    PullMessageRequest,
    PullMessageResponse,
    QueryOffsetPolicy,
    QueryOffsetRequest,
    QueryOffsetResponse,
    QueryRouteRequest,
    QueryRouteResponse,
    Resource,
    Timestamp,
    TopicRouteData,
)
from .route import RouteCache, RouteCallback
from .signature import ClientContext, HmacSigner, Signer

if TYPE_CHECKING:
    from .process_queue import ProcessQueue

logger = get_logger(__name__)

_POLICIES = {
    OffsetPolicy.BEGINNING: QueryOffsetPolicy.BEGINNING,
    OffsetPolicy.END: QueryOffsetPolicy.END,
    OffsetPolicy.TIME_POINT: QueryOffsetPolicy.TIME_POINT,
}


class PullCallback(ABC):
    """Receives the outcome of a pull: exactly one method is called, once."""

    @abstractmethod
    def on_success(self, result: PullResult) -> None:
        pass

    @abstractmethod
    def on_exception(self, error: Exception) -> None:
        pass


class _PromisePullCallback(PullCallback):
    def __init__(self, promise: Promise[PullResult]) -> None:
        self._promise = promise

    def on_success(self, result: PullResult) -> None:
        self._promise.set_result(result)

    def on_exception(self, error: Exception) -> None:
        self._promise.set_exception(error)


class _QueryOffsetCompletion:
    """Gateway callback of one offset query."""

    def __init__(self, promise: Promise[int]) -> None:
        self._promise = promise

    def __call__(self, context: InvocationContext[QueryOffsetResponse] | None) -> None:
        try:
            if context is None or not context.ok or context.response is None:
                self._promise.set_exception(ClientError("Failed to query offset", -1))
                return
            self._promise.set_result(context.response.offset)
        except PromiseAlreadySatisfiedError:
            logger.warning("Ignoring repeated completion of query offset")


class _PullCompletion:
    """
    Gateway callback of one pull.

    Captures only the target address, the caller's handler and the decoder.
    """

    def __init__(self, target: str, handler: PullCallback, decoder: MessageDecoder) -> None:
        self._target = target
        self._handler = handler
        self._decoder = decoder
        self._lock = threading.Lock()
        self._fired = False

    def _claim(self) -> bool:
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True

    def fail(self, error: Exception) -> None:
        if not self._claim():
            logger.warning("Ignoring failure of completed pull from %s: %s", self._target, error)
            return
        self._deliver(self._handler.on_exception, error)

    def __call__(self, context: InvocationContext[PullMessageResponse] | None) -> None:
        if not self._claim():
            logger.warning("Ignoring repeated completion of pull from %s", self._target)
            return

        if context is None or not context.ok or context.response is None:
            self._deliver(self._handler.on_exception, ServerNotReachableError(self._target))
            return

        response = context.response
        status = response.common.status
        if status.code != Code.OK:
            self._deliver(self._handler.on_exception, BusinessStatusError(status.message, status.code))
            return

        messages = []
        for item in response.messages:
            message = self._decode(item)
            if message is not None:
                messages.append(message)
        if len(messages) != len(response.messages):
            logger.debug(
                "Dropped %d undecodable message(s) pulled from %s",
                len(response.messages) - len(messages), self._target,
            )

        result = PullResult(
            min_offset=response.min_offset,
            max_offset=response.max_offset,
            next_offset=response.next_offset,
            messages=tuple(messages),
        )
        self._deliver(self._handler.on_success, result)

    def _decode(self, item: Any) -> Message | None:
        try:
            return self._decoder.decode(item)
        except Exception:
            logger.debug("Failed to decode message pulled from %s", self._target, exc_info=True)
            return None

    def _deliver(self, method: Any, arg: Any) -> None:
        try:
            method(arg)
        except Exception:
            logger.exception("Pull callback raised, target=%s", self._target)


class PullConsumer(ClientObserver):
    """
    Pull consumer bound to a consumer group.

    Example:
        >>> consumer = PullConsumer(gateway, "my-group", config=ClientConfig(arn="MQ_INST_1"))
        >>> consumer.start()
        >>> queues = consumer.queues_for("orders").get(timeout_ms=3000)
        >>> offset = consumer.query_offset(
        ...     OffsetQuery(message_queue=queues[0], policy=OffsetPolicy.BEGINNING)
        ... ).get()
        >>> result = consumer.pull_future(
        ...     PullMessageQuery(message_queue=queues[0], offset=offset)
        ... ).get()
        >>> for message in result.messages:
        ...     print(message.decode())
        >>> consumer.shutdown()
    """

    def __init__(
        self,
        gateway: RpcGateway,
        group_name: str | None = None,
        *,
        config: ClientConfig | None = None,
        consumer_config: ConsumerConfig | None = None,
        signer: Signer | None = None,
        decoder: MessageDecoder | None = None,
    ) -> None:
        """
        Initialize pull consumer.

        Args:
            gateway: RPC gateway used for every broker call.
            group_name: Consumer group (ignored if consumer_config is given).
            config: Client configuration (endpoints, arn, timeouts, credentials).
            consumer_config: Consumer configuration.
            signer: Request signer, HmacSigner by default.
            decoder: Wire message decoder, DefaultMessageDecoder by default.
        """
        if consumer_config is None:
            if group_name is None:
                raise ValueError("group_name or consumer_config is required")
            consumer_config = ConsumerConfig(group_name=group_name)

        self._gateway = gateway
        self._config = config or ClientConfig()
        if consumer_config.max_await_time_ms >= self._config.long_polling_timeout_ms:
            raise ValueError(
                f"max_await_time_ms ({consumer_config.max_await_time_ms}) must be less than "
                f"long_polling_timeout_ms ({self._config.long_polling_timeout_ms})"
            )
        self._consumer_config = consumer_config
        self._signer = signer or HmacSigner()
        self._decoder = decoder or DefaultMessageDecoder()
        self._context = ClientContext(
            client_id=self._config.client_id,
            arn=self._config.arn,
            tenant_id=self._config.tenant_id,
            access_key=self._config.access_key,
            access_secret=self._config.access_secret,
            region=self._config.region,
            service_name=self._config.service_name,
        )
        self._endpoints = itertools.cycle(self._config.get_endpoints())
        self._route_cache = RouteCache(self._fetch_route)
        self._process_queues: dict[MessageQueue, ProcessQueue] = {}
        self._pq_lock = threading.Lock()

        self._lifecycle = LifecycleController(type(self).__name__)
        self._lifecycle.on_start(self._gateway.start)
        self._lifecycle.on_shutdown(self._gateway.shutdown)
        self._lifecycle.on_shutdown(lambda: self._gateway.remove_client_observer(self))
        self._lifecycle.on_shutdown(self._drop_process_queues)

    @property
    def group_name(self) -> str:
        """Get consumer group name."""
        return self._consumer_config.group_name

    @property
    def client_id(self) -> str:
        return self._config.client_id

    @property
    def arn(self) -> str:
        return self._config.arn

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def consumer_config(self) -> ConsumerConfig:
        return self._consumer_config

    @property
    def state(self) -> ClientState:
        return self._lifecycle.state

    @property
    def route_cache(self) -> RouteCache:
        return self._route_cache

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the consumer and register it with the gateway."""
        started = self._lifecycle.start()
        if self._lifecycle.state != ClientState.STARTED:
            logger.warning("Unexpected state: %s", self._lifecycle.state.name)
            return
        if started:
            self._gateway.add_client_observer(self)

    def shutdown(self) -> None:
        """Shut the consumer down. Safe to call from several threads at once."""
        self._lifecycle.shutdown()
        if self._lifecycle.compare_and_set(ClientState.STOPPING, ClientState.STOPPED):
            logger.info("PullConsumer stopped, group=%s", self.group_name)

    def prepare_heartbeat_data(self, request: HeartbeatRequest) -> None:
        """Add this consumer's group to a heartbeat."""
        entry = HeartbeatEntry(consumer_data=ConsumerData(group=self._group_resource()))
        request.heartbeats.append(entry)

    def __enter__(self) -> PullConsumer:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.shutdown()

    # =========================================================================
    # Routes
    # =========================================================================

    def queues_for(self, topic: str) -> PendingResult[list[MessageQueue]]:
        """
        List the queues of a topic.

        Args:
            topic: Topic name.

        Returns:
            Result satisfied with the topic's queues, or failed with
            TopicNotFoundError / a transport error.
        """
        return self._route_cache.resolve(topic)

    def _fetch_route(self, topic: str, callback: RouteCallback) -> None:
        endpoint = next(self._endpoints)
        request = QueryRouteRequest(topic=Resource(name=topic, arn=self.arn))
        metadata = self._signer.sign(self._context)

        def on_route(context: InvocationContext[QueryRouteResponse] | None) -> None:
            if context is None or not context.ok or context.response is None:
                callback(None, ServerNotReachableError(endpoint))
                return
            status = context.response.common.status
            if status.code == Code.NOT_FOUND:
                callback(None, None)
                return
            if status.code != Code.OK:
                callback(None, BusinessStatusError(status.message, status.code))
                return
            callback(TopicRouteData(topic=topic, partitions=context.response.partitions), None)

        self._gateway.query_route(endpoint, metadata, request, self._config.io_timeout_ms, on_route)

    # =========================================================================
    # Offsets
    # =========================================================================

    def query_offset(self, query: OffsetQuery) -> PendingResult[int]:
        """
        Look up an offset of a queue.

        Args:
            query: Queue, policy and, for TIME_POINT, the time point.

        Returns:
            Result satisfied with the offset, or failed with ClientError.
        """
        promise: Promise[int] = Promise()
        try:
            request = self._wrap_query_offset_request(query)
            metadata = self._signer.sign(self._context)
            self._gateway.query_offset(
                query.message_queue.service_address,
                metadata,
                request,
                self._config.io_timeout_ms,
                _QueryOffsetCompletion(promise),
            )
        except Exception as e:
            if promise.satisfied:
                logger.warning("Query offset dispatch raised after completion: %s", e)
            else:
                promise.set_exception(e)
        return promise.result

    def _wrap_query_offset_request(self, query: OffsetQuery) -> QueryOffsetRequest:
        time_point = None
        if query.policy == OffsetPolicy.TIME_POINT:
            time_point = Timestamp.from_nanos(query.time_point_nanos)
        return QueryOffsetRequest(
            partition=self._wrap_partition(query.message_queue),
            policy=_POLICIES[query.policy],
            time_point=time_point,
        )

    # =========================================================================
    # Pull
    # =========================================================================

    def pull(self, query: PullMessageQuery, handler: PullCallback) -> None:
        """
        Long-poll a queue.

        Args:
            query: Queue, starting offset and maximum await time.
            handler: Receives exactly one of on_success / on_exception.

        Raises:
            InvariantViolationError: If the queue has no service address.
            ValueError: If await_time is not shorter than long_polling_timeout_ms.
        """
        target = query.message_queue.service_address
        if not target:
            raise InvariantViolationError(f"Message queue {query.message_queue} has no service address")
        if query.await_time >= timedelta(milliseconds=self._config.long_polling_timeout_ms):
            raise ValueError(
                f"await_time {query.await_time} must be shorter than the long polling timeout "
                f"({self._config.long_polling_timeout_ms} ms)"
            )

        request = PullMessageRequest(
            group=self._group_resource(),
            partition=self._wrap_partition(query.message_queue),
            offset=query.offset,
            await_time=Duration.from_timedelta(query.await_time),
            client_id=self.client_id,
            batch_size=self._consumer_config.max_batch_size,
        )
        completion = _PullCompletion(target, handler, self._decoder)
        try:
            metadata = self._signer.sign(self._context)
            self._gateway.pull_message(
                target,
                metadata,
                request,
                self._config.long_polling_timeout_ms,
                completion,
            )
        except Exception as e:
            completion.fail(e)

    def pull_future(self, query: PullMessageQuery) -> PendingResult[PullResult]:
        """
        Long-poll a queue, returning a result instead of taking a handler.

        Raises:
            InvariantViolationError: If the queue has no service address.
        """
        promise: Promise[PullResult] = Promise()
        self.pull(query, _PromisePullCallback(promise))
        return promise.result

    # =========================================================================
    # Process queues
    # =========================================================================

    def process_queue(
        self,
        message_queue: MessageQueue,
        offset_reader: Callable[[MessageQueue], int] | None = None,
    ) -> ProcessQueue:
        """
        Get the self-driving pull loop of a queue, creating it if needed.

        Process queues are dropped when the consumer shuts down.

        Args:
            message_queue: Queue to pull from.
            offset_reader: Start offset lookup used instead of query_offset
                when a new process queue is created.
        """
        from .process_queue import ProcessQueue

        with self._pq_lock:
            pq = self._process_queues.get(message_queue)
            if pq is None or pq.dropped:
                pq = ProcessQueue(self, message_queue, offset_reader=offset_reader)
                self._process_queues[message_queue] = pq
            return pq

    def drop_process_queue(self, message_queue: MessageQueue) -> None:
        """Stop and forget the pull loop of a queue."""
        with self._pq_lock:
            pq = self._process_queues.pop(message_queue, None)
        if pq is not None:
            pq.drop()

    def _drop_process_queues(self) -> None:
        with self._pq_lock:
            queues, self._process_queues = list(self._process_queues.values()), {}
        for pq in queues:
            pq.drop()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _group_resource(self) -> Resource:
        return Resource(name=self.group_name, arn=self.arn)

    def _wrap_partition(self, message_queue: MessageQueue) -> Partition:
        return Partition(
            topic=Resource(name=message_queue.topic, arn=self.arn),
            id=message_queue.queue_id,
            broker=Broker(name=message_queue.broker_name, address=message_queue.service_address),
        )
