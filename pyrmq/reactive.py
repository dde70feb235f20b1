# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Reactive Streams support for pyrmq.

Exposes the pull loops of one or more queues as an RxPY Observable, so
pulled messages can be filtered, batched and composed with operators.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

from reactivex import Observable, Subject, operators as ops
from reactivex.scheduler import ThreadPoolScheduler

from .log import get_logger
from .models import Message, MessageQueue

if TYPE_CHECKING:
    from .consumer import PullConsumer
    from .process_queue import ProcessQueue

logger = get_logger(__name__)


class ReactivePullConsumer:
    """
    Reactive message stream over the process queues of a pull consumer.

    Example:
        >>> stream = ReactivePullConsumer(consumer, queues)
        >>> stream.messages().pipe(
        ...     ops.filter(lambda m: m.tag == "important"),
        ...     ops.map(lambda m: m.decode()),
        ...     ops.buffer_with_count(10),
        ... ).subscribe(on_next=process_batch)
        >>> stream.start()
    """

    def __init__(
        self,
        consumer: PullConsumer,
        message_queues: MessageQueue | list[MessageQueue],
        max_workers: int = 4,
    ) -> None:
        """
        Initialize reactive consumer.

        Args:
            consumer: Started pull consumer.
            message_queues: Queue or list of queues to stream.
            max_workers: Threads delivering messages to subscribers.
        """
        self._consumer = consumer
        if isinstance(message_queues, MessageQueue):
            message_queues = [message_queues]
        self._message_queues = list(message_queues)
        self._running = False
        self._lock = threading.Lock()
        self._process_queues: list[ProcessQueue] = []
        self._subject: Subject[Message] = Subject()
        self._scheduler = ThreadPoolScheduler(max_workers=max_workers)

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the pull loops."""
        with self._lock:
            if self._running:
                return
            self._running = True

        for mq in self._message_queues:
            pq = self._consumer.process_queue(mq)
            pq.add_listener(self._forward(pq))
            self._process_queues.append(pq)
            pq.start()

    def _forward(self, pq: ProcessQueue) -> Any:
        def on_batch(messages: list[Message]) -> None:
            # Emitted messages leave the cache so the loop is never throttled.
            pq.take_messages(len(messages))
            if not self._running:
                return
            for message in messages:
                self._subject.on_next(message)

        return on_batch

    def stop(self) -> None:
        """Stop the pull loops and complete the stream."""
        with self._lock:
            if not self._running:
                return
            self._running = False

        for pq in self._process_queues:
            self._consumer.drop_process_queue(pq.message_queue)
        self._process_queues.clear()
        self._subject.on_completed()

    def messages(self) -> Observable[Message]:
        """
        Get observable stream of messages.

        Returns:
            Observable stream of Message objects.
        """
        return self._subject.pipe(ops.observe_on(self._scheduler))

    def __enter__(self) -> ReactivePullConsumer:
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()


def from_topic(
    consumer: PullConsumer,
    topic: str,
    timeout_ms: int = 3000,
) -> Observable[Message]:
    """
    Create an Observable over every queue of a topic.

    Args:
        consumer: Started pull consumer.
        topic: Topic to stream.
        timeout_ms: Maximum time to wait for the topic route.

    Returns:
        Observable stream of pulled messages.
    """
    queues = consumer.queues_for(topic).get(timeout_ms=timeout_ms)
    logger.info("Streaming %d queue(s) of topic %s", len(queues), topic)
    stream = ReactivePullConsumer(consumer, queues)
    stream.start()
    return stream.messages()
