# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Self-driving pull loop for a single queue.

A ProcessQueue finds its starting offset, then keeps pulling and caching
messages until it is dropped:

- start offset comes from a custom offset reader if given, otherwise from
  query_offset with the consumer's ``consume_from`` policy
- a successful pull caches its messages and pulls again from next_offset
- a failed pull, or a cache over its message count or byte limit, pulls
  again after ``pull_later_delay_ms``
- a failed start offset lookup drops the queue
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable
from datetime import timedelta
from typing import TYPE_CHECKING

from .consumer import PullCallback
from .future import PendingResult
from .log import get_logger
from .models import ConsumeFromWhere, Message, MessageQueue, OffsetPolicy, OffsetQuery, PullMessageQuery, PullResult

if TYPE_CHECKING:
    from .consumer import PullConsumer

logger = get_logger(__name__)

OffsetReader = Callable[[MessageQueue], int]
MessageListener = Callable[[list[Message]], None]

_START_POLICIES = {
    ConsumeFromWhere.BEGINNING: OffsetPolicy.BEGINNING,
    ConsumeFromWhere.END: OffsetPolicy.END,
    ConsumeFromWhere.TIMESTAMP: OffsetPolicy.TIME_POINT,
}


class _LoopCallback(PullCallback):
    def __init__(self, pq: ProcessQueue, offset: int) -> None:
        self._pq = pq
        self._offset = offset

    def on_success(self, result: PullResult) -> None:
        try:
            self._pq._on_pull_result(result)
        except Exception:
            logger.exception(
                "Failed to handle pull result, would pull later, mq=%s", self._pq.message_queue
            )
            self._pq._pull_later(self._offset)

    def on_exception(self, error: Exception) -> None:
        self._pq._on_pull_error(error, self._offset)


class ProcessQueue:
    """
    Pull loop and message cache of one queue.

    Example:
        >>> pq = consumer.process_queue(queue)
        >>> pq.start()
        >>> for message in pq.take_messages(16):
        ...     print(message.decode())
        >>> pq.drop()
    """

    def __init__(
        self,
        consumer: PullConsumer,
        message_queue: MessageQueue,
        *,
        offset_reader: OffsetReader | None = None,
    ) -> None:
        """
        Initialize process queue.

        Args:
            consumer: Consumer issuing the pulls.
            message_queue: Queue to pull from.
            offset_reader: Optional custom offset store lookup.
        """
        self._consumer = consumer
        self._message_queue = message_queue
        self._offset_reader = offset_reader
        self._config = consumer.consumer_config
        self._lock = threading.Lock()
        self._messages: deque[Message] = deque()
        self._cached_bytes = 0
        self._timers: set[threading.Timer] = set()
        self._listeners: list[MessageListener] = []
        self._dropped = False
        self._started = False
        self._offset: int | None = None

    @property
    def message_queue(self) -> MessageQueue:
        return self._message_queue

    @property
    def dropped(self) -> bool:
        return self._dropped

    @property
    def offset(self) -> int | None:
        """Offset the next pull starts from."""
        return self._offset

    def cached_count(self) -> int:
        with self._lock:
            return len(self._messages)

    def cached_bytes(self) -> int:
        """Total body size of the cached messages."""
        with self._lock:
            return self._cached_bytes

    def throttled(self) -> bool:
        with self._lock:
            count, size = len(self._messages), self._cached_bytes
        if count >= self._config.max_cached_messages:
            logger.warning(
                "Process queue total messages quantity exceeds the threshold, threshold=%d, actual=%d, mq=%s",
                self._config.max_cached_messages, count, self._message_queue,
            )
            return True
        if size >= self._config.max_cached_bytes:
            logger.warning(
                "Process queue total messages memory exceeds the threshold, threshold=%d bytes, actual=%d bytes, mq=%s",
                self._config.max_cached_bytes, size, self._message_queue,
            )
            return True
        return False

    def add_listener(self, listener: MessageListener) -> None:
        """Receive every non-empty batch as it is cached, on the pulling thread."""
        self._listeners.append(listener)

    def start(self) -> None:
        """Resolve the start offset and begin pulling."""
        with self._lock:
            if self._started or self._dropped:
                return
            self._started = True

        if self._offset_reader is not None:
            try:
                offset = self._offset_reader(self._message_queue)
            except Exception:
                logger.exception("Failed to read offset from offset store, mq=%s", self._message_queue)
                self.drop()
                return
            self._pull(offset)
            return

        policy = _START_POLICIES[self._config.consume_from]
        try:
            query = OffsetQuery(
                message_queue=self._message_queue,
                policy=policy,
                time_point=self._config.consume_from_time_ms if policy == OffsetPolicy.TIME_POINT else None,
            )
            result = self._consumer.query_offset(query)
        except Exception:
            logger.exception("Failed to query start offset, mq=%s", self._message_queue)
            self.drop()
            return
        result.add_done_callback(self._on_start_offset)

    def _on_start_offset(self, result: PendingResult[int]) -> None:
        error = result.exception()
        if error is not None:
            logger.error("Failed to query start offset, mq=%s: %s", self._message_queue, error)
            self.drop()
            return
        offset = result.get()
        logger.info("Query offset successfully, mq=%s, offset=%d", self._message_queue, offset)
        self._pull(offset)

    def take_messages(self, max_count: int) -> list[Message]:
        """Remove and return up to ``max_count`` cached messages, oldest first."""
        with self._lock:
            count = min(max_count, len(self._messages))
            taken = [self._messages.popleft() for _ in range(count)]
            self._cached_bytes -= sum(len(m.body) for m in taken)
            return taken

    def drop(self) -> None:
        """Stop pulling. Cached messages stay available to take_messages."""
        with self._lock:
            if self._dropped:
                return
            self._dropped = True
            timers, self._timers = self._timers, set()
        for timer in timers:
            timer.cancel()
        logger.info("Process queue dropped, mq=%s", self._message_queue)

    def _pull(self, offset: int) -> None:
        self._offset = offset
        if self._dropped:
            logger.info("Process queue has been dropped, no longer pull message, mq=%s", self._message_queue)
            return
        if self.throttled():
            logger.warning("Process queue is throttled, would pull message later, mq=%s", self._message_queue)
            self._pull_later(offset)
            return
        self._pull_immediately(offset)

    def _pull_immediately(self, offset: int) -> None:
        query = PullMessageQuery(
            message_queue=self._message_queue,
            offset=offset,
            await_time=timedelta(milliseconds=self._config.max_await_time_ms),
        )
        try:
            self._consumer.pull(query, _LoopCallback(self, offset))
        except Exception:
            logger.exception("Failed to pull message, would pull later, mq=%s", self._message_queue)
            self._pull_later(offset)

    def _pull_later(self, offset: int) -> None:
        timer = threading.Timer(self._config.pull_later_delay_ms / 1000.0, self._fire_later, args=(offset,))
        timer.daemon = True
        with self._lock:
            if self._dropped:
                return
            self._timers.add(timer)
        timer.start()

    def _fire_later(self, offset: int) -> None:
        with self._lock:
            self._timers = {t for t in self._timers if t.is_alive() and t is not threading.current_thread()}
        self._pull(offset)

    def _on_pull_result(self, result: PullResult) -> None:
        messages = list(result.messages)
        if messages:
            with self._lock:
                self._messages.extend(messages)
                self._cached_bytes += sum(len(m.body) for m in messages)
            for listener in self._listeners:
                try:
                    listener(messages)
                except Exception:
                    logger.exception("Message listener raised, mq=%s", self._message_queue)
        logger.debug(
            "Pull message with OK, mq=%s, messages found count=%d", self._message_queue, len(messages)
        )
        self._pull(result.next_offset)

    def _on_pull_error(self, error: Exception, offset: int) -> None:
        logger.error("Failed to pull message, would pull later, mq=%s: %s", self._message_queue, error)
        self._pull_later(offset)
