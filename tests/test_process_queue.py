# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Tests for the per-queue pull loop."""

import time

import pytest

from conftest import RecordingGateway, StaticSigner, ok
from pyrmq import ClientConfig, ConsumeFromWhere, ConsumerConfig, MessageQueue, PullConsumer
from pyrmq.protocol import (
    Code,
    PullMessageResponse,
    QueryOffsetPolicy,
    QueryOffsetResponse,
    Resource,
    ResponseCommon,
    Status,
    SystemAttribute,
    WireMessage,
)


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def response(offsets: list[int], next_offset: int) -> PullMessageResponse:
    messages = tuple(
        WireMessage(
            topic=Resource(name="orders"),
            body=f"m{o}".encode(),
            system_attribute=SystemAttribute(queue_offset=o),
        )
        for o in offsets
    )
    return PullMessageResponse(min_offset=0, max_offset=100, next_offset=next_offset, messages=messages)


def make_consumer(gateway: RecordingGateway, config: ClientConfig, **overrides) -> PullConsumer:
    settings = {"group_name": "test-group", "pull_later_delay_ms": 10}
    settings.update(overrides)
    return PullConsumer(gateway, config=config, consumer_config=ConsumerConfig(**settings), signer=StaticSigner())


class TestStartOffset:
    """Tests for start offset resolution."""

    def test_queries_offset_with_consume_from(
        self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue
    ) -> None:
        """Test BEGINNING policy is used and the loop pulls from the answer."""
        consumer = make_consumer(gateway, config, consume_from=ConsumeFromWhere.BEGINNING)
        pq = consumer.process_queue(queue)
        pq.start()

        query = gateway.last("query_offset")
        assert query.request.policy == QueryOffsetPolicy.BEGINNING
        query.callback(ok(QueryOffsetResponse(offset=40)))

        assert gateway.last("pull_message").request.offset == 40
        assert pq.offset == 40
        pq.drop()

    def test_timestamp_policy(self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue) -> None:
        """Test TIMESTAMP start uses the configured time point."""
        consumer = make_consumer(
            gateway, config, consume_from=ConsumeFromWhere.TIMESTAMP, consume_from_time_ms=1_000
        )
        consumer.process_queue(queue).start()

        request = gateway.last("query_offset").request
        assert request.policy == QueryOffsetPolicy.TIME_POINT
        assert request.time_point.seconds == 1
        assert request.time_point.nanos == 0

    def test_failed_offset_query_drops(self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue) -> None:
        """Test the queue is dropped when the start offset is unknown."""
        consumer = make_consumer(gateway, config)
        pq = consumer.process_queue(queue)
        pq.start()
        gateway.last("query_offset").callback(None)

        assert pq.dropped
        assert gateway.calls_of("pull_message") == []

    def test_query_offset_raising_drops(
        self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue, monkeypatch
    ) -> None:
        """Test a start that cannot issue its offset query drops the queue."""
        consumer = make_consumer(gateway, config)
        pq = consumer.process_queue(queue)

        def broken(query):
            raise RuntimeError("signer unavailable")

        monkeypatch.setattr(consumer, "query_offset", broken)
        pq.start()

        assert pq.dropped
        assert consumer.process_queue(queue) is not pq

    def test_offset_reader(self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue) -> None:
        """Test a custom offset reader bypasses query_offset."""
        from pyrmq import ProcessQueue

        consumer = make_consumer(gateway, config)
        pq = ProcessQueue(consumer, queue, offset_reader=lambda mq: 77)
        pq.start()

        assert gateway.calls_of("query_offset") == []
        assert gateway.last("pull_message").request.offset == 77
        pq.drop()

    def test_offset_reader_failure_drops(self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue) -> None:
        """Test a failing offset reader drops the queue."""
        from pyrmq import ProcessQueue

        def broken(mq):
            raise IOError("store unavailable")

        pq = ProcessQueue(make_consumer(gateway, config), queue, offset_reader=broken)
        pq.start()
        assert pq.dropped


class TestPullLoop:
    """Tests for the pull loop itself."""

    @pytest.fixture
    def started(self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue):
        consumer = make_consumer(gateway, config, max_cached_messages=3, pull_later_delay_ms=60000)
        pq = consumer.process_queue(queue)
        pq.start()
        gateway.last("query_offset").callback(ok(QueryOffsetResponse(offset=0)))
        yield pq
        pq.drop()

    def test_success_caches_and_continues(self, started, gateway: RecordingGateway) -> None:
        """Test messages are cached and the next pull starts at next_offset."""
        gateway.last("pull_message").callback(ok(response([0, 1], next_offset=2)))

        assert started.cached_count() == 2
        assert gateway.last("pull_message").request.offset == 2
        assert [m.body for m in started.take_messages(10)] == [b"m0", b"m1"]
        assert started.cached_count() == 0

    def test_listener_receives_batches(self, started, gateway: RecordingGateway) -> None:
        """Test listeners see each non-empty batch."""
        batches: list[list] = []
        started.add_listener(batches.append)
        gateway.last("pull_message").callback(ok(response([], next_offset=0)))
        gateway.last("pull_message").callback(ok(response([0], next_offset=1)))

        assert len(batches) == 1
        assert batches[0][0].queue_offset == 0

    def test_throttled_when_cache_full(self, started, gateway: RecordingGateway) -> None:
        """Test no pull is issued while the cache is full."""
        pulls = len(gateway.calls_of("pull_message"))
        gateway.last("pull_message").callback(ok(response([0, 1, 2], next_offset=3)))

        assert started.throttled()
        assert len(gateway.calls_of("pull_message")) == pulls
        assert started.offset == 3

    def test_throttled_when_cache_too_large(
        self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue
    ) -> None:
        """Test no pull is issued while cached bodies exceed the byte limit."""
        consumer = make_consumer(gateway, config, max_cached_bytes=5, pull_later_delay_ms=60000)
        pq = consumer.process_queue(queue)
        pq.start()
        gateway.last("query_offset").callback(ok(QueryOffsetResponse(offset=0)))
        gateway.last("pull_message").callback(ok(response([0, 1, 2], next_offset=3)))

        assert pq.cached_bytes() == 6
        assert pq.throttled()
        assert len(gateway.calls_of("pull_message")) == 1

        pq.take_messages(2)
        assert pq.cached_bytes() == 2
        assert not pq.throttled()
        pq.drop()

    def test_drop_stops_loop(self, started, gateway: RecordingGateway) -> None:
        """Test completions after drop do not pull again."""
        started.drop()
        pulls = len(gateway.calls_of("pull_message"))
        gateway.last("pull_message").callback(ok(response([0], next_offset=1)))

        assert len(gateway.calls_of("pull_message")) == pulls
        assert started.cached_count() == 1


class TestRetry:
    """Tests for pull-later behaviour."""

    @pytest.mark.parametrize(
        "context",
        [None, ok(PullMessageResponse(common=ResponseCommon(Status(Code.INTERNAL, "busy"))))],
    )
    def test_failure_pulls_later_from_same_offset(
        self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue, context
    ) -> None:
        """Test a failed pull is retried after the delay."""
        consumer = make_consumer(gateway, config)
        pq = consumer.process_queue(queue)
        pq.start()
        gateway.last("query_offset").callback(ok(QueryOffsetResponse(offset=9)))
        gateway.last("pull_message").callback(context)

        assert wait_for(lambda: len(gateway.calls_of("pull_message")) == 2)
        assert gateway.last("pull_message").request.offset == 9
        pq.drop()

    def test_result_handling_failure_pulls_later(
        self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue, monkeypatch
    ) -> None:
        """Test a failure while handling a pull result keeps the loop alive."""
        consumer = make_consumer(gateway, config)
        pq = consumer.process_queue(queue)
        pq.start()
        gateway.last("query_offset").callback(ok(QueryOffsetResponse(offset=5)))

        failures = [RuntimeError("cache corrupted")]
        original = pq.throttled

        def throttled() -> bool:
            if failures:
                raise failures.pop()
            return original()

        monkeypatch.setattr(pq, "throttled", throttled)
        gateway.last("pull_message").callback(ok(response([5], next_offset=6)))

        assert wait_for(lambda: len(gateway.calls_of("pull_message")) == 2)
        assert gateway.last("pull_message").request.offset == 5
        pq.drop()


class TestConsumerIntegration:
    """Tests for process queues owned by the consumer."""

    def test_same_queue_same_process_queue(self, consumer: PullConsumer, queue: MessageQueue) -> None:
        """Test the consumer reuses a live process queue."""
        assert consumer.process_queue(queue) is consumer.process_queue(queue)

    def test_shutdown_drops_process_queues(self, consumer: PullConsumer, queue: MessageQueue) -> None:
        """Test shutdown stops every pull loop."""
        consumer.start()
        pq = consumer.process_queue(queue)
        consumer.shutdown()
        assert pq.dropped

    def test_offset_reader_through_consumer(
        self, gateway: RecordingGateway, config: ClientConfig, queue: MessageQueue
    ) -> None:
        """Test a consumer-created queue can start from a custom offset store."""
        consumer = make_consumer(gateway, config)
        consumer.start()
        pq = consumer.process_queue(queue, offset_reader=lambda mq: 12)
        pq.start()

        assert gateway.calls_of("query_offset") == []
        assert gateway.last("pull_message").request.offset == 12
        consumer.shutdown()
        assert pq.dropped

    def test_dropped_queue_is_replaced(self, consumer: PullConsumer, queue: MessageQueue) -> None:
        """Test a dropped process queue is recreated on demand."""
        first = consumer.process_queue(queue)
        consumer.drop_process_queue(queue)
        assert first.dropped
        assert consumer.process_queue(queue) is not first
