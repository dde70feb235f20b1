# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Local cache of topic routes.

Cached topics are answered immediately. A miss asks an external fetcher for
the route; the fetcher reports back through a callback, possibly from
another thread. The cache lock is never held while the fetcher runs.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Optional

from .exceptions import PromiseAlreadySatisfiedError, TopicNotFoundError
from .future import PendingResult, Promise, completed
from .log import get_logger
from .models import MessageQueue
from .protocol import TopicRouteData

logger = get_logger(__name__)

RouteCallback = Callable[[Optional[TopicRouteData], Optional[BaseException]], None]
RouteFetcher = Callable[[str, RouteCallback], None]


class RouteCache:
    """
    Topic name to route snapshot, guarded by a mutex.

    Example:
        >>> cache = RouteCache(fetcher)
        >>> queues = cache.resolve("orders").get(timeout_ms=3000)
        >>> [str(q) for q in queues]
        ['orders@broker-a#0', 'orders@broker-a#1']
    """

    def __init__(self, fetcher: RouteFetcher) -> None:
        """
        Initialize the cache.

        Args:
            fetcher: Called as ``fetcher(topic, callback)`` on a miss. The
                callback takes ``(route, error)``.
        """
        self._fetcher = fetcher
        self._routes: dict[str, TopicRouteData] = {}
        self._lock = threading.Lock()

    def get(self, topic: str) -> TopicRouteData | None:
        """Get the cached route, if any."""
        with self._lock:
            return self._routes.get(topic)

    def update(self, topic: str, route: TopicRouteData) -> None:
        """Publish a route, replacing any previous one."""
        with self._lock:
            previous = self._routes.get(topic)
            self._routes[topic] = route
        if previous != route:
            logger.info("Route of topic %s updated, %d partition(s)", topic, len(route.partitions))

    def invalidate(self, topic: str) -> None:
        """Forget the route of ``topic``."""
        with self._lock:
            self._routes.pop(topic, None)

    def topics(self) -> list[str]:
        """Get cached topic names."""
        with self._lock:
            return list(self._routes)

    def resolve(self, topic: str) -> PendingResult[list[MessageQueue]]:
        """
        Get the queues of ``topic``.

        Returns:
            A result that is already satisfied on a cache hit. On a miss it
            completes when the fetcher answers, failing with
            TopicNotFoundError if there is no route.
        """
        with self._lock:
            route = self._routes.get(topic)
        if route is not None:
            return completed(_as_queues(route))

        promise: Promise[list[MessageQueue]] = Promise()

        def settle(value: list[MessageQueue] | None, error: BaseException | None) -> None:
            try:
                if error is not None:
                    promise.set_exception(error)
                else:
                    promise.set_result(value)
            except PromiseAlreadySatisfiedError:
                logger.warning("Ignoring repeated route completion for topic %s", topic)

        def on_route(route: TopicRouteData | None, error: BaseException | None) -> None:
            if error is not None:
                settle(None, error)
                return
            if route is None or route.empty:
                settle(None, TopicNotFoundError(topic))
                return
            try:
                queues = _as_queues(route)
            except Exception as e:
                logger.error("Invalid route of topic %s: %s", topic, e)
                settle(None, e)
                return
            if promise.satisfied:
                logger.warning("Ignoring repeated route completion for topic %s", topic)
                return
            self.update(topic, route)
            settle(queues, None)

        try:
            self._fetcher(topic, on_route)
        except Exception as e:
            if promise.satisfied:
                logger.warning("Route fetcher for topic %s raised after completing: %s", topic, e)
            else:
                settle(None, e)
        return promise.result


def _as_queues(route: TopicRouteData) -> list[MessageQueue]:
    return [MessageQueue.from_partition(partition) for partition in route.partitions]
