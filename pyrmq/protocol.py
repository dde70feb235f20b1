# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Wire-level request and response types.

These mirror the messages exchanged with a broker through the RPC gateway.
The gateway owns the actual encoding; the client only populates and reads
these structures.

Message Layout:
    QueryOffsetRequest   partition, policy, optional time_point
    PullMessageRequest   group, partition, offset, batch_size,
                         await_time, client_id
    QueryRouteRequest    topic
    HeartbeatRequest     client_id, heartbeats[]

Time fields are split into whole seconds and a nanosecond remainder, the
same way protobuf Timestamp and Duration are.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import IntEnum

# Protocol constants
PROTOCOL_VERSION: str = "v1"
LANGUAGE: str = "PYTHON"
NANOS_PER_SECOND: int = 1_000_000_000


class Code(IntEnum):
    """Status codes carried in every response (google.rpc.Code)."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


class QueryOffsetPolicy(IntEnum):
    """Offset lookup policies understood by the broker."""

    BEGINNING = 0
    END = 1
    TIME_POINT = 2


class Permission(IntEnum):
    """Partition access permission."""

    NONE = 0
    READ = 1
    WRITE = 2
    READ_WRITE = 3

    @property
    def readable(self) -> bool:
        return self in (Permission.READ, Permission.READ_WRITE)


class DigestType(IntEnum):
    """Body digest algorithms."""

    CRC32 = 0
    MD5 = 1
    SHA1 = 2


class Encoding(IntEnum):
    """Body encodings."""

    IDENTITY = 0
    GZIP = 1
    SNAPPY = 2
    ZLIB = 3


def split_nanos(total_nanos: int) -> tuple[int, int]:
    """
    Split a nanosecond count into whole seconds and a remainder.

    The remainder is always in ``[0, 1e9)``, so ``seconds * 1e9 + nanos``
    gives back the original value.
    """
    return divmod(total_nanos, NANOS_PER_SECOND)


@dataclass(frozen=True)
class Timestamp:
    """Point in time since the Unix epoch."""

    seconds: int
    nanos: int = 0

    @classmethod
    def from_nanos(cls, total_nanos: int) -> Timestamp:
        seconds, nanos = split_nanos(total_nanos)
        return cls(seconds=seconds, nanos=nanos)

    def to_nanos(self) -> int:
        return self.seconds * NANOS_PER_SECOND + self.nanos


@dataclass(frozen=True)
class Duration:
    """Span of time."""

    seconds: int
    nanos: int = 0

    @classmethod
    def from_timedelta(cls, delta: timedelta) -> Duration:
        # timedelta is exact to the microsecond; avoid float seconds.
        total = (delta.days * 86_400 + delta.seconds) * NANOS_PER_SECOND + delta.microseconds * 1_000
        seconds, nanos = split_nanos(total)
        return cls(seconds=seconds, nanos=nanos)

    def to_nanos(self) -> int:
        return self.seconds * NANOS_PER_SECOND + self.nanos


@dataclass(frozen=True)
class Resource:
    """A named resource (topic or group) scoped by an arn/namespace."""

    name: str
    arn: str = ""


@dataclass(frozen=True)
class Broker:
    """A broker as advertised in a topic route."""

    name: str
    id: int = 0
    address: str = ""


@dataclass(frozen=True)
class Partition:
    """One queue of a topic and the broker that owns it."""

    topic: Resource
    id: int
    broker: Broker
    permission: Permission = Permission.READ_WRITE


@dataclass(frozen=True)
class TopicRouteData:
    """
    Snapshot of a topic's partition layout.

    Routes are published into the route cache as a whole and never mutated.
    """

    topic: str
    partitions: tuple[Partition, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable but always store a tuple.
        if not isinstance(self.partitions, tuple):
            object.__setattr__(self, "partitions", tuple(self.partitions))

    @property
    def empty(self) -> bool:
        return not self.partitions


@dataclass(frozen=True)
class Status:
    """Business status of a response."""

    code: int = Code.OK
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.code == Code.OK


@dataclass(frozen=True)
class ResponseCommon:
    """Fields shared by every response."""

    status: Status = field(default_factory=Status)


# =============================================================================
# Query Offset
# =============================================================================


@dataclass(frozen=True)
class QueryOffsetRequest:
    """Offset lookup for a single partition."""

    partition: Partition
    policy: QueryOffsetPolicy
    time_point: Timestamp | None = None


@dataclass(frozen=True)
class QueryOffsetResponse:
    """Answer to a QueryOffsetRequest."""

    offset: int
    common: ResponseCommon = field(default_factory=ResponseCommon)


# =============================================================================
# Pull Message
# =============================================================================


@dataclass(frozen=True)
class Digest:
    """Checksum of a message body."""

    type: DigestType
    checksum: str


@dataclass(frozen=True)
class SystemAttribute:
    """Broker-assigned attributes of a message."""

    message_id: str = ""
    tag: str = ""
    keys: tuple[str, ...] = ()
    born_timestamp: Timestamp | None = None
    born_host: str = ""
    store_timestamp: Timestamp | None = None
    store_host: str = ""
    queue_id: int = 0
    queue_offset: int = 0
    delivery_attempt: int = 0
    body_digest: Digest | None = None
    body_encoding: Encoding = Encoding.IDENTITY


@dataclass(frozen=True)
class WireMessage:
    """A message as it travels on the wire, before decoding."""

    topic: Resource
    body: bytes
    system_attribute: SystemAttribute = field(default_factory=SystemAttribute)
    user_attribute: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PullMessageRequest:
    """Long-polling fetch of messages from a single partition."""

    group: Resource
    partition: Partition
    offset: int
    await_time: Duration
    client_id: str
    batch_size: int = 32


@dataclass(frozen=True)
class PullMessageResponse:
    """Answer to a PullMessageRequest."""

    min_offset: int = 0
    next_offset: int = 0
    max_offset: int = 0
    messages: tuple[WireMessage, ...] = ()
    common: ResponseCommon = field(default_factory=ResponseCommon)


# =============================================================================
# Route
# =============================================================================


@dataclass(frozen=True)
class QueryRouteRequest:
    """Route lookup for a topic."""

    topic: Resource


@dataclass(frozen=True)
class QueryRouteResponse:
    """Answer to a QueryRouteRequest."""

    partitions: tuple[Partition, ...] = ()
    common: ResponseCommon = field(default_factory=ResponseCommon)


# =============================================================================
# Heartbeat
# =============================================================================


@dataclass(frozen=True)
class ConsumerData:
    """Heartbeat payload describing a consumer group member."""

    group: Resource


@dataclass(frozen=True)
class HeartbeatEntry:
    """One client role's contribution to a heartbeat."""

    consumer_data: ConsumerData


@dataclass
class HeartbeatRequest:
    """Heartbeat sent periodically by the client manager; filled in by every observer."""

    client_id: str
    heartbeats: list[HeartbeatEntry] = field(default_factory=list)
