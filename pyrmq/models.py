# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Pydantic models for the pyrmq SDK.

Provides validated configuration and the caller-facing value objects of the
pull consumer: queues, queries, messages and pull results.
"""

from __future__ import annotations

import itertools
import os
import socket
import time
from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .protocol import Partition


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_client_sequence = itertools.count()


class OffsetPolicy(str, Enum):
    """Where an offset query should point."""
    BEGINNING = "beginning"
    END = "end"
    TIME_POINT = "time_point"


class ConsumeFromWhere(str, Enum):
    """Starting position of a process queue without a stored offset."""
    BEGINNING = "beginning"
    END = "end"
    TIMESTAMP = "timestamp"


def generate_client_id() -> str:
    """Build a client id unique within the host: ``host@pid#seq#nanos``."""
    return f"{socket.gethostname()}@{os.getpid()}#{next(_client_sequence)}#{time.time_ns()}"


def datetime_to_nanos(value: datetime) -> int:
    """
    Convert a datetime to nanoseconds since the Unix epoch without float rounding.

    Naive datetimes are taken as local time.
    """
    if value.tzinfo is None:
        value = value.astimezone()
    delta = value - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000


# ============================================================================
# Configuration Models
# ============================================================================


class ClientConfig(BaseModel):
    """Configuration shared by every client role."""

    model_config = ConfigDict(validate_assignment=True)

    endpoints: str | list[str] = Field(
        default="localhost:8081",
        description="Comma-separated list of name server endpoints or list of strings"
    )
    arn: str = Field(default="", description="Namespace the client's resources live in")
    client_id: str = Field(default_factory=generate_client_id)
    io_timeout_ms: int = Field(default=3000, ge=1, le=300000)
    long_polling_timeout_ms: int = Field(default=30000, ge=1, le=600000)

    # Credentials
    access_key: str | None = None
    access_secret: str | None = None
    region: str = "cn-hangzhou"
    service_name: str = "RocketMQ"
    tenant_id: str | None = None

    @model_validator(mode="after")
    def validate_credentials(self) -> ClientConfig:
        if bool(self.access_key) != bool(self.access_secret):
            raise ValueError("access_key and access_secret must be set together")
        return self

    def get_endpoints(self) -> list[str]:
        """Get list of name server endpoints."""
        if isinstance(self.endpoints, str):
            return [s.strip() for s in self.endpoints.split(",") if s.strip()]
        return list(self.endpoints)

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_key and self.access_secret)


class ConsumerConfig(BaseModel):
    """Configuration for a pull consumer."""

    model_config = ConfigDict(validate_assignment=True)

    group_name: str
    max_batch_size: int = Field(default=32, ge=1, le=1024)
    consume_from: ConsumeFromWhere = ConsumeFromWhere.END
    consume_from_time_ms: int | None = Field(default=None, ge=0)
    max_await_time_ms: int = Field(default=15000, ge=0)
    max_cached_messages: int = Field(default=1024, ge=1)
    max_cached_bytes: int = Field(default=64 * 1024 * 1024, ge=1)
    pull_later_delay_ms: int = Field(default=3000, ge=0)

    @field_validator("group_name")
    @classmethod
    def validate_group_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("group_name must not be blank")
        return v

    @model_validator(mode="after")
    def validate_consume_from(self) -> ConsumerConfig:
        if self.consume_from == ConsumeFromWhere.TIMESTAMP and self.consume_from_time_ms is None:
            raise ValueError("consume_from_time_ms is required when consuming from TIMESTAMP")
        return self


# ============================================================================
# Value Objects
# ============================================================================


class MessageQueue(BaseModel):
    """A partition of a topic, addressed through the broker that owns it."""

    model_config = ConfigDict(frozen=True)

    topic: str
    broker_name: str = ""
    queue_id: int = Field(ge=0)
    service_address: str = ""

    @classmethod
    def from_partition(cls, partition: Partition) -> MessageQueue:
        return cls(
            topic=partition.topic.name,
            broker_name=partition.broker.name,
            queue_id=partition.id,
            service_address=partition.broker.address,
        )

    def __str__(self) -> str:
        return f"{self.topic}@{self.broker_name}#{self.queue_id}"


class OffsetQuery(BaseModel):
    """
    Offset lookup for a single queue.

    ``time_point`` is required for ``OffsetPolicy.TIME_POINT`` and may be a
    datetime or an int of epoch milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    message_queue: MessageQueue
    policy: OffsetPolicy
    time_point: datetime | int | None = None

    @model_validator(mode="after")
    def validate_time_point(self) -> OffsetQuery:
        if self.policy == OffsetPolicy.TIME_POINT and self.time_point is None:
            raise ValueError("time_point is required for TIME_POINT policy")
        return self

    @property
    def time_point_nanos(self) -> int | None:
        """Time point as nanoseconds since the epoch, if any."""
        if self.time_point is None:
            return None
        if isinstance(self.time_point, datetime):
            return datetime_to_nanos(self.time_point)
        return self.time_point * 1_000_000


class PullMessageQuery(BaseModel):
    """Long-polling pull from a single queue starting at ``offset``."""

    model_config = ConfigDict(frozen=True)

    message_queue: MessageQueue
    offset: int = Field(ge=0)
    await_time: timedelta = timedelta(seconds=15)

    @field_validator("await_time")
    @classmethod
    def validate_await_time(cls, v: timedelta) -> timedelta:
        if v < timedelta(0):
            raise ValueError("await_time must not be negative")
        return v


class Message(BaseModel):
    """A message pulled from a queue."""

    model_config = ConfigDict(frozen=True)

    topic: str
    body: bytes
    message_id: str = ""
    tag: str = ""
    keys: tuple[str, ...] = ()
    queue_id: int = 0
    queue_offset: int = 0
    born_host: str = ""
    born_timestamp: datetime | None = None
    store_timestamp: datetime | None = None
    delivery_attempt: int = 0
    properties: dict[str, str] = Field(default_factory=dict)

    @property
    def value(self) -> bytes:
        """Alias for body."""
        return self.body

    def decode(self, encoding: str = "utf-8") -> str:
        """Decode message body as string."""
        return self.body.decode(encoding)


class PullResult(BaseModel):
    """Outcome of a successful pull."""

    model_config = ConfigDict(frozen=True)

    min_offset: int
    max_offset: int
    next_offset: int
    messages: tuple[Message, ...] = ()
