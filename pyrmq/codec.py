# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Conversion of wire messages into :class:`~pyrmq.models.Message`.

A decoder returns ``None`` for a message it cannot make sense of. The pull
path drops such messages instead of failing the whole pull.
"""

from __future__ import annotations

import zlib
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from cryptography.hazmat.primitives import hashes

from .log import get_logger
from .models import Message
from .protocol import DigestType, Encoding, Timestamp, WireMessage

logger = get_logger(__name__)


class MessageDecoder(ABC):
    """Turns a wire message into an in-memory message, or None to drop it."""

    @abstractmethod
    def decode(self, wire: WireMessage) -> Message | None:
        pass


class DefaultMessageDecoder(MessageDecoder):
    """
    Verifies the body digest, inflates ZLIB bodies and copies attributes.

    Example:
        >>> decoder = DefaultMessageDecoder()
        >>> message = decoder.decode(wire)
        >>> if message is not None:
        ...     print(message.decode())
    """

    def decode(self, wire: WireMessage) -> Message | None:
        attrs = wire.system_attribute
        body = wire.body

        digest = attrs.body_digest
        if digest is not None:
            actual = body_checksum(digest.type, body)
            if actual.lower() != digest.checksum.lower():
                logger.debug(
                    "Dropping message %s: %s checksum mismatch",
                    attrs.message_id, digest.type.name,
                )
                return None

        if attrs.body_encoding == Encoding.ZLIB:
            try:
                body = zlib.decompress(body)
            except zlib.error:
                logger.debug("Dropping message %s: corrupt zlib body", attrs.message_id)
                return None
        elif attrs.body_encoding != Encoding.IDENTITY:
            logger.debug(
                "Dropping message %s: unsupported encoding %s",
                attrs.message_id, attrs.body_encoding.name,
            )
            return None

        return Message(
            topic=wire.topic.name,
            body=body,
            message_id=attrs.message_id,
            tag=attrs.tag,
            keys=attrs.keys,
            queue_id=attrs.queue_id,
            queue_offset=attrs.queue_offset,
            born_host=attrs.born_host,
            born_timestamp=_to_datetime(attrs.born_timestamp),
            store_timestamp=_to_datetime(attrs.store_timestamp),
            delivery_attempt=attrs.delivery_attempt,
            properties=dict(wire.user_attribute),
        )


def body_checksum(digest_type: DigestType, body: bytes) -> str:
    """Compute the hex checksum of ``body`` for the given digest type."""
    if digest_type == DigestType.CRC32:
        return format(zlib.crc32(body) & 0xFFFFFFFF, "08X")

    algorithm = hashes.MD5() if digest_type == DigestType.MD5 else hashes.SHA1()
    h = hashes.Hash(algorithm)
    h.update(body)
    return h.finalize().hex().upper()


def _to_datetime(ts: Timestamp | None) -> datetime | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts.seconds, tz=timezone.utc).replace(microsecond=ts.nanos // 1000)
