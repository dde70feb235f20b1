# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Request signing for pyrmq.

Every RPC carries metadata identifying the client and, when credentials are
configured, an HMAC-SHA1 authorization header:

    authorization: MQv2-HMAC-SHA1 Credential=<ak>/<region>/<service>,
                   SignedHeaders=x-mq-date-time, Signature=<HEX>

The signature covers the ``x-mq-date-time`` value, keyed by the access
secret.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import ClassVar

from cryptography.hazmat.primitives import hashes, hmac

from . import __version__
from .exceptions import SignatureError
from .protocol import LANGUAGE, PROTOCOL_VERSION

HEADER_LANGUAGE = "x-mq-language"
HEADER_PROTOCOL = "x-mq-protocol"
HEADER_CLIENT_VERSION = "x-mq-client-version"
HEADER_DATE_TIME = "x-mq-date-time"
HEADER_CLIENT_ID = "x-mq-client-id"
HEADER_REQUEST_ID = "x-mq-request-id"
HEADER_NAMESPACE = "x-mq-namespace"
HEADER_TENANT_ID = "x-mq-tenant-id"
HEADER_AUTHORIZATION = "authorization"

DATE_TIME_FORMAT = "%Y%m%dT%H%M%SZ"


@dataclass(frozen=True)
class ClientContext:
    """The parts of a client's identity that go into request metadata."""

    client_id: str
    arn: str = ""
    tenant_id: str | None = None
    access_key: str | None = None
    access_secret: str | None = None
    region: str = "cn-hangzhou"
    service_name: str = "RocketMQ"


class Signer(ABC):
    """Produces transport-level authentication headers for a request."""

    @abstractmethod
    def sign(self, context: ClientContext) -> dict[str, str]:
        pass


class HmacSigner(Signer):
    """
    Default signer: identity headers plus an optional HMAC-SHA1 authorization.

    Example:
        >>> signer = HmacSigner()
        >>> headers = signer.sign(ClientContext(client_id="host@1#0#1"))
        >>> headers["x-mq-language"]
        'PYTHON'
    """

    ALGORITHM: ClassVar[str] = "MQv2-HMAC-SHA1"

    def __init__(self, clock=None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sign(self, context: ClientContext) -> dict[str, str]:
        date_time = self._clock().strftime(DATE_TIME_FORMAT)
        metadata = {
            HEADER_LANGUAGE: LANGUAGE,
            HEADER_PROTOCOL: PROTOCOL_VERSION,
            HEADER_CLIENT_VERSION: __version__,
            HEADER_DATE_TIME: date_time,
            HEADER_CLIENT_ID: context.client_id,
            HEADER_REQUEST_ID: str(uuid.uuid4()),
        }
        if context.arn:
            metadata[HEADER_NAMESPACE] = context.arn
        if context.tenant_id:
            metadata[HEADER_TENANT_ID] = context.tenant_id

        if context.access_key and context.access_secret:
            signature = compute_signature(context.access_secret, date_time)
            metadata[HEADER_AUTHORIZATION] = (
                f"{self.ALGORITHM} "
                f"Credential={context.access_key}/{context.region}/{context.service_name}, "
                f"SignedHeaders={HEADER_DATE_TIME}, "
                f"Signature={signature}"
            )
        return metadata


def compute_signature(secret: str, payload: str) -> str:
    """
    HMAC-SHA1 of ``payload`` keyed by ``secret``, as upper-case hex.

    Raises:
        SignatureError: If the digest cannot be computed.
    """
    try:
        mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA1())
        mac.update(payload.encode("utf-8"))
        return mac.finalize().hex().upper()
    except Exception as e:
        raise SignatureError(f"Failed to sign request: {e}") from e
