"""Application-level exception types for Lazarus."""

from __future__ import annotations

from enum import IntEnum


class ResponseCode(IntEnum):
    """Status codes reported back to the transport boundary."""

    OK = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404
    BAD_GATEWAY = 502


class LazarusError(Exception):
    """Base exception for Lazarus."""

    code: ResponseCode = ResponseCode.BAD_GATEWAY


class RequestError(LazarusError):
    """Base exception for inbound messages rejected before any state is touched."""

    code = ResponseCode.BAD_REQUEST


class MalformedMessageError(RequestError):
    """Raised when an inbound payload cannot be parsed into a message."""


class InvalidIdentityError(RequestError):
    """Raised when an inbound message carries no usable worker id."""


class UnknownNamespaceError(RequestError):
    """Raised when an inbound message is routed to a namespace this worker does not serve."""

    code = ResponseCode.NOT_FOUND


class SnapshotStoreError(LazarusError):
    """Raised by snapshot stores when the backing storage fails."""


class SnapshotLoadError(SnapshotStoreError):
    """Raised when a stored snapshot cannot be read."""


class SnapshotSaveError(SnapshotStoreError):
    """Raised when a snapshot cannot be written."""


class TransportError(LazarusError):
    """Raised when a response batch cannot be delivered to the client."""

    code = ResponseCode.BAD_GATEWAY


class BatchAlreadySentError(LazarusError):
    """Raised when an invocation tries to emit a second response batch."""


class ConfigurationError(LazarusError):
    """Raised when the worker cannot be assembled from settings and plugins."""
