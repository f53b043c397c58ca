# src/restgraph/exceptions.py
"""
Error taxonomy for restgraph.

Every failure the driver surfaces is one of these types. HTTP statuses are
mapped onto them by the gateway (see ``error_for_status``).
"""

from typing import Any, Optional, Sequence, Tuple


class RestGraphError(Exception):
    """Base class for all restgraph errors."""

    def __init__(self, message: str, *, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body


class NotFoundError(RestGraphError, LookupError):
    """Referenced entity, property or index does not exist remotely."""


class ConflictError(RestGraphError):
    """Index re-created with another configuration, or a refused uniqueness constraint."""


class BadInputError(RestGraphError, ValueError):
    """Malformed identifiers, entities of another service, bad variadic arguments."""


class UnsupportedError(RestGraphError, NotImplementedError):
    """The requested operation cannot be expressed against the remote service."""


class TransportFailure(RestGraphError):
    """Network error, timeout, or an HTTP failure outside the graph domain."""


class InvalidStateError(RestGraphError):
    """A batch (or pending entity) used outside its legal state transitions."""


class BatchError(RestGraphError):
    """
    Aggregate failure of a batch commit.

    Attributes:
        index: 1-based position of the first failing operation, or None when
               the service rejected the batch as a whole.
        cause: The typed error describing that operation's failure.
        applied: 1-based positions the service reported as applied before the
                 failure. Empty when nothing is known to have been applied.
    """

    def __init__(
        self,
        index: Optional[int],
        cause: RestGraphError,
        applied: Sequence[int] = (),
    ):
        where = f"operation {index}" if index is not None else "batch"
        super().__init__(
            f"Batch failed at {where}: {cause.message}",
            status=cause.status,
            body=cause.body,
        )
        self.index = index
        self.cause = cause
        self.applied: Tuple[int, ...] = tuple(applied)

    @property
    def partially_applied(self) -> bool:
        return bool(self.applied)


def _message_from(body: Any, default: str) -> str:
    if isinstance(body, dict):
        for key in ("message", "exception"):
            if body.get(key):
                return str(body[key])
        errors = body.get("errors")
        if errors and isinstance(errors, list) and isinstance(errors[0], dict):
            return str(errors[0].get("message", default))
    if isinstance(body, str) and body:
        return body
    return default


def error_for_status(status: int, body: Any = None, context: str = "") -> RestGraphError:
    """
    Build the typed error for a failed HTTP status.

    Args:
        status: HTTP status code returned by the service
        body: Decoded response body (used for the message)
        context: Short description of the request, e.g. "GET node/5"

    Returns:
        The matching RestGraphError subclass instance
    """
    prefix = f"{context}: " if context else ""
    message = prefix + _message_from(body, f"HTTP {status}")
    if status == 404:
        return NotFoundError(message, status=status, body=body)
    if status == 409:
        return ConflictError(message, status=status, body=body)
    if status == 400:
        return BadInputError(message, status=status, body=body)
    return TransportFailure(message, status=status, body=body)
