"""
Error types for TigrisDB SDK.

This module defines all exception types raised by the SDK:
- TigrisDBError: Base exception
- TransportError: Channel-level failures (unreachable, deadline exceeded)
- AuthError: Authentication or authorization failures
- ServerError: Remote operation rejected with a status code
- ProtocolStateError: Transaction lifecycle misuse
- ValidationError: Malformed input rejected before dispatch

Invariants:
    - All errors inherit from TigrisDBError
    - A remote failure is wrapped exactly once per operation label
    - Messages read "<operation label> Cause: <cause message>"
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import grpc

_TRANSPORT_CODES = frozenset(
    {
        grpc.StatusCode.UNAVAILABLE,
        grpc.StatusCode.DEADLINE_EXCEEDED,
        grpc.StatusCode.CANCELLED,
    }
)
_AUTH_CODES = frozenset(
    {
        grpc.StatusCode.UNAUTHENTICATED,
        grpc.StatusCode.PERMISSION_DENIED,
    }
)


class TigrisDBError(Exception):
    """Base exception for all TigrisDB SDK errors.

    Attributes:
        message: Composed error message
        code: Error code for programmatic handling
        details: Additional error context
        cause: Underlying exception, if any
    """

    default_code = "TIGRISDB_ERROR"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        composed = compose_message(message, cause)
        super().__init__(composed)
        self.message = composed
        self.cause = cause
        self.code = code or self.default_code
        self.details = details or {}
        if cause is not None:
            self.__cause__ = cause


class TransportError(TigrisDBError):
    """The channel failed to deliver the call.

    Raised when:
    - Server is unreachable
    - Deadline expires
    - Call is cancelled
    """

    default_code = "TRANSPORT_ERROR"


class AuthError(TigrisDBError):
    """Authentication or authorization failed."""

    default_code = "AUTH_ERROR"


class ServerError(TigrisDBError):
    """Server rejected the operation.

    Attributes:
        status_code: gRPC status code returned by the server
    """

    default_code = "SERVER_ERROR"

    def __init__(
        self,
        message: str,
        cause: Optional[BaseException] = None,
        status_code: Optional[grpc.StatusCode] = None,
    ) -> None:
        super().__init__(
            message,
            cause,
            details={"status_code": status_code.name if status_code else None},
        )
        self.status_code = status_code


class ProtocolStateError(TigrisDBError):
    """Operation is not valid in the current transaction state.

    Raised when:
    - commit() or rollback() is called on a finished transaction
    - A collection operation is issued through a finished transaction
    """

    default_code = "PROTOCOL_STATE_ERROR"

    def __init__(
        self,
        message: str,
        operation: str,
        transaction_id: str,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            message,
            cause,
            details={"operation": operation, "transaction_id": transaction_id},
        )
        self.operation = operation
        self.transaction_id = transaction_id


class ValidationError(TigrisDBError):
    """Input validation failed before the call was dispatched.

    Raised when:
    - Schema document is not valid JSON
    - Schema is missing its name or properties
    """

    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, cause, details={"errors": errors or []})
        self.errors = errors or []


def status_code_of(error: BaseException) -> Optional[grpc.StatusCode]:
    """Return the gRPC status code carried by an error, if any."""
    if isinstance(error, ServerError):
        return error.status_code
    if isinstance(error, TigrisDBError) and isinstance(error.cause, BaseException):
        return status_code_of(error.cause)
    code = getattr(error, "code", None)
    if isinstance(error, grpc.RpcError) and callable(code):
        result = code()
        if isinstance(result, grpc.StatusCode):
            return result
    return None


def cause_message(cause: BaseException) -> Optional[str]:
    """Render the message of a cause, or None if it has none.

    gRPC failures render as "<STATUS>: <details>".
    """
    if isinstance(cause, TigrisDBError):
        return cause.message

    if isinstance(cause, grpc.RpcError):
        code = status_code_of(cause)
        if code is not None:
            details_fn = getattr(cause, "details", None)
            details = details_fn() if callable(details_fn) else None
            return f"{code.name}: {details}" if details else code.name

    if cause.args and cause.args[0] is None:
        return None
    return str(cause) or None


def compose_message(message: str, cause: Optional[BaseException]) -> str:
    """Build "<message> Cause: <cause message>"."""
    if cause is None:
        return message
    text = cause_message(cause)
    if text is None:
        return message
    return f"{message} Cause: {text}"


def wrap_error(message: str, cause: BaseException) -> TigrisDBError:
    """Wrap a failure into the matching domain error.

    Domain errors keep their class; gRPC failures are classified by status.
    """
    if isinstance(cause, ProtocolStateError):
        return ProtocolStateError(
            message, cause.operation, cause.transaction_id, cause=cause
        )
    if isinstance(cause, ValidationError):
        return ValidationError(message, errors=cause.errors, cause=cause)

    code = status_code_of(cause)
    if isinstance(cause, (TransportError, AuthError)):
        return type(cause)(message, cause)
    if code in _TRANSPORT_CODES:
        return TransportError(message, cause)
    if code in _AUTH_CODES:
        return AuthError(message, cause)
    if code is not None:
        return ServerError(message, cause, status_code=code)
    if isinstance(cause, (ConnectionError, TimeoutError, OSError)):
        return TransportError(message, cause)
    return TigrisDBError(message, cause)
