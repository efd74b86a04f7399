"""
Custom exceptions and error handling for the request fan-out gateway.

Provides:
- Typed exception hierarchy for batch-level and per-item failure modes
- Error context preservation for debugging
- Mapping of httpx transport exceptions into the per-item hierarchy
"""

from typing import Any

import httpx

from .models.result import Outcome


class FanoutGatewayError(Exception):
    """Base exception for all fan-out gateway errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Batch-level Errors
# =============================================================================


class EnvelopeError(FanoutGatewayError):
    """Inbound batch could not be read or decoded. Nothing is dispatched."""

    pass


# =============================================================================
# Per-item Errors
# =============================================================================


class ItemError(FanoutGatewayError):
    """
    Failure of a single sub-request.

    Captured into that item's ExecutionResult and never propagated past the
    dispatcher.  ``outcome`` names the terminal state the item ends in.
    """

    outcome: Outcome = Outcome.FAILED_EXECUTION


class ValidationError(ItemError):
    """Descriptor failed structural checks before any network call."""

    outcome = Outcome.FAILED_VALIDATION


class DecodeError(ValidationError):
    """Descriptor body is not valid base64."""

    pass


class MissingFieldError(ValidationError):
    """A required descriptor field is empty."""

    def __init__(self, field: str, context: dict[str, Any] | None = None):
        super().__init__(f"missing {field}", context=context)
        self.field = field


class ExecutionError(ItemError):
    """Failure while building, sending or reading an outbound request."""

    outcome = Outcome.FAILED_EXECUTION


class RequestConstructionError(ExecutionError):
    """Method/URL combination cannot form a valid outbound request."""

    outcome = Outcome.FAILED_CONSTRUCTION


class NetworkError(ExecutionError):
    """Transport failure: DNS, connection refused, TLS, transport timeout."""

    outcome = Outcome.FAILED_NETWORK


class ResponseReadError(ExecutionError):
    """Response headers arrived but the body could not be read."""

    outcome = Outcome.FAILED_RESPONSE_READ


class RequestTimeoutError(ExecutionError):
    """Item or batch deadline expired before the item finished."""

    outcome = Outcome.FAILED_TIMEOUT


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(FanoutGatewayError):
    """Base class for backing-service client errors."""

    pass


class PersistenceError(ClientError):
    """Error writing to or reading from the request log database."""

    pass


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_transport_error(
    exc: Exception,
    context: dict[str, Any] | None = None,
) -> ExecutionError:
    """
    Wrap an httpx exception raised while sending a request.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed ExecutionError subclass
    """
    ctx = context or {}
    ctx['error_type'] = type(exc).__name__

    if isinstance(exc, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
        return RequestConstructionError(
            f"failed to build request: {exc}",
            context=ctx,
        )
    elif isinstance(exc, httpx.TransportError):
        return NetworkError(
            f"request failed: {str(exc) or type(exc).__name__}",
            context=ctx,
        )
    else:
        return ExecutionError(
            f"request failed unexpectedly: {type(exc).__name__}: {exc}",
            context=ctx,
        )
