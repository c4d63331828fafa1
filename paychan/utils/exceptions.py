"""
Exception hierarchy for the paychan transport.

Provides:
- A base error carrying a code, a category and structured details
- One error class per failure stage (handshake, inbound, outbound, teardown)
- Lifecycle precondition errors for the session state guard
- Safe error message formatting (no sensitive data leak)
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    FATAL = "fatal"
    RETRYABLE = "retryable"
    VALIDATION = "validation"
    REJECTED = "rejected"
    PRECONDITION = "precondition"
    TIMEOUT = "timeout"


class PaychanError(Exception):
    """Base exception for all paychan errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# --- Handshake ---


class NoAccountError(PaychanError):
    """The chain provider has no accounts registered."""

    def __init__(self, provider: str | None = None):
        super().__init__(
            "Provider has no accounts registered",
            code="NO_ACCOUNT",
            details={"provider": provider} if provider else {},
        )


class PeerUnreachableError(PaychanError):
    """Discovery request to the peer failed."""

    def __init__(self, server: str, reason: str, status_code: int | None = None):
        super().__init__(
            f"Unable to reach peer server {server}: {reason}",
            code="PEER_UNREACHABLE",
            category=ErrorCategory.RETRYABLE,
            details={"server": server, "status_code": status_code},
        )


class MalformedPeerResponseError(PaychanError):
    """Discovery response did not carry a peer account."""

    def __init__(self, server: str, reason: str = "missing account"):
        super().__init__(
            f"Malformed discovery response from {server}: {reason}",
            code="MALFORMED_PEER_RESPONSE",
            category=ErrorCategory.VALIDATION,
            details={"server": server},
        )


# --- Payments ---


class PaymentRejectedError(PaychanError):
    """The ledger engine refused an inbound payment."""

    def __init__(self, reason: str, channel_id: str | None = None):
        super().__init__(
            f"Payment rejected: {reason}",
            code="PAYMENT_REJECTED",
            category=ErrorCategory.REJECTED,
            details={"channel_id": channel_id} if channel_id else {},
        )


class PaymentSendError(PaychanError):
    """An outbound buy against the ledger engine failed."""

    def __init__(self, reason: str, gateway: str | None = None, price: Any = None):
        details: dict[str, Any] = {}
        if gateway:
            details["gateway"] = gateway
        if price is not None:
            details["price"] = str(price)
        super().__init__(
            f"Payment send failed: {reason}",
            code="PAYMENT_SEND_FAILED",
            category=ErrorCategory.RETRYABLE,
            details=details,
        )


class TransportError(PaychanError):
    """Data send failed on the network or with a non-success status."""

    def __init__(self, url: str, reason: str, status_code: int | None = None):
        super().__init__(
            f"Transport error for {url}: {reason}",
            code="TRANSPORT_ERROR",
            category=ErrorCategory.RETRYABLE,
            details={"url": url, "status_code": status_code},
        )


class ChannelCloseError(PaychanError):
    """Closing a single channel failed. Logged, never propagated by teardown."""

    def __init__(self, channel_id: str, reason: str):
        super().__init__(
            f"Error closing channel {channel_id}: {reason}",
            code="CHANNEL_CLOSE_FAILED",
            category=ErrorCategory.RETRYABLE,
            details={"channel_id": channel_id},
        )


# --- Lifecycle ---


class NotConnectedError(PaychanError):
    """Operation requires a connected session."""

    def __init__(self, operation: str):
        super().__init__(
            f"'{operation}' requires a connected session; call connect() first",
            code="NOT_CONNECTED",
            category=ErrorCategory.PRECONDITION,
            details={"operation": operation},
        )


class AlreadyConnectedError(PaychanError):
    """connect() called on a session that is connecting or connected."""

    def __init__(self, state: str):
        super().__init__(
            f"Session is already {state}; disconnect() before connecting again",
            code="ALREADY_CONNECTED",
            category=ErrorCategory.PRECONDITION,
            details={"state": state},
        )


class NoPeerError(PaychanError):
    """Outbound send on a session configured without a peer server."""

    def __init__(self, operation: str):
        super().__init__(
            f"'{operation}' requires a peer server to be configured",
            code="NO_PEER",
            category=ErrorCategory.PRECONDITION,
            details={"operation": operation},
        )


class LedgerTimeoutError(PaychanError):
    """A ledger engine call did not complete in time."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            f"Ledger operation '{operation}' timed out after {timeout_seconds}s",
            code="LEDGER_TIMEOUT",
            category=ErrorCategory.TIMEOUT,
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        )


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"(private|secret)[_\s-]?key\W{0,3}(0x)?[a-fA-F0-9]{64}", re.IGNORECASE),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove private keys and credentials from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def describe_exception(exc: BaseException) -> str:
    """Short, sanitized description used when wrapping foreign exceptions."""
    if isinstance(exc, PaychanError):
        return exc.message
    text = str(exc) or exc.__class__.__name__
    return sanitize_error_message(text)
