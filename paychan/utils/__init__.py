"""Utility functions for paychan."""

from paychan.utils.exceptions import (
    AlreadyConnectedError,
    ChannelCloseError,
    ErrorCategory,
    LedgerTimeoutError,
    MalformedPeerResponseError,
    NoAccountError,
    NoPeerError,
    NotConnectedError,
    PaychanError,
    PaymentRejectedError,
    PaymentSendError,
    PeerUnreachableError,
    TransportError,
    describe_exception,
    sanitize_error_message,
)

__all__ = [
    "AlreadyConnectedError",
    "ChannelCloseError",
    "ErrorCategory",
    "LedgerTimeoutError",
    "MalformedPeerResponseError",
    "NoAccountError",
    "NoPeerError",
    "NotConnectedError",
    "PaychanError",
    "PaymentRejectedError",
    "PaymentSendError",
    "PeerUnreachableError",
    "TransportError",
    "describe_exception",
    "sanitize_error_message",
]
