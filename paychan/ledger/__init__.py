"""
Payment-channel ledger support.

The session consumes any LedgerEngine; LocalLedger is the bundled
SQLite-backed engine.
"""

from paychan.ledger.contracts import LedgerEngine
from paychan.ledger.local import PAYWALL_TOKEN_HEADER, LocalLedger, settlement_token
from paychan.ledger.store import ChannelStore
from paychan.ledger.types import Channel, ChannelCloseResult, Payment

__all__ = [
    "PAYWALL_TOKEN_HEADER",
    "Channel",
    "ChannelCloseResult",
    "ChannelStore",
    "LedgerEngine",
    "LocalLedger",
    "Payment",
    "settlement_token",
]
