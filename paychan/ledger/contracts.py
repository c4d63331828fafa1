"""Runtime contracts for ledger engines."""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable

from .types import Channel, Payment


@runtime_checkable
class LedgerEngine(Protocol):
    account: str

    async def buy(self, price: Decimal, gateway: str, receiver: str, meta: str = "") -> str: ...
    async def accept_payment(self, payment: Payment) -> str: ...
    async def channels(self) -> list[Channel]: ...
    async def close(self, channel_id: str) -> None: ...
