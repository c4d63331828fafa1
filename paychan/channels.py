"""Channel manager: warm-up, settlement and teardown over a ledger engine."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Awaitable, TypeVar

from loguru import logger

from paychan.ledger.contracts import LedgerEngine
from paychan.ledger.types import ChannelCloseResult
from paychan.utils.exceptions import (
    ChannelCloseError,
    LedgerTimeoutError,
    PaychanError,
    PaymentSendError,
    describe_exception,
)

T = TypeVar("T")


class ChannelManager:
    """Orchestrates one session's use of its ledger engine."""

    def __init__(self, ledger: LedgerEngine, timeout: float = 60.0):
        self.ledger = ledger
        self.timeout = timeout

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise LedgerTimeoutError(operation, self.timeout) from e

    async def _buy(self, price: Decimal, gateway: str, receiver: str) -> str:
        try:
            return await self._bounded("buy", self.ledger.buy(price, gateway, receiver, ""))
        except PaymentSendError:
            raise
        except PaychanError as e:
            raise PaymentSendError(e.message, gateway=gateway, price=price) from e
        except Exception as e:
            raise PaymentSendError(describe_exception(e), gateway=gateway, price=price) from e

    async def warm_up(self, gateway: str, receiver: str) -> str:
        """Open (or reuse) the channel to `receiver` with a zero-value buy."""
        logger.debug(f"warming up channel to {receiver} via {gateway}")
        token = await self._buy(Decimal(0), gateway, receiver)
        logger.debug("channel warm")
        return token

    async def settle(self, amount: Any, gateway: str, receiver: str) -> str:
        """Top up the running balance owed to `receiver` by `amount`."""
        return await self._buy(Decimal(str(amount)), gateway, receiver)

    async def teardown(self) -> list[ChannelCloseResult]:
        """
        Close every channel the local account funds.

        Each close is attempted independently; a failure is logged and
        recorded, and the remaining channels are still closed.
        """
        try:
            channels = await self._bounded("channels", self.ledger.channels())
        except Exception as e:
            logger.error(f"error listing channels: {describe_exception(e)}")
            return []

        results: list[ChannelCloseResult] = []
        for channel in channels:
            channel_id = channel.channel_id
            try:
                await self._bounded("close", self.ledger.close(channel_id))
            except Exception as e:
                err = ChannelCloseError(channel_id, describe_exception(e))
                logger.error(str(err))
                results.append(ChannelCloseResult(channel_id=channel_id, ok=False, error=err.message))
                continue
            logger.debug(f"closed channel: {channel_id}")
            results.append(ChannelCloseResult(channel_id=channel_id, ok=True))
        return results
