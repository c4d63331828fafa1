"""Handler registry: the data and money callbacks of one session.

Handlers may be plain functions or coroutine functions. Registration swaps a
single attribute, so a request that already captured a handler keeps using
it while later requests see the replacement.
"""

from __future__ import annotations

import inspect
from decimal import Decimal
from typing import Any, Awaitable, Callable, Union

DataHandler = Callable[[bytes], Union[bytes, Awaitable[bytes]]]
MoneyHandler = Callable[[Decimal], Union[None, Awaitable[None]]]


async def _noop_data(_data: bytes) -> bytes:
    return b""


async def _noop_money(_amount: Decimal) -> None:
    return None


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class HandlerRegistry:
    """Current data and money handlers, defaulting to no-ops."""

    def __init__(self) -> None:
        self._data_handler: DataHandler = _noop_data
        self._money_handler: MoneyHandler = _noop_money

    def register_data_handler(self, handler: DataHandler) -> None:
        if not callable(handler):
            raise TypeError("data handler must be callable")
        self._data_handler = handler

    def deregister_data_handler(self) -> None:
        self._data_handler = _noop_data

    def register_money_handler(self, handler: MoneyHandler) -> None:
        if not callable(handler):
            raise TypeError("money handler must be callable")
        self._money_handler = handler

    def deregister_money_handler(self) -> None:
        self._money_handler = _noop_money

    @property
    def data_handler(self) -> DataHandler:
        return self._data_handler

    @property
    def money_handler(self) -> MoneyHandler:
        return self._money_handler

    @property
    def has_data_handler(self) -> bool:
        return self._data_handler is not _noop_data

    @property
    def has_money_handler(self) -> bool:
        return self._money_handler is not _noop_money

    async def handle_data(self, data: bytes) -> bytes:
        """Run the data handler current at call time; None becomes b""."""
        handler = self._data_handler
        result = await _resolve(handler(data))
        if result is None:
            return b""
        if isinstance(result, str):
            return result.encode("utf-8")
        if not isinstance(result, (bytes, bytearray, memoryview)):
            raise TypeError(f"data handler returned {type(result).__name__}, expected bytes")
        return bytes(result)

    async def handle_money(self, amount: Decimal) -> None:
        """Run the money handler current at call time."""
        handler = self._money_handler
        await _resolve(handler(amount))
