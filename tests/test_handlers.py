"""Tests for the handler registry."""

import asyncio
from decimal import Decimal

import pytest

from paychan.handlers import HandlerRegistry


@pytest.mark.asyncio
async def test_defaults_are_noops() -> None:
    registry = HandlerRegistry()
    assert await registry.handle_data(b"\x01\x02") == b""
    assert await registry.handle_money(Decimal(3)) is None
    assert registry.has_data_handler is False
    assert registry.has_money_handler is False


@pytest.mark.asyncio
async def test_sync_and_async_handlers_are_both_supported() -> None:
    registry = HandlerRegistry()
    received: list[Decimal] = []

    registry.register_data_handler(lambda data: data[::-1])
    assert await registry.handle_data(b"abc") == b"cba"

    async def async_data(data: bytes) -> bytes:
        await asyncio.sleep(0)
        return b"async:" + data

    registry.register_data_handler(async_data)
    assert await registry.handle_data(b"x") == b"async:x"

    registry.register_money_handler(received.append)
    await registry.handle_money(Decimal(2))
    assert received == [Decimal(2)]


@pytest.mark.asyncio
async def test_data_handler_none_and_str_results_are_coerced() -> None:
    registry = HandlerRegistry()
    registry.register_data_handler(lambda data: None)
    assert await registry.handle_data(b"x") == b""
    registry.register_data_handler(lambda data: "ok")
    assert await registry.handle_data(b"x") == b"ok"


def test_repeated_deregistration_is_a_noop() -> None:
    registry = HandlerRegistry()
    registry.deregister_data_handler()
    registry.deregister_data_handler()
    registry.deregister_money_handler()
    registry.deregister_money_handler()
    assert registry.has_data_handler is False
    assert registry.has_money_handler is False


def test_register_rejects_non_callables() -> None:
    registry = HandlerRegistry()
    with pytest.raises(TypeError):
        registry.register_data_handler("nope")  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        registry.register_money_handler(42)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_in_flight_request_keeps_handler_captured_at_invocation() -> None:
    registry = HandlerRegistry()
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow(data: bytes) -> bytes:
        started.set()
        await release.wait()
        return b"old"

    registry.register_data_handler(slow)
    in_flight = asyncio.create_task(registry.handle_data(b"x"))
    await started.wait()

    registry.register_data_handler(lambda data: b"new")
    assert await registry.handle_data(b"x") == b"new"

    release.set()
    assert await in_flight == b"old"


@pytest.mark.asyncio
async def test_data_handler_must_return_bytes_like() -> None:
    registry = HandlerRegistry()
    registry.register_data_handler(lambda data: bytearray(b"ok"))
    assert await registry.handle_data(b"x") == b"ok"

    registry.register_data_handler(lambda data: 3)
    with pytest.raises(TypeError):
        await registry.handle_data(b"x")
