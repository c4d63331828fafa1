"""Pytest hooks and fixtures."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest

from paychan.ledger.types import Channel, Payment


def pytest_configure(config):
    """Register custom markers (also in pyproject.toml)."""
    config.addinivalue_line(
        "markers",
        "e2e: exercises a real listening socket",
    )


class FakeLedger:
    """In-memory LedgerEngine recording every call."""

    def __init__(
        self,
        account: str = "0xlocal",
        channel_ids: tuple[str, ...] = (),
        fail_close: tuple[str, ...] = (),
    ):
        self.account = account
        self.channel_ids = list(channel_ids)
        self.fail_close = set(fail_close)
        self.buys: list[tuple[Decimal, str, str, str]] = []
        self.accepted: list[Payment] = []
        self.close_attempts: list[str] = []
        self.closed: list[str] = []
        self.buy_error: Exception | None = None
        self.accept_error: Exception | None = None

    async def buy(self, price: Any, gateway: str, receiver: str, meta: str = "") -> str:
        if self.buy_error is not None:
            raise self.buy_error
        self.buys.append((Decimal(str(price)), gateway, receiver, meta))
        return f"token-{len(self.buys)}"

    async def accept_payment(self, payment: Payment) -> str:
        if self.accept_error is not None:
            raise self.accept_error
        self.accepted.append(payment)
        return f"paid-{payment.channel_id}-{payment.value}"

    async def channels(self) -> list[Channel]:
        return [
            Channel(
                channel_id=cid,
                sender=self.account,
                receiver="0xpeer",
                gateway="http://peer/money",
                deposit=Decimal(100),
            )
            for cid in self.channel_ids
        ]

    async def close(self, channel_id: str) -> None:
        self.close_attempts.append(channel_id)
        if channel_id in self.fail_close:
            raise RuntimeError(f"cannot close {channel_id}")
        self.closed.append(channel_id)


class FakeChain:
    def __init__(self, accounts: list[str] | None = None):
        self.accounts = list(accounts or [])
        self.calls = 0

    async def get_accounts(self) -> list[str]:
        self.calls += 1
        return list(self.accounts)


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain(["0xaaa", "0xbbb"])


def make_payment(**overrides: Any) -> Payment:
    data: dict[str, Any] = {
        "channel_id": "0xchan",
        "sender": "0xsender",
        "receiver": "0xlocal",
        "price": Decimal(5),
        "value": Decimal(5),
        "channel_value": Decimal(100),
        "gateway": "http://local/money",
        "meta": "",
    }
    data.update(overrides)
    return Payment(**data)
