"""
Local ledger engine

Off-chain reference implementation of the LedgerEngine contract.

Flow (payer side):
1. buy() looks up the warm channel for (account, receiver, gateway)
2. Opens a new channel funded with max(minimum_channel_amount, price) when
   none exists or the remaining deposit cannot cover the price
3. Records the new cumulative value, then POSTs the Payment to the gateway
4. Returns the Paywall-Token header issued by the payee

Flow (payee side):
1. accept_payment() records unknown channels on first sight
2. Checks the claim is addressed to us and that value >= previous + price;
   a claim ahead of our record (an earlier send failed after the payer
   committed it) is accepted, a replay is not
3. Persists the new cumulative value and issues a settlement token

No signatures and no chain settlement happen here.
"""

from __future__ import annotations

import asyncio
import hashlib
import secrets
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from paychan.ledger.store import ChannelStore
from paychan.ledger.types import Channel, Payment
from paychan.utils.exceptions import PaymentRejectedError, PaymentSendError, describe_exception

PAYWALL_TOKEN_HEADER = "Paywall-Token"


def _to_decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def _same_address(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


def settlement_token(channel_id: str, value: Decimal, receiver: str) -> str:
    """Deterministic receipt for a (channel, cumulative value) claim."""
    digest = hashlib.sha256(f"{channel_id}:{value}:{receiver.lower()}".encode("utf-8"))
    return digest.hexdigest()


class LocalLedger:
    """
    SQLite-backed ledger engine.

    Buys are serialized with a lock so concurrent sends never reuse a
    cumulative value on the same channel.
    """

    def __init__(
        self,
        account: str,
        db: str | Path,
        minimum_channel_amount: int | Decimal = 100,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        """
        Initialize local ledger.

        Args:
            account: Local account that funds outgoing channels
            db: SQLite file holding channel state
            minimum_channel_amount: Minimum deposit of a newly opened channel
            http_client: Custom HTTP client used to post payments
            timeout: Request timeout in seconds for the default client
        """
        self.account = account
        self.minimum_channel_amount = _to_decimal(minimum_channel_amount)
        self.timeout = timeout
        self.store = ChannelStore(Path(db))
        self._http_client = http_client
        self._owns_client = http_client is None
        self._buy_lock = asyncio.Lock()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def aclose(self) -> None:
        """Close resources"""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def _open_channel(self, receiver: str, gateway: str, price: Decimal) -> Channel:
        channel = Channel(
            channel_id="0x" + secrets.token_hex(32),
            sender=self.account,
            receiver=receiver,
            gateway=gateway,
            deposit=max(self.minimum_channel_amount, price),
        )
        self.store.save(channel)
        logger.debug(f"opened channel {channel.channel_id} to {receiver} (deposit {channel.deposit})")
        return channel

    async def buy(self, price: Any, gateway: str, receiver: str, meta: str = "") -> str:
        """Pay `price` to `receiver` through `gateway` and return the settlement token."""
        amount = _to_decimal(price)
        if amount < 0:
            raise ValueError(f"price must not be negative: {price}")

        async with self._buy_lock:
            channel = self.store.find_open(self.account, receiver, gateway)
            if channel is None or channel.remaining < amount:
                channel = self._open_channel(receiver, gateway, amount)

            payment = Payment(
                channel_id=channel.channel_id,
                sender=self.account,
                receiver=receiver,
                price=amount,
                value=channel.value + amount,
                channel_value=channel.deposit,
                gateway=gateway,
                meta=meta,
            )
            # Committed before posting: a claim the payee may have seen is never reissued.
            channel.value = payment.value
            self.store.save(channel)
            return await self._post_payment(gateway, payment)

    async def _post_payment(self, gateway: str, payment: Payment) -> str:
        client = await self._get_http_client()
        try:
            resp = await client.post(gateway, json=payment.to_wire())
        except httpx.HTTPError as e:
            raise PaymentSendError(describe_exception(e), gateway=gateway, price=payment.price) from e

        if not resp.is_success:
            raise PaymentSendError(
                f"gateway responded {resp.status_code}", gateway=gateway, price=payment.price
            )

        token = resp.headers.get(PAYWALL_TOKEN_HEADER)
        if not token:
            raise PaymentSendError(
                f"gateway response is missing the {PAYWALL_TOKEN_HEADER} header",
                gateway=gateway,
                price=payment.price,
            )
        return token

    async def accept_payment(self, payment: Payment) -> str:
        """Validate an inbound claim, record it and return the settlement token."""
        if not _same_address(payment.receiver, self.account):
            raise PaymentRejectedError(
                f"payment addressed to {payment.receiver}, not {self.account}",
                channel_id=payment.channel_id,
            )

        channel = self.store.get(payment.channel_id)
        if channel is None:
            channel = Channel(
                channel_id=payment.channel_id,
                sender=payment.sender,
                receiver=self.account,
                gateway=payment.gateway,
                deposit=payment.channel_value,
            )
        elif not channel.is_open:
            raise PaymentRejectedError("channel is closed", channel_id=payment.channel_id)
        elif not _same_address(channel.sender, payment.sender):
            raise PaymentRejectedError("sender does not own the channel", channel_id=payment.channel_id)

        if payment.value < channel.value + payment.price:
            raise PaymentRejectedError(
                f"cumulative value {payment.value} is below {channel.value} + {payment.price}",
                channel_id=payment.channel_id,
            )
        if payment.value > payment.channel_value:
            raise PaymentRejectedError(
                f"cumulative value {payment.value} exceeds deposit {payment.channel_value}",
                channel_id=payment.channel_id,
            )

        channel.value = payment.value
        channel.deposit = max(channel.deposit, payment.channel_value)
        self.store.save(channel)
        return settlement_token(channel.channel_id, channel.value, self.account)

    async def channels(self) -> list[Channel]:
        """Open channels funded by the local account."""
        return self.store.list_by_sender(self.account)

    async def close(self, channel_id: str) -> None:
        channel = self.store.get(channel_id)
        if channel is None:
            raise KeyError(f"unknown channel: {channel_id}")
        if not channel.is_open:
            return
        self.store.set_state(channel_id, "closed")
        logger.debug(f"closed channel {channel_id} (paid {channel.value} of {channel.deposit})")
