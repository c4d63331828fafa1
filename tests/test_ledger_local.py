"""Tests for the SQLite-backed local ledger, payer and payee sides."""

from decimal import Decimal

import httpx
import pytest

from conftest import make_payment
from paychan.handlers import HandlerRegistry
from paychan.inbound import create_inbound_app
from paychan.ledger import LedgerEngine
from paychan.ledger.local import LocalLedger, settlement_token
from paychan.ledger.store import ChannelStore
from paychan.ledger.types import Channel
from paychan.utils.exceptions import PaymentRejectedError, PaymentSendError

GATEWAY = "http://receiver/money"


@pytest.fixture
def payee(tmp_path) -> LocalLedger:
    return LocalLedger(account="0xreceiver", db=tmp_path / "receiver_db")


@pytest.fixture
def payer(tmp_path, payee) -> LocalLedger:
    app = create_inbound_app(account=payee.account, ledger=payee, handlers=HandlerRegistry())
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app))
    return LocalLedger(account="0xsender", db=tmp_path / "sender_db", http_client=client)


def test_local_ledger_satisfies_contract(payee) -> None:
    assert isinstance(payee, LedgerEngine)


def test_store_round_trip(tmp_path) -> None:
    store = ChannelStore(tmp_path / "db")
    channel = Channel(
        channel_id="0x1", sender="0xa", receiver="0xb", gateway=GATEWAY, deposit=Decimal(100)
    )
    store.save(channel)
    assert store.find_open("0xa", "0xb", GATEWAY) == channel
    assert store.find_open("0xa", "0xb", "http://other/money") is None

    channel.value = Decimal("2.5")
    store.save(channel)
    assert store.get("0x1").value == Decimal("2.5")

    assert store.set_state("0x1", "closed") is True
    assert store.set_state("0xmissing", "closed") is False
    assert store.list_by_sender("0xa") == []
    assert len(store.list_by_sender("0xa", include_closed=True)) == 1


@pytest.mark.asyncio
async def test_warm_up_then_payments_reuse_channel(payer, payee) -> None:
    warm = await payer.buy(0, GATEWAY, "0xreceiver")
    [channel] = await payer.channels()
    assert channel.deposit == Decimal(100)
    assert channel.value == Decimal(0)
    assert warm == settlement_token(channel.channel_id, Decimal(0), "0xreceiver")

    await payer.buy(1, GATEWAY, "0xreceiver")
    await payer.buy(2, GATEWAY, "0xreceiver")

    [same] = await payer.channels()
    assert same.channel_id == channel.channel_id
    assert same.value == Decimal(3)
    assert payee.store.get(channel.channel_id).value == Decimal(3)


@pytest.mark.asyncio
async def test_price_above_remaining_opens_new_channel(payer) -> None:
    await payer.buy(90, GATEWAY, "0xreceiver")
    await payer.buy(20, GATEWAY, "0xreceiver")
    channels = await payer.channels()
    assert len(channels) == 2
    assert [c.value for c in channels] == [Decimal(90), Decimal(20)]


@pytest.mark.asyncio
async def test_large_price_funds_channel_with_price(payer) -> None:
    await payer.buy(250, GATEWAY, "0xreceiver")
    [channel] = await payer.channels()
    assert channel.deposit == Decimal(250)


@pytest.mark.asyncio
async def test_negative_price_rejected(payer) -> None:
    with pytest.raises(ValueError):
        await payer.buy(-1, GATEWAY, "0xreceiver")


@pytest.mark.asyncio
async def test_rejected_claim_surfaces_as_send_error_and_stays_committed(payer) -> None:
    with pytest.raises(PaymentSendError) as exc_info:
        await payer.buy(1, GATEWAY, "0xsomeone-else")
    assert "402" in exc_info.value.message
    [channel] = await payer.channels()
    assert channel.value == Decimal(1)


class _DropFirstRequest(httpx.AsyncBaseTransport):
    """Fails the first request before it reaches the app."""

    def __init__(self, inner: httpx.AsyncBaseTransport):
        self.inner = inner
        self.dropped = False

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if not self.dropped:
            self.dropped = True
            raise httpx.ConnectError("connection reset", request=request)
        return await self.inner.handle_async_request(request)


@pytest.mark.asyncio
async def test_undelivered_claim_does_not_break_channel(tmp_path, payee) -> None:
    app = create_inbound_app(account=payee.account, ledger=payee, handlers=HandlerRegistry())
    client = httpx.AsyncClient(transport=_DropFirstRequest(httpx.ASGITransport(app=app)))
    ledger = LocalLedger(account="0xsender", db=tmp_path / "sender_db", http_client=client)

    with pytest.raises(PaymentSendError):
        await ledger.buy(1, GATEWAY, "0xreceiver")
    await ledger.buy(1, GATEWAY, "0xreceiver")

    [channel] = await ledger.channels()
    assert channel.value == Decimal(2)
    assert payee.store.get(channel.channel_id).value == Decimal(2)
    await client.aclose()


@pytest.mark.asyncio
async def test_gateway_without_token_header_is_send_error(tmp_path) -> None:
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    ledger = LocalLedger(account="0xsender", db=tmp_path / "db", http_client=client)
    with pytest.raises(PaymentSendError):
        await ledger.buy(1, GATEWAY, "0xreceiver")
    await client.aclose()


@pytest.mark.asyncio
async def test_accept_rejects_wrong_receiver(payee) -> None:
    with pytest.raises(PaymentRejectedError):
        await payee.accept_payment(make_payment(receiver="0xother"))


@pytest.mark.asyncio
async def test_accept_checks_cumulative_value(payee) -> None:
    first = make_payment(receiver="0xreceiver", price=Decimal(5), value=Decimal(5))
    await payee.accept_payment(first)

    replay = make_payment(receiver="0xreceiver", price=Decimal(5), value=Decimal(5))
    with pytest.raises(PaymentRejectedError):
        await payee.accept_payment(replay)

    token = await payee.accept_payment(
        make_payment(receiver="0xreceiver", price=Decimal(3), value=Decimal(8))
    )
    assert token == settlement_token("0xchan", Decimal(8), "0xreceiver")

    ahead = make_payment(receiver="0xreceiver", price=Decimal(1), value=Decimal(10))
    await payee.accept_payment(ahead)
    assert payee.store.get("0xchan").value == Decimal(10)


@pytest.mark.asyncio
async def test_accept_rejects_overdraw_and_foreign_sender(payee) -> None:
    with pytest.raises(PaymentRejectedError):
        await payee.accept_payment(
            make_payment(receiver="0xreceiver", price=Decimal(101), value=Decimal(101))
        )
    await payee.accept_payment(make_payment(receiver="0xreceiver", price=Decimal(1), value=Decimal(1)))
    with pytest.raises(PaymentRejectedError):
        await payee.accept_payment(
            make_payment(receiver="0xreceiver", sender="0xmallory", price=Decimal(1), value=Decimal(2))
        )


@pytest.mark.asyncio
async def test_close_and_closed_channel_rejects_claims(payer, payee) -> None:
    await payer.buy(1, GATEWAY, "0xreceiver")
    [channel] = await payer.channels()

    await payer.close(channel.channel_id)
    await payer.close(channel.channel_id)
    assert await payer.channels() == []

    payee.store.set_state(channel.channel_id, "closed")
    with pytest.raises(PaymentRejectedError):
        await payee.accept_payment(
            make_payment(
                channel_id=channel.channel_id,
                sender="0xsender",
                receiver="0xreceiver",
                price=Decimal(1),
                value=Decimal(2),
            )
        )


@pytest.mark.asyncio
async def test_close_unknown_channel_raises(payee) -> None:
    with pytest.raises(KeyError):
        await payee.close("0xnope")


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open(payer) -> None:
    client = payer._http_client
    await payer.aclose()
    assert client.is_closed is False
    await client.aclose()
