"""
Paychan plugin: one peer session.

Couples opaque byte exchange with pay-per-use micropayments over a payment
channel. A session with `server` set talks to a peer; a session with `port`
set serves the inbound endpoints; either, both or neither may be set.

Lifecycle:
    DISCONNECTED --connect()--> CONNECTING --> CONNECTED --disconnect()--> DISCONNECTED

A failed connect() returns the session to DISCONNECTED with nothing left
listening.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable

import httpx
from loguru import logger

from paychan.chain import ChainClient, JsonRpcChainClient
from paychan.channels import ChannelManager
from paychan.config.schema import PluginConfig
from paychan.handlers import DataHandler, HandlerRegistry, MoneyHandler
from paychan.handshake import PeerHandshake
from paychan.inbound import InboundService, create_inbound_app
from paychan.ledger.contracts import LedgerEngine
from paychan.ledger.local import LocalLedger
from paychan.ledger.types import ChannelCloseResult
from paychan.outbound import OutboundClient
from paychan.utils.exceptions import (
    AlreadyConnectedError,
    NoPeerError,
    NotConnectedError,
    describe_exception,
)

LedgerFactory = Callable[[str, PluginConfig], LedgerEngine]


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class PaychanPlugin:
    """Peer session: handshake, inbound service, outbound sends and teardown."""

    version = 2

    def __init__(
        self,
        config: PluginConfig | None = None,
        *,
        chain_client: ChainClient | None = None,
        ledger_factory: LedgerFactory | None = None,
        http_client: httpx.AsyncClient | None = None,
        **options: Any,
    ):
        """
        Args:
            config: Static configuration; keyword options build or update it
            chain_client: Provider handle; defaults to JSON-RPC against config.provider
            ledger_factory: Builds the ledger engine for the resolved account
            http_client: Client for discovery, data sends and the default ledger
        """
        if config is None:
            config = PluginConfig(**options)
        elif options:
            config = PluginConfig(**{**config.model_dump(), **options})
        self.config = config

        self.account: str | None = config.account
        self.peer_account: str = ""
        self.handlers = HandlerRegistry()
        self.state = SessionState.DISCONNECTED

        self._chain_client = chain_client
        self._owns_chain_client = chain_client is None
        self._ledger_factory = ledger_factory or self._default_ledger
        self._http_client = http_client
        self._owns_http_client = http_client is None

        self.ledger: LedgerEngine | None = None
        self.channels: ChannelManager | None = None
        self.inbound: InboundService | None = None
        self._outbound: OutboundClient | None = None

    # --- Wiring ---

    def _default_ledger(self, account: str, config: PluginConfig) -> LedgerEngine:
        return LocalLedger(
            account=account,
            db=config.db,
            minimum_channel_amount=config.minimum_channel_amount,
            http_client=None if self._owns_http_client else self._http_client,
            timeout=config.request_timeout,
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._http_client

    def _get_chain_client(self) -> ChainClient:
        if self._chain_client is None:
            self._chain_client = JsonRpcChainClient(
                self.config.provider, timeout=self.config.request_timeout
            )
        return self._chain_client

    def _build_channels(self, account: str) -> ChannelManager:
        self.ledger = self._ledger_factory(account, self.config)
        self.channels = ChannelManager(self.ledger, timeout=self.config.ledger_timeout)
        return self.channels

    # --- Lifecycle ---

    @property
    def connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    async def connect(self) -> None:
        if self.state is not SessionState.DISCONNECTED:
            raise AlreadyConnectedError(self.state.value)
        logger.debug("connecting")
        self.state = SessionState.CONNECTING
        try:
            http_client = self._get_http_client()
            handshake = PeerHandshake(
                account=self.config.account,
                server=self.config.server,
                chain_client=self._get_chain_client(),
                http_client=http_client,
                provider=self.config.provider,
            )
            result = await handshake.establish(self._build_channels)
            self.account = result.account

            if result.peer_account is not None and self.config.server:
                self.peer_account = result.peer_account
                self._outbound = OutboundClient(
                    server=self.config.server,
                    peer_account=result.peer_account,
                    channels=result.channels,
                    http_client=http_client,
                )

            if self.config.port is not None:
                app = create_inbound_app(account=result.account, ledger=self.ledger, handlers=self.handlers)
                self.inbound = InboundService(app, host=self.config.host, port=self.config.port)
                await self.inbound.start()
        except BaseException:
            await self._release()
            raise

        self.state = SessionState.CONNECTED
        logger.debug("connected")

    async def disconnect(self) -> list[ChannelCloseResult]:
        """
        Stop the inbound service, then close every channel we fund.

        Never raises for per-channel failures; they are logged and reported
        in the returned list.
        """
        if self.state is not SessionState.CONNECTED:
            logger.debug(f"disconnect ignored, session is {self.state.value}")
            return []
        logger.debug("disconnect")

        if self.inbound is not None:
            try:
                await self.inbound.stop()
            except Exception as e:
                logger.error(f"error stopping listener: {describe_exception(e)}")

        results: list[ChannelCloseResult] = []
        if self.channels is not None:
            results = await self.channels.teardown()

        await self._release()
        return results

    async def _release(self) -> None:
        if self.inbound is not None and self.inbound.running:
            try:
                await self.inbound.stop()
            except Exception as e:
                logger.error(f"error stopping listener: {describe_exception(e)}")
        aclose = getattr(self.ledger, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        if self._owns_chain_client and self._chain_client is not None:
            chain_close = getattr(self._chain_client, "aclose", None)
            if chain_close is not None:
                await chain_close()
            self._chain_client = None

        self.ledger = None
        self.channels = None
        self.inbound = None
        self._outbound = None
        self.account = self.config.account
        self.peer_account = ""
        self.state = SessionState.DISCONNECTED

    async def __aenter__(self) -> "PaychanPlugin":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    # --- Sends ---

    def _require_outbound(self, operation: str) -> OutboundClient:
        if self.state is not SessionState.CONNECTED:
            raise NotConnectedError(operation)
        if self._outbound is None:
            raise NoPeerError(operation)
        return self._outbound

    async def send_data(self, data: bytes) -> bytes:
        return await self._require_outbound("send_data").send_data(bytes(data))

    async def send_money(self, amount: Any) -> str:
        return await self._require_outbound("send_money").send_money(amount)

    # --- Handlers ---

    def register_data_handler(self, handler: DataHandler) -> None:
        self.handlers.register_data_handler(handler)

    def deregister_data_handler(self) -> None:
        self.handlers.deregister_data_handler()

    def register_money_handler(self, handler: MoneyHandler) -> None:
        self.handlers.register_money_handler(handler)

    def deregister_money_handler(self) -> None:
        self.handlers.deregister_money_handler()
