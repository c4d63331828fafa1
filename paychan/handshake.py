"""Peer handshake: account resolution, peer discovery and channel warm-up."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import httpx
from loguru import logger

from paychan.chain import ChainClient
from paychan.channels import ChannelManager
from paychan.utils.exceptions import (
    MalformedPeerResponseError,
    NoAccountError,
    PeerUnreachableError,
    describe_exception,
)


@dataclass(slots=True)
class HandshakeResult:
    account: str
    peer_account: str | None
    channels: ChannelManager


class PeerHandshake:
    def __init__(
        self,
        *,
        account: str | None,
        server: str | None,
        chain_client: ChainClient,
        http_client: httpx.AsyncClient,
        provider: str | None = None,
    ):
        self.account = account
        self.server = server
        self.chain_client = chain_client
        self.http_client = http_client
        self.provider = provider

    async def resolve_account(self) -> str:
        """Use the configured account, else the provider's first account."""
        if self.account:
            return self.account
        accounts = await self.chain_client.get_accounts()
        if not accounts:
            raise NoAccountError(self.provider)
        logger.debug(f"using provider account {accounts[0]}")
        return accounts[0]

    async def discover_peer(self) -> str:
        """GET the peer's identity endpoint and return its account."""
        server = self.server or ""
        logger.debug("attempting to connect to peer")
        try:
            resp = await self.http_client.get(server)
        except httpx.HTTPError as e:
            raise PeerUnreachableError(server, describe_exception(e)) from e
        if not resp.is_success:
            raise PeerUnreachableError(server, f"status {resp.status_code}", status_code=resp.status_code)

        try:
            body: Any = resp.json()
        except ValueError as e:
            raise MalformedPeerResponseError(server, "body is not JSON") from e
        if not isinstance(body, dict):
            raise MalformedPeerResponseError(server, "body is not a JSON object")
        peer_account = body.get("account")
        if not isinstance(peer_account, str) or not peer_account.strip():
            raise MalformedPeerResponseError(server)

        logger.debug(f"connected to peer {peer_account}")
        return peer_account

    async def establish(self, build_channels: Callable[[str], ChannelManager]) -> HandshakeResult:
        """
        Run the full handshake.

        The warm-up buy happens before any real payment so the channel-open
        latency is paid here. Any failure aborts the handshake.
        """
        account = await self.resolve_account()
        channels = build_channels(account)
        peer_account: str | None = None
        if self.server:
            peer_account = await self.discover_peer()
            await channels.warm_up(f"{self.server}/money", peer_account)
        return HandshakeResult(account=account, peer_account=peer_account, channels=channels)
