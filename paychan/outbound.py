"""Outbound client: data and money sends to the peer's inbound service."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from paychan.channels import ChannelManager
from paychan.utils.exceptions import TransportError, describe_exception


class OutboundClient:
    def __init__(
        self,
        *,
        server: str,
        peer_account: str,
        channels: ChannelManager,
        http_client: httpx.AsyncClient,
    ):
        self.server = server.rstrip("/")
        self.peer_account = peer_account
        self.channels = channels
        self.http_client = http_client

    @property
    def data_url(self) -> str:
        return f"{self.server}/data"

    @property
    def gateway(self) -> str:
        return f"{self.server}/money"

    async def send_data(self, data: bytes) -> bytes:
        """POST raw bytes to the peer and return its raw response body."""
        logger.debug(f"sending data: {data.hex()}")
        try:
            resp = await self.http_client.post(
                self.data_url,
                content=data,
                headers={"Content-Type": "application/octet-stream"},
            )
        except httpx.HTTPError as e:
            raise TransportError(self.data_url, describe_exception(e)) from e
        if not resp.is_success:
            raise TransportError(self.data_url, f"status {resp.status_code}", status_code=resp.status_code)
        logger.debug(f"got response: {resp.content.hex()}")
        return resp.content

    async def send_money(self, amount: Any) -> str:
        """Ask the ledger engine to pay `amount` to the peer; returns the settlement token."""
        logger.debug(f"sending money: {amount}")
        return await self.channels.settle(amount, self.gateway, self.peer_account)
