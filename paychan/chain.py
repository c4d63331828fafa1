"""
Chain client

Account discovery against an Ethereum JSON-RPC provider.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger

from paychan.config.schema import DEFAULT_PROVIDER_URI


class ChainClientError(RuntimeError):
    def __init__(self, message: str, *, code: str = "CHAIN_RPC_ERROR") -> None:
        super().__init__(message)
        self.code = code


@runtime_checkable
class ChainClient(Protocol):
    async def get_accounts(self) -> list[str]: ...


class JsonRpcChainClient:
    """Minimal JSON-RPC client, only what the handshake needs."""

    def __init__(
        self,
        rpc_url: str = DEFAULT_PROVIDER_URI,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None
        self._request_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        """Close HTTP client"""
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Make a JSON-RPC request and return its result."""
        client = await self._get_client()
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._request_id,
        }

        try:
            resp = await client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise ChainClientError(f"{method} failed against {self.rpc_url}: {e}") from e
        except ValueError as e:
            raise ChainClientError(f"{method} returned invalid JSON", code="CHAIN_RPC_BAD_RESPONSE") from e

        if not isinstance(body, dict):
            raise ChainClientError(f"{method} returned a non-object body", code="CHAIN_RPC_BAD_RESPONSE")
        if "error" in body:
            logger.error(f"RPC error: {body['error']}")
            raise ChainClientError(f"{method} error: {body['error']}")
        return body.get("result")

    async def get_accounts(self) -> list[str]:
        result = await self.call("eth_accounts")
        if not isinstance(result, list):
            return []
        return [str(addr) for addr in result if addr]
