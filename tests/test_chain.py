import json

import httpx
import pytest

from paychan.chain import ChainClient, ChainClientError, JsonRpcChainClient


def _rpc(handler) -> JsonRpcChainClient:
    return JsonRpcChainClient(
        "http://node:8545",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_get_accounts_posts_eth_accounts() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": ["0xa", "0xb"]})

    client = _rpc(handler)
    assert isinstance(client, ChainClient)
    assert await client.get_accounts() == ["0xa", "0xb"]
    assert seen[0]["method"] == "eth_accounts"
    assert seen[0]["params"] == []


@pytest.mark.asyncio
async def test_non_list_result_means_no_accounts() -> None:
    client = _rpc(lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None}))
    assert await client.get_accounts() == []


@pytest.mark.asyncio
async def test_rpc_error_raises() -> None:
    client = _rpc(
        lambda request: httpx.Response(
            200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "nope"}}
        )
    )
    with pytest.raises(ChainClientError) as exc_info:
        await client.get_accounts()
    assert exc_info.value.code == "CHAIN_RPC_ERROR"


@pytest.mark.asyncio
async def test_http_failure_and_bad_json_raise() -> None:
    with pytest.raises(ChainClientError):
        await _rpc(lambda request: httpx.Response(502)).get_accounts()

    with pytest.raises(ChainClientError) as exc_info:
        await _rpc(lambda request: httpx.Response(200, content=b"<html>")).get_accounts()
    assert exc_info.value.code == "CHAIN_RPC_BAD_RESPONSE"
