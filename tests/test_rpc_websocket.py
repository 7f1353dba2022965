import asyncio
import json

import pytest
import websockets

from cvtrace.adapters.rpc_websocket import WebSocketLogSubscription
from cvtrace.domain.errors import SubscriptionError

from conftest import ADDRESS, TRANSFER_T0, FakeChainReader


def notification(block: int, removed: bool = False) -> str:
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": "0xsub", "result": {
            "blockNumber": hex(block), "logIndex": "0x0", "transactionHash": "0x01", "removed": removed,
        }},
    })


async def accept_subscription(ws, requests):
    req = json.loads(await ws.recv())
    requests.append(req)
    await ws.send(json.dumps({"jsonrpc": "2.0", "id": req["id"], "result": "0xsub"}))


@pytest.mark.asyncio
async def test_notifications_delivered_until_stopped():
    requests, got = [], []
    two = asyncio.Event()

    async def handler(ws):
        await accept_subscription(ws, requests)
        for block, removed in ((16, False), (17, True), (18, False)):
            await ws.send(notification(block, removed))
        await ws.wait_closed()

    async def on_batch(logs):
        got.append([lg.block_number for lg in logs])
        if len(got) == 2:
            two.set()

    async def on_error(exc):
        raise AssertionError(exc)

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        sub = WebSocketLogSubscription(f"ws://127.0.0.1:{port}", ADDRESS, [TRANSFER_T0], on_batch, on_error)
        sub.start()
        await asyncio.wait_for(two.wait(), timeout=5)
        sub.stop()
        await asyncio.wait_for(sub._task, timeout=5)

    assert got == [[16], [18]]
    assert requests[0]["method"] == "eth_subscribe"
    assert requests[0]["params"] == ["logs", {"address": ADDRESS, "topics": [[TRANSFER_T0]]}]


@pytest.mark.asyncio
async def test_server_close_reported_as_error():
    errors = []

    async def handler(ws):
        await accept_subscription(ws, [])

    async def on_batch(logs):
        pass

    async def on_error(exc):
        errors.append(exc)

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        sub = WebSocketLogSubscription(f"ws://127.0.0.1:{port}", ADDRESS, [TRANSFER_T0], on_batch, on_error)
        sub.start()
        await asyncio.wait_for(sub._task, timeout=5)

    assert len(errors) == 1
    assert isinstance(errors[0], (SubscriptionError, websockets.ConnectionClosed))


@pytest.mark.asyncio
async def test_catch_up_batch_before_notifications():
    reader = FakeChainReader(logs=[5, 9, 12], latest=12)
    got = []
    two = asyncio.Event()

    async def handler(ws):
        await accept_subscription(ws, [])
        await ws.send(notification(13))
        await ws.wait_closed()

    async def on_batch(logs):
        got.append([lg.block_number for lg in logs])
        if len(got) == 2:
            two.set()

    async def on_error(exc):
        raise AssertionError(exc)

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        sub = WebSocketLogSubscription(f"ws://127.0.0.1:{port}", ADDRESS, [TRANSFER_T0], on_batch, on_error,
                                       reader=reader, from_block=9)
        sub.start()
        await asyncio.wait_for(two.wait(), timeout=5)
        sub.stop()
        await asyncio.wait_for(sub._task, timeout=5)

    assert got == [[9, 12], [13]]
    assert reader.get_logs_calls == [(9, 12)]
