from __future__ import annotations
import asyncio, json, logging
from typing import Any, Optional, Sequence

import websockets

from ..domain.errors import SubscriptionError
from ..domain.value_types import Address, Topic0
from ..ports.rpc import ChainReader, OnLogBatch, OnSubscriptionError
from .rpc_httpx import _log_ref, _normalize_topic0_list

log = logging.getLogger(__name__)


class WebSocketLogSubscription:
    """
    `eth_subscribe("logs")` feed; every notification is delivered as a one-log batch.
    With `from_block` (and a `reader` to fetch them) the logs in `[from_block, head]`
    are delivered first as one catch-up batch, once the subscription is live.
    """
    def __init__(
        self,
        ws_url: str,
        address: Address,
        topic0s: Sequence[Topic0],
        on_batch: OnLogBatch,
        on_error: OnSubscriptionError,
        *,
        reader: Optional[ChainReader] = None,
        from_block: Optional[int] = None,
    ) -> None:
        self.ws_url = ws_url
        self.reader = reader
        self.from_block = from_block
        self.address = address
        self.topic0s = _normalize_topic0_list(topic0s)
        self.on_batch = on_batch
        self.on_error = on_error
        self._ws: Any = None
        self._stopped = False
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        self._stopped = True
        if self._ws is not None:
            # wakes the receive loop; a handler already running finishes first
            asyncio.get_running_loop().create_task(self._ws.close())

    async def _subscribe(self, ws: Any) -> str:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_subscribe",
            "params": ["logs", {"address": str(self.address), "topics": [self.topic0s]}],
        }
        await ws.send(json.dumps(payload))
        while True:
            data = json.loads(await ws.recv())
            if data.get("id") == 1:
                if "result" in data:
                    return data["result"]
                raise SubscriptionError(f"Subscribe failed: {data.get('error')}")

    async def _catch_up(self) -> None:
        if self.reader is None or self.from_block is None or self._stopped:
            return
        head = await self.reader.latest_block()
        if head < self.from_block:
            return
        logs = await self.reader.get_logs(self.address, self.topic0s, self.from_block, head)
        log.debug("Catch-up [%d, %d] -> %d logs", self.from_block, head, len(logs))
        if logs and not self._stopped:
            await self.on_batch(logs)

    async def _run(self) -> None:
        try:
            async with websockets.connect(self.ws_url, ping_interval=20, ping_timeout=20) as ws:
                self._ws = ws
                if self._stopped:
                    return
                sub_id = await self._subscribe(ws)
                log.debug("Subscribed to logs: %s", sub_id)
                await self._catch_up()
                async for message in ws:
                    if self._stopped:
                        return
                    payload = json.loads(message)
                    if payload.get("method") != "eth_subscription":
                        continue
                    rl = payload.get("params", {}).get("result")
                    if rl and not rl.get("removed"):
                        await self.on_batch([_log_ref(rl)])
            if not self._stopped:
                raise SubscriptionError("websocket closed by the node")
        except Exception as e:
            if not self._stopped:
                await self.on_error(e)
