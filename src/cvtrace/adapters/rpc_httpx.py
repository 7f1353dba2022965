from __future__ import annotations
import asyncio, httpx, logging
from typing import Any, Awaitable, Callable, Optional, Sequence
from ..domain.abi import MethodDescriptor
from ..domain.errors import RPCError
from ..domain.models import LogRef
from ..domain.value_types import Address, Topic0
from ..ports.rpc import ChainReader, OnLogBatch, OnSubscriptionError, Unsubscribe

log = logging.getLogger(__name__)

def _to_hex_block(n: int) -> str: return hex(int(n))
def _normalize_topic0_list(t0s: Sequence[Topic0]) -> list[str]:
    return [str(t).strip().lower() for t in t0s]

def _log_ref(rl: dict[str, Any]) -> LogRef:
    return LogRef(
        block_number=int(rl["blockNumber"], 16),
        log_index=int(rl.get("logIndex") or "0x0", 16),
        tx_hash=(rl.get("transactionHash") or "").lower(),
    )


class HttpxChainReader(ChainReader):
    """
    JSON-RPC chain reader over httpx. Live subscriptions poll over HTTP, or use
    `eth_subscribe` when a websocket URL is given.
    """
    def __init__(
        self,
        rpc_url: str,
        *,
        ws_url: str | None = None,
        timeout_s: int = 20,
        max_conn: int = 64,
        poll_interval_s: float = 4.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.rpc_url = rpc_url
        self._sleep = sleep
        self.ws_url = ws_url
        self.poll_interval_s = poll_interval_s
        self.client = httpx.AsyncClient(
            http2=transport is None,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max_conn//2),
            transport=transport,
        )
        self._id = 0

    async def _request(self, method: str, params: list[Any]) -> Any:
        self._id += 1
        payload = {"jsonrpc":"2.0","id":self._id,"method":method,"params":params}
        # retry on 429 with simple backoff
        for attempt in range(3):
            r = await self.client.post(self.rpc_url, json=payload)
            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                log.debug("%s rate limited, sleeping %.1fs", method, delay)
                await self._sleep(delay); continue
            r.raise_for_status()
            data = r.json()
            if "error" in data:
                err = data["error"]
                if isinstance(err, dict):
                    raise RPCError(method, err.get("code"), err.get("message"))
                raise RPCError(method, None, str(err))
            return data.get("result")
        raise RPCError(method, 429, "rate limited, retries exhausted")

    async def latest_block(self) -> int:
        return int(await self._request("eth_blockNumber", []), 16)

    async def chain_id(self) -> int:
        return int(await self._request("eth_chainId", []), 16)

    async def get_logs(self, address: Address, topic0s: Sequence[Topic0], from_block: int, to_block: int) -> list[LogRef]:
        res = await self._request("eth_getLogs", [{
            "address": str(address),
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
            "topics": [_normalize_topic0_list(topic0s)],
        }])
        return [_log_ref(rl) for rl in (res or []) if not rl.get("removed")]

    async def call_at_block(self, address: Address, method: MethodDescriptor, args: Sequence[Any], block_number: int) -> str:
        data = "0x" + method.encode_call(args).hex()
        res = await self._request("eth_call", [{"to": str(address), "data": data}, _to_hex_block(block_number)])
        raw = res[2:] if isinstance(res, str) and res.startswith("0x") else (res or "")
        return method.decode_result(bytes.fromhex(raw))

    def subscribe_to_logs(
        self,
        address: Address,
        topic0s: Sequence[Topic0],
        on_batch: OnLogBatch,
        on_error: OnSubscriptionError,
        *,
        from_block: Optional[int] = None,
    ) -> Unsubscribe:
        if self.ws_url:
            from .rpc_websocket import WebSocketLogSubscription
            sub: Any = WebSocketLogSubscription(
                self.ws_url, address, topic0s, on_batch, on_error, reader=self, from_block=from_block,
            )
        else:
            sub = HttpLogPoller(
                self, address, topic0s, on_batch, on_error,
                poll_interval_s=self.poll_interval_s, from_block=from_block,
            )
        sub.start()
        return sub.stop

    async def aclose(self) -> None:
        await self.client.aclose()


class HttpLogPoller:
    """Polls the head and fetches logs for every new block range; one awaited batch at a time."""
    def __init__(
        self,
        reader: ChainReader,
        address: Address,
        topic0s: Sequence[Topic0],
        on_batch: OnLogBatch,
        on_error: OnSubscriptionError,
        *,
        poll_interval_s: float = 4.0,
        from_block: Optional[int] = None,
    ) -> None:
        self.reader = reader
        self.address = address
        self.topic0s = list(topic0s)
        self.on_batch = on_batch
        self.on_error = on_error
        self.poll_interval_s = poll_interval_s
        self.last_block = None if from_block is None else from_block - 1
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool: return self._stop.is_set()

    async def _wait(self) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.poll_interval_s)
        except asyncio.TimeoutError:
            pass

    async def _run(self) -> None:
        try:
            if self.last_block is None:
                self.last_block = await self.reader.latest_block()
            while not self.stopped:
                await self._wait()
                if self.stopped:
                    break
                head = await self.reader.latest_block()
                if head <= self.last_block:
                    continue
                logs = await self.reader.get_logs(self.address, self.topic0s, self.last_block + 1, head)
                self.last_block = head
                if logs and not self.stopped:
                    await self.on_batch(logs)
        except Exception as e:
            if not self.stopped:
                log.debug("log poller failed: %s", e)
                await self.on_error(e)
