"""Shared fixtures: an in-memory chain reader and a sleep that only records delays."""

import asyncio
from typing import Any, Sequence

import pytest

from cvtrace.domain.models import LogRef, TraceConfig

ADDRESS = "0x" + "ab" * 20
TOTAL_SUPPLY = "function totalSupply() view returns (uint256)"
TRANSFER = "event Transfer(address indexed from, address indexed to, uint256 value)"
TRANSFER_T0 = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def make_config(**overrides: Any) -> TraceConfig:
    params: dict[str, Any] = dict(
        address=ADDRESS, method=TOTAL_SUPPLY, events=(TRANSFER,), from_block=0, to_block=600,
    )
    params.update(overrides)
    return TraceConfig(**params)


class FakeSubscription:
    def __init__(self, on_batch, on_error, from_block=None):
        self.on_batch = on_batch
        self.on_error = on_error
        self.from_block = from_block
        self.active = True

    def unsubscribe(self) -> None:
        self.active = False


class FakeChainReader:
    """
    Logs and per-block values held in memory.
    `failures[block] = n` makes the next n reads at that block raise; -1 always raises.
    `subscribe_failures = n` makes the next n subscribe calls raise.
    """

    def __init__(self, logs: Sequence[int] = (), values: dict[int, str] | None = None,
                 latest: int = 1_000, chain: int = 1):
        self.logs = [LogRef(b) for b in logs]
        self.values = dict(values or {})
        self.latest = latest
        self.chain = chain
        self.failures: dict[int, int] = {}
        self.fail_get_logs = False
        self.get_logs_calls: list[tuple[int, int]] = []
        self.call_blocks: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.subscriptions: list[FakeSubscription] = []
        self.subscribe_failures = 0
        self.closed = False

    async def get_logs(self, address, topic0s, from_block, to_block):
        self.get_logs_calls.append((from_block, to_block))
        if self.fail_get_logs:
            raise ConnectionError("getLogs failed")
        return [lg for lg in self.logs if from_block <= lg.block_number <= to_block]

    async def call_at_block(self, address, method, args, block_number):
        self.call_blocks.append(block_number)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            remaining = self.failures.get(block_number, 0)
            if remaining:
                if remaining > 0:
                    self.failures[block_number] = remaining - 1
                raise ConnectionError(f"read failed at {block_number}")
            return self.values[block_number]
        finally:
            self.in_flight -= 1

    async def latest_block(self):
        return self.latest

    async def chain_id(self):
        return self.chain

    def subscribe_to_logs(self, address, topic0s, on_batch, on_error, *, from_block=None):
        if self.subscribe_failures:
            self.subscribe_failures -= 1
            raise ConnectionError("node down")
        sub = FakeSubscription(on_batch, on_error, from_block)
        self.subscriptions.append(sub)
        return sub.unsubscribe

    async def aclose(self):
        self.closed = True


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def reader():
    return FakeChainReader()


@pytest.fixture
def fake_sleep():
    return RecordingSleep()
