from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence
from ..domain.abi import MethodDescriptor
from ..domain.models import LogRef
from ..domain.value_types import Address, Topic0

OnLogBatch = Callable[[list[LogRef]], Awaitable[None]]
OnSubscriptionError = Callable[[Exception], Awaitable[None]]
Unsubscribe = Callable[[], None]


class ChainReader(Protocol):
    """Port defining what the tracer needs from an EVM node."""

    async def get_logs(
        self,
        address: Address,
        topic0s: Sequence[Topic0],
        from_block: int,
        to_block: int,
    ) -> list[LogRef]:
        """Return logs matching any of `topic0s` in [from_block, to_block] inclusive."""

    async def call_at_block(
        self,
        address: Address,
        method: MethodDescriptor,
        args: Sequence[Any],
        block_number: int,
    ) -> str:
        """Run a read-only call pinned to `block_number`; return the decoded value as a string."""

    async def latest_block(self) -> int:
        """Return the latest block number as an integer."""

    async def chain_id(self) -> int:
        """Return the chain id reported by the node."""

    def subscribe_to_logs(
        self,
        address: Address,
        topic0s: Sequence[Topic0],
        on_batch: OnLogBatch,
        on_error: OnSubscriptionError,
        *,
        from_block: Optional[int] = None,
    ) -> Unsubscribe:
        """
        Start pushing new matching logs to `on_batch` (one awaited call at a time,
        not necessarily in block order). A feed failure is reported once to
        `on_error` and ends the subscription. The returned callable stops future
        deliveries without interrupting a handler that is already running.
        With `from_block`, logs from that block up to the head are delivered
        before new ones; without it the feed starts at the current head.
        """
