from __future__ import annotations
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional

from ..domain.errors import CallbackError, SubscriptionError, TransientReadError
from ..domain.models import LogRef, OnChange, SampleResult, TraceConfig, WatchOptions, WatchStatus
from ..ports.rpc import ChainReader, Unsubscribe

log = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


def _wrap(cls: type[Exception], message: str, cause: Exception) -> Exception:
    err = cls(message)
    err.__cause__ = cause
    return err


class LiveWatcher:
    """
    Follows one contract variable in real time.

    Every matching log triggers a re-read at the log's block; a value different
    from `current` (and accepted by the optional filter) becomes the new
    `current` and is passed to `on_change`. Failed reads are retried with linear
    backoff, a failed subscription is reopened after a fixed delay for as long
    as the watcher is live, resuming from the block after the last one handled. Nothing raises to the caller once `start()` returns;
    every failure goes through `_handle_error`.
    """

    def __init__(
        self,
        reader: ChainReader,
        config: TraceConfig,
        on_change: OnChange,
        options: WatchOptions | None = None,
        *,
        logger: logging.Logger = log,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.reader = reader
        self.config = config
        self.on_change = on_change
        self.options = options or WatchOptions()
        self.logger = logger
        self._sleep = sleep
        self.current: Optional[SampleResult] = self.options.initial_value
        self.status = WatchStatus.INITIALIZING
        self.is_watching = False
        self._unsubscribe: Optional[Unsubscribe] = None
        self._last_block: Optional[int] = self.current.block_number if self.current else None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._stopped = asyncio.Event()

    # ── lifecycle ─────────────────────────────────────────────

    async def start(self) -> "LiveWatcher":
        self.is_watching = True
        if self.current is None:
            await self._seed()
        if not self.is_watching:
            return self
        self._subscribe()
        self.status = WatchStatus.ACTIVE
        self.logger.info(
            "Watching %s on %s (current=%s)",
            self.config.method.signature, self.config.address,
            self.current.value if self.current else None,
        )
        return self

    def stop(self) -> None:
        """Cancel handle: stop scheduling work and detach the subscription."""
        if self.status is WatchStatus.STOPPED:
            return
        self.is_watching = False
        self.status = WatchStatus.STOPPED
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        self._stopped.set()
        self.logger.info("Stopped watching %s", self.config.address)

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    # ── reads ─────────────────────────────────────────────────

    async def _read(self, block_number: int) -> str:
        c = self.config
        return await self.reader.call_at_block(c.address, c.method, c.method_args, block_number)

    async def _seed(self) -> None:
        try:
            block = await self.reader.latest_block()
            value = await self._read(block)
        except Exception as e:
            await self._handle_error(_wrap(TransientReadError, f"Failed to fetch the initial value: {e}", e))
            return
        self.current = SampleResult(block, value)
        self._last_block = block

    async def _on_batch(self, logs: list[LogRef]) -> None:
        for lg in sorted(logs, key=lambda x: (x.block_number, x.log_index)):
            if not self.is_watching:
                return
            await self._check_value(lg.block_number)
            if self._last_block is None or lg.block_number > self._last_block:
                self._last_block = lg.block_number

    async def _check_value(self, block_number: int) -> None:
        attempt = 0
        while True:
            if not self.is_watching:
                return
            try:
                value = await self._read(block_number)
                break
            except Exception as e:
                attempt += 1
                if attempt > self.options.max_retries:
                    err = TransientReadError(
                        f"Failed to read {self.config.method.name} at block {block_number} "
                        f"after {attempt} attempt(s): {e}",
                        block_number=block_number, attempts=attempt,
                    )
                    err.__cause__ = e
                    await self._handle_error(err)
                    return
                delay = self.options.retry_delay_s * attempt
                self.logger.debug(
                    "Read at block %d failed (attempt %d), retrying in %.1fs: %s",
                    block_number, attempt, delay, e,
                )
                await self._sleep(delay)

        if not self.is_watching:
            return
        prev = self.current
        new = SampleResult(block_number, value)
        if prev is not None and prev.value == new.value:
            return
        flt = self.options.filter
        if flt is not None and not flt(prev, new):
            self.logger.debug("Change at block %d filtered out (%s)", block_number, new.value)
            if self.options.advance_on_filtered:
                self.current = new
            return
        self.current = new
        try:
            await _maybe_await(self.on_change(new, prev))
        except Exception as e:
            await self._handle_error(_wrap(CallbackError, f"on_change raised for block {block_number}: {e}", e))

    # ── subscription ──────────────────────────────────────────

    def _subscribe(self, from_block: Optional[int] = None) -> None:
        self._unsubscribe = self.reader.subscribe_to_logs(
            self.config.address, self.config.topic0s(), self._on_batch, self._on_subscription_error,
            from_block=from_block,
        )

    async def _on_subscription_error(self, exc: Exception) -> None:
        if not self.is_watching:
            return
        self.status = WatchStatus.RECONNECTING
        # runs outside the failed subscription, which ends once this returns
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect(exc))

    async def _reconnect(self, exc: Exception) -> None:
        await self._handle_error(_wrap(SubscriptionError, f"Log subscription failed: {exc}", exc))
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        while self.is_watching:
            await self._sleep(self.options.reconnect_delay_s)
            if not self.is_watching:
                return
            resume = None if self._last_block is None else self._last_block + 1
            self.logger.info(
                "Reconnecting log subscription for %s (from block %s)", self.config.address, resume,
            )
            try:
                self._subscribe(from_block=resume)
            except Exception as e:
                await self._handle_error(_wrap(SubscriptionError, f"Resubscribing failed: {e}", e))
                continue
            self.status = WatchStatus.ACTIVE
            if self.options.on_reconnect is not None:
                try:
                    await _maybe_await(self.options.on_reconnect())
                except Exception as e:
                    await self._handle_error(_wrap(CallbackError, f"on_reconnect raised: {e}", e))
            return

    async def _handle_error(self, err: Exception) -> None:
        if self.options.on_error is None:
            self.logger.error("%s", err)
            return
        try:
            await _maybe_await(self.options.on_error(err))
        except Exception as e:
            self.logger.error("on_error raised while handling '%s': %s", err, e)
