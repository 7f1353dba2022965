from __future__ import annotations
import logging
from typing import Optional, Sequence

from ..domain.models import OnChange, OnProgress, SampleResult, TraceConfig, WatchOptions
from ..ports.rpc import ChainReader
from .scanner import collect_block_numbers
from .tracer import trace_from_blocks, trace_from_scratch
from .watcher import LiveWatcher

log = logging.getLogger("cvtrace")


class ContractVariableTracer:
    """Entry point binding one chain reader: historical traces and live watches."""

    def __init__(self, reader: ChainReader, *, logger: logging.Logger = log) -> None:
        self.reader = reader
        self.logger = logger

    async def collect_block_numbers(
        self, config: TraceConfig, on_progress: Optional[OnProgress] = None
    ) -> list[int]:
        return await collect_block_numbers(
            reader=self.reader, config=config, on_progress=on_progress, logger=self.logger
        )

    async def trace_from_scratch(
        self, config: TraceConfig, on_progress: Optional[OnProgress] = None
    ) -> list[SampleResult]:
        return await trace_from_scratch(
            reader=self.reader, config=config, on_progress=on_progress, logger=self.logger
        )

    async def trace_from_blocks(
        self,
        config: TraceConfig,
        block_numbers: Sequence[int],
        on_progress: Optional[OnProgress] = None,
    ) -> list[SampleResult]:
        return await trace_from_blocks(
            reader=self.reader, config=config, block_numbers=block_numbers,
            on_progress=on_progress, logger=self.logger,
        )

    async def watch(
        self, config: TraceConfig, on_change: OnChange, options: WatchOptions | None = None
    ) -> LiveWatcher:
        """Start watching; call `.stop()` on the returned watcher to cancel."""
        watcher = LiveWatcher(self.reader, config, on_change, options, logger=self.logger)
        return await watcher.start()
