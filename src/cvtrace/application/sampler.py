from __future__ import annotations
import asyncio
import logging
from typing import Optional, Sequence

from ..domain.models import OnProgress, ProgressEvent, SampleResult, TraceConfig
from ..domain.value_types import ERROR_VALUE
from ..ports.rpc import ChainReader
from .compaction import compact_changes
from .planning import chunk

log = logging.getLogger(__name__)

_DESCRIPTION = "Tracing variable values..."


async def sample(
    *,
    reader: ChainReader,
    config: TraceConfig,
    block_numbers: Sequence[int],
    on_progress: Optional[OnProgress] = None,
    logger: logging.Logger = log,
) -> list[SampleResult]:
    """
    Read `config.method` at every block, `read_batch_size` reads at a time.
    Failed reads are logged and dropped; with `dedupe` the result keeps only
    rows whose value differs from the row before. Progress starts at 0 and is
    reported again each time a batch settles.
    """
    method = config.method
    total = len(block_numbers)
    batches = chunk(list(block_numbers), config.read_batch_size)

    def report(current: int) -> None:
        if on_progress is not None:
            on_progress(ProgressEvent("sample-values", _DESCRIPTION, current, total))

    async def read_one(block_number: int) -> SampleResult:
        try:
            value = await reader.call_at_block(config.address, method, config.method_args, block_number)
        except Exception as e:
            logger.warning("Failed to read %s at block %d: %s", method.name, block_number, e)
            return SampleResult(block_number, ERROR_VALUE)
        return SampleResult(block_number, value)

    rows: list[SampleResult] = []
    report(0)
    for batch in batches:
        rows.extend(await asyncio.gather(*(read_one(b) for b in batch)))
        report(len(rows))

    ok = [r for r in rows if r.value != ERROR_VALUE]
    if len(ok) != len(rows):
        logger.info("Dropped %d of %d reads that failed", len(rows) - len(ok), len(rows))
    if config.dedupe:
        ok = compact_changes(ok, lambda a, b: a.value == b.value)
    return ok
