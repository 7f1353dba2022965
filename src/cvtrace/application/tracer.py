from __future__ import annotations
import logging
from typing import Optional, Sequence

from ..domain.models import OnProgress, SampleResult, TraceConfig
from ..ports.rpc import ChainReader
from .sampler import sample
from .scanner import collect_block_numbers

log = logging.getLogger(__name__)


async def trace_from_scratch(
    *,
    reader: ChainReader,
    config: TraceConfig,
    on_progress: Optional[OnProgress] = None,
    logger: logging.Logger = log,
) -> list[SampleResult]:
    """Scan the event logs for candidate blocks, then sample the variable at each."""
    blocks = await collect_block_numbers(reader=reader, config=config, on_progress=on_progress, logger=logger)
    return await trace_from_blocks(
        reader=reader, config=config, block_numbers=blocks, on_progress=on_progress, logger=logger
    )


async def trace_from_blocks(
    *,
    reader: ChainReader,
    config: TraceConfig,
    block_numbers: Sequence[int],
    on_progress: Optional[OnProgress] = None,
    logger: logging.Logger = log,
) -> list[SampleResult]:
    """Sample an already known block set (e.g. re-reading with different method args)."""
    logger.info("Tracing %s at %d blocks", config.method.signature, len(block_numbers))
    return await sample(
        reader=reader, config=config, block_numbers=block_numbers, on_progress=on_progress, logger=logger
    )
