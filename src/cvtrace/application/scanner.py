from __future__ import annotations
import logging
from typing import Optional

from ..domain.errors import ConfigError
from ..domain.models import OnProgress, ProgressEvent, TraceConfig
from ..ports.rpc import ChainReader
from .planning import plan_log_ranges

log = logging.getLogger(__name__)

_DESCRIPTION = "Collecting block numbers from event logs..."


async def collect_block_numbers(
    *,
    reader: ChainReader,
    config: TraceConfig,
    on_progress: Optional[OnProgress] = None,
    logger: logging.Logger = log,
) -> list[int]:
    """
    Scan [from_block, to_block) in sub-ranges of `log_query_span` blocks and return the
    ascending, unique block numbers that carry at least one matching log.
    Sub-range failures propagate; retrying is the reader's (or caller's) business.
    """
    if config.to_block is None:
        raise ConfigError("Missing required field: toBlock")
    if config.from_block >= config.to_block:
        raise ConfigError(
            f"fromBlock ({config.from_block}) must be < toBlock ({config.to_block})"
        )
    topic0s = config.topic0s()
    total = config.to_block - config.from_block

    def report(current: int) -> None:
        if on_progress is not None:
            on_progress(ProgressEvent("collect-blocks", _DESCRIPTION, current, total))

    seen: set[int] = set()
    for fb, tb in plan_log_ranges(config.from_block, config.to_block, config.log_query_span):
        report(fb - config.from_block)
        # half-open [fb, tb) on an inclusive reader
        logs = await reader.get_logs(config.address, topic0s, fb, tb - 1)
        logger.debug("get_logs [%d, %d] -> %d logs", fb, tb - 1, len(logs))
        seen.update(lg.block_number for lg in logs)
    report(total)

    blocks = sorted(seen)
    logger.info("Found %d blocks with potential variable changes", len(blocks))
    return blocks
