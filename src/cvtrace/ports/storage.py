from __future__ import annotations

from typing import Iterable, Protocol
from ..domain.models import SampleResult


class ResultSink(Protocol):
    """Port for persisting a finished historical trace (e.g., JSON or Parquet file)."""

    def write_results(self, results: Iterable[SampleResult]) -> str:
        """Persist the trace and return the path written."""


class ChangeSink(Protocol):
    """Port for appending live value-change notifications (e.g., JSONL file)."""

    async def append(self, current: SampleResult, previous: SampleResult | None) -> None:
        """Append one notification atomically (callers handle ordering)."""
