from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .abi import MethodDescriptor, event_topic, resolve_method
from .errors import ConfigError
from .value_types import Address, StageKey, Topic0

@dataclass(slots=True, frozen=True)
class LogRef:
    block_number: int
    log_index: int = 0
    tx_hash: str = ""

@dataclass(slots=True, frozen=True)
class SampleResult:
    block_number: int
    value: str                  # big ints as strings

    def to_json(self) -> dict[str, str]:
        return {"blockNumber": str(self.block_number), "value": self.value}

@dataclass(slots=True, frozen=True)
class ProgressEvent:
    key: StageKey
    description: str
    current: int
    total: int

    @property
    def done(self) -> bool: return self.current == self.total


OnProgress = Callable[[ProgressEvent], None]


@dataclass(slots=True, frozen=True)
class TraceConfig:
    address: Address
    method: MethodDescriptor
    events: tuple[str, ...]
    method_args: tuple[Any, ...] = ()
    from_block: int = 0
    to_block: Optional[int] = None
    log_query_span: int = 500
    read_batch_size: int = 10
    dedupe: bool = True

    def __post_init__(self) -> None:
        if not self.address:
            raise ConfigError("Missing required field: contractAddress")
        if not (isinstance(self.address, str) and self.address.startswith("0x") and len(self.address) == 42):
            raise ConfigError(f"Invalid contract address: {self.address!r}")
        object.__setattr__(self, "address", Address(self.address.lower()))
        if isinstance(self.method, str):
            object.__setattr__(self, "method", resolve_method(self.method))
        if not self.events:
            raise ConfigError("Missing or invalid field: events (must be a non-empty list)")
        object.__setattr__(self, "events", tuple(self.events))
        object.__setattr__(self, "method_args", tuple(self.method_args))
        self.method.check_args(self.method_args)
        if self.log_query_span <= 0:
            raise ConfigError(f"maxBlockRangePerLogQuery must be > 0, got {self.log_query_span}")
        if self.read_batch_size <= 0:
            raise ConfigError(f"concurrentCallBatchSize must be > 0, got {self.read_batch_size}")
        # unknown event types surface here rather than at the first log query
        self.topic0s()

    def topic0s(self) -> list[Topic0]:
        return [event_topic(e) for e in self.events]


class WatchStatus(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


ChangeFilter = Callable[[Optional[SampleResult], SampleResult], bool]
OnChange = Callable[[SampleResult, Optional[SampleResult]], "Awaitable[None] | None"]
OnError = Callable[[Exception], "Awaitable[None] | None"]
OnReconnect = Callable[[], "Awaitable[None] | None"]


@dataclass(slots=True, frozen=True)
class WatchOptions:
    filter: Optional[ChangeFilter] = None
    on_error: Optional[OnError] = None
    max_retries: int = 3
    on_reconnect: Optional[OnReconnect] = None
    initial_value: Optional[SampleResult] = None
    retry_delay_s: float = 1.0          # linear: retry_delay_s * attempt
    reconnect_delay_s: float = 5.0
    advance_on_filtered: bool = False   # True keeps the old "advance before filtering" ordering
