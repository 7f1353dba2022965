from __future__ import annotations
from typing import NewType, Literal

Address = NewType("Address", str)   # 0x-prefixed, lowercase
Topic0  = NewType("Topic0", str)    # 66-char 0x-hash
StageKey = Literal["collect-blocks", "sample-values"]

ERROR_VALUE = "ERROR"               # per-block read failure sentinel, never returned
