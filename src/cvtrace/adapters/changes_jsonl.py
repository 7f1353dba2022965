from __future__ import annotations
import os, json, asyncio, time
from ..domain.models import SampleResult
from ..ports.storage import ChangeSink

class JSONLChangeLog(ChangeSink):
    def __init__(self, path: str) -> None:
        self.path = path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self._lock = asyncio.Lock()

    async def append(self, current: SampleResult, previous: SampleResult | None) -> None:
        rec = {
            **current.to_json(),
            "previousValue": previous.value if previous is not None else None,
            "observedAt": time.time(),
        }
        line = json.dumps(rec, separators=(",", ":")) + "\n"
        async with self._lock:
            with open(self.path, "a") as f:
                f.write(line); f.flush(); os.fsync(f.fileno())
