from __future__ import annotations
import json, os
import pyarrow as pa, pyarrow.parquet as pq
from typing import Iterable

from ..domain.models import SampleResult
from ..ports.storage import ResultSink

RESULT_SCHEMA = pa.schema([
    pa.field("block_number", pa.int64()),
    pa.field("value",        pa.large_string()),   # big ints as strings
])

def results_to_table(results: Iterable[SampleResult]) -> pa.Table:
    rows = list(results)
    return pa.Table.from_pydict({
        "block_number": pa.array([r.block_number for r in rows], type=RESULT_SCHEMA.field("block_number").type),
        "value":        pa.array([r.value for r in rows],        type=RESULT_SCHEMA.field("value").type),
    }, schema=RESULT_SCHEMA)


class JSONResultFile(ResultSink):
    """Pretty-printed JSON array of {"blockNumber", "value"} objects."""
    def __init__(self, path: str) -> None:
        self.path = path

    def write_results(self, results: Iterable[SampleResult]) -> str:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = self.path + ".tmp"
        with open(tmp, "w") as f:
            json.dump([r.to_json() for r in results], f, indent=2)
            f.write("\n")
        os.replace(tmp, self.path)
        return self.path


class ParquetResultFile(ResultSink):
    def __init__(self, path: str, codec: str = "zstd") -> None:
        self.path = path
        self.codec = codec

    def write_results(self, results: Iterable[SampleResult]) -> str:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = self.path + ".tmp"
        pq.write_table(results_to_table(results), tmp, compression=self.codec)
        os.replace(tmp, self.path)
        return self.path


def result_file_for(path: str) -> ResultSink:
    """Pick the sink from the file extension (.parquet, anything else is JSON)."""
    if path.lower().endswith(".parquet"):
        return ParquetResultFile(path)
    return JSONResultFile(path)
