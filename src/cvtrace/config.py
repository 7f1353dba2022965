"""
Config-file loading for the `cvt` CLI.

The file is JSON with optional whole-line `//` comments::

    {
      // USDC total supply
      "contractAddress": "0xa0b8...",
      "methodAbi": "function totalSupply() view returns (uint256)",
      "events": ["event Transfer(address indexed from, address indexed to, uint256 value)"],
      "fromBlock": 6082465,
      "toBlock": "latest"
    }
"""
from __future__ import annotations
import json, os
from typing import Any, Mapping

from .domain.errors import ConfigError
from .domain.models import TraceConfig
from .ports.rpc import ChainReader

DEFAULT_CONFIG_PATH = "cvt.config.json"


def remove_comments(text: str) -> str:
    """Drop lines whose first non-blank characters are `//`; inline comments are kept."""
    return "\n".join(line for line in text.split("\n") if not line.strip().startswith("//"))


def read_config_file(path: str) -> dict[str, Any]:
    resolved = os.path.abspath(path)
    try:
        with open(resolved, "r", encoding="utf-8") as f:
            content = f.read()
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}") from None
    try:
        raw = json.loads(remove_comments(content))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError("Invalid config file: top-level value must be an object")
    return raw


def _parse_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid field: {field} must be a number")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip(), 0)
        except ValueError:
            pass
    raise ConfigError(f"Invalid field: {field} must be a number, got {value!r}")


def _parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ConfigError(f"Invalid field: {field} (must be true or false), got {value!r}")


async def resolve_block(value: Any, reader: ChainReader, field: str) -> int:
    """Block tag or number to an integer; "latest" asks the node."""
    if isinstance(value, str) and value.strip().lower() in ("earliest", "genesis"):
        return 0
    if isinstance(value, str) and value.strip().lower() == "latest":
        return await reader.latest_block()
    return _parse_int(value, field)


def trace_config_from_dict(
    raw: Mapping[str, Any],
    *,
    from_block: int = 0,
    to_block: int | None = None,
) -> TraceConfig:
    if not raw.get("contractAddress"):
        raise ConfigError("Missing required field: contractAddress")
    if not raw.get("methodAbi"):
        raise ConfigError("Missing required field: methodAbi")
    events = raw.get("events")
    if not events or not isinstance(events, list):
        raise ConfigError("Missing or invalid field: events (must be an array)")
    params = raw.get("methodParams") or []
    if not isinstance(params, list):
        raise ConfigError("Invalid field: methodParams (must be an array)")
    kwargs: dict[str, Any] = {}
    if raw.get("maxBlockRangePerLogQuery") is not None:
        kwargs["log_query_span"] = _parse_int(raw["maxBlockRangePerLogQuery"], "maxBlockRangePerLogQuery")
    if raw.get("concurrentCallBatchSize") is not None:
        kwargs["read_batch_size"] = _parse_int(raw["concurrentCallBatchSize"], "concurrentCallBatchSize")
    if raw.get("dedup") is not None:
        kwargs["dedupe"] = _parse_bool(raw["dedup"], "dedup")
    return TraceConfig(
        address=str(raw["contractAddress"]),
        method=str(raw["methodAbi"]),
        events=tuple(str(e) for e in events),
        method_args=tuple(params),
        from_block=from_block,
        to_block=to_block,
        **kwargs,
    )


async def load_trace_config(path: str, reader: ChainReader, *, need_span: bool = True) -> TraceConfig:
    """Read, validate and resolve block tags. Watching and re-sampling need no block span."""
    raw = read_config_file(path)
    if not need_span:
        return trace_config_from_dict(raw)
    for field in ("fromBlock", "toBlock"):
        if raw.get(field) is None:
            raise ConfigError(f"Missing required field: {field}")
    # structural errors surface before any network call
    trace_config_from_dict(raw, from_block=0, to_block=1)
    fb = await resolve_block(raw["fromBlock"], reader, "fromBlock")
    tb = await resolve_block(raw["toBlock"], reader, "toBlock")
    return trace_config_from_dict(raw, from_block=fb, to_block=tb)
