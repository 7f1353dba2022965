import json

import pytest

from cvtrace.config import load_trace_config, read_config_file, remove_comments, trace_config_from_dict
from cvtrace.domain.errors import ConfigError, MethodResolutionError

from conftest import ADDRESS, TOTAL_SUPPLY, TRANSFER, FakeChainReader

RAW = {
    "contractAddress": ADDRESS.upper().replace("0X", "0x"),
    "methodAbi": TOTAL_SUPPLY,
    "events": [TRANSFER],
    "fromBlock": 100,
    "toBlock": "latest",
    "maxBlockRangePerLogQuery": "2000",
    "concurrentCallBatchSize": 5,
    "dedup": False,
}


def write(tmp_path, text):
    p = tmp_path / "cvt.config.json"
    p.write_text(text)
    return str(p)


def test_remove_comments_whole_lines_only():
    text = '{\n  // a comment\n    // indented comment\n  "a": "http://x" // inline stays\n}'
    assert remove_comments(text) == '{\n  "a": "http://x" // inline stays\n}'


def test_commented_file_parses(tmp_path):
    path = write(tmp_path, '// header\n{\n  // note\n  "x": 1\n}\n')
    assert read_config_file(path) == {"x": 1}


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="Config file not found"):
        read_config_file(str(tmp_path / "nope.json"))


def test_invalid_json(tmp_path):
    with pytest.raises(ConfigError, match="Invalid JSON in config file"):
        read_config_file(write(tmp_path, "{not json"))


@pytest.mark.parametrize("field,message", [
    ("contractAddress", "Missing required field: contractAddress"),
    ("methodAbi", "Missing required field: methodAbi"),
    ("events", "Missing or invalid field: events"),
])
def test_required_fields(field, message):
    raw = {k: v for k, v in RAW.items() if k != field}
    with pytest.raises(ConfigError, match=message):
        trace_config_from_dict(raw)


def test_bad_method_is_fatal():
    with pytest.raises(MethodResolutionError):
        trace_config_from_dict({**RAW, "methodAbi": "function totalSupply() view"})


@pytest.mark.parametrize("field", ["maxBlockRangePerLogQuery", "concurrentCallBatchSize"])
def test_non_positive_tunables(field):
    with pytest.raises(ConfigError):
        trace_config_from_dict({**RAW, field: 0})


def test_tunables_mapped():
    cfg = trace_config_from_dict(RAW, from_block=1, to_block=2)
    assert cfg.address == ADDRESS
    assert cfg.log_query_span == 2000
    assert cfg.read_batch_size == 5
    assert cfg.dedupe is False
    assert cfg.method.signature == "totalSupply()"


def test_defaults():
    raw = {k: RAW[k] for k in ("contractAddress", "methodAbi", "events")}
    cfg = trace_config_from_dict(raw)
    assert (cfg.log_query_span, cfg.read_batch_size, cfg.dedupe) == (500, 10, True)


@pytest.mark.asyncio
async def test_load_resolves_latest(tmp_path):
    reader = FakeChainReader(latest=12_345)
    cfg = await load_trace_config(write(tmp_path, json.dumps(RAW)), reader)
    assert (cfg.from_block, cfg.to_block) == (100, 12_345)


@pytest.mark.asyncio
async def test_load_requires_span_for_tracing(tmp_path):
    raw = {k: v for k, v in RAW.items() if k != "toBlock"}
    with pytest.raises(ConfigError, match="Missing required field: toBlock"):
        await load_trace_config(write(tmp_path, json.dumps(raw)), FakeChainReader())


@pytest.mark.asyncio
async def test_load_without_span_for_watching(tmp_path):
    raw = {k: v for k, v in RAW.items() if k not in ("fromBlock", "toBlock")}
    cfg = await load_trace_config(write(tmp_path, json.dumps(raw)), FakeChainReader(), need_span=False)
    assert cfg.to_block is None


@pytest.mark.asyncio
async def test_earliest_and_hex_blocks(tmp_path):
    raw = {**RAW, "fromBlock": "earliest", "toBlock": "0x100"}
    cfg = await load_trace_config(write(tmp_path, json.dumps(raw)), FakeChainReader())
    assert (cfg.from_block, cfg.to_block) == (0, 256)


@pytest.mark.parametrize("value,expected", [(False, False), ("false", False), ("TRUE", True), (True, True)])
def test_dedup_flag_parsed(value, expected):
    assert trace_config_from_dict({**RAW, "dedup": value}).dedupe is expected


@pytest.mark.parametrize("value", ["no", 0, 1, "yes"])
def test_dedup_flag_rejects_non_booleans(value):
    with pytest.raises(ConfigError, match="dedup"):
        trace_config_from_dict({**RAW, "dedup": value})


def test_missing_method_params_fatal():
    raw = {**RAW, "methodAbi": "function balanceOf(address owner) view returns (uint256)"}
    with pytest.raises(ConfigError, match="expects 1 argument"):
        trace_config_from_dict(raw)


def test_unencodable_method_params_fatal():
    raw = {**RAW, "methodAbi": "function balanceOf(address owner) view returns (uint256)",
           "methodParams": ["not-an-address"]}
    with pytest.raises(ConfigError, match="Invalid arguments for balanceOf"):
        trace_config_from_dict(raw)


def test_method_params_accepted():
    raw = {**RAW, "methodAbi": "function balanceOf(address owner) view returns (uint256)",
           "methodParams": [ADDRESS]}
    assert trace_config_from_dict(raw).method_args == (ADDRESS,)
