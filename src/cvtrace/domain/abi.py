from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Sequence

from eth_abi import decode, encode, is_encodable_type
from eth_abi.exceptions import DecodingError, EncodingError
from eth_abi.grammar import normalize
from eth_utils import event_signature_to_log_topic, function_signature_to_4byte_selector

from .errors import ConfigError, MethodResolutionError
from .value_types import Topic0

_PARAM_MODIFIERS = frozenset({"indexed", "memory", "calldata", "storage", "payable"})


def _is_topic_hash(x: str) -> bool: return isinstance(x, str) and x.startswith("0x") and len(x) == 66


def _matching_paren(s: str, open_idx: int) -> int:
    depth = 0
    for i in range(open_idx, len(s)):
        if s[i] == "(": depth += 1
        elif s[i] == ")":
            depth -= 1
            if depth == 0:
                return i
    raise ValueError(f"unbalanced parentheses in {s!r}")


def _split_top_level(s: str) -> list[str]:
    parts: list[str] = []
    depth, start = 0, 0
    for i, ch in enumerate(s):
        if ch == "(": depth += 1
        elif ch == ")": depth -= 1
        elif ch == "," and depth == 0:
            parts.append(s[start:i]); start = i + 1
    tail = s[start:]
    if tail.strip() or parts:
        parts.append(tail)
    return [p.strip() for p in parts]


def _canonical_type(param: str) -> str:
    """Reduce one human-readable parameter (``uint256 indexed value``) to its canonical ABI type."""
    p = param.strip()
    if p.startswith("tuple("):
        p = p[len("tuple"):]
    if p.startswith("("):
        close = _matching_paren(p, 0)
        inner = ",".join(_canonical_type(x) for x in _split_top_level(p[1:close]))
        suffix = p[close + 1:].split()[0] if p[close + 1:].strip() else ""
        if suffix in _PARAM_MODIFIERS:
            suffix = ""
        return f"({inner}){suffix}"
    tokens = [t for t in p.split() if t not in _PARAM_MODIFIERS]
    if not tokens:
        raise ValueError(f"empty parameter in {param!r}")
    typ = normalize(tokens[0])
    try:
        known = is_encodable_type(typ)
    except Exception as e:
        raise ValueError(f"invalid ABI type {tokens[0]!r}: {e}") from e
    if not known:
        raise ValueError(f"unknown ABI type {tokens[0]!r}")
    return typ


def _param_list(s: str) -> tuple[str, ...]:
    return tuple(_canonical_type(p) for p in _split_top_level(s))


def _coerce(typ: str, value: Any) -> Any:
    """Bring JSON-ish config values (decimal/hex strings) into what eth_abi encodes."""
    if typ.endswith("]"):
        base = typ[:typ.rindex("[")]
        return [_coerce(base, v) for v in value]
    if typ.startswith("("):
        inner = _split_top_level(typ[1:-1])
        return tuple(_coerce(t, v) for t, v in zip(inner, value))
    if typ.startswith(("uint", "int")) and isinstance(value, str):
        return int(value, 0)
    if typ == "bool" and isinstance(value, str):
        return value.strip().lower() == "true"
    if typ.startswith("bytes") and isinstance(value, str):
        return bytes.fromhex(value[2:] if value.lower().startswith("0x") else value)
    return value


def _stringify(value: Any) -> str:
    if isinstance(value, bool): return "true" if value else "false"
    if isinstance(value, int): return str(value)
    if isinstance(value, (bytes, bytearray)): return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)): return "[" + ",".join(_stringify(v) for v in value) + "]"
    return str(value)


@dataclass(slots=True, frozen=True)
class MethodDescriptor:
    name: str
    input_types: tuple[str, ...]
    output_types: tuple[str, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    def encode_call(self, args: Sequence[Any] = ()) -> bytes:
        if len(args) != len(self.input_types):
            raise ConfigError(
                f"Method '{self.name}' expects {len(self.input_types)} argument(s), got {len(args)}"
            )
        coerced = [_coerce(t, a) for t, a in zip(self.input_types, args)]
        return self.selector + encode(list(self.input_types), coerced)

    def check_args(self, args: Sequence[Any]) -> None:
        """Raise ConfigError unless `args` encode against the input types."""
        try:
            self.encode_call(args)
        except (EncodingError, ValueError, TypeError) as e:
            raise ConfigError(f"Invalid arguments for {self.signature}: {e}") from e

    def decode_result(self, data: bytes) -> str:
        try:
            values = decode(list(self.output_types), data)
        except DecodingError as e:
            raise ValueError(f"cannot decode {self.name} result 0x{data.hex()}: {e}") from e
        return _stringify(values[0])


def resolve_method(signature: str) -> MethodDescriptor:
    """
    Parse a human-readable read method, e.g.
    ``function balanceOf(address owner) view returns (uint256)``.
    The method must declare exactly one return value.
    """
    s = (signature or "").strip()
    if s.startswith("function "):
        s = s[len("function "):].strip()
    try:
        open_idx = s.index("(")
        name = s[:open_idx].strip()
        if not name.isidentifier():
            raise ValueError(f"invalid method name {name!r}")
        close = _matching_paren(s, open_idx)
        inputs = _param_list(s[open_idx + 1:close])
        rest = s[close + 1:]
        if "returns" not in rest.split("(")[0]:
            raise ValueError("missing 'returns (...)' clause")
        ret_open = rest.index("(", rest.index("returns"))
        ret_close = _matching_paren(rest, ret_open)
        outputs = _param_list(rest[ret_open + 1:ret_close])
    except ValueError as e:
        raise MethodResolutionError(f"Cannot resolve method from '{signature}': {e}") from e
    if len(outputs) != 1:
        raise MethodResolutionError(
            f"Method '{name}' must return exactly one value, declares {len(outputs)}"
        )
    return MethodDescriptor(name=name, input_types=inputs, output_types=outputs)


def event_topic(event: str) -> Topic0:
    """Topic0 for a human-readable event (``event Transfer(address indexed from, ...)``) or a raw hash."""
    e = event.strip()
    if _is_topic_hash(e):
        return Topic0(e.lower())
    if e.startswith("event "):
        e = e[len("event "):].strip()
    try:
        open_idx = e.index("(")
        name = e[:open_idx].strip()
        if not name.isidentifier():
            raise ValueError(f"invalid event name {name!r}")
        close = _matching_paren(e, open_idx)
        params = _param_list(e[open_idx + 1:close])
    except ValueError as err:
        raise ConfigError(f"Invalid event signature '{event}': {err}") from err
    canonical = f"{name}({','.join(params)})"
    return Topic0("0x" + event_signature_to_log_topic(canonical).hex())
