from __future__ import annotations
from typing import Sequence, TypeVar

from ..domain.errors import InvalidArgument

T = TypeVar("T")

def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split `items` into groups of `size`; the last group holds the remainder."""
    if size <= 0:
        raise InvalidArgument(f"Chunk size must be greater than 0, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]

def plan_log_ranges(from_block: int, to_block: int, span: int) -> list[tuple[int, int]]:
    """Sub-ranges (cursor, min(cursor+span, to_block)) covering [from_block, to_block)."""
    if span <= 0:
        raise InvalidArgument(f"Log query span must be greater than 0, got {span}")
    out: list[tuple[int, int]] = []
    b = from_block
    while b < to_block:
        out.append((b, min(b + span, to_block)))
        b += span
    return out
