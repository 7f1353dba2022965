from __future__ import annotations
import operator
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")

def compact_changes(items: Sequence[T], same: Callable[[T, T], bool] = operator.eq) -> list[T]:
    """
    Drop every element that `same` considers equal to the element right before it
    in the *input*. Non-adjacent repeats survive: [10, 10, 20, 10] -> [10, 20, 10].
    """
    if len(items) <= 1:
        return list(items)
    out: list[T] = [items[0]]
    for prev, cur in zip(items, items[1:]):
        if not same(cur, prev):
            out.append(cur)
    return out
