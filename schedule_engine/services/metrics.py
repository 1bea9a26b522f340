"""Population statistics shared by every profiler."""

from __future__ import annotations

from typing import Callable, Hashable, Iterable, Sequence, TypeVar

import numpy as np


T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


def average(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation (``ddof=0``); 0 for empty input."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=0))


def group_by(items: Iterable[T], key_fn: Callable[[T], K]) -> dict[K, list[T]]:
    """Group items by key, keeping first-seen key order and item order."""
    groups: dict[K, list[T]] = {}
    for item in items:
        groups.setdefault(key_fn(item), []).append(item)
    return groups


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
