"""Summary statistics over response-time samples."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True, slots=True)
class ResponseStats:
    """Count, mean, median and 90th percentile of a sample, in seconds."""

    count: int
    mean: float | None
    median: float | None
    p90: float | None

    @classmethod
    def empty(cls) -> "ResponseStats":
        return cls(count=0, mean=None, median=None, p90=None)


def percentile(sorted_values: list[float], fraction: float) -> float:
    """Nearest-rank percentile: rank ``ceil(fraction * n) - 1`` clamped to the sample."""

    if not sorted_values:
        raise ValueError("percentile of an empty sample")
    rank = math.ceil(fraction * len(sorted_values)) - 1
    rank = min(max(rank, 0), len(sorted_values) - 1)
    return sorted_values[rank]


def median(sorted_values: list[float]) -> float:
    size = len(sorted_values)
    if size == 0:
        raise ValueError("median of an empty sample")
    middle = size // 2
    if size % 2:
        return sorted_values[middle]
    return (sorted_values[middle - 1] + sorted_values[middle]) / 2


def compute_stats(values: Iterable[float | None]) -> ResponseStats:
    sample = sorted(float(value) for value in values if value is not None and math.isfinite(value))
    if not sample:
        return ResponseStats.empty()
    return ResponseStats(
        count=len(sample),
        mean=sum(sample) / len(sample),
        median=median(sample),
        p90=percentile(sample, 0.9),
    )


__all__ = ["ResponseStats", "compute_stats", "median", "percentile"]
