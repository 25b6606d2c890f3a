"""Per-item metrics computed by workflow Process/Analysis nodes.

``HashMetricComputer`` is a deterministic placeholder, not image
analysis: it derives a stable value in a plausible range from the item
and kernel ids, so repeated runs over the same scenes produce identical
trend series.  A raster-statistics implementation can replace it behind
``MetricComputer`` without touching the workflow engine.

Algorithm, over ``key = f"{item_id}_{kernel_id}"``:

    h = 0.0
    for each UTF-16 code unit c of key:  h = c + (int32(int32(h) << 5) - h)
    n = abs(h rem 1000) / 1000           # rem truncates toward zero
    value = 0.42 + n * 0.5   if "veg" in kernel_id
            0.15 + n * 0.7   otherwise
    round half-up to 3 decimals, on the exact binary value

Only the shift is truncated to 32 bits; the accumulator itself is a
float that is never wrapped.  Item ids are short enough that it stays
well inside the exactly representable integer range.
"""

from __future__ import annotations

import abc
import math
from decimal import ROUND_HALF_UP, Decimal


class MetricComputer(abc.ABC):
    @abc.abstractmethod
    def compute(self, item_id: str, kernel_id: str) -> float:
        """Return the metric of *item_id* under *kernel_id*."""


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x1_0000_0000 if value & 0x8000_0000 else value


def string_hash(text: str) -> float:
    """Return the ``c + (h << 5) - h`` rolling hash of *text*; only the shift wraps to 32 bits."""
    h = 0.0
    encoded = text.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = code_unit + (_to_int32(_to_int32(int(h)) << 5) - h)
    return h


def _round_half_up(value: float, digits: int) -> float:
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


class HashMetricComputer(MetricComputer):
    """Deterministic hash-derived metric (see module docstring)."""

    VEG_BASE = 0.42
    VEG_SPAN = 0.5
    DEFAULT_BASE = 0.15
    DEFAULT_SPAN = 0.7

    def compute(self, item_id: str, kernel_id: str) -> float:
        h = string_hash(f"{item_id}_{kernel_id}")
        normalized = abs(math.fmod(h, 1000)) / 1000
        if "veg" in kernel_id:
            value = self.VEG_BASE + normalized * self.VEG_SPAN
        else:
            value = self.DEFAULT_BASE + normalized * self.DEFAULT_SPAN
        return _round_half_up(value, 3)
