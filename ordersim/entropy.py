# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# entropy.py
# -----------------------------------------------------------------------------
# Purpose:
#   Self-reseeding number source with a rolling 256-slot pool, plus the
#   decision helpers built on it: adaptive arrival rate, load-aware order
#   admission, dynamic pricing and fair wait-time estimates.
#
# Design notes:
#   - Draws are deliberately correlated: every next() writes a blend back
#     into the pool. Not suitable for anything cryptographic.
#   - The engine receives an instance explicitly; get_entropy()/reset_entropy()
#     keep a process-wide default for hosts that do not care.
#
# Usage:
#   src = AdaptiveEntropy(seed=42); src.should_admit_order(load, capacity)
# -----------------------------------------------------------------------------

from __future__ import annotations
import math, time
from typing import List, Optional

POOL_SIZE = 256
BLEND_ALPHA = 0.6

DAY_PART_MULTIPLIERS = {
    "morning": 1.2,
    "lunch": 2.0,
    "dinner": 2.5,
    "night": 0.6,
}


def day_part(hour: int) -> str:
    """Map an hour of day to the day part used by adaptive_rate()."""
    if 5 <= hour < 11:
        return "morning"
    if 11 <= hour < 16:
        return "lunch"
    if 16 <= hour < 22:
        return "dinner"
    return "night"


class AdaptiveEntropy:
    """Pool-based source whose future output depends on its past draws.

    Parameters
    ----------
    seed : float, optional
        Seed for the chaotic pool expansion. Defaults to the current epoch
        milliseconds, so two unseeded instances diverge.
    """

    def __init__(self, seed: Optional[float] = None):
        if seed is None:
            seed = time.time() * 1000.0
        self.seed = seed
        self.iteration = 0
        self.pool: List[float] = self._expand(seed)

    @staticmethod
    def _expand(seed: float) -> List[float]:
        pool = []
        current = float(seed)
        for i in range(POOL_SIZE):
            current = math.sin(current * 12.9898 + i * 78.233) * 43758.5453
            current = current - math.floor(current)
            pool.append(current)
        return pool

    def next(self) -> float:
        """Blend two neighbouring slots 0.6/0.4 and feed the result back."""
        idx = self.iteration % POOL_SIZE
        nxt = (self.iteration + 1) % POOL_SIZE
        value = BLEND_ALPHA * self.pool[idx] + (1.0 - BLEND_ALPHA) * self.pool[nxt]
        self.pool[idx] = (self.pool[idx] + value) % 1.0
        self.iteration = (self.iteration + 1) % POOL_SIZE
        return value

    # random()-compatible alias so the source can stand in as an rng
    random = next

    def adaptive_rate(self, base: float, part: str) -> float:
        if part not in DAY_PART_MULTIPLIERS:
            raise ValueError(f"Unknown day part: {part!r}")
        return base * DAY_PART_MULTIPLIERS[part] * (0.9 + self.next() * 0.2)

    def should_admit_order(self, current_load: int, capacity: int) -> bool:
        """
        Admit with probability 0.7 - 0.4 * load_fraction, so a busier
        kitchen is never more likely to accept another order.
        """
        if capacity <= 0:
            load_fraction = 1.0
        else:
            load_fraction = min(max(current_load / capacity, 0.0), 1.0)
        threshold = 0.7 - load_fraction * 0.4
        return self.next() < threshold

    @staticmethod
    def dynamic_price(base_price: float, demand: float) -> float:
        """Dampened markup: demand factor clamped to [1, 2], 30% of the excess."""
        demand_factor = min(max(demand / 100.0, 1.0), 2.0)
        return base_price * (1.0 + (demand_factor - 1.0) * 0.3)

    @staticmethod
    def fair_wait_estimate(item_count: int, kitchen_load: float) -> float:
        base_minutes = 5 + item_count * 2
        load_penalty = min(kitchen_load * 2, 15)
        return (base_minutes + load_penalty) * 60 * 1000.0


_default: Optional[AdaptiveEntropy] = None


def get_entropy() -> AdaptiveEntropy:
    global _default
    if _default is None:
        _default = AdaptiveEntropy()
    return _default


def reset_entropy(seed: Optional[float] = None) -> AdaptiveEntropy:
    """Replace the process-wide instance, e.g. with a fixed seed for tests."""
    global _default
    _default = AdaptiveEntropy(seed)
    return _default
