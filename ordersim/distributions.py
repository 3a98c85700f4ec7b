# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# distributions.py
# -----------------------------------------------------------------------------
# Purpose:
#   Random processes behind the synthetic traffic: seeded LCG generator,
#   Poisson inter-arrival sampler, weighted discrete choice, cooking/dining
#   durations, rush-hour rate multipliers and cosmetic customer identities.
#
# Design notes:
#   - Every sampler takes an optional `rng` exposing .random(); the default is
#     the stdlib `random` module so callers can seed it globally.
#   - Time-of-day logic takes an explicit hour / datetime, never reads the
#     wall clock itself.
#
# Usage:
#   from ordersim.distributions import next_arrival_delay, weighted_choice
# -----------------------------------------------------------------------------

from __future__ import annotations
import math, random
from datetime import datetime
from typing import Optional, Sequence, TypeVar

T = TypeVar("T")

MINUTE_MS = 60 * 1000

ARRIVAL_RATES = {
    "low": 5,
    "medium": 15,
    "high": 30,
    "rush": 50,
}

# (first hour, last hour inclusive, multiplier)
RUSH_WINDOWS = {
    "breakfast": (7, 9, 1.5),
    "lunch": (12, 14, 2.0),
    "dinner": (18, 21, 2.5),
}

MIN_ARRIVAL_DELAY_MS = 1000.0
POISSON_CHUNK = 30.0
MAX_POISSON_TRIALS = 20000

FIRST_NAMES = (
    "James", "Mary", "John", "Patricia", "Robert", "Jennifer",
    "Michael", "Linda", "William", "Elizabeth", "David", "Barbara",
    "Richard", "Susan", "Joseph", "Jessica", "Thomas", "Sarah",
)
LAST_NAMES = (
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia",
    "Miller", "Davis", "Rodriguez", "Martinez", "Hernandez", "Lopez",
)
AVATARS = (
    "\U0001F468", "\U0001F469", "\U0001F474", "\U0001F475", "\U0001F9D1",
    "\U0001F466", "\U0001F467", "\U0001F9D4",
    "\U0001F468\u200d\U0001F9B1", "\U0001F469\u200d\U0001F9B0",
)


class SeededRandom:
    """Linear congruential generator (a=9301, c=49297, m=233280).

    Cheap and fully reproducible; the period is short, which is fine for
    cosmetic traffic but not for anything statistical.
    """
    M = 233280

    def __init__(self, seed: int):
        self.seed = int(seed) % self.M

    def random(self) -> float:
        self.seed = (self.seed * 9301 + 49297) % self.M
        return self.seed / self.M


def _pick(pool: Sequence[T], rng) -> T:
    return pool[min(int(rng.random() * len(pool)), len(pool) - 1)]


def rush_window(hour: int) -> Optional[str]:
    for name, (first, last, _) in RUSH_WINDOWS.items():
        if first <= hour <= last:
            return name
    return None


def arrival_rate(hour: int, tier: str) -> float:
    """Orders per hour for an arrival tier at the given hour of day."""
    if tier not in ARRIVAL_RATES:
        raise ValueError(f"Unknown arrival rate tier: {tier!r}")
    base = float(ARRIVAL_RATES[tier])
    window = rush_window(hour)
    if window is None:
        return base
    return base * RUSH_WINDOWS[window][2]


def is_peak_hour(now: datetime) -> bool:
    return rush_window(now.hour) is not None


def poisson_interval(lam: float, rng=random, max_trials: int = MAX_POISSON_TRIALS) -> float:
    """
    Sample a Poisson(lam) count by multiplying uniforms until the product
    drops below e^-lam, and return it as milliseconds (count * 1000).

    Large lam is split into chunks of at most POISSON_CHUNK, whose counts
    are summed, so e^-lam never underflows. If the trial budget runs out the
    floor MIN_ARRIVAL_DELAY_MS is returned instead.
    """
    if lam <= 0:
        return MIN_ARRIVAL_DELAY_MS
    remaining = float(lam)
    k = 0
    trials = 0
    while remaining > 0:
        step = min(remaining, POISSON_CHUNK)
        threshold = math.exp(-step)
        p = 1.0
        while True:
            trials += 1
            if trials > max_trials:
                return MIN_ARRIVAL_DELAY_MS
            p *= rng.random()
            if p <= threshold:
                break
            k += 1
        remaining -= step
    return max(k * 1000.0, MIN_ARRIVAL_DELAY_MS)


def next_arrival_delay(hour: int, tier: str, rng=random) -> float:
    """Milliseconds until the next arrival (before speed scaling)."""
    per_minute = arrival_rate(hour, tier) / 60.0
    mean_interval_sec = 60.0 / per_minute
    return poisson_interval(mean_interval_sec, rng)


def weighted_choice(items: Sequence[T], weights: Sequence[float], rng=random) -> T:
    """Pick one element with probability proportional to its weight."""
    if not items:
        raise ValueError("weighted_choice needs at least one item")
    if len(items) != len(weights):
        raise ValueError("items and weights must have the same length")
    total = sum(weights)
    if total <= 0:
        raise ValueError("at least one weight must be positive")
    r = rng.random() * total
    for item, w in zip(items, weights):
        if w <= 0:
            continue
        r -= w
        if r <= 0:
            return item
    # rounding can leave a sliver of r > 0
    return items[-1]


def cooking_duration(item_count: int, rng=random) -> float:
    """5 min + 2 min per item, jittered by a uniform +/-20%."""
    base = 5 * MINUTE_MS + item_count * 2 * MINUTE_MS
    return base * (0.8 + rng.random() * 0.4)


def dining_duration(rng=random) -> float:
    return (15 + rng.random() * 10) * MINUTE_MS


def customer_name(rng=random) -> str:
    return f"{_pick(FIRST_NAMES, rng)} {_pick(LAST_NAMES, rng)}"


def avatar_glyph(rng=random) -> str:
    return _pick(AVATARS, rng)
