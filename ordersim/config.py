# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# config.py
# -----------------------------------------------------------------------------
# Purpose:
#   Load the YAML configuration, merge scenario overrides, and build the
#   immutable SimulationConfig a run is started with.
#
# Design notes:
#   - The YAML file is a plain nested dict; DEFAULTS fills missing keys.
#   - Validation happens in SimulationConfig.validate(), which the engine
#     calls from start(); bad speeds never reach the timer arithmetic.
#
# Usage:
#   cfg = load_config(); sim_cfg = SimulationConfig.from_dict(cfg)
# -----------------------------------------------------------------------------

from __future__ import annotations
import copy, math, numbers, os
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

import yaml

from .distributions import ARRIVAL_RATES

ROOT = os.path.dirname(os.path.dirname(__file__))
DEFAULT_CONFIG_PATH = os.path.join(ROOT, "config", "baseline.yaml")

SPEED_CHOICES = (1, 2, 5, 10)

DEFAULTS: Dict[str, Any] = {
    "simulation": {
        "speed": 1,
        "arrival_rate": "medium",
        "seed": None,
        "start_time": None,
        "admission_capacity": None,
        "auto_stop": {"order_count": None, "duration_minutes": None},
    },
    "catalog": {"item_limit": 20, "items": []},
    "mirror": {"workers": 1, "max_pending": 256, "max_attempts": 2},
    "replication": {"minutes": 60},
    "experiments": {"replications": 5, "confidence_level": 0.95},
    "logging": {"level": "INFO"},
}


class ConfigError(ValueError):
    pass


def apply_overrides(cfg: Dict, overrides: Dict) -> Dict:
    """Apply overrides (recursive merge) on top of a base config."""
    new = copy.deepcopy(cfg)

    def _merge(dst: Dict, src: Dict):
        for key, val in src.items():
            if isinstance(val, dict) and isinstance(dst.get(key), dict):
                _merge(dst[key], val)
            else:
                dst[key] = copy.deepcopy(val)

    _merge(new, overrides)
    return new


def load_config(path: Optional[str] = None) -> Dict:
    """
    Read a YAML config and merge it over DEFAULTS. An explicit path must
    exist; the default path is optional.
    """
    if path is None:
        path = DEFAULT_CONFIG_PATH
        if not os.path.exists(path):
            return copy.deepcopy(DEFAULTS)
    elif not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return apply_overrides(DEFAULTS, loaded)


def _parse_time(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as exc:
        raise ConfigError(f"start_time must be ISO-8601, got {value!r}") from exc


@dataclass(frozen=True)
class SimulationConfig:
    """Immutable input to one run.

    speed divides every delay (larger is faster); arrival_rate names one of
    the ARRIVAL_RATES tiers. The auto-stop thresholds are optional.
    """
    speed: float = 1
    arrival_rate: str = "medium"
    max_order_count: Optional[int] = None
    max_duration_minutes: Optional[float] = None
    seed: Optional[int] = None
    admission_capacity: Optional[int] = None
    start_time: Optional[datetime] = None

    @classmethod
    def from_dict(cls, cfg: Dict) -> "SimulationConfig":
        sim = cfg.get("simulation", cfg)
        auto_stop = sim.get("auto_stop") or {}
        return cls(
            speed=sim.get("speed", 1),
            arrival_rate=sim.get("arrival_rate", "medium"),
            max_order_count=auto_stop.get("order_count"),
            max_duration_minutes=auto_stop.get("duration_minutes"),
            seed=sim.get("seed"),
            admission_capacity=sim.get("admission_capacity"),
            start_time=_parse_time(sim.get("start_time")),
        )

    def with_overrides(self, **changes) -> "SimulationConfig":
        return replace(self, **changes)

    def validate(self) -> "SimulationConfig":
        if isinstance(self.speed, bool) or not isinstance(self.speed, numbers.Real):
            raise ConfigError(f"speed must be a number, got {self.speed!r}")
        if not self.speed > 0 or not math.isfinite(self.speed):
            raise ConfigError(f"speed must be a positive finite number, got {self.speed!r}")
        if self.arrival_rate not in ARRIVAL_RATES:
            raise ConfigError(
                f"arrival_rate must be one of {sorted(ARRIVAL_RATES)}, got {self.arrival_rate!r}"
            )
        if self.max_order_count is not None and self.max_order_count <= 0:
            raise ConfigError(f"auto_stop.order_count must be positive, got {self.max_order_count!r}")
        if self.max_duration_minutes is not None and self.max_duration_minutes <= 0:
            raise ConfigError(
                f"auto_stop.duration_minutes must be positive, got {self.max_duration_minutes!r}"
            )
        if self.admission_capacity is not None and self.admission_capacity <= 0:
            raise ConfigError(f"admission_capacity must be positive, got {self.admission_capacity!r}")
        return self
