"""
experiments/scenarios.py

Holds scenario definitions (arrival tier, playback speed, time of day) to
sweep during experiments. Each entry's overrides are merged over the base
config with ordersim.config.apply_overrides.
"""

from __future__ import annotations

BASELINE = {
    "name": "baseline",
    "overrides": {},
}

QUIET_MORNING = {
    "name": "quiet_morning",
    "overrides": {
        "simulation": {
            "arrival_rate": "low",
            "start_time": "2025-03-03T10:00:00",
        },
    },
}

LUNCH_RUSH = {
    "name": "lunch_rush",
    "overrides": {
        "simulation": {
            "arrival_rate": "rush",
            "start_time": "2025-03-03T12:00:00",
        },
    },
}

DINNER_FAST_PLAYBACK = {
    "name": "dinner_fast_playback",
    "overrides": {
        "simulation": {
            "arrival_rate": "high",
            "speed": 10,
            "start_time": "2025-03-03T18:00:00",
        },
        "replication": {"minutes": 30},
    },
}

ADMISSION_CONTROL = {
    "name": "admission_control",
    "overrides": {
        "simulation": {
            "arrival_rate": "rush",
            "start_time": "2025-03-03T12:00:00",
            "admission_capacity": 25,
        },
    },
}

SCENARIOS = [BASELINE, QUIET_MORNING, LUNCH_RUSH, DINNER_FAST_PLAYBACK, ADMISSION_CONTROL]
