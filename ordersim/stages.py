# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# stages.py
# -----------------------------------------------------------------------------
# Purpose:
#   The 12-stage order lifecycle: canonical ordering, successor function,
#   per-stage dwell durations, display configuration and the mapping onto
#   the order store's status vocabulary.
#
# Design notes:
#   - The pipeline is a straight line, so successor() is a total function
#     with a single terminal stage (INVOICE -> None).
#   - COOKING and DINING have no fixed duration; dwell_duration() samples
#     them from ordersim.distributions.
#
# Usage:
#   from ordersim.stages import Stage, successor, dwell_duration
# -----------------------------------------------------------------------------

from __future__ import annotations
import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .distributions import cooking_duration, dining_duration


class Stage(str, Enum):
    ARRIVAL = "arrival"
    PLACEMENT = "placement"
    KITCHEN_QUEUE = "kitchen_queue"
    COOKING = "cooking"
    READY = "ready"
    SERVING = "serving"
    DINING = "dining"
    DRINKS = "drinks"
    HAND_WASHING = "hand_washing"
    CLEARING = "clearing"
    PAYMENT = "payment"
    INVOICE = "invoice"


class OrderStatus(str, Enum):
    """Status vocabulary of the external order store."""
    PENDING = "pending"
    PREPARING = "preparing"
    DONE = "done"
    COMPLETED = "completed"


STAGE_ORDER: Tuple[Stage, ...] = tuple(Stage)

# Delay before the first transition (ARRIVAL -> PLACEMENT), pre-speed.
PLACEMENT_DELAY_MS = 2000.0


@dataclass(frozen=True)
class StageConfig:
    label: str
    icon: str
    duration_ms: Optional[float]   # None -> sampled per order
    description: str
    status: OrderStatus


STAGE_CONFIG: Dict[Stage, StageConfig] = {
    Stage.ARRIVAL: StageConfig("Arriving", "\U0001F464", 2000.0,
                               "Customer walks in and is seated", OrderStatus.PENDING),
    Stage.PLACEMENT: StageConfig("Ordering", "\U0001F4DD", 15000.0,
                                 "Order is taken at the table", OrderStatus.PENDING),
    Stage.KITCHEN_QUEUE: StageConfig("Queue", "⏳", 5000.0,
                                     "Ticket waits for a free cook", OrderStatus.PENDING),
    Stage.COOKING: StageConfig("Cooking", "\U0001F373", None,
                               "Kitchen prepares the items", OrderStatus.PREPARING),
    Stage.READY: StageConfig("Ready", "✅", 30000.0,
                             "Food is plated at the pass", OrderStatus.DONE),
    Stage.SERVING: StageConfig("Serving", "\U0001F37D️", 45000.0,
                               "Runner brings food to the table", OrderStatus.DONE),
    Stage.DINING: StageConfig("Dining", "\U0001F354", None,
                              "Customer eats", OrderStatus.DONE),
    Stage.DRINKS: StageConfig("Drinks", "\U0001F964", 120000.0,
                              "Customer finishes drinks", OrderStatus.DONE),
    Stage.HAND_WASHING: StageConfig("Cleaning", "\U0001F9FC", 60000.0,
                                    "Customer washes up", OrderStatus.DONE),
    Stage.CLEARING: StageConfig("Clearing", "\U0001F9F9", 180000.0,
                                "Table is cleared", OrderStatus.DONE),
    Stage.PAYMENT: StageConfig("Payment", "\U0001F4B3", 120000.0,
                               "Bill is settled", OrderStatus.COMPLETED),
    Stage.INVOICE: StageConfig("Invoice", "\U0001F9FE", 10000.0,
                               "Receipt is issued", OrderStatus.COMPLETED),
}

KITCHEN_STAGES = frozenset({Stage.KITCHEN_QUEUE, Stage.COOKING})

_SUCCESSORS: Dict[Stage, Optional[Stage]] = {
    stage: (STAGE_ORDER[i + 1] if i + 1 < len(STAGE_ORDER) else None)
    for i, stage in enumerate(STAGE_ORDER)
}


def successor(stage: Stage) -> Optional[Stage]:
    return _SUCCESSORS[Stage(stage)]


def is_terminal(stage: Stage) -> bool:
    return successor(stage) is None


def external_status(stage: Stage) -> OrderStatus:
    return STAGE_CONFIG[Stage(stage)].status


def is_active(stage: Stage) -> bool:
    # Every stage counts as active until the order leaves the fleet.
    return Stage(stage) in _SUCCESSORS


def active_stages() -> List[Stage]:
    return [s for s in STAGE_ORDER if is_active(s)]


def stage_index(stage: Stage) -> int:
    return STAGE_ORDER.index(Stage(stage))


def dwell_duration(stage: Stage, item_count: int = 1, rng=random) -> float:
    """Base time (ms, before speed scaling) an order spends in `stage`."""
    stage = Stage(stage)
    if stage is Stage.COOKING:
        return cooking_duration(item_count, rng)
    if stage is Stage.DINING:
        return dining_duration(rng)
    return STAGE_CONFIG[stage].duration_ms
