# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# entities.py
# -----------------------------------------------------------------------------
# Purpose:
#   Entity definitions for the order lifecycle simulator: Customer,
#   OrderLine, SimulatedOrder.
#
# Design notes:
#   - Customer, lines, total and table are fixed at creation; only the
#     engine mutates stage, stage_times, external_order_id and paid.
#   - Consumers get snapshot() copies, never the live object.
#
# Usage:
#   from ordersim.entities import Customer, OrderLine, SimulatedOrder
# -----------------------------------------------------------------------------

from __future__ import annotations
import copy
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .stages import Stage


@dataclass(frozen=True)
class Customer:
    name: str
    avatar: str


@dataclass(frozen=True)
class OrderLine:
    name: str
    quantity: int
    menu_item_id: Optional[str] = None
    unit_price: float = 0.0

    @property
    def amount(self) -> float:
        return self.unit_price * self.quantity


@dataclass
class SimulatedOrder:
    id: str
    customer: Customer
    items: Tuple[OrderLine, ...]
    total: float
    start_time: float                    # epoch ms
    table_number: Optional[int] = None
    stage: Stage = Stage.ARRIVAL
    external_order_id: Optional[str] = None
    paid: bool = False
    stage_times: Dict[Stage, float] = field(default_factory=dict)  # stage -> entry time (epoch ms)

    def enter(self, stage: Stage, now_ms: float):
        self.stage = stage
        self.stage_times[stage] = now_ms

    def prep_time(self) -> Optional[float]:
        """Milliseconds from joining the kitchen queue to being ready."""
        queued = self.stage_times.get(Stage.KITCHEN_QUEUE)
        ready = self.stage_times.get(Stage.READY)
        if queued is None or ready is None:
            return None
        return ready - queued

    def snapshot(self) -> "SimulatedOrder":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "external_order_id": self.external_order_id,
            "stage": self.stage.value,
            "start_time": self.start_time,
            "customer": {"name": self.customer.name, "avatar": self.customer.avatar},
            "items": [{"name": it.name, "quantity": it.quantity} for it in self.items],
            "total": self.total,
            "table_number": self.table_number,
        }
