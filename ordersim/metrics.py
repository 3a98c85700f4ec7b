# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# metrics.py
# -----------------------------------------------------------------------------
# Purpose:
#   Fleet statistics: in-flight counts, kitchen load, diners, recognised
#   revenue, observed orders per hour, average prep time, peak-hour flag.
#
# Design notes:
#   - Run counters (created/completed/revenue) are updated through note_*
#     hooks called by the engine; everything else in a SimulationStats
#     snapshot is recomputed from the fleet.
#   - Revenue only grows, and only once per order (guarded by order.paid).
#
# Usage:
#   M = Metrics(); stats = M.snapshot(fleet, now, elapsed_ms); M.summary(stats)
# -----------------------------------------------------------------------------

from __future__ import annotations
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Iterable

from .distributions import is_peak_hour
from .entities import SimulatedOrder
from .stages import KITCHEN_STAGES, Stage

HOUR_MS = 60 * 60 * 1000.0


@dataclass(frozen=True)
class SimulationStats:
    active_orders: int = 0
    kitchen_queue: int = 0
    customers_dining: int = 0
    revenue: float = 0.0
    orders_per_hour: float = 0.0
    average_prep_time: float = 0.0     # ms
    is_peak_hour: bool = False
    completed_orders: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


class Metrics:
    def __init__(self):
        self.reset()

    def reset(self):
        self.orders_created = 0
        self.orders_completed = 0
        self.payments = 0
        self.revenue_total = 0.0
        self.stage_entries: Dict[str, int] = {s.value: 0 for s in Stage}

    def note_order_created(self, order: SimulatedOrder):
        self.orders_created += 1
        self.stage_entries[order.stage.value] += 1

    def note_stage(self, order: SimulatedOrder):
        self.stage_entries[order.stage.value] += 1

    def note_payment(self, order: SimulatedOrder) -> bool:
        """Recognise the order's total once. Returns False if already paid."""
        if order.paid:
            return False
        order.paid = True
        self.payments += 1
        self.revenue_total += order.total
        return True

    def note_completed(self, order: SimulatedOrder):
        self.orders_completed += 1

    def snapshot(self, fleet: Iterable[SimulatedOrder], now: datetime, elapsed_ms: float) -> SimulationStats:
        orders = list(fleet)
        prep_times = [p for p in (o.prep_time() for o in orders) if p is not None]
        elapsed_hours = elapsed_ms / HOUR_MS
        return SimulationStats(
            active_orders=len(orders),
            kitchen_queue=sum(1 for o in orders if o.stage in KITCHEN_STAGES),
            customers_dining=sum(1 for o in orders if o.stage is Stage.DINING),
            revenue=self.revenue_total,
            orders_per_hour=self.orders_created / elapsed_hours if elapsed_hours > 0 else 0.0,
            average_prep_time=sum(prep_times) / len(prep_times) if prep_times else 0.0,
            is_peak_hour=is_peak_hour(now),
            completed_orders=self.orders_completed,
        )

    def summary(self, stats: SimulationStats) -> Dict:
        """JSON-serialisable run summary for tabulation."""
        return {
            "orders_created": self.orders_created,
            "orders_completed": self.orders_completed,
            "orders_in_flight": stats.active_orders,
            "payments": self.payments,
            "revenue": self.revenue_total,
            "revenue_per_order": (self.revenue_total / self.payments) if self.payments else 0.0,
            "orders_per_hour": stats.orders_per_hour,
            "avg_prep_time_minutes": stats.average_prep_time / 60000.0,
            "kitchen_queue": stats.kitchen_queue,
            "customers_dining": stats.customers_dining,
            "stage_entries": dict(self.stage_entries),
        }
