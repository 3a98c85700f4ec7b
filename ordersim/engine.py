# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# engine.py
# -----------------------------------------------------------------------------
# Purpose:
#   SimulationEngine: owns the fleet of in-flight synthetic orders, keeps the
#   arrival loop and per-order stage timers on an Env, exposes the run
#   controls (start/pause/resume/stop) and builds stats snapshots on demand.
#
# Design notes:
#   - The engine is the Env's router: "arrival" events go to on_arrival,
#     "transition" events to on_transition.
#   - Pausing does not cancel timers. A timer that fires while paused does
#     nothing and re-arms itself with the same delay; the first unpaused
#     fire advances the order by exactly one stage. Paused time is lost,
#     not deducted.
#   - Stopping cancels every timer and empties the fleet; handlers check the
#     run state first, so a stale timer fired after stop() is a no-op.
#   - Store writes go through MirrorQueue and are never awaited. Their
#     results come back via env.post() so the fleet is only touched on the
#     event loop.
#
# Usage:
#   engine = SimulationEngine(cfg, store, catalog); engine.start()
#   engine.env.run_until(60 * 60 * 1000)
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging, random, uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from .config import SimulationConfig
from .distributions import SeededRandom, avatar_glyph, customer_name, next_arrival_delay, weighted_choice
from .entities import Customer, OrderLine, SimulatedOrder
from .entropy import AdaptiveEntropy, get_entropy
from .events import Env
from .metrics import Metrics, SimulationStats
from .stages import PLACEMENT_DELAY_MS, Stage, active_stages, dwell_duration, external_status, successor
from .store import MenuCatalog, MirrorQueue, OrderStore

logger = logging.getLogger(__name__)

ITEM_COUNTS = (1, 2, 3, 4)
ITEM_COUNT_WEIGHTS = (0.2, 0.4, 0.3, 0.1)
PAYMENT_METHODS = ("qr", "cash", "card")
PAYMENT_WEIGHTS = (0.6, 0.3, 0.1)
QR_PROVIDER = "duitnow"
TABLE_COUNT = 20
CATALOG_LIMIT = 20


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class SimulationEngine:
    """Discrete-event order lifecycle simulator.

    Parameters
    ----------
    config : SimulationConfig
        Run configuration; validated again by start().
    store : OrderStore
        Mirror target. Every call on it is best-effort.
    catalog : MenuCatalog
        Source of menu items, queried once per generated order.
    env : Env, optional
        Event list to schedule on. Defaults to a virtual-time Env; pass a
        WallClockEnv for live playback.
    mirror : MirrorQueue, optional
        Carrier for store writes. The default (one background worker) is
        owned by the engine and shut down by stop(); an injected queue is
        left to its caller.
    rng : object with .random(), optional
        Defaults to SeededRandom(config.seed) when a seed is configured,
        otherwise an unseeded random.Random().
    entropy : AdaptiveEntropy, optional
        Source for the admission hook; defaults to the process-wide one.
    id_factory : callable, optional
        Produces order ids; defaults to uuid4 strings.
    """

    def __init__(self, config: SimulationConfig, store: OrderStore, catalog: MenuCatalog,
                 env: Optional[Env] = None, mirror: Optional[MirrorQueue] = None,
                 rng=None, entropy: Optional[AdaptiveEntropy] = None,
                 catalog_limit: int = CATALOG_LIMIT, id_factory: Optional[Callable[[], str]] = None):
        self.config = config
        self.store = store
        self.catalog = catalog
        self.env = env if env is not None else Env()
        self.env.router = self
        self._owns_mirror = mirror is None
        self.mirror = mirror if mirror is not None else MirrorQueue()
        if rng is None:
            rng = SeededRandom(config.seed) if config.seed is not None else random.Random()
        self.rng = rng
        self.entropy = entropy if entropy is not None else get_entropy()
        self.catalog_limit = catalog_limit
        self.new_order_id = id_factory or (lambda: str(uuid.uuid4()))

        self.state = EngineState.IDLE
        self.fleet: Dict[str, SimulatedOrder] = {}
        self.M = Metrics()
        self._origin: Optional[datetime] = None
        self._env_start = 0.0

    # ------------------------------------------------------------------ clock
    @property
    def lock(self):
        return self.env.lock

    def elapsed_ms(self) -> float:
        if self._origin is None:
            return 0.0
        return self.env.now() - self._env_start

    def now(self) -> datetime:
        """Wall-clock time of the run: start time plus elapsed playback."""
        if self._origin is None:
            return self.config.start_time or datetime.now()
        return self._origin + timedelta(milliseconds=self.elapsed_ms())

    def now_ms(self) -> float:
        return self.now().timestamp() * 1000.0

    # --------------------------------------------------------------- controls
    @property
    def is_running(self) -> bool:
        return self.state in (EngineState.RUNNING, EngineState.PAUSED)

    @property
    def is_paused(self) -> bool:
        return self.state is EngineState.PAUSED

    def start(self, config: Optional[SimulationConfig] = None) -> bool:
        """Begin a run. Raises ConfigError on a bad config; False if not idle."""
        with self.lock:
            if self.state is not EngineState.IDLE:
                return False
            cfg = config if config is not None else self.config
            cfg.validate()
            if config is not None:
                self.config = config
                if config.seed is not None:
                    self.rng = SeededRandom(config.seed)
            self._origin = self.config.start_time or datetime.now()
            self._env_start = self.env.now()
            self.M.reset()
            self.state = EngineState.RUNNING
            logger.info("Simulation started: speed=%sx arrival_rate=%s",
                        self.config.speed, self.config.arrival_rate)
            self._schedule_next_arrival()
            return True

    def pause(self) -> bool:
        with self.lock:
            if self.state is not EngineState.RUNNING:
                return False
            self.state = EngineState.PAUSED
            logger.info("Simulation paused with %d orders in flight", len(self.fleet))
            return True

    def resume(self) -> bool:
        with self.lock:
            if self.state is not EngineState.PAUSED:
                return False
            self.state = EngineState.RUNNING
            logger.info("Simulation resumed")
            return True

    def stop(self) -> bool:
        with self.lock:
            if self.state is EngineState.STOPPED:
                return False
            self.state = EngineState.STOPPED
            cancelled = self.env.cancel_all()
            dropped = len(self.fleet)
            self.fleet.clear()
            if self._owns_mirror:
                self.mirror.shutdown(wait=False)
            logger.info("Simulation stopped: %d timers cancelled, %d orders dropped, revenue %.2f",
                        cancelled, dropped, self.M.revenue_total)
            return True

    # ---------------------------------------------------------------- readers
    def get_active_orders(self) -> List[SimulatedOrder]:
        with self.lock:
            return [o.snapshot() for o in self.fleet.values()]

    def get_stats(self) -> SimulationStats:
        with self.lock:
            return self.M.snapshot(self.fleet.values(), self.now(), self.elapsed_ms())

    def orders_by_stage(self) -> Dict[Stage, List[SimulatedOrder]]:
        with self.lock:
            grouped: Dict[Stage, List[SimulatedOrder]] = {s: [] for s in active_stages()}
            for order in self.fleet.values():
                grouped[order.stage].append(order.snapshot())
            return grouped

    # ---------------------------------------------------------- arrival loop
    def _schedule_next_arrival(self):
        delay = next_arrival_delay(self.now().hour, self.config.arrival_rate, self.rng)
        delay /= self.config.speed
        logger.debug("Next arrival in %.0f ms", delay)
        self.env.schedule(delay, "arrival")

    def on_arrival(self, env: Env):
        with self.lock:
            if not self.is_running:
                return
            limit = self.config.max_duration_minutes
            if limit is not None and self.elapsed_ms() >= limit * 60 * 1000:
                logger.info("Auto-stop: %.1f minutes elapsed", self.elapsed_ms() / 60000.0)
                self.stop()
                return
            if self.state is EngineState.RUNNING:
                self._generate_order()
            # keep the cadence while paused; only generation is skipped
            if self.is_running:
                self._schedule_next_arrival()

    def generate_order(self) -> Optional[SimulatedOrder]:
        """Synthesize one order and put it in the fleet at ARRIVAL."""
        with self.lock:
            return self._generate_order()

    def _generate_order(self) -> Optional[SimulatedOrder]:
        if not self.is_running:
            return None
        limit = self.config.max_order_count
        if limit is not None and self.M.orders_created >= limit:
            logger.info("Auto-stop: %d orders generated", self.M.orders_created)
            self.stop()
            return None
        cap = self.config.admission_capacity
        if cap is not None and not self.entropy.should_admit_order(len(self.fleet), cap):
            logger.debug("Order not admitted at load %d/%d", len(self.fleet), cap)
            return None
        try:
            menu = list(self.catalog.list_available_items(self.catalog_limit))
        except Exception as exc:
            logger.warning("Catalog lookup failed, skipping this cycle: %s", exc)
            return None
        if not menu:
            logger.warning("Catalog returned no available items, skipping this cycle")
            return None

        rng = self.rng
        item_count = weighted_choice(ITEM_COUNTS, ITEM_COUNT_WEIGHTS, rng)
        lines = []
        for _ in range(item_count):
            item = menu[min(int(rng.random() * len(menu)), len(menu) - 1)]
            quantity = 1 + int(rng.random() * 2)
            lines.append(OrderLine(item.name, quantity, menu_item_id=item.id, unit_price=item.price))
        now_ms = self.now_ms()
        order = SimulatedOrder(
            id=self.new_order_id(),
            customer=Customer(customer_name(rng), avatar_glyph(rng)),
            items=tuple(lines),
            total=sum(line.amount for line in lines),
            start_time=now_ms,
            table_number=1 + min(int(rng.random() * TABLE_COUNT), TABLE_COUNT - 1),
        )
        order.enter(Stage.ARRIVAL, now_ms)
        self.fleet[order.id] = order
        self.M.note_order_created(order)
        logger.debug("Order %s created: %d lines, total %.2f", order.id, len(lines), order.total)

        self._schedule_transition(order, Stage.PLACEMENT, PLACEMENT_DELAY_MS / self.config.speed)
        self._mirror_create(order)
        return order

    # ------------------------------------------------------- stage machinery
    def _schedule_transition(self, order: SimulatedOrder, stage: Stage, delay: float):
        self.env.schedule(delay, "transition", {"order_id": order.id, "stage": stage, "delay": delay})

    def on_transition(self, env: Env, order_id: str, stage: Stage, delay: float):
        with self.lock:
            if not self.is_running:
                return
            order = self.fleet.get(order_id)
            if order is None:
                return
            if self.state is EngineState.PAUSED:
                self._schedule_transition(order, stage, delay)
                return
            self._advance(order, stage)

    def _advance(self, order: SimulatedOrder, stage: Stage):
        order.enter(stage, self.now_ms())
        self.M.note_stage(order)
        logger.debug("Order %s -> %s", order.id, stage.value)

        if order.external_order_id is not None:
            self.mirror.submit(f"status {order.external_order_id}", self.store.update_order_status,
                               order.external_order_id, external_status(stage).value)

        if stage is Stage.PAYMENT and self.M.note_payment(order):
            logger.info("Completed simulated order %s: %.2f", order.id, order.total)
            if order.external_order_id is not None:
                method = weighted_choice(PAYMENT_METHODS, PAYMENT_WEIGHTS, self.rng)
                provider = QR_PROVIDER if method == "qr" else None
                self.mirror.submit(f"payment {order.external_order_id}", self.store.create_payment,
                                   order.external_order_id, method, order.total, provider)

        nxt = successor(stage)
        if nxt is None:
            del self.fleet[order.id]
            self.M.note_completed(order)
        else:
            delay = dwell_duration(stage, len(order.items), self.rng) / self.config.speed
            self._schedule_transition(order, nxt, delay)

    # -------------------------------------------------------------- mirroring
    def _mirror_create(self, order: SimulatedOrder):
        metadata = {
            "session_id": order.id,
            "order_type": "dine_in",
            "status": external_status(Stage.ARRIVAL).value,
            "total": order.total,
            "subtotal": order.total,
            "tax": 0,
            "discount": 0,
            "metadata": {"simulated": True, "table_number": order.table_number},
        }
        rows = [{"menu_item_id": line.menu_item_id, "quantity": line.quantity,
                 "unit_price": line.unit_price} for line in order.items]
        self.mirror.submit(f"create {order.id}", self.store.create_order, metadata,
                           on_success=lambda ext_id: self.env.post(self._on_mirrored, order.id, ext_id, rows))

    def _on_mirrored(self, order_id: str, external_id: str, rows: List[Dict]):
        if not external_id:
            return
        self.mirror.submit(f"items {external_id}", self.store.create_order_items, external_id, rows)
        order = self.fleet.get(order_id)
        if order is not None and self.is_running:
            order.external_order_id = external_id
