# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# playback.py
# -----------------------------------------------------------------------------
# Purpose:
#   Live host for the engine: runs one SimulationEngine against the wall
#   clock on a daemon thread and hands out snapshots for a dashboard to
#   poll at its own cadence.
#
# Design notes:
#   - start() always tears down the previous run first.
#   - Snapshots come from the engine's readers, which copy under the
#     engine lock; the host never sees live orders.
#
# Usage:
#   pb = Playback(store, catalog); pb.start(SimulationConfig(speed=10))
#   orders, stats = pb.snapshot()
# -----------------------------------------------------------------------------

from __future__ import annotations
import logging, threading
from typing import List, Optional, Tuple

from .config import SimulationConfig
from .engine import SimulationEngine
from .entities import SimulatedOrder
from .entropy import AdaptiveEntropy
from .events import WallClockEnv
from .metrics import SimulationStats
from .store import MenuCatalog, MirrorQueue, OrderStore

logger = logging.getLogger(__name__)


class Playback:
    def __init__(self, store: OrderStore, catalog: MenuCatalog, mirror_cfg: Optional[dict] = None,
                 entropy: Optional[AdaptiveEntropy] = None):
        self.store = store
        self.catalog = catalog
        self.mirror_cfg = mirror_cfg or {}
        self.entropy = entropy
        self.engine: Optional[SimulationEngine] = None
        self._mirror: Optional[MirrorQueue] = None
        self._thread: Optional[threading.Thread] = None
        self._halt: Optional[threading.Event] = None

    @property
    def is_running(self) -> bool:
        return self.engine is not None and self.engine.is_running

    @property
    def is_paused(self) -> bool:
        return self.engine is not None and self.engine.is_paused

    def start(self, config: SimulationConfig) -> SimulationEngine:
        """Replace any current run with a fresh engine started on `config`."""
        config.validate()
        self.stop()
        self._mirror = MirrorQueue.from_config({"mirror": self.mirror_cfg})
        engine = SimulationEngine(config, self.store, self.catalog, env=WallClockEnv(),
                                  mirror=self._mirror, entropy=self.entropy)
        engine.start()
        self._halt = threading.Event()
        self._thread = threading.Thread(target=engine.env.run, args=(self._halt,),
                                        name="ordersim-playback", daemon=True)
        self.engine = engine
        self._thread.start()
        return engine

    def pause(self) -> bool:
        return self.engine.pause() if self.engine is not None else False

    def resume(self) -> bool:
        return self.engine.resume() if self.engine is not None else False

    def stop(self, timeout: float = 2.0) -> bool:
        if self.engine is None:
            return False
        self.engine.stop()
        if self._halt is not None:
            self._halt.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Playback thread did not exit within %.1fs", timeout)
        if self._mirror is not None:
            self._mirror.shutdown(wait=False)
        self.engine = None
        self._thread = None
        self._halt = None
        self._mirror = None
        return True

    def snapshot(self) -> Tuple[List[SimulatedOrder], SimulationStats]:
        if self.engine is None:
            return [], SimulationStats()
        return self.engine.get_active_orders(), self.engine.get_stats()
