# Copyright (c) 2025
# MIT License
# -----------------------------------------------------------------------------
# simulation.py
# -----------------------------------------------------------------------------
# Purpose:
#   Simulate a single replication: build the engine on a virtual-time Env
#   with in-memory collaborators, run it for the configured playback
#   minutes, and return the metrics summary.
#
# Design notes:
#   - Mirroring runs inline (workers=0) so a replication is deterministic
#     for a given seed.
#   - With speed s, `minutes` of playback covers s * minutes of restaurant
#     time.
#
# Usage:
#   from ordersim.simulation import run_replication
#   results = run_replication(cfg)
# -----------------------------------------------------------------------------

from __future__ import annotations
import random, uuid
from typing import Dict

from .config import SimulationConfig
from .engine import SimulationEngine
from .entropy import AdaptiveEntropy
from .events import Env
from .store import InMemoryCatalog, InMemoryOrderStore, MirrorQueue


def run_replication(cfg: Dict) -> Dict:
    sim_cfg = SimulationConfig.from_dict(cfg).validate()
    seed = sim_cfg.seed if sim_cfg.seed is not None else 0
    # uuid4 draws from os.urandom; pin order ids to the seed as well
    id_rng = random.Random(seed)

    store = InMemoryOrderStore()
    catalog = InMemoryCatalog.from_config(cfg)
    mirror_cfg = dict(cfg.get("mirror", {}), workers=0)
    engine = SimulationEngine(
        sim_cfg.with_overrides(seed=seed), store, catalog,
        env=Env(),
        mirror=MirrorQueue.from_config({"mirror": mirror_cfg}),
        entropy=AdaptiveEntropy(seed),
        catalog_limit=int(cfg.get("catalog", {}).get("item_limit", 20)),
        id_factory=lambda: str(uuid.UUID(int=id_rng.getrandbits(128), version=4)),
    )
    engine.start()
    T_end = float(cfg.get("replication", {}).get("minutes", 60)) * 60 * 1000.0
    engine.env.run_until(T_end)

    summary = engine.M.summary(engine.get_stats())
    summary["mirrored_orders"] = len(store.orders)
    summary["mirror_failures"] = engine.mirror.failed
    summary["auto_stopped"] = not engine.is_running
    engine.stop()
    return summary
