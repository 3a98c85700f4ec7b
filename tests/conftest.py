from __future__ import annotations
from collections import defaultdict
from datetime import datetime

import pytest

from ordersim.config import SimulationConfig
from ordersim.engine import SimulationEngine
from ordersim.entropy import AdaptiveEntropy
from ordersim.events import Env
from ordersim.store import InMemoryCatalog, InMemoryOrderStore, MenuItem, MirrorQueue

# Monday 10:00, outside every rush window
QUIET_START = datetime(2025, 3, 3, 10, 0, 0)
MINUTE = 60 * 1000.0

MENU = [
    MenuItem("m-01", "Nasi Lemak", 12.0),
    MenuItem("m-02", "Teh Tarik", 4.0),
    MenuItem("m-03", "Chicken Satay", 15.0),
    MenuItem("m-04", "Cendol", 6.5),
]


class FixedRandom:
    """rng stand-in that always returns the same draw."""
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def catalog():
    return InMemoryCatalog(MENU)


@pytest.fixture
def make_engine(store, catalog):
    def _make(store=store, catalog=catalog, entropy=None, **overrides):
        params = dict(speed=1, arrival_rate="low", seed=11, start_time=QUIET_START)
        params.update(overrides)
        return SimulationEngine(
            SimulationConfig(**params), store, catalog,
            env=Env(),
            mirror=MirrorQueue(workers=0),
            entropy=entropy or AdaptiveEntropy(3),
        )
    return _make


@pytest.fixture
def stage_log():
    """Attach to an engine to record every stage each order enters."""
    def _attach(engine):
        visited = defaultdict(list)
        finished = {}
        note_stage = engine.M.note_stage

        def spy(order):
            visited[order.id].append(order.stage)
            if order.stage.value == "invoice":
                finished[order.id] = order.snapshot()
            note_stage(order)

        engine.M.note_stage = spy
        return visited, finished
    return _attach
