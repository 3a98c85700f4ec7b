from datetime import datetime

import pytest

from conftest import MENU, MINUTE
from ordersim.config import ConfigError, SimulationConfig
from ordersim.engine import PAYMENT_METHODS, EngineState, SimulationEngine
from ordersim.entropy import AdaptiveEntropy
from ordersim.stages import STAGE_ORDER, Stage
from ordersim.store import InMemoryCatalog, InMemoryOrderStore, MirrorQueue

HOUR = 60 * MINUTE

LIFECYCLE_STATUSES = ["pending"] * 4 + ["preparing"] + ["done"] * 6 + ["completed"] * 2


class BrokenCatalog:
    def list_available_items(self, limit):
        raise ConnectionError("catalog offline")


class NeverAdmit(AdaptiveEntropy):
    def __init__(self):
        super().__init__(seed=1)
        self.asked = 0

    def should_admit_order(self, current_load, capacity):
        self.asked += 1
        return False


def _entry_times(engine, order_id):
    """Record (stage, env time) for each stage the order enters."""
    times = [(Stage.ARRIVAL, engine.env.now())]
    note_stage = engine.M.note_stage

    def spy(order):
        if order.id == order_id:
            times.append((order.stage, engine.env.now()))
        note_stage(order)

    engine.M.note_stage = spy
    return times


# ---------------------------------------------------------------- controls
def test_start_rejects_invalid_speed(make_engine):
    engine = make_engine(speed=0)
    with pytest.raises(ConfigError):
        engine.start()
    assert engine.state is EngineState.IDLE
    assert engine.env.FEL == []


def test_start_is_not_reentrant(make_engine):
    engine = make_engine()
    assert engine.start() is True
    assert engine.start() is False
    assert len(engine.env.pending()) == 1


def test_controls_are_idempotent(make_engine):
    engine = make_engine()
    assert engine.pause() is False
    assert engine.resume() is False
    engine.start()
    assert engine.resume() is False
    assert engine.pause() is True
    assert engine.pause() is False
    assert engine.is_running and engine.is_paused
    assert engine.resume() is True
    assert engine.resume() is False
    assert engine.stop() is True
    assert engine.stop() is False
    assert not engine.is_running
    assert engine.pause() is False


def test_stop_clears_fleet_and_timers(make_engine):
    engine = make_engine()
    engine.start()
    order = engine.generate_order()
    engine.stop()
    assert engine.fleet == {}
    assert engine.env.FEL == []
    assert engine.get_stats().active_orders == 0

    # stale firings after stop are ignored
    engine.on_transition(engine.env, order_id=order.id, stage=Stage.PLACEMENT, delay=1.0)
    engine.on_arrival(engine.env)
    assert engine.fleet == {}
    assert engine.M.orders_created == 1
    assert engine.generate_order() is None


def test_stop_shuts_down_the_default_mirror(store, catalog):
    engine = SimulationEngine(SimulationConfig(seed=1, start_time=datetime(2025, 3, 3, 10, 0)), store, catalog)
    engine.start()
    engine.stop()
    assert engine.mirror.submit("late", lambda: None) is False


def test_stop_leaves_an_injected_mirror_running(store, catalog):
    mirror = MirrorQueue(workers=1)
    engine = SimulationEngine(SimulationConfig(seed=1), store, catalog, mirror=mirror)
    engine.start()
    engine.stop()
    try:
        assert mirror.submit("after stop", lambda: None) is True
    finally:
        mirror.shutdown(wait=True)


def test_generate_order_requires_a_running_engine(make_engine):
    engine = make_engine()
    assert engine.generate_order() is None
    assert engine.M.orders_created == 0


# --------------------------------------------------------------- lifecycle
def test_orders_visit_every_stage_in_order(make_engine, stage_log):
    engine = make_engine()
    visited, finished = stage_log(engine)
    engine.start()
    engine.env.run_until(4 * HOUR)
    assert finished
    for order_id in finished:
        assert tuple(visited[order_id]) == STAGE_ORDER[1:]
        assert order_id not in engine.fleet


def test_stage_timing_scales_with_speed(make_engine):
    engine = make_engine(speed=5)
    engine.start()
    order = engine.generate_order()
    times = _entry_times(engine, order.id)
    engine.env.run_until(HOUR)

    stages = [s for s, _ in times]
    assert stages == list(STAGE_ORDER)
    gaps = {s: t1 - t0 for (s, t0), (_, t1) in zip(times, times[1:])}
    assert gaps[Stage.ARRIVAL] == pytest.approx(400.0)
    assert gaps[Stage.PLACEMENT] == pytest.approx(3000.0)
    assert gaps[Stage.KITCHEN_QUEUE] == pytest.approx(1000.0)
    n = len(order.items)
    base_cook = (5 + 2 * n) * MINUTE / 5
    assert 0.8 * base_cook - 1e-6 <= gaps[Stage.COOKING] <= 1.2 * base_cook + 1e-6
    assert gaps[Stage.READY] == pytest.approx(6000.0)
    assert gaps[Stage.SERVING] == pytest.approx(9000.0)
    assert 3 * MINUTE - 1e-6 <= gaps[Stage.DINING] <= 5 * MINUTE + 1e-6
    assert gaps[Stage.DRINKS] == pytest.approx(24000.0)
    assert gaps[Stage.HAND_WASHING] == pytest.approx(12000.0)
    assert gaps[Stage.CLEARING] == pytest.approx(36000.0)
    assert gaps[Stage.PAYMENT] == pytest.approx(24000.0)


def test_generated_order_shape(make_engine):
    engine = make_engine()
    engine.start()
    for _ in range(30):
        order = engine.generate_order()
        assert 1 <= len(order.items) <= 4
        assert all(1 <= line.quantity <= 2 for line in order.items)
        assert {line.menu_item_id for line in order.items} <= {m.id for m in MENU}
        assert order.total == pytest.approx(sum(l.unit_price * l.quantity for l in order.items))
        assert 1 <= order.table_number <= 20
        assert order.stage is Stage.ARRIVAL
        assert order.start_time == pytest.approx(QUIET_START_MS)


QUIET_START_MS = datetime(2025, 3, 3, 10, 0, 0).timestamp() * 1000.0


def test_low_tier_generates_about_five_orders_an_hour(make_engine):
    engine = make_engine(arrival_rate="low")
    engine.start()
    engine.env.run_until(HOUR)
    stats = engine.get_stats()
    assert 3 <= engine.M.orders_created <= 6
    assert stats.active_orders + stats.completed_orders == engine.M.orders_created


def test_revenue_only_grows_and_counts_each_order_once(make_engine, stage_log):
    engine = make_engine(arrival_rate="high")
    _, finished = stage_log(engine)
    engine.start()
    last = 0.0
    while engine.env.now() < 3 * HOUR and engine.env.step():
        revenue = engine.get_stats().revenue
        assert revenue >= last
        last = revenue
    assert finished
    paid = [o for o in finished.values() if o.paid]
    assert len(paid) == len(finished)
    assert engine.M.payments >= len(finished)
    assert last >= sum(o.total for o in finished.values()) - 1e-9
    assert last == pytest.approx(engine.M.revenue_total)


def test_pause_freezes_progress_and_resume_advances_one_stage(make_engine):
    engine = make_engine()
    engine.start()
    order = engine.generate_order()
    engine.pause()
    engine.env.run_until(engine.env.now() + 30 * MINUTE)

    assert engine.fleet[order.id].stage is Stage.ARRIVAL
    assert engine.M.orders_created == 1
    assert any(ev.kind == "transition" for ev in engine.env.pending())

    engine.resume()
    for _ in range(100):
        engine.env.step()
        if engine.fleet[order.id].stage is not Stage.ARRIVAL:
            break
    assert engine.fleet[order.id].stage is Stage.PLACEMENT


def test_arrival_loop_keeps_its_cadence_while_paused(make_engine):
    engine = make_engine(arrival_rate="rush")
    engine.start()
    engine.pause()
    engine.env.run_until(HOUR)

    assert any(ev.kind == "arrival" for ev in engine.env.pending())
    assert engine.M.orders_created == 0
    assert engine.fleet == {}

    engine.resume()
    engine.env.run_until(2 * HOUR)
    assert engine.M.orders_created > 0


# --------------------------------------------------------------- resilience
def test_catalog_failure_skips_the_cycle(make_engine):
    engine = make_engine(catalog=BrokenCatalog())
    engine.start()
    assert engine.generate_order() is None
    engine.env.run_until(HOUR)
    assert engine.is_running
    assert engine.fleet == {}
    assert engine.M.orders_created == 0


def test_empty_catalog_skips_the_cycle(make_engine):
    catalog = InMemoryCatalog([])
    engine = make_engine(catalog=catalog)
    engine.start()
    assert engine.generate_order() is None
    assert catalog.calls == 1


def test_catalog_is_queried_with_the_item_limit(make_engine):
    class Recording(InMemoryCatalog):
        def list_available_items(self, limit):
            self.limit = limit
            return super().list_available_items(limit)

    catalog = Recording(MENU)
    engine = make_engine(catalog=catalog)
    engine.start()
    engine.generate_order()
    assert catalog.limit == 20


# --------------------------------------------------------------- mirroring
def test_completed_order_is_mirrored_end_to_end(make_engine, stage_log, store):
    engine = make_engine()
    _, finished = stage_log(engine)
    engine.start()
    engine.env.run_until(4 * HOUR)

    order = next(iter(finished.values()))
    ext = order.external_order_id
    assert ext is not None
    row = store.orders[ext]
    assert row["session_id"] == order.id
    assert row["order_type"] == "dine_in"
    assert row["total"] == pytest.approx(order.total)
    assert row["metadata"] == {"simulated": True, "table_number": order.table_number}
    assert store.status_history[ext] == LIFECYCLE_STATUSES
    assert [it["quantity"] for it in store.order_items[ext]] == [l.quantity for l in order.items]

    [payment] = store.payments[ext]
    assert payment["method"] in PAYMENT_METHODS
    assert payment["amount"] == pytest.approx(order.total)
    assert payment["provider"] == ("duitnow" if payment["method"] == "qr" else None)


def test_mirror_failure_never_blocks_the_lifecycle(make_engine, stage_log):
    store = InMemoryOrderStore(fail={"create_order"})
    engine = make_engine(store=store)
    _, finished = stage_log(engine)
    engine.start()
    engine.env.run_until(4 * HOUR)

    assert finished
    assert all(o.external_order_id is None for o in finished.values())
    assert store.orders == {} and store.payments == {}
    assert engine.mirror.failed >= len(finished)
    assert engine.get_stats().revenue == pytest.approx(engine.M.revenue_total)
    assert engine.M.revenue_total >= sum(o.total for o in finished.values()) - 1e-9


def test_status_update_failures_are_tolerated(make_engine, stage_log):
    store = InMemoryOrderStore(fail={"update_order_status", "create_payment"})
    engine = make_engine(store=store)
    _, finished = stage_log(engine)
    engine.start()
    engine.env.run_until(4 * HOUR)
    assert finished
    for order in finished.values():
        assert store.status_history[order.external_order_id] == ["pending"]
    assert store.payments == {}
    assert engine.mirror.dead_letters


def test_mirrored_id_not_attached_after_stop(make_engine):
    engine = make_engine()
    engine.start()
    order = engine.generate_order()
    engine.stop()
    engine.env.drain()
    assert order.external_order_id is None


# --------------------------------------------------------------- auto-stop
def test_auto_stop_by_order_count(make_engine):
    engine = make_engine(arrival_rate="rush", max_order_count=2)
    engine.start()
    engine.env.run_until(6 * HOUR)
    assert engine.state is EngineState.STOPPED
    assert engine.M.orders_created == 2
    assert engine.fleet == {}
    assert engine.env.FEL == []


def test_auto_stop_by_duration(make_engine):
    engine = make_engine(max_duration_minutes=30)
    engine.start()
    engine.env.run_until(3 * HOUR)
    assert engine.state is EngineState.STOPPED
    assert engine.M.orders_created <= 3


# --------------------------------------------------------------- admission
def test_admission_hook_only_runs_with_a_capacity(make_engine):
    gate = NeverAdmit()
    engine = make_engine(entropy=gate, admission_capacity=5)
    engine.start()
    assert engine.generate_order() is None
    assert gate.asked == 1

    gate = NeverAdmit()
    engine = make_engine(entropy=gate)
    engine.start()
    assert engine.generate_order() is not None
    assert gate.asked == 0


# --------------------------------------------------------------- readers
def test_active_orders_are_snapshots(make_engine):
    engine = make_engine()
    engine.start()
    order = engine.generate_order()
    [snap] = engine.get_active_orders()
    snap.stage = Stage.INVOICE
    snap.stage_times.clear()
    assert engine.fleet[order.id].stage is Stage.ARRIVAL
    assert engine.fleet[order.id].stage_times


def test_orders_by_stage_lists_every_stage(make_engine):
    engine = make_engine()
    engine.start()
    order = engine.generate_order()
    grouped = engine.orders_by_stage()
    assert list(grouped) == list(STAGE_ORDER)
    assert [o.id for o in grouped[Stage.ARRIVAL]] == [order.id]
    assert all(not grouped[s] for s in STAGE_ORDER[1:])


def test_stats_track_kitchen_and_prep_time(make_engine):
    engine = make_engine(arrival_rate="high")
    engine.start()
    engine.env.run_until(2 * HOUR)
    stats = engine.get_stats()
    assert stats.kitchen_queue == sum(
        1 for o in engine.fleet.values() if o.stage in (Stage.KITCHEN_QUEUE, Stage.COOKING))
    assert stats.customers_dining == sum(1 for o in engine.fleet.values() if o.stage is Stage.DINING)
    assert stats.orders_per_hour > 0
    assert stats.average_prep_time > 0


@pytest.mark.parametrize("hour,peak", [(10, False), (12, True), (19, True)])
def test_peak_hour_follows_the_run_clock(make_engine, hour, peak):
    engine = make_engine(start_time=datetime(2025, 3, 3, hour, 0))
    engine.start()
    assert engine.get_stats().is_peak_hour is peak


def test_same_seed_gives_same_orders(make_engine):
    totals = []
    for _ in range(2):
        engine = make_engine(seed=99)
        engine.start()
        engine.env.run_until(2 * HOUR)
        totals.append(sorted(o.total for o in engine.get_active_orders()))
    assert totals[0] == totals[1]


def test_stats_follow_the_clock_between_transitions(make_engine):
    engine = make_engine(catalog=InMemoryCatalog([]), start_time=datetime(2025, 3, 3, 11, 0))
    engine.start()
    assert engine.get_stats().is_peak_hour is False

    # nothing is ever generated, so no transition refreshes anything
    engine.env.run_until(90 * MINUTE)
    stats = engine.get_stats()
    assert engine.now() == datetime(2025, 3, 3, 12, 30)
    assert stats.is_peak_hour is True
    assert stats.active_orders == 0


def test_orders_per_hour_uses_current_elapsed_time(make_engine):
    engine = make_engine(arrival_rate="low")
    engine.start()
    engine.generate_order()
    engine.pause()
    engine.env.run_until(30 * MINUTE)
    assert engine.get_stats().orders_per_hour == pytest.approx(2.0)
    engine.env.run_until(HOUR)
    assert engine.get_stats().orders_per_hour == pytest.approx(1.0)
