import random

import pytest

from conftest import FixedRandom
from ordersim.stages import (
    KITCHEN_STAGES, STAGE_CONFIG, STAGE_ORDER, OrderStatus, Stage, active_stages,
    dwell_duration, external_status, is_active, is_terminal, stage_index, successor,
)

MINUTE = 60 * 1000.0


def test_lifecycle_is_a_single_chain():
    assert STAGE_ORDER[0] is Stage.ARRIVAL
    assert STAGE_ORDER[-1] is Stage.INVOICE
    assert len(STAGE_ORDER) == 12
    stage, walked = Stage.ARRIVAL, [Stage.ARRIVAL]
    while successor(stage) is not None:
        stage = successor(stage)
        walked.append(stage)
    assert tuple(walked) == STAGE_ORDER


def test_successor_accepts_plain_values():
    assert successor("cooking") is Stage.READY
    assert successor(Stage.PAYMENT) is Stage.INVOICE
    assert successor(Stage.INVOICE) is None


def test_only_invoice_is_terminal():
    assert [s for s in STAGE_ORDER if is_terminal(s)] == [Stage.INVOICE]


@pytest.mark.parametrize("stage,status", [
    (Stage.ARRIVAL, OrderStatus.PENDING),
    (Stage.KITCHEN_QUEUE, OrderStatus.PENDING),
    (Stage.COOKING, OrderStatus.PREPARING),
    (Stage.READY, OrderStatus.DONE),
    (Stage.CLEARING, OrderStatus.DONE),
    (Stage.PAYMENT, OrderStatus.COMPLETED),
    (Stage.INVOICE, OrderStatus.COMPLETED),
])
def test_external_status(stage, status):
    assert external_status(stage) is status
    assert external_status(stage) == status.value


def test_every_stage_has_display_metadata():
    for stage in STAGE_ORDER:
        cfg = STAGE_CONFIG[stage]
        assert cfg.label and cfg.icon and cfg.description
        assert is_active(stage)
    assert active_stages() == list(STAGE_ORDER)


def test_stage_index_and_kitchen_stages():
    assert stage_index(Stage.ARRIVAL) == 0
    assert stage_index("invoice") == 11
    assert KITCHEN_STAGES == {Stage.KITCHEN_QUEUE, Stage.COOKING}


def test_fixed_dwell_durations():
    assert dwell_duration(Stage.PLACEMENT) == 15000.0
    assert dwell_duration(Stage.CLEARING) == 180000.0
    assert dwell_duration(Stage.INVOICE) == 10000.0


def test_sampled_dwell_durations():
    assert dwell_duration(Stage.COOKING, 3, FixedRandom(0.5)) == pytest.approx(11 * MINUTE)
    rng = random.Random(3)
    for _ in range(50):
        assert 15 * MINUTE <= dwell_duration(Stage.DINING, 2, rng) <= 25 * MINUTE
