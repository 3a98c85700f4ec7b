import pytest

from ordersim import entropy
from ordersim.entropy import POOL_SIZE, AdaptiveEntropy, day_part


class StuckEntropy(AdaptiveEntropy):
    def __init__(self, value):
        super().__init__(seed=1)
        self.value = value

    def next(self):
        return self.value


def test_same_seed_gives_same_sequence():
    a, b = AdaptiveEntropy(99), AdaptiveEntropy(99)
    assert [a.next() for _ in range(600)] == [b.next() for _ in range(600)]


def test_draws_stay_in_unit_interval():
    src = AdaptiveEntropy(7)
    assert all(0.0 <= src.next() < 1.0 for _ in range(2000))


def test_draw_feeds_back_into_pool():
    src = AdaptiveEntropy(5)
    before = list(src.pool)
    value = src.next()
    assert src.pool[0] == pytest.approx((before[0] + value) % 1.0)
    assert src.pool[1:] == before[1:]


def test_iteration_counter_wraps_at_pool_size():
    src = AdaptiveEntropy(5)
    for _ in range(POOL_SIZE + 3):
        src.next()
    assert src.iteration == 3


def test_adaptive_rate_applies_day_part_multiplier_with_jitter():
    src = AdaptiveEntropy(11)
    for _ in range(100):
        assert 18.0 <= src.adaptive_rate(10, "lunch") <= 22.0
        assert 5.4 <= src.adaptive_rate(10, "night") <= 6.6
    with pytest.raises(ValueError):
        src.adaptive_rate(10, "brunch")


def test_should_admit_order_is_stricter_under_load():
    src = StuckEntropy(0.5)
    assert src.should_admit_order(0, 10) is True
    assert src.should_admit_order(10, 10) is False
    # over capacity and zero capacity behave like a full kitchen
    assert src.should_admit_order(50, 10) is False
    assert src.should_admit_order(1, 0) is False


def test_admission_rate_never_rises_with_load():
    rates = []
    for load in (0, 5, 10):
        src = AdaptiveEntropy(21)
        rates.append(sum(src.should_admit_order(load, 10) for _ in range(3000)))
    assert rates[0] >= rates[1] >= rates[2]


def test_dynamic_price_caps_demand_and_never_discounts():
    assert AdaptiveEntropy.dynamic_price(10, 300) == pytest.approx(13.0)
    assert AdaptiveEntropy.dynamic_price(10, 150) == pytest.approx(11.5)
    assert AdaptiveEntropy.dynamic_price(10, 40) == pytest.approx(10.0)
    assert AdaptiveEntropy.dynamic_price(10, 0) == pytest.approx(10.0)


def test_fair_wait_estimate_caps_load_penalty():
    assert AdaptiveEntropy.fair_wait_estimate(3, 2) == 15 * 60 * 1000
    assert AdaptiveEntropy.fair_wait_estimate(3, 20) == 26 * 60 * 1000


@pytest.mark.parametrize("hour,part", [(6, "morning"), (12, "lunch"), (19, "dinner"), (23, "night"), (2, "night")])
def test_day_part(hour, part):
    assert day_part(hour) == part


def test_process_wide_instance_can_be_reset_with_seed():
    first = entropy.reset_entropy(123)
    assert entropy.get_entropy() is first
    seq = [first.next() for _ in range(5)]
    again = entropy.reset_entropy(123)
    assert again is not first
    assert [again.next() for _ in range(5)] == seq
