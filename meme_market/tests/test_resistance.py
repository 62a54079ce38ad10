import random

import pytest

from meme_market.engine.resistance import resistance_effects, resistance_step, resistance_zone, simulate_resistance
from meme_market.tests.support import PinnedRandom


@pytest.mark.parametrize("price,zone", [(100, "none"), (799.99, "none"), (800, "medium"), (949, "medium"),
                                        (950, "strong"), (1000, "strong")])
def test_zones(price, zone):
    assert resistance_zone(price, 1000) == zone


def test_effects_per_zone():
    rng = PinnedRandom()
    assert resistance_effects("none", rng) == (1.0, 0.0)
    mult, drift = resistance_effects("medium", rng)
    assert mult == 0.5 and drift == pytest.approx(-0.003)
    mult, drift = resistance_effects("strong", rng)
    assert mult == 0.25 and drift == pytest.approx(-0.0125)


def test_drift_always_downward():
    rng = random.Random(3)
    for _ in range(200):
        assert -0.02 <= resistance_effects("strong", rng)[1] <= -0.005
        assert -0.005 <= resistance_effects("medium", rng)[1] <= -0.001


def test_step_near_cap_is_dampened():
    new, zone, drift = resistance_step(960.0, 0.08, bias=0.05, max_price=1000, rng=PinnedRandom())
    assert zone == "strong"
    assert new == pytest.approx(min(1000, 960.0 * (1 + 0.05 + drift)))


def test_simulation_chains_prices_and_respects_cap():
    steps = simulate_resistance(700.0, steps=8, volatility=0.08, bias=0.05, max_price=1000, rng=PinnedRandom())
    assert [s.step for s in steps] == list(range(1, 9))
    for prev, cur in zip(steps, steps[1:]):
        assert cur.old_price == prev.new_price
    assert all(s.new_price <= 1000 for s in steps)
    assert steps[0].zone == "none"
    assert steps[0].change_pct == pytest.approx(5.0)
    assert steps[-1].zone == "strong"
