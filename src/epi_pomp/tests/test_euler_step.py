import numpy as np
import pytest

from epi_pomp.simulate.compartment_models import SIRModel
from epi_pomp.simulate.euler_step import advance, initialize, simulate_step, step_count

PARAMS = {"Beta": 2.0, "mu_IR": 1.0, "N": 763, "eta": 1.0}


class LeakySIR(SIRModel):
    """Adds one susceptible per step; used to trip the population check."""

    def step(self, x, params, t, dt, rng):
        out = super().step(x, params, t, dt, rng)
        out[..., 0] += 1
        return out


def test_simulate_step_mapping_in_mapping_out():
    state = initialize(PARAMS)
    new = simulate_step(state, PARAMS, dt=1 / 12, rng=np.random.default_rng(1))

    assert set(new) == {"S", "I", "R", "H"}
    assert all(v >= 0 for v in new.values())
    assert new["S"] + new["I"] + new["R"] == 763


def test_empty_compartment_has_no_outflow():
    """
    No infectious individuals: no infections and no recoveries whatever the rates.
    """
    state = {"S": 700, "I": 0, "R": 63, "H": 0}
    for seed in range(5):
        new = simulate_step(state, {**PARAMS, "Beta": 50.0, "mu_IR": 50.0}, dt=1.0, rng=seed)
        assert new == state


def test_simulate_step_rejects_bad_dt_and_params():
    state = initialize(PARAMS)
    with pytest.raises(ValueError):
        simulate_step(state, PARAMS, dt=0.0)
    with pytest.raises(ValueError):
        simulate_step(state, {**PARAMS, "mu_IR": -0.1}, dt=0.1)


def test_population_invariant_violation_raises():
    state = initialize(PARAMS)
    with pytest.raises(RuntimeError):
        simulate_step(state, PARAMS, dt=0.1, rng=1, model=LeakySIR())
    with pytest.raises(RuntimeError):
        advance(np.array([762, 1, 0, 0]), PARAMS, 0.0, 1.0, 0.1, rng=1, model=LeakySIR())


class RecordingSIR(SIRModel):
    """Records the step sizes it is asked to take."""

    def __init__(self):
        super().__init__()
        self.steps = []

    def step(self, x, params, t, dt, rng):
        self.steps.append((t, dt))
        return super().step(x, params, t, dt, rng)


def test_advance_final_step_takes_remainder():
    model = RecordingSIR()
    advance(np.array([762, 1, 0, 0]), PARAMS, 0.0, 1.0, 0.3, rng=1, model=model)

    times, sizes = zip(*model.steps)
    assert np.allclose(times, [0.0, 0.3, 0.6, 0.9])
    assert np.allclose(sizes, [0.3, 0.3, 0.3, 0.1])


def test_step_count_covers_partial_final_step():
    assert step_count(0.0, 1.0, 1 / 12) == 12
    assert step_count(13.0, 14.0, 1 / 12) == 12
    assert step_count(0.0, 1.0, 0.3) == 4
    assert step_count(2.0, 2.0, 0.1) == 0


def test_advance_zero_interval_is_identity():
    x = np.array([[762, 1, 0, 0], [700, 50, 13, 3]])
    out = advance(x, PARAMS, 1.0, 1.0, 0.1, rng=1)
    assert np.array_equal(out, x)


def test_advance_reproducible_with_same_seed():
    x = np.tile(np.array([762, 1, 0, 0]), (100, 1))
    a = advance(x, PARAMS, 0.0, 3.0, 1 / 12, rng=np.random.default_rng(7))
    b = advance(x, PARAMS, 0.0, 3.0, 1 / 12, rng=np.random.default_rng(7))
    assert np.array_equal(a, b)
    assert np.all(a[:, :3].sum(axis=1) == 763)


def test_advance_rejects_backwards_interval():
    with pytest.raises(ValueError):
        advance(np.array([762, 1, 0, 0]), PARAMS, 2.0, 1.0, 0.1)
