import numpy as np
import pytest

from epi_pomp.datasets.observations import load_dataset
from epi_pomp.inference.particle_filter import DEFAULT_TOL, particle_filter
from epi_pomp.inference.resampling import (
    effective_sample_size,
    multinomial_resample,
    systematic_resample,
)

BSFLU_PARAMS = {"Beta": 2.0, "mu_IR": 1.0, "N": 763, "eta": 1.0, "rho": 0.9}


def test_bsflu_scenario_no_failures():
    """
    N=763, S0=762, I0=1, Beta=2, mu_I=1, dt=1/12, J=5000, Poisson reports with rho=0.9
    """
    obs = load_dataset("bsflu")
    res = particle_filter(obs, BSFLU_PARAMS, J=5000, rng=np.random.default_rng(594709947),
                          model="sir", measurement="poisson", dt=1 / 12)

    assert np.isfinite(res.loglik)
    assert res.nfail == 0
    assert res.ess.shape == (14,)
    assert np.all(res.ess >= 1.0)
    assert np.all(res.ess <= 5000 + 1e-6)
    assert res.loglik == pytest.approx(res.cond_loglik.sum())


def test_same_seed_is_bit_identical():
    obs = load_dataset("bsflu")
    kw = dict(model="sir", measurement="negbin", dt=1 / 12)
    params = {**BSFLU_PARAMS, "psi": 5.0}
    a = particle_filter(obs, params, J=500, rng=np.random.default_rng(42), **kw)
    b = particle_filter(obs, params, J=500, rng=np.random.default_rng(42), **kw)

    assert a.loglik == b.loglik
    assert np.array_equal(a.ess, b.ess)
    assert np.array_equal(a.cond_loglik, b.cond_loglik)


def test_impossible_binomial_report_is_filtering_failure():
    """
    A report larger than the whole population exceeds every particle's incidence.
    """
    obs = [(1.0, 0), (2.0, 10_000), (3.0, 0)]
    res = particle_filter(obs, BSFLU_PARAMS, J=300, rng=1, measurement="binomial", dt=1 / 12)

    assert res.nfail == 1
    assert np.isfinite(res.loglik)
    assert res.ess[1] == 0.0
    assert res.cond_loglik[1] == pytest.approx(np.log(DEFAULT_TOL))
    assert list(res.failed_times) == [2.0]


def test_pairs_and_frame_give_same_answer():
    obs = load_dataset("bsflu")
    pairs = list(zip(obs["time"], obs["reports"]))
    a = particle_filter(obs, BSFLU_PARAMS, J=200, rng=5, dt=1 / 12)
    b = particle_filter(pairs, BSFLU_PARAMS, J=200, rng=5, dt=1 / 12)
    assert a.loglik == b.loglik


def test_filter_mean_keeps_population():
    obs = load_dataset("bsflu")
    res = particle_filter(obs, BSFLU_PARAMS, J=300, rng=8, dt=1 / 12, save_states=True)

    assert res.filter_mean.shape == (14, 4)
    assert np.allclose(res.filter_mean[:, :3].sum(axis=1), 763)
    assert res.particles.shape == (300, 4)
    frame = res.filter_mean_frame()
    assert list(frame.columns) == ["time", "S", "I", "R", "H"]


def test_bed_confined_model_runs():
    obs = load_dataset("bsflu")
    params = {"Beta": 3.0, "mu_IR": 2.0, "mu_R1": 0.5, "mu_R2": 0.5, "N": 763, "eta": 1.0, "rho": 0.9}
    res = particle_filter(obs, params, J=500, rng=3, model="sirr", dt=1 / 12)
    assert np.isfinite(res.loglik)
    assert res.filter_mean.shape == (14, 5)


def test_invalid_inputs_fail_fast():
    obs = load_dataset("bsflu")
    with pytest.raises(ValueError):
        particle_filter(obs, {**BSFLU_PARAMS, "rho": 1.5}, J=10)
    with pytest.raises(ValueError):
        particle_filter(obs, BSFLU_PARAMS, J=0)
    with pytest.raises(ValueError):
        particle_filter(obs, BSFLU_PARAMS, J=10, t0=5.0)
    with pytest.raises(ValueError):
        particle_filter([(2.0, 1), (1.0, 3)], BSFLU_PARAMS, J=10)
    with pytest.raises(ValueError):
        particle_filter(obs, BSFLU_PARAMS, J=10, resample="residual")


def test_resampling_keeps_size_and_skips_zero_weights():
    rng = np.random.default_rng(9)
    w = np.array([0.0, 1.0, 0.0, 3.0])
    for resample in (systematic_resample, multinomial_resample):
        idx = resample(w, rng)
        assert idx.shape == (4,)
        assert set(idx.tolist()) <= {1, 3}


def test_resampled_particles_are_copies():
    rng = np.random.default_rng(10)
    particles = rng.integers(0, 100, size=(50, 4))
    w = rng.random(50)
    resampled = particles[systematic_resample(w, rng)]
    assert resampled.shape == particles.shape
    originals = {tuple(row) for row in particles.tolist()}
    assert all(tuple(row) in originals for row in resampled.tolist())


def test_effective_sample_size():
    assert effective_sample_size(np.ones(10)) == pytest.approx(10.0)
    assert effective_sample_size(np.array([0.0, 0.0, 2.0])) == pytest.approx(1.0)
    assert effective_sample_size(np.zeros(3)) == 0.0
