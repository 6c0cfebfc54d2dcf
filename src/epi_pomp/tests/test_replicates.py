import math

import numpy as np
import pytest

from epi_pomp.datasets.observations import load_dataset
from epi_pomp.inference.replicates import (
    FilterConfig,
    log_mean_exp,
    loglik_slice,
    replicate_pfilter,
    run_filters,
    summarize_replicates,
)

PARAMS = {"Beta": 2.0, "mu_IR": 1.0, "N": 763, "eta": 1.0, "rho": 0.9}


def test_log_mean_exp_single_value_has_infinite_se():
    est, se = log_mean_exp([-123.4])
    assert est == pytest.approx(-123.4)
    assert math.isinf(se)


def test_log_mean_exp_known_value():
    est, _ = log_mean_exp([0.0, math.log(3.0)])
    assert est == pytest.approx(math.log(2.0))


def test_log_mean_exp_identical_values():
    est, se = log_mean_exp([-50.0] * 5)
    assert est == pytest.approx(-50.0)
    assert se == pytest.approx(0.0, abs=1e-12)


def test_log_mean_exp_permutation_invariant():
    x = [-1000.2, -1001.7, -999.8, -1003.1, -1000.0]
    rng = np.random.default_rng(0)
    est0, se0 = log_mean_exp(x)
    for _ in range(5):
        est, se = log_mean_exp(list(rng.permutation(x)))
        assert est == pytest.approx(est0, rel=1e-12)
        assert se == pytest.approx(se0, rel=1e-9)


def test_log_mean_exp_matches_jackknife_formula():
    x = np.array([-10.0, -10.5, -9.7, -11.2])
    n = x.size
    jk = np.array([np.log(np.mean(np.exp(np.delete(x, i)))) for i in range(n)])
    expected_se = (n - 1) * np.std(jk, ddof=1) / np.sqrt(n)

    est, se = log_mean_exp(x)
    assert est == pytest.approx(np.log(np.mean(np.exp(x))))
    assert se == pytest.approx(expected_se)
    # below the largest value, above the mean of the logs
    assert x.mean() < est < x.max()


def test_log_mean_exp_rejects_empty():
    with pytest.raises(ValueError):
        log_mean_exp([])


def test_replicates_reproducible_and_independent():
    obs = load_dataset("bsflu")
    a = replicate_pfilter(obs, PARAMS, J=200, n_reps=3, seed=123, dt=1 / 12)
    b = replicate_pfilter(obs, PARAMS, J=200, n_reps=3, seed=123, dt=1 / 12)

    assert len(a) == 3
    assert [r.loglik for r in a] == [r.loglik for r in b]
    # separate streams give different Monte Carlo draws
    assert len({r.loglik for r in a}) == 3

    est = summarize_replicates(a)
    assert est.n_reps == 3
    assert np.isfinite(est.loglik)
    assert est.loglik_se >= 0


def test_run_filters_with_config():
    obs = load_dataset("bsflu")
    cfg = FilterConfig(J=200, n_reps=2, dt=1 / 12, seed=7)
    est = run_filters(obs, PARAMS, cfg)
    assert est.n_reps == 2
    assert est.logliks.shape == (2,)


def test_loglik_slice_frame():
    obs = load_dataset("bsflu")
    df = loglik_slice(obs, PARAMS, "Beta", [1.5, 2.5], J=100, n_reps=2, seed=1, dt=1 / 12)
    assert list(df.columns) == ["Beta", "loglik", "loglik_se", "nfail"]
    assert df["Beta"].tolist() == [1.5, 2.5]
    assert np.all(np.isfinite(df["loglik"]))

    with pytest.raises(ValueError):
        loglik_slice(obs, PARAMS, "gamma", [1.0])
