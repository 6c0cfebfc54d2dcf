# src/epi_pomp/inference/replicates.py
"""
Independent replicate particle filters and their combination.

The particle filter is unbiased for the likelihood, not the log-likelihood,
so replicates are combined on the natural scale: log(mean(exp(loglik))).
The standard error comes from the jackknife over replicates.

Each replicate draws from its own stream spawned from one
numpy.random.SeedSequence, so runs are reproducible whatever the number of
joblib workers.
"""

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from numpy.random import SeedSequence, default_rng
from scipy.special import logsumexp

from .particle_filter import DEFAULT_TOL, PFilterResult, particle_filter

logger = logging.getLogger(__name__)

# Spread (sd of the log values) beyond which the jackknife SE is unreliable
UNRELIABLE_SPREAD = 1.0


def log_mean_exp(log_values: Sequence[float], se: bool = True) -> Tuple[float, float]:
    """log(mean(exp(x))) and its jackknife standard error.

    A single value returns (value, inf): one replicate says nothing about the
    Monte Carlo error.
    """
    x = np.asarray(log_values, dtype=float)
    if x.ndim != 1 or x.size == 0:
        raise ValueError("log_values must be a non-empty 1D sequence")
    if np.any(np.isnan(x)):
        raise ValueError("log_values must not contain NaN")

    n = x.size
    estimate = float(logsumexp(x) - np.log(n))
    if not se:
        return estimate, float("nan")

    if n == 1 or not np.all(np.isfinite(x)):
        logger.warning("log_mean_exp: standard error undefined for these %d value(s)", n)
        return estimate, float("inf")

    # leave-one-out estimates
    jk = np.array([logsumexp(np.delete(x, i)) - np.log(n - 1) for i in range(n)])
    std_err = float((n - 1) * np.std(jk, ddof=1) / np.sqrt(n))

    spread = float(np.std(x, ddof=1))
    if spread > UNRELIABLE_SPREAD:
        logger.warning(
            "log_mean_exp: replicate log-likelihoods spread %.2f log units; standard error %.3f is unreliable",
            spread, std_err,
        )
    return estimate, std_err


@dataclass
class LikelihoodEstimate:
    loglik: float
    loglik_se: float
    nfail: int
    n_reps: int
    logliks: np.ndarray


def _as_seed_sequence(seed) -> SeedSequence:
    if isinstance(seed, SeedSequence):
        return seed
    return SeedSequence(seed)


def _run_one(seed_seq: SeedSequence, observations, params, J, kwargs) -> PFilterResult:
    return particle_filter(observations, params, J, rng=default_rng(seed_seq), **kwargs)


def replicate_pfilter(
    observations,
    params: Mapping[str, float],
    J: int,
    n_reps: int = 10,
    seed=None,
    n_jobs: int = 1,
    **kwargs,
) -> List[PFilterResult]:
    """Run `n_reps` independent particle filters at the same parameters.

    Extra keyword arguments go to `particle_filter` (model, measurement, dt,
    t0, resample, tol). Results come back in task order.
    """
    if n_reps < 1:
        raise ValueError("n_reps must be >= 1")
    streams = _as_seed_sequence(seed).spawn(n_reps)
    results = Parallel(n_jobs=n_jobs)(
        delayed(_run_one)(ss, observations, dict(params), J, kwargs) for ss in streams
    )
    return list(results)


def summarize_replicates(results: Sequence[PFilterResult]) -> LikelihoodEstimate:
    """Combine replicate filters into one log-likelihood estimate."""
    if not results:
        raise ValueError("No replicate results to summarize")
    logliks = np.array([r.loglik for r in results], dtype=float)
    est, se = log_mean_exp(logliks)
    return LikelihoodEstimate(
        loglik=est,
        loglik_se=se,
        nfail=int(sum(r.nfail for r in results)),
        n_reps=len(results),
        logliks=logliks,
    )


def loglik_slice(
    observations,
    params: Mapping[str, float],
    name: str,
    values: Sequence[float],
    J: int = 1000,
    n_reps: int = 5,
    seed=None,
    n_jobs: int = 1,
    **kwargs,
) -> pd.DataFrame:
    """Log-likelihood along one parameter with all others held fixed.

    Returns a DataFrame with columns `name`, loglik, loglik_se, nfail.
    """
    if name not in params:
        raise ValueError(f"Parameter '{name}' not in params")
    streams = _as_seed_sequence(seed).spawn(len(values))

    rows = []
    for value, ss in zip(values, streams):
        p = dict(params)
        p[name] = float(value)
        est = summarize_replicates(
            replicate_pfilter(observations, p, J, n_reps=n_reps, seed=ss, n_jobs=n_jobs, **kwargs)
        )
        logger.info("slice %s=%g: loglik=%.3f (se %.3f)", name, value, est.loglik, est.loglik_se)
        rows.append({name: float(value), "loglik": est.loglik, "loglik_se": est.loglik_se, "nfail": est.nfail})
    return pd.DataFrame(rows)


@dataclass
class FilterConfig:
    model: str = "sir"
    measurement: str = "poisson"
    J: int = 1000
    n_reps: int = 10
    dt: float = 1.0 / 7
    t0: float = 0.0
    resample: str = "systematic"
    tol: float = DEFAULT_TOL
    seed: Optional[int] = None
    n_jobs: int = 1


def run_filters(observations, params: Mapping[str, float], cfg: FilterConfig) -> LikelihoodEstimate:
    """Replicate filters as described by `cfg` and summarize them."""
    results = replicate_pfilter(
        observations,
        params,
        cfg.J,
        n_reps=cfg.n_reps,
        seed=cfg.seed,
        n_jobs=cfg.n_jobs,
        model=cfg.model,
        measurement=cfg.measurement,
        dt=cfg.dt,
        t0=cfg.t0,
        resample=cfg.resample,
        tol=cfg.tol,
    )
    est = summarize_replicates(results)
    logger.info(
        "%d replicate filters: loglik=%.3f (se %.3f), nfail=%d",
        est.n_reps, est.loglik, est.loglik_se, est.nfail,
    )
    return est
