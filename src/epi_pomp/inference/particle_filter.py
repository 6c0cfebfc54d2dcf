# src/epi_pomp/inference/particle_filter.py
"""
Bootstrap particle filter (sequential Monte Carlo) for the likelihood of a
partially observed compartment model.

For each observation time t:
    1. zero the accumulators and propagate every particle from t-1 to t
    2. weight each particle by P(reports_t | particle state)
    3. conditional log-likelihood l_t = log(mean(w))
    4. resample J particles with probability proportional to w
    5. record ESS_t = (sum w)^2 / sum w^2

The log-likelihood estimate is sum_t l_t. When every weight is (numerically)
zero the step is a filtering failure: l_t = log(tol), the particles are
carried forward unresampled and `nfail` is incremented.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

import numpy as np
import pandas as pd
from scipy.special import logsumexp

from ..datasets.observations import as_observations
from ..measure.measurement import get_measurement
from ..simulate.compartment_models import as_generator, get_model
from ..simulate.euler_step import advance, reset_accumulators
from .resampling import effective_sample_size, get_resampler

logger = logging.getLogger(__name__)

# Weights at or below this are treated as zero
DEFAULT_TOL = 1e-300


@dataclass
class PFilterResult:
    loglik: float
    cond_loglik: np.ndarray
    ess: np.ndarray
    nfail: int
    times: np.ndarray
    filter_mean: np.ndarray
    statenames: tuple
    particles: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def failed_times(self) -> np.ndarray:
        return self.times[self.ess == 0]

    def filter_mean_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.filter_mean, columns=list(self.statenames))
        df.insert(0, "time", self.times)
        return df


def particle_filter(
    observations,
    params: Mapping[str, float],
    J: int,
    rng=None,
    model="sir",
    measurement="poisson",
    dt: float = 1.0 / 7,
    t0: float = 0.0,
    resample: str = "systematic",
    tol: float = DEFAULT_TOL,
    save_states: bool = False,
) -> PFilterResult:
    """Run the particle filter and return the log-likelihood estimate.

    Args:
        observations: DataFrame (time, reports) or sequence of (time, count) pairs
        params: model and measurement parameters
        J: number of particles
        rng: numpy Generator, seed, or None
        model: model name or CompartmentModel
        measurement: measurement name or MeasurementModel
        dt: Euler step
        t0: time of the initial state, <= first observation time
        resample: "systematic" or "multinomial"
        tol: weights <= tol count as zero
        save_states: keep the final particle set on the result
    Returns:
        PFilterResult
    Raises:
        ValueError
    """
    times, counts = as_observations(observations)
    model = get_model(model)
    meas = get_measurement(measurement)
    model.validate(params)
    meas.validate(params)
    resampler = get_resampler(resample)

    if int(J) != J or J < 1:
        raise ValueError(f"J must be a positive integer, got {J}")
    J = int(J)
    if dt <= 0:
        raise ValueError(f"dt must be > 0, got {dt}")
    if t0 > times[0]:
        raise ValueError(f"t0 ({t0}) must not be after the first observation time ({times[0]})")
    if not 0 <= tol < 1:
        raise ValueError(f"tol must lie in [0, 1), got {tol}")

    rng = as_generator(rng)
    log_tol = np.log(tol) if tol > 0 else -np.inf
    fail_loglik = np.log(tol) if tol > 0 else np.log(DEFAULT_TOL)

    x0 = model.initialize(params, rng)
    particles = np.tile(x0, (J, 1))
    obs_idx = model.observed_index

    T = times.size
    cond_loglik = np.zeros(T)
    ess = np.zeros(T)
    filter_mean = np.zeros((T, model.n_state))
    nfail = 0

    t_prev = t0
    for k in range(T):
        reset_accumulators(model, particles)
        particles = advance(particles, params, t_prev, times[k], dt, rng, model)
        t_prev = times[k]

        logw = np.asarray(meas.log_density(counts[k], particles[:, obs_idx], params), dtype=float)
        logw = np.where(np.isnan(logw) | (logw <= log_tol), -np.inf, logw)
        mx = logw.max()

        if not np.isfinite(mx):
            nfail += 1
            cond_loglik[k] = fail_loglik
            ess[k] = 0.0
            logger.warning(
                "Filtering failure at t=%g: all %d particles incompatible with %d reports",
                times[k], J, counts[k],
            )
        else:
            cond_loglik[k] = logsumexp(logw) - np.log(J)
            w = np.exp(logw - mx)
            ess[k] = effective_sample_size(w)
            particles = particles[resampler(w, rng)]

        filter_mean[k] = particles.mean(axis=0)
        logger.debug("t=%g cond_loglik=%.4f ess=%.1f", times[k], cond_loglik[k], ess[k])

    loglik = float(cond_loglik.sum())
    logger.info("Particle filter (J=%d, model=%s): loglik=%.3f, nfail=%d", J, model.name, loglik, nfail)

    return PFilterResult(
        loglik=loglik,
        cond_loglik=cond_loglik,
        ess=ess,
        nfail=nfail,
        times=times,
        filter_mean=filter_mean,
        statenames=model.statenames,
        particles=particles if save_states else None,
    )
