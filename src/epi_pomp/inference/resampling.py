# src/epi_pomp/inference/resampling.py
# Ancestor selection for the particle filter. Both schemes return J indices
# drawn with probability proportional to the weights.

import numpy as np
from numpy.random import Generator


def _normalise(weights) -> np.ndarray:
    w = np.asarray(weights, dtype=float)
    if w.ndim != 1 or w.size == 0:
        raise ValueError("weights must be a non-empty 1D array")
    if np.any(w < 0) or not np.all(np.isfinite(w)):
        raise ValueError("weights must be finite and >= 0")
    total = w.sum()
    if total <= 0:
        raise ValueError("weights sum to zero; nothing to resample")
    return w / total


def systematic_resample(weights, rng: Generator) -> np.ndarray:
    """Systematic resampling: one uniform offset, J evenly spaced points."""
    w = _normalise(weights)
    J = w.size
    cdf = np.cumsum(w)
    cdf[-1] = 1.0
    u = (rng.random() + np.arange(J)) / J
    idx = np.searchsorted(cdf, u, side="right")
    return np.minimum(idx, J - 1)


def multinomial_resample(weights, rng: Generator) -> np.ndarray:
    """Multinomial resampling: J independent draws."""
    w = _normalise(weights)
    return rng.choice(w.size, size=w.size, replace=True, p=w)


RESAMPLERS = {
    "systematic": systematic_resample,
    "multinomial": multinomial_resample,
}


def get_resampler(name: str = "systematic"):
    if callable(name):
        return name
    try:
        return RESAMPLERS[name]
    except KeyError:
        raise ValueError(f"Unknown resampling scheme '{name}'. Choose from {sorted(RESAMPLERS)}") from None


def effective_sample_size(weights) -> float:
    """(sum w)^2 / sum w^2; 0 when every weight is zero."""
    w = np.asarray(weights, dtype=float)
    s2 = float(np.sum(w ** 2))
    if s2 <= 0:
        return 0.0
    return float(np.sum(w)) ** 2 / s2
