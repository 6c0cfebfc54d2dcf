# src/epi_pomp/inference/transforms.py
# Parameter transforms for unconstrained optimisation: log for positive
# quantities, logit for probabilities. Applied only at an optimiser boundary.

from typing import Dict, Iterable, Mapping

import numpy as np
from scipy.special import expit, logit


def to_estimation_scale(params: Mapping[str, float], log: Iterable[str] = (),
                        logit_names: Iterable[str] = ()) -> Dict[str, float]:
    """Map natural-scale parameters to the unconstrained scale."""
    out = dict(params)
    for p in log:
        v = params[p]
        if v <= 0:
            raise ValueError(f"{p} must be > 0 for a log transform, got {v}")
        out[p] = float(np.log(v))
    for p in logit_names:
        v = params[p]
        if not 0.0 < v < 1.0:
            raise ValueError(f"{p} must lie in (0, 1) for a logit transform, got {v}")
        out[p] = float(logit(v))
    return out


def from_estimation_scale(params: Mapping[str, float], log: Iterable[str] = (),
                          logit_names: Iterable[str] = ()) -> Dict[str, float]:
    """Inverse of `to_estimation_scale`."""
    out = dict(params)
    for p in log:
        out[p] = float(np.exp(params[p]))
    for p in logit_names:
        out[p] = float(expit(params[p]))
    return out
