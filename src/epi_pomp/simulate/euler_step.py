# src/epi_pomp/simulate/euler_step.py
# Functional entry points around the compartment models:
# - simulate_step(): one Euler step from a state mapping or array
# - initialize(): the deterministic initial state
# - advance(): cover an interval with dt-sized steps, the last one partial

import logging
from typing import Mapping

import numpy as np

from .compartment_models import as_generator, get_model

logger = logging.getLogger(__name__)

# Slack when counting steps so that 1.0 / (1/12) is treated as 12 steps
_STEP_TOL = 1e-9


def _population(model, x) -> np.ndarray:
    return np.asarray(x)[..., model.population_index].sum(axis=-1)


def initialize(params: Mapping[str, float], rng=None, model="sir", as_dict: bool = True):
    """Initial state for `model` at parameters `params`.

    Returns a {statename: count} dict by default, or the raw array.
    """
    model = get_model(model)
    x0 = model.initialize(params, rng)
    return model.to_dict(x0) if as_dict else x0


def simulate_step(state, params: Mapping[str, float], dt: float, rng=None, model="sir",
                  t: float = 0.0, check: bool = True):
    """Advance `state` by one step of length `dt`.

    `state` may be a mapping (returned as a dict) or an array with the model's
    statenames on the last axis (returned as an array).
    """
    model = get_model(model)
    if dt <= 0:
        raise ValueError(f"dt must be > 0, got {dt}")
    model.validate(params)
    rng = as_generator(rng)

    is_mapping = isinstance(state, Mapping)
    x = model.from_mapping(state) if is_mapping else np.asarray(state, dtype=np.int64)
    model.check_state(x)

    x_new = model.step(x, params, t, dt, rng)
    if check:
        model.check_state(x_new, population=None)
        if np.any(_population(model, x_new) != _population(model, x)):
            raise RuntimeError(f"Population size changed during a '{model.name}' step")
    return model.to_dict(x_new) if is_mapping else x_new


def advance(x, params: Mapping[str, float], t_start: float, t_end: float, dt: float,
            rng=None, model="sir", check: bool = True) -> np.ndarray:
    """Advance state(s) `x` from `t_start` to `t_end` in steps of `dt`.

    The interval need not be a multiple of `dt`; the final step covers the
    remainder. Accumulators are not reset here.
    """
    model = get_model(model)
    if dt <= 0:
        raise ValueError(f"dt must be > 0, got {dt}")
    if t_end < t_start:
        raise ValueError(f"t_end ({t_end}) must be >= t_start ({t_start})")
    rng = as_generator(rng)

    x = np.asarray(x, dtype=np.int64)
    population = _population(model, x) if check else None

    n_steps = step_count(t_start, t_end, dt)
    for k in range(n_steps):
        t = t_start + k * dt
        h = min(dt, t_end - t)
        x = model.step(x, params, t, h, rng)

    if check and n_steps > 0:
        model.check_state(x)
        if np.any(_population(model, x) != population):
            raise RuntimeError(f"Population size changed while advancing model '{model.name}'")
    logger.debug("Advanced %s from t=%g to t=%g in %d steps", model.name, t_start, t_end, n_steps)
    return x


def reset_accumulators(model, x: np.ndarray) -> np.ndarray:
    """Zero the accumulator columns of `x` in place and return it."""
    idx = model.accum_index
    if idx:
        x[..., idx] = 0
    return x


def step_count(t_start: float, t_end: float, dt: float) -> int:
    span = t_end - t_start
    return int(np.ceil(span / dt - _STEP_TOL)) if span > 0 else 0
