# ###
# **generate_single_trajectory.py**

# Purpose: simulate the full partially observed process: the compartment
# states at each observation time plus a reported count drawn from the
# measurement model. The `nsim` replicates are advanced together as one
# array, with accumulators zeroed at the start of every observation interval.

# Functions:
# - simulate_states()
#   - Input: model, params, observation times, nsim, rng, t0, dt.
#   - Output: array (nsim, T, n_state) of states at the observation times.
# - simulate()
#   - As above plus reports; returns a long DataFrame, optionally with the data.
# ###

import logging
from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .compartment_models import as_generator, get_model
from .euler_step import advance, reset_accumulators
from ..measure.measurement import get_measurement

logger = logging.getLogger(__name__)


def simulate_states(model, params: Mapping[str, float], times: Sequence[float], nsim: int = 1,
                    rng=None, t0: float = 0.0, dt: float = 1.0 / 7):
    """Simulate `nsim` state trajectories observed at `times`.

    Returns:
        states (nparray(nsim, T, n_state)): states at each time, accumulators
        holding the flow since the previous time
    """
    model = get_model(model)
    model.validate(params)
    if nsim < 1:
        raise ValueError("nsim must be >= 1")
    if dt <= 0:
        raise ValueError(f"dt must be > 0, got {dt}")

    times = np.asarray(times, dtype=float)
    if times.ndim != 1 or times.size == 0:
        raise ValueError("times must be a non-empty 1D sequence")
    if np.any(np.diff(times) <= 0):
        raise ValueError("times must be strictly increasing")
    if t0 > times[0]:
        raise ValueError(f"t0 ({t0}) must not be after the first time ({times[0]})")

    rng = as_generator(rng)
    x = np.tile(model.initialize(params, rng), (nsim, 1))

    states = np.zeros((nsim, times.size, model.n_state), dtype=np.int64)
    t_prev = t0
    for k, t in enumerate(times):
        reset_accumulators(model, x)
        x = advance(x, params, t_prev, t, dt, rng, model)
        states[:, k, :] = x
        t_prev = t
    return states


def simulate(model="sir", measurement="poisson", params: Optional[Mapping[str, float]] = None,
             times: Sequence[float] = (), nsim: int = 1, rng=None, t0: float = 0.0,
             dt: float = 1.0 / 7, observations: Optional[pd.DataFrame] = None,
             include_data: bool = False) -> pd.DataFrame:
    """Simulate states and reports in long format.

    Columns: sim_id, time, every state variable, reports, is_data.
    With `include_data`, the observed reports are prepended with sim_id "data"
    and is_data True.
    """
    if params is None:
        raise ValueError("params must be provided")
    model = get_model(model)
    meas = get_measurement(measurement)
    meas.validate(params)
    rng = as_generator(rng)

    if observations is not None and len(times) == 0:
        times = observations["time"].to_numpy()

    states = simulate_states(model, params, times, nsim=nsim, rng=rng, t0=t0, dt=dt)
    reports = meas.sample(states[:, :, model.observed_index], params, rng)

    nsim_, T, _ = states.shape
    df = pd.DataFrame(states.reshape(nsim_ * T, -1), columns=list(model.statenames))
    df.insert(0, "time", np.tile(np.asarray(times, dtype=float), nsim_))
    df.insert(0, "sim_id", np.repeat(np.arange(1, nsim_ + 1), T))
    df["reports"] = np.asarray(reports, dtype=np.int64).reshape(-1)
    df["is_data"] = False

    if include_data:
        if observations is None:
            raise ValueError("include_data requires observations")
        data = pd.DataFrame({
            "sim_id": "data",
            "time": observations["time"].to_numpy(dtype=float),
            "reports": observations["reports"].to_numpy(),
            "is_data": True,
        })
        df = pd.concat([data, df], ignore_index=True)

    logger.info("Simulated %d trajectories of model '%s' at %d times", nsim_, model.name, T)
    return df
