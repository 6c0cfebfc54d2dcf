# src/epi_pomp/simulate/skeleton.py
# Deterministic skeleton: the ODE obtained from the Euler scheme as dt -> 0.
# Accumulators integrate the flow from t0 without being reset.

from typing import Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.integrate import solve_ivp

from .compartment_models import get_model


def trajectory_ode(model, params: Mapping[str, float], times: Sequence[float], t0: float = 0.0,
                   x0: Optional[np.ndarray] = None, rtol: float = 1e-8, atol: float = 1e-8) -> pd.DataFrame:
    """Solve the mean-field ODE of `model` and report the state at `times`."""
    model = get_model(model)
    model.validate(params)
    times = np.asarray(times, dtype=float)
    if times.size == 0 or np.any(np.diff(times) <= 0):
        raise ValueError("times must be a non-empty strictly increasing sequence")
    if t0 > times[0]:
        raise ValueError(f"t0 ({t0}) must not be after the first time ({times[0]})")

    y0 = model.initialize(params) if x0 is None else np.asarray(x0)
    sol = solve_ivp(
        lambda t, y: model.vector_field(y, params, t),
        t_span=(t0, float(times[-1])),
        y0=np.asarray(y0, dtype=float),
        t_eval=times,
        rtol=rtol,
        atol=atol,
    )
    if not sol.success:
        raise RuntimeError(f"ODE integration failed: {sol.message}")

    df = pd.DataFrame(sol.y.T, columns=list(model.statenames))
    df.insert(0, "time", sol.t)
    return df
