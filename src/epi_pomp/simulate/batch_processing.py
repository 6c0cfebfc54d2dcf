#
# **batch_processing.py**

# Purpose: simulate a user-defined number of report trajectories and write
# them to a .csv (or a Python `tempfile`) with headers sim_id, time_1, ...,
# total_reports.


# Functions:
# - generate_batch()

#   - Input: the number of trajectories `nsim`, the model, parameters and observation times.
#   - Output: a 2D array of reports, printed to a csv.
#

import csv
import tempfile
from pathlib import Path

import numpy as np

from .compartment_models import as_generator, get_model
from .generate_single_trajectory import simulate_states
from ..measure.measurement import get_measurement


def default_csv_path(use_tempfile=True):
    """Define the filepath of csv


    """
    if use_tempfile:
        tf = tempfile.NamedTemporaryFile(prefix="simulated_reports_", suffix=".csv")
        p = Path(tf.name)
        tf.close()
        return p
    else:
        return Path("simulated_reports.csv")


def generate_batch(
    nsim,
    params,
    times,
    model="sir",
    measurement="poisson",
    t0=0.0,
    dt=1.0 / 7,
    out_path=None,
    use_tempfile=True,
    seed=None,
):
    """Simulate nsim report trajectories and write them to CSV.

    Returns:
        reports (nparray(nsim, T)): simulated reports
        csv_path (Path): where the rows were written
    """
    rng = as_generator(seed)
    model = get_model(model)
    meas = get_measurement(measurement)
    meas.validate(params)

    # Do file pathing
    if out_path is None:
        csv_path = default_csv_path(use_tempfile=use_tempfile)
    else:
        csv_path = Path(out_path)
    csv_path.parent.mkdir(parents=True, exist_ok=True)

    states = simulate_states(model, params, times, nsim=nsim, rng=rng, t0=t0, dt=dt)
    reports = np.asarray(
        meas.sample(states[:, :, model.observed_index], params, rng), dtype=np.int64
    )

    # Setup csv headers
    header = ["sim_id"] + [f"time_{d}" for d in range(1, len(times) + 1)] + ["total_reports"]

    with csv_path.open("w", newline="") as fh:
        writer = csv.writer(fh)
        writer.writerow(header)
        for sim_id in range(1, nsim + 1):
            row = reports[sim_id - 1]
            writer.writerow([sim_id, *row.tolist(), int(row.sum())])

    return reports, csv_path
