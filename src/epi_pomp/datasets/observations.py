# src/epi_pomp/datasets/observations.py
"""
Observation tables: a time column and a reported-count column.

Run examples:
  PYTHONPATH=src python -c "from epi_pomp.datasets.observations import load_dataset; print(load_dataset('bsflu'))"
"""

from importlib import resources
from pathlib import Path
from typing import Tuple

import numpy as np
import pandas as pd

DATASETS_PACKAGE = "epi_pomp.datasets"

# name -> (file, time column, count column)
BUNDLED = {
    "bsflu": ("bsflu.csv", "day", "B"),
}


def validate_observations(times, counts) -> Tuple[np.ndarray, np.ndarray]:
    """Check times strictly increase and counts are non-negative integers."""
    times = np.asarray(times, dtype=float)
    counts_f = np.asarray(counts, dtype=float)

    if times.ndim != 1 or times.shape != counts_f.shape:
        raise ValueError("times and counts must be 1D sequences of equal length")
    if times.size == 0:
        raise ValueError("observations must contain at least one row")
    if np.any(~np.isfinite(times)):
        raise ValueError("observation times must be finite")
    if np.any(np.diff(times) <= 0):
        raise ValueError("observation times must be strictly increasing")
    if np.any(~np.isfinite(counts_f)) or np.any(counts_f < 0):
        raise ValueError("reported counts must be finite and >= 0")
    if np.any(counts_f != np.round(counts_f)):
        raise ValueError("reported counts must be integers")
    return times, counts_f.astype(np.int64)


def as_observations(observations) -> Tuple[np.ndarray, np.ndarray]:
    """Normalise observations to (times, counts) arrays.

    Accepts a DataFrame with `time`/`reports` columns (otherwise the first two
    columns are used) or a sequence of (time, count) pairs.
    """
    if isinstance(observations, pd.DataFrame):
        if {"time", "reports"} <= set(observations.columns):
            times, counts = observations["time"], observations["reports"]
        elif observations.shape[1] >= 2:
            times, counts = observations.iloc[:, 0], observations.iloc[:, 1]
        else:
            raise ValueError("observation table needs a time column and a count column")
        return validate_observations(times.to_numpy(), counts.to_numpy())

    pairs = list(observations)
    if not pairs:
        raise ValueError("observations must contain at least one row")
    arr = np.asarray(pairs, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise ValueError("observations must be a sequence of (time, count) pairs")
    return validate_observations(arr[:, 0], arr[:, 1])


def load_observations(path, time_col: str = "time", count_col: str = "reports") -> pd.DataFrame:
    """Read a CSV of observations into a DataFrame with columns time, reports."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Observation CSV not found: {path}")

    df = pd.read_csv(path)
    missing = [c for c in (time_col, count_col) if c not in df.columns]
    if missing:
        raise ValueError(f"{path} is missing columns {missing}")

    times, counts = validate_observations(df[time_col].to_numpy(), df[count_col].to_numpy())
    return pd.DataFrame({"time": times, "reports": counts})


def load_dataset(name: str) -> pd.DataFrame:
    """Load one of the bundled observation tables by name."""
    try:
        fname, time_col, count_col = BUNDLED[name]
    except KeyError:
        raise ValueError(f"Unknown dataset '{name}'. Choose from {sorted(BUNDLED)}") from None

    res = resources.files(DATASETS_PACKAGE).joinpath(fname)
    with resources.as_file(res) as path:
        return load_observations(path, time_col=time_col, count_col=count_col)
