# src/epi_pomp/simulate/simulate_paths.py
"""
Reusable batch simulation driven by a small config record.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence
import logging
import pathlib

import numpy as np

from .batch_processing import generate_batch
from ..datasets.observations import load_dataset

# Start logger
logger = logging.getLogger(__name__)

# Boarding-school influenza scale parameters
DEFAULT_PARAMS: Dict[str, float] = {
    "Beta": 2.0,
    "mu_IR": 1.0,
    "mu_EI": 1.0,
    "mu_R1": 0.5,
    "mu_R2": 0.5,
    "N": 763,
    "eta": 1.0,
    "rho": 0.9,
    "psi": 5.0,
    "k": 0.1,
}


@dataclass
class SimConfig:
    nsim: int = 100
    model: str = "sir"
    measurement: str = "poisson"
    params: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_PARAMS))
    dataset: Optional[str] = "bsflu"
    times: Optional[Sequence[float]] = None
    n_times: int = 14
    t0: float = 0.0
    dt: float = 1.0 / 7
    seed: Optional[int] = None
    out_path: str = "data/simulated_reports.csv"
    use_tempfile: bool = False


def observation_times(cfg: SimConfig) -> np.ndarray:
    """Explicit times first, then the bundled dataset, else 1..n_times."""
    if cfg.times is not None:
        return np.asarray(cfg.times, dtype=float)
    if cfg.dataset:
        return load_dataset(cfg.dataset)["time"].to_numpy()
    return np.arange(1, cfg.n_times + 1, dtype=float)


def simulate_batch(cfg: SimConfig):
    """Run the batch generation and return the reports and csv path."""
    # Convert out_path to ensure directory exists
    out_path = pathlib.Path(cfg.out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    times = observation_times(cfg)
    logger.debug("Simulating at %d observation times", len(times))

    reports, csv_path = generate_batch(
        nsim=int(cfg.nsim),
        params=cfg.params,
        times=times,
        model=cfg.model,
        measurement=cfg.measurement,
        t0=cfg.t0,
        dt=cfg.dt,
        out_path=None if cfg.use_tempfile else str(out_path),
        use_tempfile=cfg.use_tempfile,
        seed=cfg.seed,
    )

    logger.info("Simulated reports shape: %s", reports.shape)
    logger.info("CSV written to: %s", csv_path)
    return reports, csv_path
