# src/epi_pomp/plotting/plot_traj.py
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.collections import LineCollection

from ..inference.particle_filter import PFilterResult

# ---------- simulations against data ----------


def plot_simulations(
    df: pd.DataFrame,
    save_path: str = "figs/simulations.png",
    max_plot: Optional[int] = 200,
    figsize: Tuple[int, int] = (10, 6),
    title: Optional[str] = None,
):
    """
    Draw simulated report trajectories (grey) with the data (red) on top.
    `df` is the long frame returned by simulate(); data rows have sim_id "data".
    """
    is_data = df["sim_id"].astype(str) == "data"
    sims = df[~is_data]
    data = df[is_data]

    ids = sims["sim_id"].unique()
    if max_plot is not None and ids.size > max_plot:
        ids = ids[:max_plot]

    segments = [
        np.column_stack([g["time"].to_numpy(dtype=float), g["reports"].to_numpy(dtype=float)])
        for _, g in sims[sims["sim_id"].isin(ids)].groupby("sim_id")
    ]

    fig, ax = plt.subplots(figsize=figsize)
    if segments:
        lc = LineCollection(segments, colors="grey", linewidths=0.8, alpha=0.5)
        ax.add_collection(lc)
    if not data.empty:
        ax.plot(data["time"], data["reports"], color="red", marker="o", lw=2, label="data")
        ax.legend(loc="upper right")
    ax.autoscale()
    ax.set_xlabel("time")
    ax.set_ylabel("reports")
    ax.set_title(title or f"{len(ids)} simulated trajectories")
    ax.grid(alpha=0.3)

    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(save_path, dpi=150)
    plt.close(fig)
    return save_path


# ---------- filter diagnostics ----------


def plot_filter_diagnostics(
    result: PFilterResult,
    observations: Optional[pd.DataFrame] = None,
    save_path: str = "figs/pfilter_diagnostics.png",
    figsize: Tuple[int, int] = (10, 8),
):
    """ESS and conditional log-likelihood per observation time, with the data
    in a top panel when given. Failed steps are marked with red crosses."""
    n_panels = 3 if observations is not None else 2
    fig, axes = plt.subplots(n_panels, 1, figsize=figsize, sharex=True)
    axes = list(np.atleast_1d(axes))

    if observations is not None:
        ax = axes.pop(0)
        ax.plot(observations["time"], observations["reports"], marker="o", color="black")
        ax.set_ylabel("reports")

    t = result.times
    failed = result.ess == 0

    axes[0].plot(t, result.ess, marker=".")
    axes[0].set_ylabel("ESS")
    axes[1].plot(t, result.cond_loglik, marker=".")
    axes[1].set_ylabel("cond. loglik")
    if np.any(failed):
        axes[0].plot(t[failed], result.ess[failed], "rx")
        axes[1].plot(t[failed], result.cond_loglik[failed], "rx")
    axes[1].set_xlabel("time")
    fig.suptitle(f"loglik = {result.loglik:.2f}, nfail = {result.nfail}")

    save_path = Path(save_path)
    save_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(save_path, dpi=150)
    plt.close(fig)
    return save_path
