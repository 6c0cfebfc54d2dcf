#!/usr/bin/env python3
# src/epi_pomp/runner.py: command line runner
#
# Run examples:
#   PYTHONPATH=src python -m epi_pomp.runner simulate -N 100 --out data/sims.csv
#   PYTHONPATH=src python -m epi_pomp.runner pfilter -J 2000 --reps 10 --param Beta=2 --param mu_IR=1
#   PYTHONPATH=src python -m epi_pomp.runner slice --name Beta --values 1.5,2,2.5,3 --out data/slice.csv
#   PYTHONPATH=src python -m epi_pomp.runner plot --nsim 20 --out figs/simulations.png

import argparse
import logging
import re
import time
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from .datasets.observations import load_dataset, load_observations
from .inference.replicates import FilterConfig, loglik_slice, run_filters
from .plotting.plot_traj import plot_simulations
from .simulate import simulate_paths as sim
from .simulate.generate_single_trajectory import simulate

# Parser for lists like 1,2,3
def parse_float_list(s: Optional[str]) -> List[float]:
    if not s:
        return []
    return [float(x) for x in re.split(r"[,\s;]+", s.strip()) if x]


# Parser for NAME=VALUE pairs
def parse_params(pairs: Optional[List[str]], base: Optional[Dict[str, float]] = None) -> Dict[str, float]:
    params = dict(sim.DEFAULT_PARAMS if base is None else base)
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"Expected NAME=VALUE, got '{pair}'")
        name, value = pair.split("=", 1)
        params[name.strip()] = float(value)
    return params


def load_obs(args):
    if args.data:
        return load_observations(args.data, time_col=args.time_col, count_col=args.count_col)
    return load_dataset(args.dataset)


def add_common(p: argparse.ArgumentParser):
    p.add_argument("--model", default="sir", help="sir, seir, sirr, gamma_seir (default: sir)")
    p.add_argument("--measurement", default="poisson",
                   help="poisson, binomial, negbin, overdispersed (default: poisson)")
    p.add_argument("--param", action="append", metavar="NAME=VALUE",
                   help="Override a parameter; repeat as needed")
    p.add_argument("--seed", type=int, default=42, metavar="SEED",
                   help="RNG seed for reproducibility (default: 42)")
    p.add_argument("--dt", type=float, default=1.0 / 7, help="Euler step (default: 1/7)")
    p.add_argument("--t0", type=float, default=0.0, help="Initial time (default: 0)")
    p.add_argument("--dataset", default="bsflu", help="Bundled dataset (default: bsflu)")
    p.add_argument("--data", default=None, metavar="PATH", help="Observation CSV (overrides --dataset)")
    p.add_argument("--time-col", default="time")
    p.add_argument("--count-col", default="reports")


def add_filter_args(p: argparse.ArgumentParser):
    p.add_argument("-J", "--particles", dest="J", type=int, default=1000,
                   help="Number of particles (default: 1000)")
    p.add_argument("--reps", type=int, default=10, help="Replicate filters (default: 10)")
    p.add_argument("--resample", default="systematic", help="systematic or multinomial")
    p.add_argument("--n-jobs", type=int, default=1, help="joblib workers (default: 1)")


def filter_config(args) -> FilterConfig:
    return FilterConfig(
        model=args.model,
        measurement=args.measurement,
        J=args.J,
        n_reps=args.reps,
        dt=args.dt,
        t0=args.t0,
        resample=args.resample,
        seed=args.seed,
        n_jobs=args.n_jobs,
    )


def main(argv=None):
    p = argparse.ArgumentParser(description="Stochastic epidemic simulation and particle filtering")
    p.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- simulate ----------
    sim_p = sub.add_parser("simulate", help="Simulate report trajectories to CSV")
    add_common(sim_p)
    sim_p.add_argument("-N", "--num", dest="nsim", type=int, default=100,
                       help="Number of trajectories (default: 100)")
    sim_p.add_argument("--out", default="data/simulated_reports.csv", metavar="PATH",
                       help="Output CSV path (default: data/simulated_reports.csv)")

    # ---------- pfilter ----------
    pf_p = sub.add_parser("pfilter", help="Estimate the log-likelihood with replicate particle filters")
    add_common(pf_p)
    add_filter_args(pf_p)

    # ---------- slice ----------
    sl_p = sub.add_parser("slice", help="Log-likelihood along one parameter")
    add_common(sl_p)
    add_filter_args(sl_p)
    sl_p.add_argument("--name", required=True, help="Parameter to vary")
    sl_p.add_argument("--values", required=True, help="Comma separated values")
    sl_p.add_argument("--out", default="data/loglik_slice.csv", metavar="PATH")

    # ---------- plot ----------
    plot_p = sub.add_parser("plot", help="Plot simulated reports against the data")
    add_common(plot_p)
    plot_p.add_argument("--nsim", type=int, default=20)
    plot_p.add_argument("--out", default="figs/simulations.png", metavar="PATH")

    args = p.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    t0 = time.perf_counter()
    params = parse_params(args.param)

    if args.cmd == "simulate":
        cfg = sim.SimConfig(
            nsim=args.nsim,
            model=args.model,
            measurement=args.measurement,
            params=params,
            dataset=args.dataset,
            times=load_obs(args)["time"].to_numpy() if args.data else None,
            t0=args.t0,
            dt=args.dt,
            seed=args.seed,
            out_path=args.out,
        )
        sim.simulate_batch(cfg)
        print("Simulation done ->", args.out)

    elif args.cmd == "pfilter":
        obs = load_obs(args)
        est = run_filters(obs, params, filter_config(args))
        print(f"loglik = {est.loglik:.3f} (se {est.loglik_se:.3f}), nfail = {est.nfail}, reps = {est.n_reps}")
        print("replicates:", np.array2string(est.logliks, precision=2))

    elif args.cmd == "slice":
        obs = load_obs(args)
        cfg = filter_config(args)
        df = loglik_slice(
            obs, params, args.name, parse_float_list(args.values),
            J=cfg.J, n_reps=cfg.n_reps, seed=cfg.seed, n_jobs=cfg.n_jobs,
            model=cfg.model, measurement=cfg.measurement, dt=cfg.dt, t0=cfg.t0, resample=cfg.resample,
        )
        Path(args.out).parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(args.out, index=False)
        print(df.to_string(index=False))
        print("Slice ->", args.out)

    elif args.cmd == "plot":
        obs = load_obs(args)
        df = simulate(
            model=args.model, measurement=args.measurement, params=params,
            nsim=args.nsim, rng=args.seed, t0=args.t0, dt=args.dt,
            observations=obs, include_data=True,
        )
        plot_simulations(df, save_path=args.out)
        print("Simulation plot ->", args.out)

    print(f"Done in {time.perf_counter() - t0:.2f}s")


if __name__ == "__main__":
    main()
