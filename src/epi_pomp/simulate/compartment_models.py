# src/epi_pomp/simulate/compartment_models.py
# Compartmental models for the discretised (Euler) stochastic simulator.
#
# A model is described by its compartments, the flows between them and a
# per-capita rate for every flow. States are integer numpy arrays whose last
# axis follows `statenames`, so the same step advances one state, shape (n,),
# or a whole particle set, shape (J, n).

from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.random import Generator, default_rng


def euler_multinomial(rng: Generator, size, rates, dt: float) -> np.ndarray:
    """Draw the number of individuals leaving a compartment along each exit.

    The total exit probability over a step of length `dt` is
    1 - exp(-sum(rates) * dt); the leavers are then split between the exits in
    proportion to their rates with a chain of conditional binomials, so the
    source is never overdrawn.

    Args:
        rng: numpy Generator
        size: current count(s) in the source compartment
        rates: per-capita exit rates, shape (..., m)
        dt: step length
    Returns:
        counts (nparray(..., m)): individuals moved along each exit
    """
    rates = np.asarray(rates, dtype=float)
    size = np.asarray(size, dtype=np.int64)
    total = rates.sum(axis=-1)

    # 1 - exp(-x) without losing precision for small x
    p_exit = -np.expm1(-total * dt)
    n_exit = np.asarray(rng.binomial(size, p_exit), dtype=np.int64)

    m = rates.shape[-1]
    if m == 1:
        return n_exit[..., None]

    out = []
    remaining = n_exit
    remaining_rate = total
    for j in range(m - 1):
        frac = np.divide(
            rates[..., j],
            remaining_rate,
            out=np.zeros_like(remaining_rate, dtype=float),
            where=remaining_rate > 0,
        )
        frac = np.clip(frac, 0.0, 1.0)
        d = np.asarray(rng.binomial(remaining, frac), dtype=np.int64)
        out.append(d)
        remaining = remaining - d
        remaining_rate = remaining_rate - rates[..., j]
    out.append(remaining)
    return np.stack(out, axis=-1)


class CompartmentModel:
    """Base class for closed-population compartment models.

    Subclasses set the class attributes below and implement `rates()`.
    """

    name: str = ""
    # Population compartments, in state order
    compartments: Tuple[str, ...] = ()
    # Accumulator variables (flow since the last observation)
    accumvars: Tuple[str, ...] = ()
    # (source, destination) for each flow
    transitions: Tuple[Tuple[str, str], ...] = ()
    # Compartments that contribute to the force of infection
    infectious: Tuple[str, ...] = ("I",)
    rate_params: Tuple[str, ...] = ()
    # State variable the measurement model reads
    observed_var: str = "H"

    def __init__(self, accumulate: Optional[Mapping[str, Tuple[str, str]]] = None):
        # accumulator -> flow it tallies
        self.accumulate: Dict[str, Tuple[str, str]] = dict(accumulate or {})
        for acc, edge in self.accumulate.items():
            if acc not in self.accumvars:
                raise ValueError(f"{acc} is not an accumulator of model '{self.name}'")
            if edge not in self.transitions:
                raise ValueError(f"Model '{self.name}' has no flow {edge[0]}->{edge[1]}")
        self._index = {s: i for i, s in enumerate(self.statenames)}

    # ---------- layout ----------

    @property
    def statenames(self) -> Tuple[str, ...]:
        return tuple(self.compartments) + tuple(self.accumvars)

    @property
    def paramnames(self) -> Tuple[str, ...]:
        return ("N", "eta") + tuple(self.rate_params)

    @property
    def n_state(self) -> int:
        return len(self.statenames)

    def index(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise ValueError(f"Unknown state variable '{name}' for model '{self.name}'") from None

    @property
    def population_index(self) -> List[int]:
        return [self._index[c] for c in self.compartments]

    @property
    def accum_index(self) -> List[int]:
        return [self._index[a] for a in self.accumvars]

    @property
    def observed_index(self) -> int:
        return self.index(self.observed_var)

    def to_dict(self, x) -> Dict[str, int]:
        x = np.asarray(x)
        if x.shape != (self.n_state,):
            raise ValueError(f"Expected a single state of length {self.n_state}, got shape {x.shape}")
        return {name: int(x[i]) for i, name in enumerate(self.statenames)}

    def from_mapping(self, state: Mapping[str, float]) -> np.ndarray:
        missing = [s for s in self.statenames if s not in state]
        if missing:
            raise ValueError(f"State is missing variables {missing} for model '{self.name}'")
        return np.array([state[s] for s in self.statenames], dtype=np.int64)

    # ---------- parameters ----------

    def validate(self, params: Mapping[str, float]) -> None:
        """Raise ValueError if `params` lies outside the model's domain."""
        missing = [p for p in self.paramnames if p not in params]
        if missing:
            raise ValueError(f"Missing parameters for model '{self.name}': {missing}")

        N = params["N"]
        if not np.isfinite(N) or N <= 0:
            raise ValueError(f"N must be a positive population size, got {N}")
        eta = params["eta"]
        if not 0.0 <= eta <= 1.0:
            raise ValueError(f"eta must lie in [0, 1], got {eta}")
        for p in self.rate_params:
            v = params[p]
            if not np.isfinite(v) or v < 0:
                raise ValueError(f"Rate {p} must be finite and >= 0, got {v}")
        i0 = params.get("I0", 1)
        if i0 < 0 or i0 > N:
            raise ValueError(f"I0 must lie in [0, N], got {i0}")

    # ---------- dynamics ----------

    def force_of_infection(self, x: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
        infected = sum(x[..., self._index[c]] for c in self.infectious)
        return params["Beta"] * infected / params["N"]

    def rates(self, x: np.ndarray, params: Mapping[str, float], t: float) -> Sequence:
        """Per-capita rate of every flow, in the order of `transitions`."""
        raise NotImplementedError

    def rate_matrix(self, x: np.ndarray, params: Mapping[str, float], t: float) -> np.ndarray:
        shape = x.shape[:-1]
        cols = [np.broadcast_to(np.asarray(r, dtype=float), shape) for r in self.rates(x, params, t)]
        return np.stack(cols, axis=-1)

    def step(self, x, params: Mapping[str, float], t: float, dt: float, rng: Generator) -> np.ndarray:
        """Advance by one Euler step of length `dt`.

        Every rate is evaluated at the start of the step. Flows sharing a source
        compartment are drawn jointly (Euler-multinomial).
        """
        x = np.asarray(x, dtype=np.int64)
        rates = self.rate_matrix(x, params, t)
        dn = np.zeros(x.shape[:-1] + (len(self.transitions),), dtype=np.int64)

        by_source: Dict[str, List[int]] = {}
        for k, (src, _) in enumerate(self.transitions):
            by_source.setdefault(src, []).append(k)

        for src, ks in by_source.items():
            dn[..., ks] = euler_multinomial(rng, x[..., self._index[src]], rates[..., ks], dt)

        out = x.copy()
        for k, (src, dst) in enumerate(self.transitions):
            out[..., self._index[src]] -= dn[..., k]
            out[..., self._index[dst]] += dn[..., k]
        for acc, edge in self.accumulate.items():
            out[..., self._index[acc]] += dn[..., self.transitions.index(edge)]
        return out

    def vector_field(self, x, params: Mapping[str, float], t: float) -> np.ndarray:
        """Deterministic (mean-field) rate of change of the state."""
        x = np.asarray(x, dtype=float)
        rates = self.rate_matrix(x, params, t)
        dx = np.zeros_like(x)
        for k, (src, dst) in enumerate(self.transitions):
            flow = rates[..., k] * x[..., self._index[src]]
            dx[..., self._index[src]] -= flow
            dx[..., self._index[dst]] += flow
        for acc, edge in self.accumulate.items():
            k = self.transitions.index(edge)
            src = self._index[edge[0]]
            dx[..., self._index[acc]] += rates[..., k] * x[..., src]
        return dx

    # ---------- initial state ----------

    def initialize(self, params: Mapping[str, float], rng: Optional[Generator] = None) -> np.ndarray:
        """Initial state: I0 infectious (default 1), round(N*eta) susceptible
        (capped so the total stays N), everyone else in the final compartment.

        Deterministic given the parameters; `rng` is accepted for interface
        symmetry with `step`.
        """
        self.validate(params)
        N = int(round(params["N"]))
        i0 = int(round(params.get("I0", 1)))
        s0 = min(int(round(N * params["eta"])), N - i0)

        x = np.zeros(self.n_state, dtype=np.int64)
        x[self._index["S"]] = s0
        x[self._index[self.infectious[0]]] = i0
        x[self._index[self.compartments[-1]]] += N - s0 - i0
        return x

    def check_state(self, x, population: Optional[int] = None) -> None:
        """Raise RuntimeError if counts went negative or the population changed."""
        x = np.asarray(x)
        if np.any(x < 0):
            raise RuntimeError(f"Negative compartment count in model '{self.name}'")
        if population is not None:
            totals = x[..., self.population_index].sum(axis=-1)
            if np.any(totals != population):
                raise RuntimeError(
                    f"Population size changed in model '{self.name}': expected {population}"
                )

    def __repr__(self):
        return f"{type(self).__name__}(statenames={self.statenames})"


class SIRModel(CompartmentModel):
    """S -> I -> R with H tallying one of the flows (recoveries by default)."""

    name = "sir"
    compartments = ("S", "I", "R")
    accumvars = ("H",)
    transitions = (("S", "I"), ("I", "R"))
    rate_params = ("Beta", "mu_IR")

    def __init__(self, accumulate_edge: Tuple[str, str] = ("I", "R")):
        super().__init__({"H": tuple(accumulate_edge)})

    def rates(self, x, params, t):
        return [self.force_of_infection(x, params), params["mu_IR"]]


class SEIRModel(CompartmentModel):
    """S -> E -> I -> R with a single latent class."""

    name = "seir"
    compartments = ("S", "E", "I", "R")
    accumvars = ("H",)
    transitions = (("S", "E"), ("E", "I"), ("I", "R"))
    rate_params = ("Beta", "mu_EI", "mu_IR")

    def __init__(self, accumulate_edge: Tuple[str, str] = ("I", "R")):
        super().__init__({"H": tuple(accumulate_edge)})

    def rates(self, x, params, t):
        return [self.force_of_infection(x, params), params["mu_EI"], params["mu_IR"]]


class SIRRModel(CompartmentModel):
    """S -> I -> R1 -> R2 -> R3, measured through the current R1 count.

    R1 is the bed-confined stage, R2 convalescent, R3 fully recovered. There is
    no accumulator; reports condition on R1 at the observation time.
    """

    name = "sirr"
    compartments = ("S", "I", "R1", "R2", "R3")
    accumvars = ()
    transitions = (("S", "I"), ("I", "R1"), ("R1", "R2"), ("R2", "R3"))
    rate_params = ("Beta", "mu_IR", "mu_R1", "mu_R2")
    observed_var = "R1"

    def rates(self, x, params, t):
        return [
            self.force_of_infection(x, params),
            params["mu_IR"],
            params["mu_R1"],
            params["mu_R2"],
        ]


class GammaSEIRModel(CompartmentModel):
    """SEIR with an Erlang latent period: m latent stages E1..Em, each left at
    rate m * mu_EI so the mean latent period stays 1 / mu_EI."""

    name = "gamma_seir"
    accumvars = ("H",)
    rate_params = ("Beta", "mu_EI", "mu_IR")

    def __init__(self, stages: int = 3, accumulate_edge: Tuple[str, str] = ("I", "R")):
        if stages < 1:
            raise ValueError(f"stages must be >= 1, got {stages}")
        self.stages = int(stages)
        latent = tuple(f"E{i}" for i in range(1, self.stages + 1))
        self.compartments = ("S",) + latent + ("I", "R")
        chain = ("S",) + latent + ("I", "R")
        self.transitions = tuple(zip(chain[:-1], chain[1:]))
        super().__init__({"H": tuple(accumulate_edge)})

    def rates(self, x, params, t):
        stage_rate = self.stages * params["mu_EI"]
        return (
            [self.force_of_infection(x, params)]
            + [stage_rate] * self.stages
            + [params["mu_IR"]]
        )


MODELS = {
    "sir": SIRModel,
    "seir": SEIRModel,
    "sirr": SIRRModel,
    "gamma_seir": GammaSEIRModel,
}


def get_model(model="sir", **kwargs) -> CompartmentModel:
    """Return a model instance from a name, or pass an instance straight through."""
    if isinstance(model, CompartmentModel):
        return model
    try:
        cls = MODELS[model]
    except KeyError:
        raise ValueError(f"Unknown model '{model}'. Choose from {sorted(MODELS)}") from None
    return cls(**kwargs)


def as_generator(rng=None) -> Generator:
    """Accept a Generator, a seed (int or SeedSequence) or None."""
    if isinstance(rng, Generator):
        return rng
    return default_rng(rng)
