# src/epi_pomp/measure/measurement.py
"""
Measurement models linking the true (unobserved) incidence H to the reported
count. Each model evaluates log P(reports | H, params) vectorised over H and
draws a report given H.

Variants:
    poisson        reports ~ Poisson(rho * H + eps)
    binomial       reports ~ Binomial(H, rho)
    negbin         reports ~ NegBin(mean m = rho * H + eps, var m + m^2 / psi)
    overdispersed  reports ~ NegBin(mean m = rho * H + eps, var m * (1 + k * m))

`eps` keeps the mean away from zero; it is a property of the model instance,
not a universal constant.
"""

from typing import Mapping, Tuple

import numpy as np
from numpy.random import Generator
from scipy.stats import binom, nbinom, poisson

from ..simulate.compartment_models import as_generator


class MeasurementModel:
    name: str = ""
    paramnames: Tuple[str, ...] = ("rho",)

    def validate(self, params: Mapping[str, float]) -> None:
        missing = [p for p in self.paramnames if p not in params]
        if missing:
            raise ValueError(f"Missing measurement parameters for '{self.name}': {missing}")
        rho = params["rho"]
        if not 0.0 <= rho <= 1.0:
            raise ValueError(f"rho must lie in [0, 1], got {rho}")

    def log_density(self, observed, H, params: Mapping[str, float]) -> np.ndarray:
        raise NotImplementedError

    def sample(self, H, params: Mapping[str, float], rng: Generator) -> np.ndarray:
        raise NotImplementedError

    def __repr__(self):
        return f"{type(self).__name__}()"


class PoissonMeasurement(MeasurementModel):
    name = "poisson"

    def __init__(self, eps: float = 1e-6):
        if eps < 0:
            raise ValueError(f"eps must be >= 0, got {eps}")
        self.eps = float(eps)

    def mean(self, H, params):
        return params["rho"] * np.asarray(H, dtype=float) + self.eps

    def log_density(self, observed, H, params):
        return poisson.logpmf(observed, self.mean(H, params))

    def sample(self, H, params, rng):
        return rng.poisson(self.mean(H, params))

    def __repr__(self):
        return f"PoissonMeasurement(eps={self.eps})"


class BinomialMeasurement(MeasurementModel):
    """Each of the H cases is reported independently with probability rho.
    Reports exceeding H have probability zero."""

    name = "binomial"

    def log_density(self, observed, H, params):
        return binom.logpmf(observed, np.asarray(H, dtype=np.int64), params["rho"])

    def sample(self, H, params, rng):
        return rng.binomial(np.asarray(H, dtype=np.int64), params["rho"])


class NegBinomialMeasurement(MeasurementModel):
    """Negative binomial with size psi: variance m + m^2 / psi.
    psi -> infinity recovers the Poisson model."""

    name = "negbin"
    paramnames = ("rho", "psi")
    dispersion = "psi"

    def __init__(self, eps: float = 1e-6):
        if eps < 0:
            raise ValueError(f"eps must be >= 0, got {eps}")
        self.eps = float(eps)

    def validate(self, params):
        super().validate(params)
        v = params[self.dispersion]
        if not np.isfinite(v) or v <= 0:
            raise ValueError(f"{self.dispersion} must be finite and > 0, got {v}")

    def mean(self, H, params):
        return params["rho"] * np.asarray(H, dtype=float) + self.eps

    def size_prob(self, H, params):
        m = self.mean(H, params)
        size = params["psi"]
        return size, size / (size + m)

    def log_density(self, observed, H, params):
        size, p = self.size_prob(H, params)
        return nbinom.logpmf(observed, size, p)

    def sample(self, H, params, rng):
        size, p = self.size_prob(H, params)
        return rng.negative_binomial(size, p)

    def __repr__(self):
        return f"{type(self).__name__}(eps={self.eps})"


class OverdispersedMeasurement(NegBinomialMeasurement):
    """Negative binomial with variance m * (1 + k * m), i.e. size 1 / k.
    k -> 0 approaches the Poisson model."""

    name = "overdispersed"
    paramnames = ("rho", "k")
    dispersion = "k"

    def size_prob(self, H, params):
        m = self.mean(H, params)
        k = params["k"]
        return 1.0 / k, 1.0 / (1.0 + k * m)


MEASUREMENTS = {
    "poisson": PoissonMeasurement,
    "binomial": BinomialMeasurement,
    "negbin": NegBinomialMeasurement,
    "overdispersed": OverdispersedMeasurement,
}


def get_measurement(measurement="poisson", **kwargs) -> MeasurementModel:
    """Return a measurement model from a name, or pass an instance through."""
    if isinstance(measurement, MeasurementModel):
        return measurement
    try:
        cls = MEASUREMENTS[measurement]
    except KeyError:
        raise ValueError(
            f"Unknown measurement '{measurement}'. Choose from {sorted(MEASUREMENTS)}"
        ) from None
    return cls(**kwargs)


def measurement_log_density(observed, accumulated_incidence, params, measurement="poisson"):
    """log P(observed | accumulated incidence, params)."""
    meas = get_measurement(measurement)
    meas.validate(params)
    if np.any(np.asarray(observed) < 0):
        raise ValueError("observed counts must be >= 0")
    return meas.log_density(observed, accumulated_incidence, params)


def measurement_sample(accumulated_incidence, params, rng, measurement="poisson"):
    """Draw reported count(s) given the accumulated incidence."""
    meas = get_measurement(measurement)
    meas.validate(params)
    return meas.sample(accumulated_incidence, params, as_generator(rng))
