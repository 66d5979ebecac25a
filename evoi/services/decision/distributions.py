"""
Prior distributions over relative lift.

Three shapes are supported, all exposing the same interface (density, CDF,
quantile, mean and truncation):

- Normal(mu, sigma)
- Student-t(mu, sigma, df) in location-scale form, df in {3, 5, 10}
- Uniform(low, high)

Lift is physically bounded below at -1 (a change cannot remove more than 100%
of baseline conversions). Every prior can be truncated at that floor, and
optionally at an upper feasibility bound, then renormalised. Draws are taken
from the truncated variant by inverse CDF.

Usage:
    prior = NormalPrior.from_interval(-0.05, 0.15)
    prior.truncation_significant      # mass below -1 above 0.1%?
    truncated = prior.truncate()      # restricted to L >= -1
    draws = truncated.sample(np.random.default_rng(7), 5000)
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
from scipy import stats as scipy_stats

from evoi.services.decision.errors import ComputationError, InvalidInputError

LIFT_FLOOR = -1.0
TRUNCATION_SIGNIFICANCE = 0.001
NEAR_ZERO_SIGMA = 0.001

# Central credible mass the wizard asks the user to bracket
CREDIBLE_MASS = 0.90
SUPPORTED_DF = (3, 5, 10)

# Percent bounds equivalent to Normal(0, 0.05)
DEFAULT_INTERVAL_PCT = (-8.22, 8.22)


class PriorShape(str, Enum):
    NORMAL = "normal"
    STUDENT_T = "student-t"
    UNIFORM = "uniform"


def _upper_tail_probability() -> float:
    return 1 - (1 - CREDIBLE_MASS) / 2


def _check_finite(value: float, field: str) -> None:
    if value is None or not math.isfinite(value):
        raise InvalidInputError(field, f"must be a finite number, got {value}")


def _check_interval(low: float, high: float) -> None:
    _check_finite(low, "interval_low")
    _check_finite(high, "interval_high")
    if high <= low:
        raise InvalidInputError(
            "interval_high", f"upper bound ({high}) must be greater than lower bound ({low})"
        )


class Prior:
    """Shared behaviour for every prior shape.

    Subclasses provide ``shape`` and ``dist`` (a frozen scipy distribution).
    """

    shape: PriorShape

    @property
    def dist(self):
        raise NotImplementedError

    @property
    def mean(self) -> float:
        return float(self.dist.mean())

    @property
    def std(self) -> float:
        return float(self.dist.std())

    def pdf(self, x):
        return self.dist.pdf(x)

    def cdf(self, x):
        return self.dist.cdf(x)

    def ppf(self, q):
        return self.dist.ppf(q)

    @property
    def truncation_mass(self) -> float:
        """Untruncated probability that lift is below the -100% floor."""
        return float(self.cdf(LIFT_FLOOR))

    @property
    def truncation_significant(self) -> bool:
        return self.truncation_mass > TRUNCATION_SIGNIFICANCE

    def truncate(self, lower: float = LIFT_FLOOR, upper: float = math.inf) -> "TruncatedPrior":
        return TruncatedPrior(base=self, lower=lower, upper=upper)


@dataclass(frozen=True)
class NormalPrior(Prior):
    mu: float
    sigma: float

    shape = PriorShape.NORMAL

    def __post_init__(self):
        _check_finite(self.mu, "mu")
        _check_finite(self.sigma, "sigma")
        if self.sigma <= 0:
            raise InvalidInputError("sigma", f"standard deviation must be positive, got {self.sigma}")

    @classmethod
    def from_interval(cls, low: float, high: float) -> "NormalPrior":
        _check_interval(low, high)
        z = scipy_stats.norm.ppf(_upper_tail_probability())
        return cls(mu=(low + high) / 2, sigma=(high - low) / (2 * z))

    @property
    def dist(self):
        return scipy_stats.norm(loc=self.mu, scale=self.sigma)

    @property
    def mean(self) -> float:
        return self.mu

    @property
    def std(self) -> float:
        return self.sigma


@dataclass(frozen=True)
class StudentTPrior(Prior):
    mu: float
    sigma: float
    df: int

    shape = PriorShape.STUDENT_T

    def __post_init__(self):
        _check_finite(self.mu, "mu")
        _check_finite(self.sigma, "sigma")
        if self.sigma <= 0:
            raise InvalidInputError("sigma", f"scale must be positive, got {self.sigma}")
        if self.df not in SUPPORTED_DF:
            raise InvalidInputError(
                "df", f"degrees of freedom must be one of {SUPPORTED_DF}, got {self.df}"
            )

    @classmethod
    def from_interval(cls, low: float, high: float, df: int) -> "StudentTPrior":
        _check_interval(low, high)
        if df not in SUPPORTED_DF:
            raise InvalidInputError("df", f"degrees of freedom must be one of {SUPPORTED_DF}, got {df}")
        t_crit = scipy_stats.t.ppf(_upper_tail_probability(), df)
        return cls(mu=(low + high) / 2, sigma=(high - low) / (2 * t_crit), df=df)

    @property
    def dist(self):
        return scipy_stats.t(self.df, loc=self.mu, scale=self.sigma)

    @property
    def mean(self) -> float:
        return self.mu


@dataclass(frozen=True)
class UniformPrior(Prior):
    low: float
    high: float

    shape = PriorShape.UNIFORM

    def __post_init__(self):
        _check_finite(self.low, "low")
        _check_finite(self.high, "high")
        if self.high <= self.low:
            raise InvalidInputError(
                "high", f"upper bound ({self.high}) must be greater than lower bound ({self.low})"
            )

    @classmethod
    def from_interval(cls, low: float, high: float) -> "UniformPrior":
        """Widen a central credible interval to the full uniform support."""
        _check_interval(low, high)
        margin = (high - low) * (1 - CREDIBLE_MASS) / (2 * CREDIBLE_MASS)
        return cls(low=low - margin, high=high + margin)

    @property
    def dist(self):
        return scipy_stats.uniform(loc=self.low, scale=self.high - self.low)

    @property
    def mean(self) -> float:
        return (self.low + self.high) / 2


@dataclass(frozen=True)
class TruncatedPrior:
    """A prior restricted to [lower, upper] and renormalised."""

    base: Prior
    lower: float = LIFT_FLOOR
    upper: float = math.inf

    def __post_init__(self):
        if not self.upper > self.lower:
            raise InvalidInputError(
                "upper", f"truncation bounds are inverted ({self.lower}, {self.upper})"
            )
        if self.mass <= 0:
            raise ComputationError(
                f"prior has no probability mass inside [{self.lower}, {self.upper}]",
                quantity="truncated_mass",
            )

    @property
    def shape(self) -> PriorShape:
        return self.base.shape

    @property
    def _cdf_lower(self) -> float:
        return float(self.base.cdf(self.lower))

    @property
    def mass(self) -> float:
        return float(self.base.cdf(self.upper)) - self._cdf_lower

    @property
    def excluded_mass(self) -> float:
        return max(0.0, 1.0 - self.mass)

    @property
    def normalizer(self) -> float:
        return 1.0 / self.mass

    def pdf(self, x):
        x = np.asarray(x, dtype=float)
        inside = (x >= self.lower) & (x <= self.upper)
        return np.where(inside, self.base.pdf(x) * self.normalizer, 0.0)

    def cdf(self, x):
        clipped = np.clip(np.asarray(x, dtype=float), self.lower, self.upper)
        return np.clip((self.base.cdf(clipped) - self._cdf_lower) * self.normalizer, 0.0, 1.0)

    def ppf(self, q):
        q = np.asarray(q, dtype=float)
        return self.base.ppf(self._cdf_lower + q * self.mass)

    def sample(self, rng: np.random.Generator, size: int) -> np.ndarray:
        draws = np.asarray(self.ppf(rng.random(size)), dtype=float)
        # ppf can hit +/-inf when the uniform draw lands on the edge of float precision
        bad = ~np.isfinite(draws)
        while bad.any():
            draws[bad] = self.ppf(rng.random(int(bad.sum())))
            bad = ~np.isfinite(draws)
        return np.clip(draws, self.lower, self.upper)


def build_prior(
    shape: PriorShape,
    interval_low_pct: Optional[float] = None,
    interval_high_pct: Optional[float] = None,
    df: Optional[int] = None,
) -> Prior:
    """Build a prior from a 90% credible interval given in percent lift."""
    shape = PriorShape(shape)

    if interval_low_pct is None and interval_high_pct is None:
        interval_low_pct, interval_high_pct = DEFAULT_INTERVAL_PCT
    elif interval_low_pct is None or interval_high_pct is None:
        missing = "interval_low_pct" if interval_low_pct is None else "interval_high_pct"
        raise InvalidInputError(missing, "both interval bounds are required when one is given")

    low = interval_low_pct / 100
    high = interval_high_pct / 100

    if shape == PriorShape.NORMAL:
        prior = NormalPrior.from_interval(low, high)
    elif shape == PriorShape.STUDENT_T:
        if df is None:
            raise InvalidInputError("df", "degrees of freedom are required for a Student-t prior")
        prior = StudentTPrior.from_interval(low, high, df)
    else:
        prior = UniformPrior.from_interval(low, high)

    if prior.truncation_mass >= 1:
        raise InvalidInputError(
            "interval_high_pct", "the whole prior lies below -100% lift, which no change can reach"
        )
    return prior
