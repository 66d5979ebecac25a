"""
Input snapshots for the decision engine and the quantities derived from them.

All rates and lifts are decimals (0.032 for 3.2%, 0.05 for +5% lift). Every
snapshot validates itself on construction so that a bad field is reported
before any computation is attempted.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from evoi.services.decision.distributions import LIFT_FLOOR, Prior
from evoi.services.decision.errors import InvalidInputError

DAYS_PER_YEAR = 365


class ThresholdScenario(str, Enum):
    ANY_POSITIVE = "any-positive"
    MINIMUM_LIFT = "minimum-lift"
    ACCEPT_LOSS = "accept-loss"


class ThresholdUnit(str, Enum):
    LIFT = "lift"
    DOLLARS = "dollars"


def _finite(value, name: str) -> None:
    if value is None or not math.isfinite(value):
        raise InvalidInputError(name, f"must be a finite number, got {value}")


def _positive(value, name: str) -> None:
    _finite(value, name)
    if value <= 0:
        raise InvalidInputError(name, f"must be greater than 0, got {value}")


def _non_negative(value, name: str) -> None:
    _finite(value, name)
    if value < 0:
        raise InvalidInputError(name, f"must not be negative, got {value}")


def _open_unit(value, name: str) -> None:
    _finite(value, name)
    if not 0 < value < 1:
        raise InvalidInputError(name, f"must be strictly between 0 and 1, got {value}")


def _check_prior(prior) -> None:
    if not isinstance(prior, Prior):
        raise InvalidInputError("prior", f"expected a prior distribution, got {type(prior).__name__}")


def derive_k(annual_visitors: float, baseline_conversion_rate: float, value_per_conversion: float) -> float:
    """Annual dollars per unit of lift: K = N * CR0 * V."""
    return annual_visitors * baseline_conversion_rate * value_per_conversion


def normalize_threshold(
    scenario: ThresholdScenario,
    value: Optional[float] = None,
    unit: Optional[ThresholdUnit] = None,
    k: Optional[float] = None,
) -> float:
    """Convert a threshold scenario into T_L, the threshold in lift units."""
    scenario = ThresholdScenario(scenario)
    if scenario == ThresholdScenario.ANY_POSITIVE:
        return 0.0

    if value is None:
        raise InvalidInputError("threshold_value", f"required for the '{scenario.value}' scenario")
    _finite(value, "threshold_value")
    if unit is None:
        raise InvalidInputError("threshold_unit", f"required for the '{scenario.value}' scenario")
    unit = ThresholdUnit(unit)

    if unit == ThresholdUnit.DOLLARS:
        if k is None or k <= 0:
            raise InvalidInputError("k", "a positive K is required to convert a dollar threshold")
        threshold_l = value / k
    else:
        threshold_l = value / 100

    if scenario == ThresholdScenario.ACCEPT_LOSS:
        # A tolerated loss is always below zero, whichever sign it was typed with
        return -abs(threshold_l)

    if threshold_l < 0:
        raise InvalidInputError(
            "threshold_value", "a minimum lift cannot be negative; use the 'accept-loss' scenario"
        )
    return threshold_l


def feasibility_bounds(baseline_conversion_rate: float) -> Tuple[float, float]:
    """Lift range that keeps the variant conversion rate CR0 * (1 + L) inside [0, 1]."""
    return LIFT_FLOOR, 1 / baseline_conversion_rate - 1


def se_of_relative_lift(baseline_conversion_rate: float, n_control: int, n_variant: int) -> float:
    """Standard error of the relative lift estimate (delta method on two proportions)."""
    variance_factor = (1 - baseline_conversion_rate) / baseline_conversion_rate
    sample_factor = 1 / n_control + 1 / n_variant
    return math.sqrt(variance_factor * sample_factor)


def default_daily_traffic(annual_visitors: float) -> float:
    return annual_visitors / DAYS_PER_YEAR


@dataclass(frozen=True)
class BusinessInputs:
    baseline_conversion_rate: float
    annual_visitors: float
    value_per_conversion: float

    def __post_init__(self):
        _open_unit(self.baseline_conversion_rate, "baseline_conversion_rate")
        _positive(self.annual_visitors, "annual_visitors")
        _positive(self.value_per_conversion, "value_per_conversion")

    @property
    def k(self) -> float:
        return derive_k(self.annual_visitors, self.baseline_conversion_rate, self.value_per_conversion)


@dataclass(frozen=True)
class SampleSizes:
    n_total: int
    n_control: int
    n_variant: int


@dataclass(frozen=True)
class TestDesign:
    duration_days: float
    daily_traffic: float
    treatment_fraction: float = 0.5
    eligibility_fraction: float = 1.0
    conversion_latency_days: float = 0.0
    decision_latency_days: float = 0.0

    # Keep pytest from collecting this as a test class
    __test__ = False

    def __post_init__(self):
        _positive(self.duration_days, "duration_days")
        _positive(self.daily_traffic, "daily_traffic")
        _open_unit(self.treatment_fraction, "treatment_fraction")
        _positive(self.eligibility_fraction, "eligibility_fraction")
        if self.eligibility_fraction > 1:
            raise InvalidInputError(
                "eligibility_fraction", f"must be at most 1, got {self.eligibility_fraction}"
            )
        _non_negative(self.conversion_latency_days, "conversion_latency_days")
        _non_negative(self.decision_latency_days, "decision_latency_days")

    @property
    def latency_days(self) -> float:
        return self.conversion_latency_days + self.decision_latency_days

    @property
    def exposed_fraction(self) -> float:
        """Share of all traffic that sees the treatment while the test runs."""
        return self.treatment_fraction * self.eligibility_fraction

    def sample_sizes(self) -> SampleSizes:
        return derive_sample_sizes(self)


def derive_sample_sizes(design: TestDesign) -> SampleSizes:
    n_total = math.floor(design.daily_traffic * design.duration_days * design.eligibility_fraction)
    n_variant = math.floor(n_total * design.treatment_fraction)
    n_control = n_total - n_variant

    if n_control <= 0 or n_variant <= 0:
        raise InvalidInputError(
            "daily_traffic",
            f"test design leaves an empty arm (control={n_control}, variant={n_variant}); "
            "increase traffic or duration",
        )
    return SampleSizes(n_total=n_total, n_control=n_control, n_variant=n_variant)


@dataclass(frozen=True)
class CostInputs:
    fixed_test_cost: float = 0.0
    labor_hours: float = 0.0
    labor_hourly_rate: float = 0.0
    daily_cost_of_delay: float = 0.0

    def __post_init__(self):
        _non_negative(self.fixed_test_cost, "fixed_test_cost")
        _non_negative(self.labor_hours, "labor_hours")
        _non_negative(self.labor_hourly_rate, "labor_hourly_rate")
        _non_negative(self.daily_cost_of_delay, "daily_cost_of_delay")

    @property
    def labor_cost(self) -> float:
        return self.labor_hours * self.labor_hourly_rate


@dataclass(frozen=True)
class EVPIInputs:
    k: float
    threshold_l: float
    prior: Prior

    def __post_init__(self):
        _positive(self.k, "k")
        _finite(self.threshold_l, "threshold_l")
        _check_prior(self.prior)

    @classmethod
    def from_business(cls, business: BusinessInputs, threshold_l: float, prior: Prior) -> "EVPIInputs":
        return cls(k=business.k, threshold_l=threshold_l, prior=prior)


@dataclass(frozen=True)
class EVSIInputs:
    k: float
    baseline_conversion_rate: float
    threshold_l: float
    prior: Prior
    n_control: int
    n_variant: int

    def __post_init__(self):
        _positive(self.k, "k")
        _open_unit(self.baseline_conversion_rate, "baseline_conversion_rate")
        _finite(self.threshold_l, "threshold_l")
        _check_prior(self.prior)
        _positive(self.n_control, "n_control")
        _positive(self.n_variant, "n_variant")

    @classmethod
    def from_design(
        cls, business: BusinessInputs, threshold_l: float, prior: Prior, design: TestDesign
    ) -> "EVSIInputs":
        sizes = design.sample_sizes()
        return cls(
            k=business.k,
            baseline_conversion_rate=business.baseline_conversion_rate,
            threshold_l=threshold_l,
            prior=prior,
            n_control=sizes.n_control,
            n_variant=sizes.n_variant,
        )

    @property
    def standard_error(self) -> float:
        return se_of_relative_lift(self.baseline_conversion_rate, self.n_control, self.n_variant)


@dataclass(frozen=True)
class NetValueInputs:
    k: float
    baseline_conversion_rate: float
    threshold_l: float
    prior: Prior
    design: TestDesign
    costs: CostInputs = field(default_factory=CostInputs)

    def __post_init__(self):
        _positive(self.k, "k")
        _open_unit(self.baseline_conversion_rate, "baseline_conversion_rate")
        _finite(self.threshold_l, "threshold_l")
        _check_prior(self.prior)
        if not isinstance(self.design, TestDesign):
            raise InvalidInputError("design", "a test design is required")
        if not isinstance(self.costs, CostInputs):
            raise InvalidInputError("costs", "cost inputs are required")
        # Surfaces an empty-arm design now rather than inside the worker
        self.design.sample_sizes()

    @classmethod
    def from_design(
        cls,
        business: BusinessInputs,
        threshold_l: float,
        prior: Prior,
        design: TestDesign,
        costs: Optional[CostInputs] = None,
    ) -> "NetValueInputs":
        return cls(
            k=business.k,
            baseline_conversion_rate=business.baseline_conversion_rate,
            threshold_l=threshold_l,
            prior=prior,
            design=design,
            costs=costs or CostInputs(),
        )

    def evsi_inputs(self) -> EVSIInputs:
        sizes = self.design.sample_sizes()
        return EVSIInputs(
            k=self.k,
            baseline_conversion_rate=self.baseline_conversion_rate,
            threshold_l=self.threshold_l,
            prior=self.prior,
            n_control=sizes.n_control,
            n_variant=sizes.n_variant,
        )
