from dataclasses import dataclass, field
from typing import List, Optional

from evoi.services.decision.rules import Decision


@dataclass(frozen=True)
class CalculationWarning:
    code: str
    message: str


@dataclass(frozen=True)
class EdgeCaseFlags:
    truncation_significant: bool  # Prior mass below L = -1 exceeds 0.1%
    near_zero_sigma: bool  # Prior spread under 0.1% lift
    prior_one_sided: bool  # Essentially all mass on one side of the threshold


@dataclass(frozen=True)
class EVPIResult:
    evpi_dollars: float
    default_decision: Decision
    probability_clears_threshold: float
    chance_of_being_wrong: float
    k: float
    threshold_l: float
    threshold_dollars: float
    edge_cases: EdgeCaseFlags
    method: str  # "closed-form" or "numerical"
    z_score: Optional[float] = None
    phi_z: Optional[float] = None
    cdf_z: Optional[float] = None

    @property
    def truncation_significant(self) -> bool:
        return self.edge_cases.truncation_significant


@dataclass(frozen=True)
class EVSIResult:
    evsi_dollars: float
    default_decision: Decision
    probability_clears_threshold: float
    probability_test_changes_decision: float
    truncation_significant: bool
    method: str  # "normal-fast-path" or "monte-carlo"
    n_control: int
    n_variant: int
    standard_error: float
    num_samples: int = 0
    raw_evsi_dollars: Optional[float] = None
    monte_carlo_se: Optional[float] = None
    infeasible_prior_mass: float = 0.0
    warnings: List[CalculationWarning] = field(default_factory=list)


@dataclass(frozen=True)
class NetValueResult:
    net_value_dollars: float
    should_test: bool
    gross_value_dollars: float
    fixed_test_cost: float
    labor_cost: float
    delay_cost: float
    default_decision: Decision
    probability_clears_threshold: float
    probability_test_changes_decision: float
    truncation_significant: bool
    mean_value_with_test: float
    mean_value_without_test: float
    mean_value_during_test: float
    mean_value_after_decision: float
    prior_mean_cost_of_delay: float
    num_samples: int
    monte_carlo_se: float
    infeasible_prior_mass: float = 0.0
    warnings: List[CalculationWarning] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return self.fixed_test_cost + self.labor_cost + self.delay_cost

    @property
    def verdict(self) -> str:
        return "test" if self.should_test else "dont-test"
