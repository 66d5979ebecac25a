from dataclasses import asdict
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from evoi.services.decision.distributions import PriorShape, build_prior
from evoi.services.decision.inputs import (
    BusinessInputs,
    CostInputs,
    EVPIInputs,
    EVSIInputs,
    NetValueInputs,
    TestDesign,
    ThresholdScenario,
    ThresholdUnit,
    default_daily_traffic,
    normalize_threshold,
)
from evoi.services.decision.results import EVPIResult, EVSIResult, NetValueResult
from evoi.services.decision.rules import Decision


# Domain checks live in the engine so every rejected field is reported the same way


class BusinessInputsRequest(BaseModel):
    baseline_conversion_rate: float = Field(..., description="Baseline conversion rate as a decimal (0.032 = 3.2%)")
    annual_visitors: float = Field(..., description="Visitors per year reaching the tested experience")
    value_per_conversion: float = Field(..., description="Dollars earned per conversion")

    def to_inputs(self) -> BusinessInputs:
        return BusinessInputs(
            baseline_conversion_rate=self.baseline_conversion_rate,
            annual_visitors=self.annual_visitors,
            value_per_conversion=self.value_per_conversion,
        )


class PriorRequest(BaseModel):
    shape: PriorShape = PriorShape.NORMAL
    interval_low_pct: Optional[float] = Field(
        None, description="Lower end of the 90% credible interval, in percent lift"
    )
    interval_high_pct: Optional[float] = Field(
        None, description="Upper end of the 90% credible interval, in percent lift"
    )
    df: Optional[int] = Field(None, description="Degrees of freedom for a Student-t prior (3, 5 or 10)")

    def to_prior(self):
        return build_prior(self.shape, self.interval_low_pct, self.interval_high_pct, self.df)


class ThresholdRequest(BaseModel):
    scenario: ThresholdScenario = ThresholdScenario.ANY_POSITIVE
    value: Optional[float] = Field(None, description="Percent lift or annual dollars, depending on unit")
    unit: Optional[ThresholdUnit] = None

    def to_threshold_l(self, k: float) -> float:
        return normalize_threshold(
            self.scenario,
            value=self.value,
            unit=self.unit,
            k=k,
        )


class DesignRequest(BaseModel):
    duration_days: float
    daily_traffic: Optional[float] = Field(None, description="Defaults to annual visitors / 365")
    treatment_fraction: float = 0.5
    eligibility_fraction: float = 1.0
    conversion_latency_days: float = 0.0
    decision_latency_days: float = 0.0

    def to_design(self, business: BusinessInputs) -> TestDesign:
        daily_traffic = self.daily_traffic
        if daily_traffic is None:
            daily_traffic = default_daily_traffic(business.annual_visitors)
        return TestDesign(
            duration_days=self.duration_days,
            daily_traffic=daily_traffic,
            treatment_fraction=self.treatment_fraction,
            eligibility_fraction=self.eligibility_fraction,
            conversion_latency_days=self.conversion_latency_days,
            decision_latency_days=self.decision_latency_days,
        )


class CostsRequest(BaseModel):
    fixed_test_cost: float = 0.0
    labor_hours: float = 0.0
    labor_hourly_rate: float = 0.0
    daily_cost_of_delay: float = 0.0

    def to_inputs(self) -> CostInputs:
        return CostInputs(
            fixed_test_cost=self.fixed_test_cost,
            labor_hours=self.labor_hours,
            labor_hourly_rate=self.labor_hourly_rate,
            daily_cost_of_delay=self.daily_cost_of_delay,
        )


class EVPIRequest(BaseModel):
    business: BusinessInputsRequest
    prior: PriorRequest = Field(default_factory=PriorRequest)
    threshold: ThresholdRequest = Field(default_factory=ThresholdRequest)
    method: Optional[Literal["closed-form", "numerical"]] = None

    def to_inputs(self) -> EVPIInputs:
        business = self.business.to_inputs()
        return EVPIInputs.from_business(business, self.threshold.to_threshold_l(business.k), self.prior.to_prior())


class EVSIRequest(BaseModel):
    business: BusinessInputsRequest
    prior: PriorRequest = Field(default_factory=PriorRequest)
    threshold: ThresholdRequest = Field(default_factory=ThresholdRequest)
    design: DesignRequest

    def to_inputs(self) -> EVSIInputs:
        business = self.business.to_inputs()
        return EVSIInputs.from_design(
            business,
            self.threshold.to_threshold_l(business.k),
            self.prior.to_prior(),
            self.design.to_design(business),
        )


class NetValueRequest(EVSIRequest):
    costs: CostsRequest = Field(default_factory=CostsRequest)

    def to_inputs(self) -> NetValueInputs:
        business = self.business.to_inputs()
        return NetValueInputs.from_design(
            business,
            self.threshold.to_threshold_l(business.k),
            self.prior.to_prior(),
            self.design.to_design(business),
            self.costs.to_inputs(),
        )


class CalculationWarningResponse(BaseModel):
    code: str
    message: str


class EdgeCaseFlagsResponse(BaseModel):
    truncation_significant: bool
    near_zero_sigma: bool
    prior_one_sided: bool


class EVPIResponse(BaseModel):
    evpi_dollars: float
    default_decision: Decision
    probability_clears_threshold: float
    chance_of_being_wrong: float
    k: float
    threshold_l: float
    threshold_dollars: float
    method: str
    edge_cases: EdgeCaseFlagsResponse
    z_score: Optional[float] = None
    phi_z: Optional[float] = None
    cdf_z: Optional[float] = None

    @classmethod
    def from_result(cls, result: EVPIResult) -> "EVPIResponse":
        return cls.model_validate(asdict(result))


class EVSIResponse(BaseModel):
    evsi_dollars: float
    default_decision: Decision
    probability_clears_threshold: float
    probability_test_changes_decision: float
    truncation_significant: bool
    method: str
    n_control: int
    n_variant: int
    standard_error: float
    num_samples: int
    raw_evsi_dollars: Optional[float] = None
    monte_carlo_se: Optional[float] = None
    infeasible_prior_mass: float
    warnings: List[CalculationWarningResponse]

    @classmethod
    def from_result(cls, result: EVSIResult) -> "EVSIResponse":
        return cls.model_validate(asdict(result))


class NetValueResponse(BaseModel):
    net_value_dollars: float
    should_test: bool
    verdict: Literal["test", "dont-test"]
    gross_value_dollars: float
    fixed_test_cost: float
    labor_cost: float
    delay_cost: float
    total_cost: float
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
    infeasible_prior_mass: float
    warnings: List[CalculationWarningResponse]

    @classmethod
    def from_result(cls, result: NetValueResult) -> "NetValueResponse":
        return cls.model_validate(
            {**asdict(result), "verdict": result.verdict, "total_cost": result.total_cost}
        )
