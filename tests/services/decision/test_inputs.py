import math

import pytest

from evoi.services.decision.distributions import NormalPrior
from evoi.services.decision.errors import InvalidInputError
from evoi.services.decision.inputs import (
    BusinessInputs,
    CostInputs,
    EVPIInputs,
    EVSIInputs,
    NetValueInputs,
    TestDesign,
    default_daily_traffic,
    derive_k,
    feasibility_bounds,
    normalize_threshold,
    se_of_relative_lift,
)


@pytest.fixture
def business():
    return BusinessInputs(baseline_conversion_rate=0.05, annual_visitors=1_000_000, value_per_conversion=10)


class TestBusinessInputs:
    def test_k(self, business):
        assert business.k == pytest.approx(500_000)
        assert derive_k(1_000_000, 0.05, 10) == pytest.approx(500_000)

    @pytest.mark.parametrize("rate", [0.0, 1.0, -0.1, float("nan")])
    def test_conversion_rate_must_be_open_unit(self, rate):
        with pytest.raises(InvalidInputError) as exc_info:
            BusinessInputs(baseline_conversion_rate=rate, annual_visitors=1000, value_per_conversion=5)
        assert exc_info.value.field == "baseline_conversion_rate"

    def test_visitors_must_be_positive(self):
        with pytest.raises(InvalidInputError) as exc_info:
            BusinessInputs(baseline_conversion_rate=0.05, annual_visitors=0, value_per_conversion=5)
        assert exc_info.value.field == "annual_visitors"


class TestNormalizeThreshold:
    def test_any_positive(self):
        assert normalize_threshold("any-positive") == 0.0

    def test_minimum_lift_percent(self):
        assert normalize_threshold("minimum-lift", 2, "lift") == pytest.approx(0.02)

    def test_minimum_lift_dollars(self):
        assert normalize_threshold("minimum-lift", 10_000, "dollars", k=500_000) == pytest.approx(0.02)

    @pytest.mark.parametrize("value", [1, -1])
    def test_accept_loss_is_negative(self, value):
        assert normalize_threshold("accept-loss", value, "lift") == pytest.approx(-0.01)

    def test_negative_minimum_lift_rejected(self):
        with pytest.raises(InvalidInputError):
            normalize_threshold("minimum-lift", -2, "lift")

    def test_value_required(self):
        with pytest.raises(InvalidInputError) as exc_info:
            normalize_threshold("minimum-lift")
        assert exc_info.value.field == "threshold_value"

    def test_dollars_need_k(self):
        with pytest.raises(InvalidInputError) as exc_info:
            normalize_threshold("accept-loss", 1000, "dollars")
        assert exc_info.value.field == "k"


class TestDerivedQuantities:
    def test_feasibility_bounds(self):
        assert feasibility_bounds(0.05) == (-1.0, pytest.approx(19.0))

    def test_standard_error(self):
        assert se_of_relative_lift(0.05, 10_000, 10_000) == pytest.approx(math.sqrt(0.0038))

    def test_default_daily_traffic(self):
        assert default_daily_traffic(365_000) == pytest.approx(1000)


class TestTestDesign:
    def test_even_split(self):
        sizes = TestDesign(duration_days=14, daily_traffic=1000).sample_sizes()
        assert (sizes.n_total, sizes.n_control, sizes.n_variant) == (14_000, 7_000, 7_000)

    def test_eligibility_and_uneven_split(self):
        design = TestDesign(
            duration_days=14, daily_traffic=1000, treatment_fraction=0.25, eligibility_fraction=0.5
        )
        sizes = design.sample_sizes()
        assert (sizes.n_total, sizes.n_control, sizes.n_variant) == (7_000, 5_250, 1_750)
        assert design.exposed_fraction == pytest.approx(0.125)

    def test_latency_days(self):
        design = TestDesign(
            duration_days=14, daily_traffic=1000, conversion_latency_days=5, decision_latency_days=2
        )
        assert design.latency_days == 7

    def test_empty_arm(self):
        with pytest.raises(InvalidInputError) as exc_info:
            TestDesign(duration_days=1, daily_traffic=0.1).sample_sizes()
        assert exc_info.value.field == "daily_traffic"

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"duration_days": 0}, "duration_days"),
            ({"daily_traffic": -5}, "daily_traffic"),
            ({"treatment_fraction": 1.0}, "treatment_fraction"),
            ({"eligibility_fraction": 0.0}, "eligibility_fraction"),
            ({"eligibility_fraction": 1.5}, "eligibility_fraction"),
            ({"decision_latency_days": -1}, "decision_latency_days"),
        ],
    )
    def test_validation(self, overrides, field):
        kwargs = {"duration_days": 14, "daily_traffic": 1000, **overrides}
        with pytest.raises(InvalidInputError) as exc_info:
            TestDesign(**kwargs)
        assert exc_info.value.field == field


class TestCostInputs:
    def test_labor_cost(self):
        assert CostInputs(labor_hours=10, labor_hourly_rate=100).labor_cost == pytest.approx(1000)

    def test_negative_cost_rejected(self):
        with pytest.raises(InvalidInputError) as exc_info:
            CostInputs(fixed_test_cost=-1)
        assert exc_info.value.field == "fixed_test_cost"


class TestSnapshots:
    def test_evpi_requires_a_prior(self):
        with pytest.raises(InvalidInputError) as exc_info:
            EVPIInputs(k=1000, threshold_l=0.0, prior=(0.0, 0.05))
        assert exc_info.value.field == "prior"

    def test_evsi_from_design(self, business):
        prior = NormalPrior(mu=0.0, sigma=0.05)
        design = TestDesign(duration_days=14, daily_traffic=1000)
        inputs = EVSIInputs.from_design(business, 0.0, prior, design)
        assert inputs.k == pytest.approx(500_000)
        assert (inputs.n_control, inputs.n_variant) == (7_000, 7_000)
        assert inputs.standard_error == pytest.approx(se_of_relative_lift(0.05, 7_000, 7_000))

    def test_net_value_rejects_empty_arm_design(self, business):
        with pytest.raises(InvalidInputError):
            NetValueInputs.from_design(
                business, 0.0, NormalPrior(mu=0.0, sigma=0.05), TestDesign(duration_days=1, daily_traffic=0.1)
            )

    def test_net_value_evsi_inputs(self, business):
        design = TestDesign(duration_days=14, daily_traffic=1000)
        inputs = NetValueInputs.from_design(business, 0.01, NormalPrior(mu=0.0, sigma=0.05), design)
        evsi_inputs = inputs.evsi_inputs()
        assert evsi_inputs.threshold_l == pytest.approx(0.01)
        assert evsi_inputs.n_variant == 7_000
        assert inputs.costs == CostInputs()
