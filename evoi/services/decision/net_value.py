"""
Net value of running a specific test, net of its costs.

For every simulated true lift the year is split into windows, each a fraction
of 365 days, and value is measured relative to the threshold (K * (L - T_L)
while shipped, 0 otherwise):

    test window       only the exposed share of traffic sees the treatment
    latency window    conversions mature and the decision is made; baseline only
    after decision    the posterior decision applies for the rest of the year
    no test           the default decision applies for the full year

    Net = mean(with test) - mean(without test)
          - fixed cost - labor cost - daily cost of delay * (duration + latency)

Net is deliberately left unclamped: a negative value is the answer "don't test".
"""

import math
from typing import Optional

import numpy as np
import structlog

from evoi.services.decision.cost_of_delay import calculate_cost_of_delay
from evoi.services.decision.errors import require_finite
from evoi.services.decision.evsi import (
    DEFAULT_NUM_SAMPLES,
    POSTERIOR_GRID_SIZE,
    collect_warnings,
    make_rng,
    simulate_decisions,
)
from evoi.services.decision.inputs import DAYS_PER_YEAR, NetValueInputs
from evoi.services.decision.results import NetValueResult

logger = structlog.get_logger()


def window_fractions(duration_days: float, latency_days: float):
    """Fractions of the year spent testing, waiting, and living with the decision."""
    test_fraction = duration_days / DAYS_PER_YEAR
    latency_fraction = latency_days / DAYS_PER_YEAR
    remaining_fraction = max(0.0, 1.0 - test_fraction - latency_fraction)
    return test_fraction, latency_fraction, remaining_fraction


def calculate_net_value(
    inputs: NetValueInputs,
    num_samples: int = DEFAULT_NUM_SAMPLES,
    seed: Optional[int] = None,
    grid_size: int = POSTERIOR_GRID_SIZE,
) -> NetValueResult:
    design, costs = inputs.design, inputs.costs
    evsi_inputs = inputs.evsi_inputs()

    rng = make_rng(seed)
    simulation = simulate_decisions(evsi_inputs, num_samples, rng, grid_size)

    test_fraction, _latency_fraction, remaining_fraction = window_fractions(
        design.duration_days, design.latency_days
    )
    value_if_shipped = inputs.k * (simulation.true_lift - inputs.threshold_l)

    value_during_test = design.exposed_fraction * value_if_shipped * test_fraction
    # Latency window runs on the baseline, which is worth 0 relative to the threshold
    value_after_decision = np.where(simulation.ship_after_test, value_if_shipped, 0.0) * remaining_fraction
    value_with_test = value_during_test + value_after_decision

    if simulation.ship_by_default:
        value_without_test = value_if_shipped
    else:
        value_without_test = np.zeros_like(value_if_shipped)

    difference = value_with_test - value_without_test
    gross_value = require_finite(float(difference.mean()), "gross_value_dollars")
    mc_se = require_finite(float(difference.std(ddof=1) / math.sqrt(simulation.num_samples)), "monte_carlo_se")

    labor_cost = costs.labor_cost
    delay_cost = costs.daily_cost_of_delay * (design.duration_days + design.latency_days)
    net_value = require_finite(gross_value - costs.fixed_test_cost - labor_cost - delay_cost, "net_value_dollars")

    cost_of_delay = calculate_cost_of_delay(inputs.k, inputs.prior.mean, inputs.threshold_l, design)

    logger.debug(
        "net_value_simulated",
        num_samples=simulation.num_samples,
        gross_value=gross_value,
        net_value=net_value,
        monte_carlo_se=mc_se,
    )

    return NetValueResult(
        net_value_dollars=net_value,
        should_test=net_value > 0,
        gross_value_dollars=gross_value,
        fixed_test_cost=costs.fixed_test_cost,
        labor_cost=labor_cost,
        delay_cost=delay_cost,
        default_decision=simulation.default_decision,
        probability_clears_threshold=simulation.probability_clears(inputs.threshold_l),
        probability_test_changes_decision=simulation.probability_test_changes_decision,
        truncation_significant=inputs.prior.truncation_significant,
        mean_value_with_test=float(value_with_test.mean()),
        mean_value_without_test=float(value_without_test.mean()),
        mean_value_during_test=float(value_during_test.mean()),
        mean_value_after_decision=float(value_after_decision.mean()),
        prior_mean_cost_of_delay=cost_of_delay.cost_of_delay_dollars,
        num_samples=simulation.num_samples,
        monte_carlo_se=mc_se,
        infeasible_prior_mass=simulation.infeasible_mass,
        warnings=collect_warnings(evsi_inputs, simulation.infeasible_mass),
    )
