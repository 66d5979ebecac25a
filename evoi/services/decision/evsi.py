"""
Expected Value of Sample Information for a specific A/B test design.

The test is modelled as a noisy, unbiased observation of the true lift:

    L_hat | L ~ Normal(L, SE^2),  SE^2 = (1 - CR0) / CR0 * (1/n_control + 1/n_variant)

Two algorithms, selected once by prior shape:

- Normal prior: closed-form pre-posterior analysis. Before seeing data the
  posterior mean is distributed Normal(mu, sigma_pre^2) with
  sigma_pre^2 = sigma^2 - sigma_post^2, so EVSI is the EVPI loss integral
  evaluated at sigma_pre.
- Student-t / Uniform prior: Monte Carlo. Draw a true lift from the prior
  (truncated to the feasible range), simulate the test estimate, take the
  posterior mean E[L | L_hat], decide, and score the realised regret against
  the drawn true lift.

The Monte Carlo machinery (``simulate_decisions``) is shared with the Net
Value calculator so both see identical draws for a given seed.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from scipy import stats as scipy_stats

from evoi.services.decision.distributions import (
    LIFT_FLOOR,
    NormalPrior,
    Prior,
    PriorShape,
    StudentTPrior,
    UniformPrior,
)
from evoi.services.decision.errors import ComputationError, InvalidInputError, require_finite
from evoi.services.decision.evpi import normal_expected_loss
from evoi.services.decision.inputs import EVSIInputs, feasibility_bounds
from evoi.services.decision.results import CalculationWarning, EVSIResult
from evoi.services.decision.rules import Decision, decide, ship_mask

DEFAULT_NUM_SAMPLES = 5000
POSTERIOR_GRID_SIZE = 200
# Student-t grid spans this many scale units either side of the location
GRID_HALF_WIDTH = 6.0
GRID_CHUNK_ROWS = 10_000

RARE_EVENTS_MIN_CONVERSIONS = 20
HIGH_REJECTION_RATE = 0.10

_MIN_NORMALIZER = 1e-10


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(seed)


def check_num_samples(num_samples: int) -> None:
    if not isinstance(num_samples, (int, np.integer)) or isinstance(num_samples, bool):
        raise InvalidInputError("num_samples", f"must be an integer, got {num_samples!r}")
    if num_samples < 2:
        raise InvalidInputError("num_samples", f"must be at least 2, got {num_samples}")


def collect_warnings(inputs: EVSIInputs, infeasible_mass: float = 0.0) -> List[CalculationWarning]:
    warnings = []
    cr0 = inputs.baseline_conversion_rate
    min_expected_conversions = min(inputs.n_control, inputs.n_variant) * cr0
    if min_expected_conversions < RARE_EVENTS_MIN_CONVERSIONS:
        warnings.append(
            CalculationWarning(
                code="rare_events",
                message=(
                    f"Expected conversions per group are low (<{RARE_EVENTS_MIN_CONVERSIONS}). "
                    "The normal approximation for lift may be less accurate. "
                    "Consider increasing test duration or traffic."
                ),
            )
        )
    if infeasible_mass > HIGH_REJECTION_RATE:
        warnings.append(
            CalculationWarning(
                code="high_rejection",
                message=(
                    f"{infeasible_mass:.0%} of the prior lies outside feasible conversion rates "
                    "and was excluded. Consider narrowing the prior or checking the baseline rate."
                ),
            )
        )
    return warnings


def _standard_error(inputs: EVSIInputs) -> float:
    se = require_finite(inputs.standard_error, "standard_error")
    if se <= 0:
        raise ComputationError("sampling variance is zero", quantity="standard_error")
    return se


# ---------------------------------------------------------------------------
# Posterior means
# ---------------------------------------------------------------------------


def truncated_normal_mean(mu: np.ndarray, sigma: float, a: float, b: float) -> np.ndarray:
    """E[X | a <= X <= b] for X ~ Normal(mu, sigma^2), vectorised over mu."""
    mu = np.asarray(mu, dtype=float)
    alpha = (a - mu) / sigma
    beta = (b - mu) / sigma

    # Survival functions keep precision when the window sits in the upper tail
    z = np.where(
        alpha > 0,
        scipy_stats.norm.sf(alpha) - scipy_stats.norm.sf(beta),
        scipy_stats.norm.cdf(beta) - scipy_stats.norm.cdf(alpha),
    )
    degenerate = z < _MIN_NORMALIZER
    safe_z = np.where(degenerate, 1.0, z)
    mean = mu + sigma * (scipy_stats.norm.pdf(alpha) - scipy_stats.norm.pdf(beta)) / safe_z
    # Almost no likelihood mass inside the window: collapse to the nearest bound
    return np.where(degenerate, np.clip(mu, a, b), np.clip(mean, a, b))


def _grid_posterior_means(
    l_hat: np.ndarray, se: float, prior: StudentTPrior, feasible_upper: float, grid_size: int
) -> np.ndarray:
    lower = max(LIFT_FLOOR, prior.mean - GRID_HALF_WIDTH * prior.sigma)
    upper = min(prior.mean + GRID_HALF_WIDTH * prior.sigma, feasible_upper)
    if not upper > lower:
        return np.full(l_hat.shape, min(max(prior.mean, LIFT_FLOOR), feasible_upper))

    grid = np.linspace(lower, upper, grid_size + 1)
    log_prior = prior.dist.logpdf(grid)

    means = np.empty(l_hat.shape, dtype=float)
    for start in range(0, l_hat.size, GRID_CHUNK_ROWS):
        chunk = l_hat[start : start + GRID_CHUNK_ROWS]
        # Log space with max subtraction so a narrow likelihood cannot underflow
        log_w = log_prior[None, :] - 0.5 * ((chunk[:, None] - grid[None, :]) / se) ** 2
        log_w -= log_w.max(axis=1, keepdims=True)
        weights = np.exp(log_w)
        means[start : start + GRID_CHUNK_ROWS] = (weights @ grid) / weights.sum(axis=1)
    return means


def posterior_means(
    l_hat: np.ndarray,
    se: float,
    prior: Prior,
    baseline_conversion_rate: float,
    grid_size: int = POSTERIOR_GRID_SIZE,
) -> np.ndarray:
    """E[L | L_hat] for each simulated test estimate."""
    l_hat = np.asarray(l_hat, dtype=float)
    _, upper = feasibility_bounds(baseline_conversion_rate)

    if isinstance(prior, NormalPrior):
        prior_var = prior.sigma**2
        shrinkage = prior_var / (prior_var + se**2)
        return shrinkage * l_hat + (1 - shrinkage) * prior.mu

    if isinstance(prior, UniformPrior):
        # Uniform prior x Normal likelihood is a Normal truncated to the prior support
        a = max(LIFT_FLOOR, prior.low)
        b = min(prior.high, upper)
        if not b > a:
            return np.full(l_hat.shape, a)
        return truncated_normal_mean(l_hat, se, a, b)

    if isinstance(prior, StudentTPrior):
        return _grid_posterior_means(l_hat, se, prior, upper, grid_size)

    raise InvalidInputError("prior", f"unsupported prior shape {prior.shape!r}")


# ---------------------------------------------------------------------------
# Shared simulation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SimulatedDecisions:
    """One Monte Carlo pass of prior draw -> test estimate -> posterior decision."""

    true_lift: np.ndarray
    ship_after_test: np.ndarray
    default_decision: Decision
    infeasible_mass: float

    @property
    def num_samples(self) -> int:
        return int(self.true_lift.size)

    @property
    def ship_by_default(self) -> bool:
        return self.default_decision == Decision.SHIP

    @property
    def probability_test_changes_decision(self) -> float:
        return float(np.mean(self.ship_after_test != self.ship_by_default))

    def probability_clears(self, threshold_l: float) -> float:
        return float(np.mean(ship_mask(self.true_lift, threshold_l)))


def simulate_decisions(
    inputs: EVSIInputs,
    num_samples: int,
    rng: np.random.Generator,
    grid_size: int = POSTERIOR_GRID_SIZE,
) -> SimulatedDecisions:
    check_num_samples(num_samples)
    se = _standard_error(inputs)
    prior = inputs.prior
    threshold_l = inputs.threshold_l

    lower, upper = feasibility_bounds(inputs.baseline_conversion_rate)
    feasible_prior = prior.truncate(lower, upper)

    true_lift = feasible_prior.sample(rng, num_samples)
    l_hat = true_lift + se * rng.standard_normal(num_samples)
    posterior = posterior_means(l_hat, se, prior, inputs.baseline_conversion_rate, grid_size)

    if not np.all(np.isfinite(posterior)):
        raise ComputationError("posterior mean is not finite for some draws", quantity="posterior_mean")

    return SimulatedDecisions(
        true_lift=true_lift,
        ship_after_test=ship_mask(posterior, threshold_l),
        default_decision=decide(prior.mean, threshold_l),
        infeasible_mass=feasible_prior.excluded_mass,
    )


def realized_regret(ship: np.ndarray, true_lift: np.ndarray, threshold_l: float, k: float) -> np.ndarray:
    """Dollars lost against the better action for each drawn true lift."""
    shortfall = np.maximum(0.0, threshold_l - true_lift)
    foregone = np.maximum(0.0, true_lift - threshold_l)
    return k * np.where(ship, shortfall, foregone)


# ---------------------------------------------------------------------------
# Calculators
# ---------------------------------------------------------------------------


def calculate_evsi_normal_fast_path(inputs: EVSIInputs) -> EVSIResult:
    prior = inputs.prior
    if not isinstance(prior, NormalPrior):
        raise InvalidInputError("prior", "the Normal fast path requires a Normal prior")

    se = _standard_error(inputs)
    mu, sigma = prior.mu, prior.sigma
    threshold_l = inputs.threshold_l

    prior_var = sigma**2
    sigma_pre = sigma * math.sqrt(prior_var / (prior_var + se**2))
    require_finite(sigma_pre, "preposterior_sigma")
    if sigma_pre <= 0:
        raise ComputationError("pre-posterior spread collapsed to zero", quantity="preposterior_sigma")

    default_decision = decide(mu, threshold_l)
    evsi_dollars = require_finite(inputs.k * normal_expected_loss(mu, sigma_pre, threshold_l), "evsi_dollars")

    # Posterior mean ~ Normal(mu, sigma_pre^2) before the data arrive
    z_pre = (threshold_l - mu) / sigma_pre
    if default_decision == Decision.SHIP:
        probability_changes = float(scipy_stats.norm.cdf(z_pre))
    else:
        probability_changes = float(scipy_stats.norm.sf(z_pre))

    return EVSIResult(
        evsi_dollars=evsi_dollars,
        default_decision=default_decision,
        probability_clears_threshold=float(scipy_stats.norm.sf((threshold_l - mu) / sigma)),
        probability_test_changes_decision=probability_changes,
        truncation_significant=prior.truncation_significant,
        method="normal-fast-path",
        n_control=inputs.n_control,
        n_variant=inputs.n_variant,
        standard_error=se,
        warnings=collect_warnings(inputs),
    )


def calculate_evsi_monte_carlo(
    inputs: EVSIInputs,
    num_samples: int = DEFAULT_NUM_SAMPLES,
    seed: Optional[int] = None,
    grid_size: int = POSTERIOR_GRID_SIZE,
) -> EVSIResult:
    rng = make_rng(seed)
    simulation = simulate_decisions(inputs, num_samples, rng, grid_size)
    threshold_l, k = inputs.threshold_l, inputs.k

    regret_without = realized_regret(
        np.full(simulation.num_samples, simulation.ship_by_default), simulation.true_lift, threshold_l, k
    )
    regret_with = realized_regret(simulation.ship_after_test, simulation.true_lift, threshold_l, k)
    improvement = regret_without - regret_with

    raw_evsi = require_finite(float(improvement.mean()), "evsi_dollars")
    mc_se = require_finite(float(improvement.std(ddof=1) / math.sqrt(simulation.num_samples)), "monte_carlo_se")

    return EVSIResult(
        # Information cannot hurt in expectation; negatives are sampling noise
        evsi_dollars=max(0.0, raw_evsi),
        default_decision=simulation.default_decision,
        probability_clears_threshold=simulation.probability_clears(threshold_l),
        probability_test_changes_decision=simulation.probability_test_changes_decision,
        truncation_significant=inputs.prior.truncation_significant,
        method="monte-carlo",
        n_control=inputs.n_control,
        n_variant=inputs.n_variant,
        standard_error=inputs.standard_error,
        num_samples=simulation.num_samples,
        raw_evsi_dollars=raw_evsi,
        monte_carlo_se=mc_se,
        infeasible_prior_mass=simulation.infeasible_mass,
        warnings=collect_warnings(inputs, simulation.infeasible_mass),
    )


def calculate_evsi(
    inputs: EVSIInputs,
    num_samples: int = DEFAULT_NUM_SAMPLES,
    seed: Optional[int] = None,
    grid_size: int = POSTERIOR_GRID_SIZE,
) -> EVSIResult:
    """Closed form for Normal priors, Monte Carlo for everything else."""
    check_num_samples(num_samples)
    if inputs.prior.shape == PriorShape.NORMAL:
        return calculate_evsi_normal_fast_path(inputs)
    return calculate_evsi_monte_carlo(inputs, num_samples=num_samples, seed=seed, grid_size=grid_size)
