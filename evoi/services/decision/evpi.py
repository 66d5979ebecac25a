"""
Expected Value of Perfect Information.

EVPI is the expected regret of acting on the prior alone, i.e. the most it is
worth paying to learn the true lift before deciding:

    default = ship:      EVPI = K * E[max(0, T_L - L)]
    default = dont-ship: EVPI = K * E[max(0, L - T_L)]

Normal priors use the unit normal loss integral. Student-t and Uniform priors
integrate numerically over the prior truncated at L >= -1.
"""

import math
from typing import Optional

from scipy import integrate
from scipy import stats as scipy_stats

from evoi.services.decision.distributions import (
    NEAR_ZERO_SIGMA,
    LIFT_FLOOR,
    Prior,
    PriorShape,
)
from evoi.services.decision.errors import ComputationError, InvalidInputError, require_finite
from evoi.services.decision.inputs import EVPIInputs
from evoi.services.decision.results import EdgeCaseFlags, EVPIResult
from evoi.services.decision.rules import Decision, decide

ONE_SIDED_TOLERANCE = 1e-4

# Tail probability beyond which the integration range is cut off
_TAIL_CUTOFF = 1e-12


def unit_normal_loss(z: float) -> float:
    """Standard normal loss integral: E[max(0, Z - z)] = phi(z) - z * (1 - Phi(z))."""
    return float(scipy_stats.norm.pdf(z) - z * scipy_stats.norm.sf(z))


def normal_expected_loss(mu: float, sigma: float, threshold_l: float) -> float:
    """Expected lift shortfall of the prior-optimal action under Normal(mu, sigma).

    Whichever side of the threshold the mean falls on, the loss of the default
    action is sigma * UNL(|mu - T_L| / sigma).
    """
    z = abs(mu - threshold_l) / sigma
    # Roundoff can leave a tiny negative value deep in the tail
    return max(0.0, sigma * unit_normal_loss(z))


def _integration_range(prior: Prior):
    dist = prior.dist
    lower = max(LIFT_FLOOR, float(dist.ppf(0.0)))
    upper = float(dist.ppf(1.0))
    if math.isinf(upper):
        upper = float(dist.isf(_TAIL_CUTOFF))
    return lower, upper


def numerical_expected_loss(prior: Prior, threshold_l: float, default_decision: Decision) -> float:
    """Expected shortfall of the default action, integrated over the prior truncated at -1."""
    truncated = prior.truncate()
    lower, upper = _integration_range(prior)

    def density(x: float) -> float:
        return float(truncated.pdf(x))

    if default_decision == Decision.SHIP:
        a, b = lower, min(threshold_l, upper)

        def integrand(x):
            return (threshold_l - x) * density(x)

    else:
        a, b = max(threshold_l, lower), upper

        def integrand(x):
            return (x - threshold_l) * density(x)

    if b <= a:
        return 0.0

    # Breakpoints keep quad from stepping over a narrow peak
    center, spread = prior.mean, prior.std
    points = sorted(p for p in (center - 5 * spread, center, center + 5 * spread) if a < p < b)

    value, _abserr = integrate.quad(integrand, a, b, points=points or None, limit=200)
    return max(0.0, require_finite(value, "expected_loss"))


def detect_edge_cases(prior: Prior, probability_below_threshold: float) -> EdgeCaseFlags:
    return EdgeCaseFlags(
        truncation_significant=prior.truncation_significant,
        near_zero_sigma=prior.std < NEAR_ZERO_SIGMA,
        prior_one_sided=(
            probability_below_threshold > 1 - ONE_SIDED_TOLERANCE
            or probability_below_threshold < ONE_SIDED_TOLERANCE
        ),
    )


def calculate_evpi(inputs: EVPIInputs, method: Optional[str] = None) -> EVPIResult:
    """Compute EVPI for a prior, threshold and dollar scale K.

    ``method`` defaults to "closed-form" for Normal priors and "numerical"
    otherwise; "numerical" may be forced on a Normal prior to cross-check the
    integration against the closed form.
    """
    prior = inputs.prior
    threshold_l = inputs.threshold_l
    k = inputs.k

    if method is None:
        method = "closed-form" if prior.shape == PriorShape.NORMAL else "numerical"
    if method not in ("closed-form", "numerical"):
        raise InvalidInputError("method", f"unknown EVPI method '{method}'")
    if method == "closed-form" and prior.shape != PriorShape.NORMAL:
        raise InvalidInputError("method", "the closed form is only available for Normal priors")

    default_decision = decide(prior.mean, threshold_l)

    z_score = phi_z = cdf_z = None
    if method == "closed-form":
        sigma = prior.std
        z_score = (threshold_l - prior.mean) / sigma
        phi_z = float(scipy_stats.norm.pdf(z_score))
        cdf_z = float(scipy_stats.norm.cdf(z_score))
        probability_below = cdf_z
        expected_loss = normal_expected_loss(prior.mean, sigma, threshold_l)
    else:
        probability_below = float(prior.truncate().cdf(threshold_l))
        expected_loss = numerical_expected_loss(prior, threshold_l, default_decision)

    evpi_dollars = require_finite(k * expected_loss, "evpi_dollars")
    if evpi_dollars < 0:
        raise ComputationError(f"EVPI came out negative ({evpi_dollars})", quantity="evpi_dollars")

    probability_clears = 1 - probability_below
    chance_wrong = probability_below if default_decision == Decision.SHIP else probability_clears

    return EVPIResult(
        evpi_dollars=evpi_dollars,
        default_decision=default_decision,
        probability_clears_threshold=probability_clears,
        chance_of_being_wrong=chance_wrong,
        k=k,
        threshold_l=threshold_l,
        threshold_dollars=k * threshold_l,
        edge_cases=detect_edge_cases(prior, probability_below),
        method=method,
        z_score=z_score,
        phi_z=phi_z,
        cdf_z=cdf_z,
    )
